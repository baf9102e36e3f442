from typing import Optional
from sqlmodel import Session, select

from .....db.models import Profile, Driver, Customer, ROLE_DRIVER
from .....application.ports.account_repo import AccountRepository, ProfileDto
from .....utils import utcnow


class SqlAccountRepository(AccountRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, profile: Profile) -> ProfileDto:
        return ProfileDto(
            id=profile.id,
            phone=profile.phone,
            full_name=profile.full_name or "",
            role=profile.role,
        )

    def get_by_phone(self, phone: str) -> Optional[ProfileDto]:
        profile = self.session.exec(select(Profile).where(Profile.phone == phone)).first()
        return self._to_dto(profile) if profile else None

    def create_account(self, user_id: str, phone: str, full_name: str, role: str) -> ProfileDto:
        now = utcnow()
        profile = self.session.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id, phone=phone, full_name=full_name, role=role, created_at=now, updated_at=now)
        else:
            profile.phone = phone
            profile.full_name = full_name or profile.full_name
            profile.role = role
            profile.updated_at = now
        self.session.add(profile)
        # Profile row first so the role record's foreign key resolves
        self.session.flush()

        # Role records are only created, never reset, so a retry keeps existing stats
        if role == ROLE_DRIVER:
            if self.session.get(Driver, user_id) is None:
                self.session.add(Driver(id=user_id, is_approved=False, is_online=False, rating=0.0, total_rides=0, updated_at=now))
        elif self.session.get(Customer, user_id) is None:
            self.session.add(Customer(id=user_id, preferred_payment_method="cash", rating=0.0, total_rides=0, updated_at=now))
        self.session.flush()
        return self._to_dto(profile)
