import logging
from datetime import timedelta
from typing import Optional, Dict, Any, List
from sqlmodel import Session, select

from ...config import settings
from ...db.models import IdentityUser
from ...application.ports.identity_provider import IdentityProvider, IdentityUserDto, SessionTokens
from ...application.ports.session_repo import SessionRepository
from ...utils import create_jwt_token, create_refresh_token, utcnow

logger = logging.getLogger(__name__)


class LocalIdentityProvider(IdentityProvider):
    """Identity users stored alongside the OTP tables, with JWT session material.

    Sign-in hands out a short-lived access token plus a refresh token recorded
    in ``user_sessions``; no password is ever generated for phone users.
    """

    def __init__(self, session: Session, session_repo: SessionRepository,
                 access_token_minutes: Optional[int] = None, refresh_token_days: Optional[int] = None):
        self.session = session
        self.session_repo = session_repo
        self.access_token_minutes = access_token_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        self.refresh_token_days = refresh_token_days or settings.REFRESH_TOKEN_EXPIRE_DAYS

    def _to_dto(self, user: IdentityUser) -> IdentityUserDto:
        return IdentityUserDto(
            id=user.id,
            email=user.email,
            phone=user.phone,
            user_metadata=dict(user.user_metadata or {}),
        )

    def find_user_by_email(self, email: str) -> Optional[IdentityUserDto]:
        user = self.session.exec(select(IdentityUser).where(IdentityUser.email == email.lower())).first()
        return self._to_dto(user) if user else None

    def list_users(self, page: int = 1, per_page: int = 50) -> List[IdentityUserDto]:
        offset = max(page - 1, 0) * per_page
        stmt = select(IdentityUser).order_by(IdentityUser.created_at).offset(offset).limit(per_page)
        return [self._to_dto(u) for u in self.session.exec(stmt).all()]

    def create_user(self, email: str, phone: str, user_metadata: Dict[str, Any]) -> IdentityUserDto:
        user = IdentityUser(email=email.lower(), phone=phone, user_metadata=dict(user_metadata), email_confirmed=True)
        self.session.add(user)
        self.session.flush()
        logger.info(f"Identity user {user.id} created")
        return self._to_dto(user)

    def issue_session(self, user_id: str) -> SessionTokens:
        claims = {"sub": user_id}
        access_token = create_jwt_token(claims, expires_minutes=self.access_token_minutes)
        refresh_token = create_refresh_token(claims, days=self.refresh_token_days)
        self.session_repo.create(
            user_id=user_id,
            token=access_token,
            refresh_token=refresh_token,
            expires_at=utcnow() + timedelta(days=self.refresh_token_days),
        )
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_token_minutes * 60,
        )
