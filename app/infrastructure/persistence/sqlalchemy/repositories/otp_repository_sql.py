from datetime import datetime
from typing import Optional
from sqlalchemy import update, delete, or_, and_
from sqlmodel import Session, select, col

from .....db.models import OTPVerification
from .....application.ports.otp_repo import OTPRepository, OTPRecordDto
from .....utils import utcnow, as_utc

_UPSERT_COLUMNS = ("otp_code", "issue_id", "expires_at", "verified", "attempts", "updated_at")


class SqlOTPRepository(OTPRepository):
    """OTP records in ``otp_verifications``.

    Writes go through Core statements on the session's connection so each
    state change is a single conditional statement; commits belong to the
    unit of work.
    """

    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, rec: OTPVerification) -> OTPRecordDto:
        return OTPRecordDto(
            phone_number=rec.phone_number,
            otp_code=rec.otp_code,
            issue_id=rec.issue_id,
            expires_at=as_utc(rec.expires_at),
            verified=bool(rec.verified),
            attempts=int(rec.attempts),
            updated_at=as_utc(rec.updated_at),
        )

    def get(self, phone_number: str) -> Optional[OTPRecordDto]:
        stmt = (
            select(OTPVerification)
            .where(OTPVerification.phone_number == phone_number)
            .execution_options(populate_existing=True)
        )
        rec = self.session.exec(stmt).first()
        return self._to_dto(rec) if rec else None

    def upsert(self, record: OTPRecordDto) -> None:
        values = {
            "phone_number": record.phone_number,
            "otp_code": record.otp_code,
            "issue_id": record.issue_id,
            "expires_at": record.expires_at,
            "verified": record.verified,
            "attempts": record.attempts,
            "created_at": record.updated_at or utcnow(),
            "updated_at": record.updated_at or utcnow(),
        }
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            self.session.merge(OTPVerification(**values))
            self.session.flush()
            return
        stmt = insert(OTPVerification).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["phone_number"],
            set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
        )
        self.session.connection().execute(stmt)

    def record_failed_attempt(self, phone_number: str, issue_id: str, expected_attempts: int) -> bool:
        stmt = (
            update(OTPVerification)
            .where(
                col(OTPVerification.phone_number) == phone_number,
                col(OTPVerification.issue_id) == issue_id,
                col(OTPVerification.verified).is_(False),
                col(OTPVerification.attempts) == expected_attempts,
            )
            .values(attempts=col(OTPVerification.attempts) + 1, updated_at=utcnow())
        )
        return self.session.connection().execute(stmt).rowcount == 1

    def mark_verified(self, phone_number: str, issue_id: str, expected_attempts: int, now: datetime) -> bool:
        stmt = (
            update(OTPVerification)
            .where(
                col(OTPVerification.phone_number) == phone_number,
                col(OTPVerification.issue_id) == issue_id,
                col(OTPVerification.verified).is_(False),
                col(OTPVerification.attempts) == expected_attempts,
                col(OTPVerification.expires_at) >= now,
            )
            .values(verified=True, updated_at=now)
        )
        return self.session.connection().execute(stmt).rowcount == 1

    def discard(self, phone_number: str, issue_id: str) -> bool:
        stmt = delete(OTPVerification).where(
            col(OTPVerification.phone_number) == phone_number,
            col(OTPVerification.issue_id) == issue_id,
        )
        return self.session.connection().execute(stmt).rowcount == 1

    def delete_stale(self, cutoff: datetime) -> int:
        stmt = delete(OTPVerification).where(
            or_(
                col(OTPVerification.expires_at) < cutoff,
                and_(col(OTPVerification.verified).is_(True), col(OTPVerification.updated_at) < cutoff),
            )
        )
        return self.session.connection().execute(stmt).rowcount
