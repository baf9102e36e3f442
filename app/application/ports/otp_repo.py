from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Optional


@dataclass
class OTPRecordDto:
    phone_number: str
    otp_code: str
    issue_id: str
    expires_at: datetime
    verified: bool = False
    attempts: int = 0
    updated_at: Optional[datetime] = None


class OTPRepository(Protocol):
    """Persistence for one OTP record per phone number.

    The conditional writes only apply when the stored row still matches the
    generation (``issue_id``) and attempt count the caller observed; they
    return False when another writer got there first.
    """

    def get(self, phone_number: str) -> Optional[OTPRecordDto]:
        ...

    def upsert(self, record: OTPRecordDto) -> None:
        ...

    def record_failed_attempt(self, phone_number: str, issue_id: str, expected_attempts: int) -> bool:
        ...

    def mark_verified(self, phone_number: str, issue_id: str, expected_attempts: int, now: datetime) -> bool:
        ...

    def discard(self, phone_number: str, issue_id: str) -> bool:
        ...

    def delete_stale(self, cutoff: datetime) -> int:
        ...
