import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..ports.otp_repo import OTPRepository, OTPRecordDto
from ..ports.unit_of_work import UnitOfWork
from ..ports.audit_logger import AuditLogger
from .account_service import AccountService, ResolvedAccount
from ...db.models.users.profile import ROLES, ROLE_CUSTOMER
from ...exceptions import (
    OTPServiceError,
    ValidationError,
    NotFoundError,
    StateError,
    MismatchError,
    DependencyError,
)
from ...utils import normalize_phone, mask_phone, utcnow

logger = logging.getLogger(__name__)

MAX_OTP_ATTEMPTS = 5


@dataclass
class OTPVerifier:
    """Checks a submitted code against the stored record and signs the user in.

    Rules are applied in a fixed order: missing record, already used, expired,
    locked out, wrong code, then success. Every write is a conditional update
    against the record state that was read; losing such a race re-reads the
    record and starts over, and a record replaced by a new issuance in the
    meantime is never validated against.

    Consuming the code and creating the account share one transaction, so a
    failure while provisioning leaves the code unused and retryable.
    """
    otp_repo: OTPRepository
    accounts: AccountService
    uow: UnitOfWork
    audit: Optional[AuditLogger] = None
    max_attempts: int = MAX_OTP_ATTEMPTS
    default_role: str = ROLE_CUSTOMER
    clock: Callable[[], datetime] = utcnow

    def verify(self, phone_number: Optional[str], otp: Optional[str], full_name: Optional[str] = None,
               role: Optional[str] = None, request_id: Optional[str] = None) -> ResolvedAccount:
        phone = normalize_phone(phone_number)
        code = otp or ""
        if not phone or not code.strip():
            raise ValidationError("Phone number and OTP are required")
        role = (role or self.default_role).strip().lower()
        if role not in ROLES:
            raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")

        record = self._load(phone)
        # Each lost race means another request moved the record forward, so the
        # loop is bounded by the attempt limit.
        for _ in range(self.max_attempts + 2):
            if record is None:
                raise NotFoundError("No OTP found for this phone number")
            self._check_state(record)

            if not secrets.compare_digest(record.otp_code.encode(), code.encode()):
                if self._record_failure(record):
                    remaining = max(self.max_attempts - (record.attempts + 1), 0)
                    logger.info(f"Invalid OTP for {mask_phone(phone)}, {remaining} attempts remaining")
                    self._audit("otp_verify_failed", phone, request_id, success=False, details={"attempts_remaining": remaining})
                    raise MismatchError("Invalid OTP", attempts_remaining=remaining)
            else:
                account = self._consume_and_resolve(record, full_name, role, request_id)
                if account is not None:
                    return account

            record = self._reload_same_issue(record)

        logger.error(f"Gave up verifying {mask_phone(phone)} after repeated concurrent updates")
        raise DependencyError("Could not complete verification, please retry")

    def _check_state(self, record: OTPRecordDto) -> None:
        if record.verified:
            raise StateError("OTP already used", StateError.ALREADY_USED)
        if self.clock() > record.expires_at:
            raise StateError("OTP has expired", StateError.EXPIRED)
        if record.attempts >= self.max_attempts:
            raise StateError("Maximum verification attempts exceeded", StateError.MAX_ATTEMPTS_EXCEEDED)

    def _record_failure(self, record: OTPRecordDto) -> bool:
        try:
            updated = self.otp_repo.record_failed_attempt(record.phone_number, record.issue_id, record.attempts)
            self.uow.commit()
            return updated
        except Exception as e:
            self.uow.rollback()
            logger.error(f"Failed to record OTP attempt for {mask_phone(record.phone_number)}: {e}")
            raise DependencyError("Failed to update OTP record") from e

    def _consume_and_resolve(self, record: OTPRecordDto, full_name: Optional[str], role: str,
                             request_id: Optional[str]) -> Optional[ResolvedAccount]:
        phone = record.phone_number
        try:
            consumed = self.otp_repo.mark_verified(phone, record.issue_id, record.attempts, self.clock())
            if not consumed:
                self.uow.rollback()
                return None
            account = self.accounts.resolve(phone, full_name, role)
            self.uow.commit()
        except OTPServiceError:
            self.uow.rollback()
            raise
        except Exception as e:
            self.uow.rollback()
            logger.error(f"Account provisioning failed for {mask_phone(phone)}: {e}")
            self._audit("account_provisioning_failed", phone, request_id, success=False, details={"error": str(e)})
            raise DependencyError("Failed to create user account") from e

        if account.is_new_user:
            self._audit("account_created", phone, request_id, user_id=account.user_id, details={"role": account.role})
        self._audit("otp_verified", phone, request_id, user_id=account.user_id,
                    details={"is_new_user": account.is_new_user, "role": account.role})
        return account

    def _reload_same_issue(self, previous: OTPRecordDto) -> Optional[OTPRecordDto]:
        fresh = self._load(previous.phone_number)
        if fresh is not None and fresh.issue_id != previous.issue_id:
            logger.info(f"OTP for {mask_phone(previous.phone_number)} was reissued during verification")
            raise StateError("A new OTP was issued for this phone number. Use the latest code.", StateError.SUPERSEDED)
        return fresh

    def _load(self, phone: str) -> Optional[OTPRecordDto]:
        try:
            return self.otp_repo.get(phone)
        except Exception as e:
            logger.error(f"Failed to read OTP record for {mask_phone(phone)}: {e}")
            raise DependencyError("Failed to read OTP record") from e

    def _audit(self, action: str, phone: str, request_id: Optional[str], success: bool = True,
               user_id: Optional[str] = None, details: Optional[dict] = None) -> None:
        if self.audit:
            self.audit.log(action, phone, user_id=user_id, request_id=request_id, success=success, details=details)
