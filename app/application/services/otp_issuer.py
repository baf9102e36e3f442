import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..ports.otp_repo import OTPRepository, OTPRecordDto
from ..ports.sms_gateway import SMSGateway, SMSDeliveryError
from ..ports.unit_of_work import UnitOfWork
from ..ports.rate_limiter import RateLimiter
from ..ports.audit_logger import AuditLogger
from ...exceptions import ValidationError, DependencyError, RateLimitError
from ...utils import generate_otp, normalize_phone, is_valid_phone, mask_phone, utcnow

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
SMS_TEMPLATE = "Your AlboCarRide verification code is: {code}. This code will expire in {minutes} minutes."
MAX_SENDS_PER_WINDOW = 3
SEND_WINDOW_SECONDS = 3600


@dataclass
class IssuedOTP:
    phone_number: str
    expires_at: datetime
    expires_in: int
    message_id: str


@dataclass
class OTPIssuer:
    """Generates a fresh code for a phone number, stores it and texts it out.

    The record is committed before the SMS is sent. When delivery fails the
    stored code is kept (so a manual resend path stays possible) unless
    ``void_on_sms_failure`` is set, in which case that generation is deleted.
    """
    otp_repo: OTPRepository
    sms_gateway: SMSGateway
    uow: UnitOfWork
    rate_limiter: Optional[RateLimiter] = None
    audit: Optional[AuditLogger] = None
    code_length: int = OTP_LENGTH
    expiry_minutes: int = OTP_EXPIRY_MINUTES
    sms_template: str = SMS_TEMPLATE
    void_on_sms_failure: bool = False
    max_sends_per_window: int = MAX_SENDS_PER_WINDOW
    send_window_seconds: int = SEND_WINDOW_SECONDS
    code_generator: Optional[Callable[[int], str]] = None
    clock: Callable[[], datetime] = utcnow

    def issue(self, phone_number: Optional[str], request_id: Optional[str] = None) -> IssuedOTP:
        phone = normalize_phone(phone_number)
        if not phone:
            raise ValidationError("Phone number is required")
        if not is_valid_phone(phone):
            raise ValidationError("Invalid phone number format. Must include country code (e.g., +15551234567)")

        if self.rate_limiter and not self.rate_limiter.allow(f"otp_send:{phone}", self.max_sends_per_window, self.send_window_seconds):
            logger.warning(f"OTP send rate limit exceeded for {mask_phone(phone)}")
            self._audit("otp_rate_limited", phone, request_id, success=False)
            raise RateLimitError("Too many OTP requests. Please try again later.")

        now = self.clock()
        record = OTPRecordDto(
            phone_number=phone,
            otp_code=(self.code_generator or generate_otp)(self.code_length),
            issue_id=str(uuid.uuid4()),
            expires_at=now + timedelta(minutes=self.expiry_minutes),
            verified=False,
            attempts=0,
            updated_at=now,
        )

        try:
            self.otp_repo.upsert(record)
            self.uow.commit()
        except Exception as e:
            self.uow.rollback()
            logger.error(f"Database error storing OTP for {mask_phone(phone)}: {e}")
            self._audit("otp_store_failed", phone, request_id, success=False, details={"error": str(e)})
            raise DependencyError("Failed to store OTP") from e

        body = self.sms_template.format(code=record.otp_code, minutes=self.expiry_minutes)
        try:
            message_id = self.sms_gateway.send(phone, body)
        except SMSDeliveryError as e:
            logger.error(f"SMS delivery failed for {mask_phone(phone)}: {e}")
            voided = self.void_on_sms_failure and self._void(record)
            self._audit("otp_send_failed", phone, request_id, success=False, details={"error": str(e), "voided": voided})
            raise DependencyError("Failed to send OTP via SMS") from e

        logger.info(f"OTP sent to {mask_phone(phone)} (message: {message_id})")
        self._audit("otp_sent", phone, request_id, details={"message_id": message_id})
        return IssuedOTP(
            phone_number=phone,
            expires_at=record.expires_at,
            expires_in=self.expiry_minutes * 60,
            message_id=message_id,
        )

    def _void(self, record: OTPRecordDto) -> bool:
        try:
            removed = self.otp_repo.discard(record.phone_number, record.issue_id)
            self.uow.commit()
            return removed
        except Exception as e:
            self.uow.rollback()
            logger.error(f"Could not void undelivered OTP for {mask_phone(record.phone_number)}: {e}")
            return False

    def _audit(self, action: str, phone: str, request_id: Optional[str], success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit:
            self.audit.log(action, phone, request_id=request_id, success=success, details=details)
