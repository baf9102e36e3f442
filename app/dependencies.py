# FastAPI dependency providers wiring the application services to their adapters
import logging
from functools import lru_cache
from fastapi import Depends
from sqlmodel import Session

from .config import settings
from .database import engine, get_session
from .application.ports.sms_gateway import SMSGateway
from .application.ports.rate_limiter import RateLimiter
from .application.ports.audit_logger import AuditLogger
from .application.services.otp_issuer import OTPIssuer
from .application.services.otp_verifier import OTPVerifier
from .application.services.account_service import AccountService
from .application.services.otp_cleanup import OTPCleanupService
from .infrastructure.sms.twilio_gateway import TwilioSMSGateway
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from .infrastructure.identity.local_identity_provider import LocalIdentityProvider
from .infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOTPRepository
from .infrastructure.persistence.sqlalchemy.repositories.account_repository_sql import SqlAccountRepository
from .infrastructure.persistence.sqlalchemy.repositories.session_repository_sql import SqlSessionRepository
from .infrastructure.persistence.sqlalchemy.repositories.unit_of_work_sql import SqlUnitOfWork

logger = logging.getLogger(__name__)


@lru_cache()
def get_sms_gateway() -> SMSGateway:
    return TwilioSMSGateway()


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    if settings.REDIS_URL:
        logger.info("Using Redis OTP rate limiter")
        return RedisRateLimiter(settings.REDIS_URL, prefix="otp:")
    logger.info("Using memory-based OTP rate limiter")
    return InMemoryRateLimiter()


@lru_cache()
def get_audit_logger() -> AuditLogger:
    return StdAuditLogger()


def build_account_service(session: Session) -> AccountService:
    identity = LocalIdentityProvider(session, SqlSessionRepository(session))
    return AccountService(
        account_repo=SqlAccountRepository(session),
        identity=identity,
        email_domain=settings.ACCOUNT_EMAIL_DOMAIN,
    )


def get_otp_issuer(
    session: Session = Depends(get_session),
    sms_gateway: SMSGateway = Depends(get_sms_gateway),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    audit: AuditLogger = Depends(get_audit_logger),
) -> OTPIssuer:
    return OTPIssuer(
        otp_repo=SqlOTPRepository(session),
        sms_gateway=sms_gateway,
        uow=SqlUnitOfWork(session),
        rate_limiter=rate_limiter,
        audit=audit,
        code_length=settings.OTP_LENGTH,
        expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        sms_template=settings.OTP_SMS_TEMPLATE,
        void_on_sms_failure=settings.OTP_VOID_ON_SMS_FAILURE,
        max_sends_per_window=settings.OTP_SEND_MAX_PER_WINDOW,
        send_window_seconds=settings.OTP_SEND_WINDOW_SECONDS,
    )


def get_otp_verifier(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
) -> OTPVerifier:
    return OTPVerifier(
        otp_repo=SqlOTPRepository(session),
        accounts=build_account_service(session),
        uow=SqlUnitOfWork(session),
        audit=audit,
        max_attempts=settings.OTP_MAX_ATTEMPTS,
        default_role=settings.DEFAULT_ROLE,
    )


def run_otp_cleanup(bind=None) -> int:
    """One sweep of stale OTP records, in its own session."""
    with Session(bind or engine) as session:
        service = OTPCleanupService(
            otp_repo=SqlOTPRepository(session),
            uow=SqlUnitOfWork(session),
            retention_hours=settings.OTP_RETENTION_HOURS,
        )
        return service.purge()
