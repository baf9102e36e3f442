import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..ports.otp_repo import OTPRepository
from ..ports.unit_of_work import UnitOfWork
from ...utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class OTPCleanupService:
    """Deletes OTP records that expired, or were consumed, more than ``retention_hours`` ago."""
    otp_repo: OTPRepository
    uow: UnitOfWork
    retention_hours: int = 24
    clock: Callable[[], datetime] = utcnow

    def purge(self) -> int:
        cutoff = self.clock() - timedelta(hours=self.retention_hours)
        try:
            count = self.otp_repo.delete_stale(cutoff)
            self.uow.commit()
        except Exception:
            self.uow.rollback()
            raise
        if count > 0:
            logger.info(f"Cleaned up {count} stale OTP records")
        return count
