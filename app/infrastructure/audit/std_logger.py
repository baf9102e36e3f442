import json
import logging
from typing import Optional, Dict, Any

from ...application.ports.audit_logger import AuditLogger
from ...utils import hash_phone_number, utcnow


class StdAuditLogger(AuditLogger):
    """Writes audit events as ``AUDIT: {json}`` log lines; phone numbers are hashed."""

    def __init__(self, logger_name: str = "app.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def log(self, action: str, phone: str, user_id: Optional[str] = None, request_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "timestamp": utcnow().isoformat(),
            "action": action,
            "phone_hash": hash_phone_number(phone),
            "user_id": user_id,
            "request_id": request_id,
            "success": success,
            "details": details or {},
        }
        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, f"AUDIT: {json.dumps(entry, default=str)}")
