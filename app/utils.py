import re
import jwt
import uuid
import secrets
import string
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from .config import settings

PHONE_PATTERN = re.compile(r'^\+[0-9]{7,18}$')
PHONE_FORMATTING = re.compile(r'[\s\-()]')


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a timestamp read back without an offset (SQLite drops it)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =========================
# Phone numbers
# =========================
def normalize_phone(phone: Optional[str]) -> str:
    """Strip spaces, dashes and parentheses; returns "" for a missing number.

    Any other character is kept so that validation rejects it.
    """
    if phone is None:
        return ""
    return PHONE_FORMATTING.sub('', str(phone).strip())


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.fullmatch(phone))


def hash_phone_number(phone: str) -> str:
    """Hash phone number for logs (one-way hash)"""
    return hashlib.sha256(phone.encode()).hexdigest()


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "***"
    return f"{phone[:3]}***{phone[-2:]}"


# =========================
# OTP Generation
# =========================
def generate_otp(length: int = 6) -> str:
    """Generate a numeric OTP using a CSPRNG."""
    return ''.join(secrets.choice(string.digits) for _ in range(length))


# =========================
# JWT Token Handling
# =========================
def create_jwt_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = utcnow() + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access", "jti": str(uuid.uuid4())})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(data: Dict[str, Any], days: Optional[int] = None) -> str:
    """Create JWT refresh token"""
    to_encode = data.copy()
    expire = utcnow() + timedelta(days=days or settings.REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "type": "refresh", "jti": str(uuid.uuid4())})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
