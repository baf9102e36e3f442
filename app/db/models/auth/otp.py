# app/db/models/auth/otp.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import DateTime
import uuid

from ....utils import utcnow

class OTPVerification(SQLModel, table=True):
    __tablename__ = "otp_verifications"
    # One row per phone number; each issuance overwrites the row and rotates issue_id
    phone_number: str = Field(primary_key=True, max_length=20)
    otp_code: str = Field(max_length=10)
    issue_id: str = Field(default_factory=lambda: str(uuid.uuid4()), max_length=36)
    expires_at: datetime = Field(index=True, sa_type=DateTime(timezone=True))
    verified: bool = Field(default=False)
    attempts: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, index=True, sa_type=DateTime(timezone=True))
