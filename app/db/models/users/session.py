# app/db/models/users/session.py
from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime
from sqlalchemy import DateTime
import uuid

from ....utils import utcnow

class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="identity_users.id", index=True)
    token: str = Field(max_length=1000, index=True)
    refresh_token: str = Field(max_length=1000, index=True)
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    # Relationships
    user: Optional["IdentityUser"] = Relationship(back_populates="sessions")
