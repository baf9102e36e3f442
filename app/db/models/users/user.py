# app/db/models/users/user.py
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, DateTime, JSON
from datetime import datetime
import uuid

from ....utils import utcnow

class IdentityUser(SQLModel, table=True):
    """User record owned by the identity provider (login identity, not the ride profile)."""
    __tablename__ = "identity_users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(max_length=120, unique=True, index=True)
    phone: str = Field(max_length=20, index=True)
    user_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    email_confirmed: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    # Relationships
    sessions: List["UserSession"] = Relationship(back_populates="user")
