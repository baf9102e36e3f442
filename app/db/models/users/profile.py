# app/db/models/users/profile.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import DateTime

from ....utils import utcnow

ROLE_CUSTOMER = "customer"
ROLE_DRIVER = "driver"
ROLES = (ROLE_CUSTOMER, ROLE_DRIVER)

class Profile(SQLModel, table=True):
    __tablename__ = "profiles"
    id: str = Field(primary_key=True, foreign_key="identity_users.id")
    phone: str = Field(max_length=20, unique=True, index=True)
    full_name: str = Field(default="", max_length=100)
    role: str = Field(default=ROLE_CUSTOMER, max_length=10)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

class Driver(SQLModel, table=True):
    __tablename__ = "drivers"
    id: str = Field(primary_key=True, foreign_key="profiles.id")
    is_approved: bool = Field(default=False)
    is_online: bool = Field(default=False)
    rating: float = Field(default=0.0)
    total_rides: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

class Customer(SQLModel, table=True):
    __tablename__ = "customers"
    id: str = Field(primary_key=True, foreign_key="profiles.id")
    preferred_payment_method: str = Field(default="cash", max_length=20)
    rating: float = Field(default=0.0)
    total_rides: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
