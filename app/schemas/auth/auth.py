# app/schemas/auth/auth.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

# Presence and format checks live in the services so that missing fields are
# reported with the same 400 payload as every other validation failure.

class SendOTPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(None, alias="phoneNumber", description="Phone number with country code")

class SendOTPResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    expires_in: int = Field(..., alias="expiresIn")

class VerifyOTPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(None, alias="phoneNumber", description="Phone number with country code")
    otp: Optional[str] = Field(None, description="Code received by SMS")
    full_name: Optional[str] = Field(None, alias="fullName", max_length=100, description="Used when a new account is created")
    role: Optional[str] = Field(None, description="'driver' or 'customer' (default)")

class VerifyOTPResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user_id: str = Field(..., alias="userId")
    is_new_user: bool = Field(..., alias="isNewUser")
    role: str
    email: str
    message: str
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn")
