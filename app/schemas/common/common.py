# app/schemas/common/common.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    code: Optional[str] = None
    attempts_remaining: Optional[int] = Field(None, alias="attemptsRemaining")

class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    sms_configured: bool
