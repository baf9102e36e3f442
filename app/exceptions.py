from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Optional, Dict, Any

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


class OTPServiceError(Exception):
    """Base class for errors surfaced to clients as JSON."""
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        return create_error_response(self.message, self.code)


class ValidationError(OTPServiceError):
    """Missing or malformed input; raised before any side effect."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(OTPServiceError):
    status_code = 404
    code = "NOT_FOUND"


class StateError(OTPServiceError):
    """The OTP record is in a terminal state and a new code must be requested."""
    status_code = 400

    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    SUPERSEDED = "SUPERSEDED"

    def __init__(self, message: str, reason: str):
        super().__init__(message, code=reason, status_code=409 if reason == self.SUPERSEDED else 400)
        self.reason = reason


class MismatchError(OTPServiceError):
    """Wrong code; the client may retry while attempts remain."""
    status_code = 400
    code = "INVALID_CODE"

    def __init__(self, message: str, attempts_remaining: int):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["attemptsRemaining"] = self.attempts_remaining
        return payload


class DependencyError(OTPServiceError):
    """Store, identity provider or SMS gateway failure."""
    status_code = 500
    code = "DEPENDENCY_FAILURE"


class RateLimitError(OTPServiceError):
    status_code = 429
    code = "RATE_LIMITED"


def create_error_response(error_message: str, code: Optional[str] = None) -> dict:
    """Create a standardized error response"""
    payload = {
        "success": False,
        "error": error_message,
    }
    if code:
        payload["code"] = code
    return payload


async def otp_service_exception_handler(request: Request, exc: OTPServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=CORS_HEADERS,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors, reported as 400 rather than 422"""
    return JSONResponse(
        status_code=400,
        content=create_error_response("Invalid request body", ValidationError.code),
        headers=CORS_HEADERS,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail)),
        headers={**CORS_HEADERS, **(exc.headers or {})},
    )
