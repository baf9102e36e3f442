# app/routers/otp_router.py
import uuid
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from ..schemas import SendOTPRequest, SendOTPResponse, VerifyOTPRequest, VerifyOTPResponse, ErrorResponse
from ..exceptions import CORS_HEADERS
from ..dependencies import get_otp_issuer, get_otp_verifier
from ..application.services.otp_issuer import OTPIssuer
from ..application.services.otp_verifier import OTPVerifier


router = APIRouter(prefix="", tags=["OTP"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _preflight() -> PlainTextResponse:
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.options("/send-otp", include_in_schema=False)
def send_otp_preflight():
    return _preflight()


@router.options("/verify-otp", include_in_schema=False)
def verify_otp_preflight():
    return _preflight()


@router.post("/send-otp", response_model=SendOTPResponse, responses=ERROR_RESPONSES)
def send_otp(payload: SendOTPRequest, issuer: OTPIssuer = Depends(get_otp_issuer)):
    """
    Generate a code for the phone number, store it and send it by SMS
    """
    request_id = str(uuid.uuid4())
    issued = issuer.issue(payload.phone_number, request_id=request_id)
    body = SendOTPResponse(success=True, message="OTP sent successfully", expires_in=issued.expires_in)
    return JSONResponse(content=body.model_dump(by_alias=True), headers=CORS_HEADERS)


@router.post("/verify-otp", response_model=VerifyOTPResponse, responses=ERROR_RESPONSES)
def verify_otp(payload: VerifyOTPRequest, verifier: OTPVerifier = Depends(get_otp_verifier)):
    """
    Check the submitted code and sign the user in, creating the account on first use
    """
    request_id = str(uuid.uuid4())
    account = verifier.verify(
        payload.phone_number,
        payload.otp,
        full_name=payload.full_name,
        role=payload.role,
        request_id=request_id,
    )
    body = VerifyOTPResponse(
        success=True,
        user_id=account.user_id,
        is_new_user=account.is_new_user,
        role=account.role,
        email=account.email,
        message="Phone number verified successfully",
        access_token=account.session.access_token,
        refresh_token=account.session.refresh_token,
        token_type=account.session.token_type,
        expires_in=account.session.expires_in,
    )
    return JSONResponse(content=body.model_dump(by_alias=True), headers=CORS_HEADERS)
