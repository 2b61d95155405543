"""
api/routes/v1/forgot.py -- Forgot-password REST endpoints.

Routes:
  POST /api/v1/auth/forgot/send-otp        -- email a reset code to a registered address
  POST /api/v1/auth/forgot/verify-otp      -- trade the code for a reset verify_token
  POST /api/v1/auth/forgot/reset-password  -- set a new password with the verify_token

The reset flow has its own OTP and verification-token ledgers; a signup
verify_token is rejected here.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, otp_limit
from api.models import MessageResponse, ResetPasswordRequest, SendOtpRequest, VerifyOtpRequest, VerifyOtpResponse
from auth.service import AccountService

router = APIRouter()


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


@limiter.limit(otp_limit)
@router.post("/auth/forgot/send-otp", response_model=MessageResponse)
def forgot_send_otp(request: Request, body: SendOtpRequest) -> MessageResponse:
    """404 if the email is not registered."""
    _accounts(request).request_reset_otp(body.email_address)
    return MessageResponse(message="OTP sent successfully")


@router.post("/auth/forgot/verify-otp", response_model=VerifyOtpResponse)
def forgot_verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    token = _accounts(request).verify_reset_otp(body.email_address, body.otp)
    resp = JSONResponse(content=VerifyOtpResponse(message="OTP verified", verify_token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/forgot/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Replace the password and revoke every existing session of the account."""
    _accounts(request).reset_password(body.email_address, body.new_password, body.verify_token)
    return MessageResponse(message="Password reset successful")
