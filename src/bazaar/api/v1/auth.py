"""Signup and OTP verification API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field

from bazaar.api.rate_limit import limiter
from bazaar.logging_config import get_logger
from bazaar.signup.orchestrator import SignupOrchestrator, SignupResult, SignupStatus
from bazaar.signup.schemas import SignupRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_orchestrator: SignupOrchestrator | None = None


def get_orchestrator() -> SignupOrchestrator:
    """Shared signup orchestrator, built on first use."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SignupOrchestrator()
    return _orchestrator


# ==================== MODELS ====================


class VerifyOtpRequest(BaseModel):
    """OTP verification request."""
    phone: str
    otp: str = Field(..., min_length=4, max_length=10)


class ResendOtpRequest(BaseModel):
    """OTP resend request."""
    phone: str


class AccountData(BaseModel):
    """Account summary returned after signup."""
    id: str
    email: str
    full_name: str
    phone: str | None
    user_type: str
    phone_verified: bool
    status: str


class SignupCompletedData(BaseModel):
    """Tokens and referral details for a completed signup."""
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int
    user: AccountData
    referral_code: str
    referral_applied: bool


class OtpPendingData(BaseModel):
    """Details of a signup waiting for OTP verification."""
    phone: str
    expires_at: datetime
    otp_sent: bool


class SignupResponse(BaseModel):
    """Response envelope for signup steps."""
    status: int
    message: str
    data: SignupCompletedData | OtpPendingData


def _completed(result: SignupResult, message: str) -> SignupResponse:
    account = result.created.account
    return SignupResponse(
        status=status.HTTP_201_CREATED,
        message=message,
        data=SignupCompletedData(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            token_type=result.tokens.token_type,
            expires_in=result.tokens.expires_in,
            user=AccountData(
                id=account.id,
                email=account.email,
                full_name=account.full_name,
                phone=account.phone,
                user_type=account.user_type.value,
                phone_verified=account.phone_verified,
                status=account.status.value,
            ),
            referral_code=result.referral_code,
            referral_applied=result.commission is not None,
        ),
    )


def _pending(result: SignupResult, message: str) -> SignupResponse:
    return SignupResponse(
        status=status.HTTP_202_ACCEPTED,
        message=message,
        data=OtpPendingData(
            phone=result.phone,
            expires_at=result.expires_at,
            otp_sent=result.otp_sent,
        ),
    )


# ==================== ENDPOINTS ====================


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    orchestrator: SignupOrchestrator = Depends(get_orchestrator),
):
    """Sign up any entity type.

    With a phone number the signup waits for OTP verification (202);
    without one the account is created right away (201). A referral code
    that cannot be applied never fails the signup.
    """
    result = orchestrator.signup(body)

    if result.status == SignupStatus.AWAITING_OTP:
        response.status_code = status.HTTP_202_ACCEPTED
        return _pending(result, "OTP sent. Verify your phone to complete signup.")

    return _completed(result, "Signup completed")


@router.post("/verify-otp", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    orchestrator: SignupOrchestrator = Depends(get_orchestrator),
):
    """Verify the OTP for a pending signup and create the account."""
    result = orchestrator.verify_otp(body.phone, body.otp)
    return _completed(result, "Phone verified. Signup completed")


@router.post("/resend-otp", response_model=SignupResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit("3/minute")
async def resend_otp(
    request: Request,
    body: ResendOtpRequest,
    orchestrator: SignupOrchestrator = Depends(get_orchestrator),
):
    """Send a fresh OTP for a pending signup."""
    result = orchestrator.resend_otp(body.phone)
    return _pending(result, "A new OTP has been sent")
