"""Referral API v1 endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from bazaar.accounts.middleware import require_auth
from bazaar.accounts.models import UserAccount
from bazaar.api.rate_limit import limiter
from bazaar.logging_config import get_logger
from bazaar.referral.qr import referral_qr_data_uri
from bazaar.referral.service import referral_service
from bazaar.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/referral", tags=["referral"])


# ==================== MODELS ====================


class ReferralCodeData(BaseModel):
    """The account's referral code."""
    code: str
    link: str


class ReferralQrData(BaseModel):
    """The account's referral link as a QR code."""
    code: str
    link: str
    qr_code: str


class ReferralData(BaseModel):
    """Referral dashboard data."""
    referral_code: str
    referral_link: str
    referral_count: int
    points: int | None
    referral_balance: float | None
    commissions_earned: float
    user_type: str


class ValidateCodeRequest(BaseModel):
    """Request to validate a referral code."""
    code: str = Field(..., max_length=32)


class ValidateCodeData(BaseModel):
    """Result of code validation."""
    valid: bool
    referrer_type: str | None = None
    referrer_name: str | None = None


class ApplyReferralRequest(BaseModel):
    """Request to apply a referral code after signup."""
    code: str = Field(..., alias="referralCode", max_length=32)

    model_config = {"populate_by_name": True}


class ApplyReferralData(BaseModel):
    """Outcome of applying a referral code."""
    referrer_type: str
    reward_amount: float
    reward_unit: str


class CommissionData(BaseModel):
    """One commission record."""
    id: str
    referred_id: str
    referred_type: str | None
    amount: float
    reward_unit: str
    referral_code: str | None
    created_at: datetime


class Envelope(BaseModel):
    """Response envelope."""
    status: int = 200
    message: str
    data: Any = None


# ==================== ENDPOINTS ====================


@router.get("/code", response_model=Envelope)
async def get_referral_code(account: UserAccount = Depends(require_auth)):
    """Get the account's referral code, assigning one if it has none."""
    holder, holder_type = referral_service.accounts.get_referral_holder(account)
    code = referral_service.ensure_referral_code(holder_type, holder.id)

    return Envelope(
        message="Referral code retrieved",
        data=ReferralCodeData(code=code, link=f"{settings.referral_link_base}{code}"),
    )


@router.get("/qrcode", response_model=Envelope)
async def get_referral_qrcode(account: UserAccount = Depends(require_auth)):
    """Get a QR code (PNG data URI) of the account's referral link."""
    holder, holder_type = referral_service.accounts.get_referral_holder(account)
    code = referral_service.ensure_referral_code(holder_type, holder.id)
    link = f"{settings.referral_link_base}{code}"

    return Envelope(
        message="Referral QR code generated",
        data=ReferralQrData(code=code, link=link, qr_code=referral_qr_data_uri(link)),
    )


@router.get("/data", response_model=Envelope)
async def get_referral_data(account: UserAccount = Depends(require_auth)):
    """Get referral dashboard data for the current account."""
    data = referral_service.get_referral_data(account)
    return Envelope(message="Referral data retrieved", data=ReferralData(**data))


@router.post("/validate", response_model=Envelope)
@limiter.limit("30/minute")
async def validate_referral_code(request: Request, body: ValidateCodeRequest):
    """Check whether a referral code belongs to anyone.

    Used by signup forms before the account exists.
    """
    referrer = referral_service.validate_code(body.code)
    if referrer is None:
        return Envelope(message="Invalid referral code", data=ValidateCodeData(valid=False))

    return Envelope(
        message="Valid referral code",
        data=ValidateCodeData(
            valid=True,
            referrer_type=referrer.entity_type.value,
            referrer_name=referrer.display_name,
        ),
    )


@router.post("/apply", response_model=Envelope)
@limiter.limit("10/minute")
async def apply_referral_code(
    request: Request,
    body: ApplyReferralRequest,
    account: UserAccount = Depends(require_auth),
):
    """Apply a referral code for an account that skipped it at signup."""
    referrer, commission = referral_service.apply_referral(account, body.code)

    logger.info(
        "referral_applied",
        account_id=account.id,
        referrer_id=referrer.entity_id,
        referrer_type=referrer.entity_type.value,
    )

    return Envelope(
        message="Referral code applied",
        data=ApplyReferralData(
            referrer_type=referrer.entity_type.value,
            reward_amount=commission.amount,
            reward_unit=commission.reward_unit.value,
        ),
    )


@router.get("/commissions", response_model=Envelope)
async def list_commissions(
    account: UserAccount = Depends(require_auth),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List commissions earned by the current account."""
    records = referral_service.list_commissions(account, limit=limit, offset=offset)

    return Envelope(
        message="Commissions retrieved",
        data=[
            CommissionData(
                id=record.id,
                referred_id=record.referred_id,
                referred_type=record.referred_type.value if record.referred_type else None,
                amount=record.amount,
                reward_unit=record.reward_unit.value,
                referral_code=record.referral_code,
                created_at=record.created_at,
            )
            for record in records
        ],
    )
