"""Signup orchestration.

A signup moves through these states:

- RECEIVED: payload validated and sanitised
- AWAITING_OTP: phone given; pending signup stored and OTP dispatched
- VERIFIED: entity created with its own referral code, any referral code
  it supplied attributed, session tokens issued

A wrong OTP leaves the signup awaiting; an expired one needs a resend.
Referral problems never fail a signup: they are logged and dropped.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from bazaar.accounts.local import LocalAuthService, TokenPair
from bazaar.accounts.models import EntityType
from bazaar.accounts.service import AccountService, CreatedAccount
from bazaar.accounts.validation import sanitize_email, sanitize_input, sanitize_phone
from bazaar.errors import BazaarError, ConflictError, ReferralCodeTakenError, ValidationError
from bazaar.logging_config import get_logger
from bazaar.referral.models import ReferralCommission
from bazaar.referral.service import ReferralService
from bazaar.signup.otp import OtpService
from bazaar.signup.schemas import SignupProfile, SignupRequest
from bazaar.storage.db import Database, db

logger = get_logger(__name__)


class SignupStatus(str, Enum):
    """Signup state reported to the caller."""
    RECEIVED = "received"
    AWAITING_OTP = "awaiting_otp"
    VERIFIED = "verified"


@dataclass
class SignupResult:
    """Outcome of a signup step."""
    status: SignupStatus
    phone: str | None = None
    expires_at: datetime | None = None
    otp_sent: bool = False
    created: CreatedAccount | None = None
    tokens: TokenPair | None = None
    commission: ReferralCommission | None = None

    @property
    def referral_code(self) -> str | None:
        return self.created.holder.referral_code if self.created else None


class SignupOrchestrator:
    """Coordinates OTP verification, entity creation and referral attribution."""

    def __init__(
        self,
        database: Database | None = None,
        otp_service: OtpService | None = None,
        referral_service: ReferralService | None = None,
        auth_service: LocalAuthService | None = None,
    ):
        """Initialize orchestrator.

        Args:
            database: Database to use (defaults to the global instance)
            otp_service: OTP storage and delivery
            referral_service: Code generation, resolution and attribution
            auth_service: Password hashing and token issuance
        """
        self.db = database or db
        self.otp = otp_service or OtpService(self.db)
        self.referrals = referral_service or ReferralService(self.db)
        self.auth = auth_service or LocalAuthService()
        self.accounts = AccountService(self.db)
        self.logger = get_logger(__name__)

    # ==================== RECEIVED ====================

    def validate(self, request: SignupRequest) -> SignupRequest:
        """Sanitise a signup payload and check type-specific required fields.

        Raises:
            ValidationError: On malformed or missing fields
        """
        data = request.model_copy(deep=True)
        data.email = sanitize_email(data.email)
        data.phone = sanitize_phone(data.phone)
        data.full_name = sanitize_input(data.full_name)
        if not data.full_name:
            raise ValidationError("Full name is required")

        if data.referral_code is not None:
            data.referral_code = data.referral_code.strip() or None

        if data.user_type == EntityType.SALESPERSON:
            raise ValidationError("Salespeople cannot sign up themselves")

        if data.user_type == EntityType.USER:
            self._validate_user(data)
        elif data.user_type == EntityType.SERVICE_PROVIDER:
            self._validate_service_provider(data)
        else:
            self._validate_business(data)

        return data

    def _validate_user(self, data: SignupRequest) -> None:
        data.date_of_birth = sanitize_input(data.date_of_birth)
        data.gender = sanitize_input(data.gender)
        if not data.date_of_birth:
            raise ValidationError("Date of birth is required")
        if not data.gender:
            raise ValidationError("Gender is required")

        data.interested_deals = [d for d in (sanitize_input(x) for x in data.interested_deals) if d]
        if not data.interested_deals:
            raise ValidationError("At least one interested deal is required")

        location = data.location
        if location is None:
            raise ValidationError("Location is required")
        location.country = sanitize_input(location.country)
        location.governorate = sanitize_input(location.governorate)
        location.district = sanitize_input(location.district)
        location.city = sanitize_input(location.city)
        if not (location.country and location.governorate and location.district and location.city):
            raise ValidationError("Country, governorate, district, and city are required in location")

    def _validate_business(self, data: SignupRequest) -> None:
        business = data.business_data
        if business is None:
            raise ValidationError(f"{data.user_type.value} details are required")

        business.business_name = sanitize_input(business.business_name)
        business.category = sanitize_input(business.category)
        business.sub_category = sanitize_input(business.sub_category) or None
        if not business.business_name:
            raise ValidationError("Business name is required")
        if not business.category:
            raise ValidationError("Category is required")

        business.emails = [sanitize_email(e) for e in business.emails]
        business.phones = [p for p in (sanitize_phone(p) for p in business.phones) if p]

        if business.address:
            for field in ("country", "governorate", "district", "city"):
                setattr(business.address, field, sanitize_input(getattr(business.address, field)))

    def _validate_service_provider(self, data: SignupRequest) -> None:
        info = data.service_provider_info
        if info is None:
            raise ValidationError("Service provider details are required")
        info.service_type = sanitize_input(info.service_type)
        info.business_name = sanitize_input(info.business_name) or None
        info.description = sanitize_input(info.description) or None
        if not info.service_type:
            raise ValidationError("Service type is required")

    def _check_duplicates(self, data: SignupRequest) -> None:
        if self.accounts.email_exists(data.email):
            raise ConflictError("Email already exists")
        if data.phone and self.accounts.phone_exists(data.phone):
            raise ConflictError("Phone number already registered")

    # ==================== ENTRY POINTS ====================

    def signup(self, request: SignupRequest) -> SignupResult:
        """Start a signup.

        With a phone the signup waits for OTP verification; without one the
        entity is created immediately.

        Raises:
            ValidationError: On malformed input
            ConflictError: If email or phone is already registered
        """
        data = self.validate(request)
        self._check_duplicates(data)
        password_hash = self.auth.hash_password(data.password)
        profile = data.profile()

        if data.phone:
            pending = self.otp.create_pending(data.phone, profile, password_hash)
            otp_sent = self.otp.dispatch(pending)
            self.logger.info(
                "signup_awaiting_otp",
                phone=data.phone,
                user_type=data.user_type.value,
                otp_sent=otp_sent,
            )
            return SignupResult(
                status=SignupStatus.AWAITING_OTP,
                phone=data.phone,
                expires_at=pending.expires_at,
                otp_sent=otp_sent,
            )

        return self._complete(profile, password_hash, phone_verified=False)

    def verify_otp(self, phone: str, otp: str) -> SignupResult:
        """Verify an OTP and complete the pending signup.

        Raises:
            NotFoundError, InvalidOtpError, OtpExpiredError,
            TooManyOtpAttemptsError: From OTP verification
        """
        phone = sanitize_phone(phone)
        if not phone:
            raise ValidationError("Phone number is required for OTP verification")

        pending = self.otp.verify(phone, otp)
        profile = SignupProfile.model_validate(pending.signup_data)

        # Duplicates may have appeared while the OTP was outstanding
        if self.accounts.email_exists(profile.email):
            self.otp.delete(pending.id)
            raise ConflictError("Email already exists")

        result = self._complete(profile, pending.password_hash, phone_verified=True)
        self.otp.delete(pending.id)
        return result

    def resend_otp(self, phone: str) -> SignupResult:
        """Issue a new OTP for a pending signup.

        Raises:
            NotFoundError: If nothing is pending for the phone
        """
        phone = sanitize_phone(phone)
        if not phone:
            raise ValidationError("Phone number is required")

        pending = self.otp.resend(phone)
        otp_sent = self.otp.dispatch(pending)
        return SignupResult(
            status=SignupStatus.AWAITING_OTP,
            phone=phone,
            expires_at=pending.expires_at,
            otp_sent=otp_sent,
        )

    # ==================== VERIFIED ====================

    def _complete(
        self,
        profile: SignupProfile,
        password_hash: str,
        phone_verified: bool,
    ) -> SignupResult:
        created = self._create_account(profile, password_hash, phone_verified)

        commission = None
        used_code = profile.effective_referral_code
        if used_code:
            commission = self._attribute_referral(used_code, created)

        tokens = self.auth.issue_tokens(
            entity_id=created.account.id,
            identifier=profile.identifier,
            entity_type=profile.user_type,
        )

        self.logger.info(
            "signup_completed",
            account_id=created.account.id,
            holder_id=created.holder_id,
            user_type=profile.user_type.value,
            referred=commission is not None,
        )
        return SignupResult(
            status=SignupStatus.VERIFIED,
            phone=profile.phone,
            created=created,
            tokens=tokens,
            commission=commission,
        )

    def _create_account(
        self,
        profile: SignupProfile,
        password_hash: str,
        phone_verified: bool,
    ) -> CreatedAccount:
        # The generator checks before insert, so a code can still be taken
        # in between; draw a new one when that happens
        for _ in range(self.referrals.generator.max_attempts):
            referral_code = self.referrals.generate_referral_code(profile.user_type)
            try:
                return self.accounts.create_account(
                    profile,
                    password_hash=password_hash,
                    referral_code=referral_code,
                    phone_verified=phone_verified,
                )
            except ReferralCodeTakenError:
                self.logger.warning("referral_code_taken_retrying", code=referral_code)

        raise ConflictError("Could not generate a unique referral code")

    def _attribute_referral(self, code: str, created: CreatedAccount) -> ReferralCommission | None:
        """Best-effort attribution; the signup succeeds whatever happens here."""
        try:
            return self.referrals.process_signup_referral(
                code,
                referred_id=created.holder_id,
                referred_type=created.holder_type,
            )
        except BazaarError as e:
            self.logger.warning(
                "signup_referral_failed",
                referral_code=code,
                referred_id=created.holder_id,
                error_type=type(e).__name__,
                error=e.message,
            )
        except Exception as e:
            self.logger.error(
                "signup_referral_error",
                referral_code=code,
                referred_id=created.holder_id,
                error=str(e),
            )
        return None
