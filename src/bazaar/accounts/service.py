"""Account persistence: login accounts, business profiles and salespeople."""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from bazaar.accounts.models import (
    HOLDER_MODELS,
    PROFILE_MODELS,
    AccountStatus,
    Company,
    EntityType,
    Salesperson,
    ServiceProvider,
    UserAccount,
    Wholesaler,
)
from bazaar.errors import ConflictError, NotFoundError, ReferralCodeTakenError
from bazaar.logging_config import get_logger
from bazaar.signup.schemas import SignupProfile
from bazaar.storage.db import Database, db

logger = get_logger(__name__)


def _is_referral_code_violation(error: IntegrityError) -> bool:
    # SQLite names the column, PostgreSQL the unique index
    return "referral_code" in str(error.orig)


@dataclass
class CreatedAccount:
    """Result of account creation.

    ``holder`` is the row that owns the referral code: the account itself for
    plain users, the profile row for business signups.
    """
    account: UserAccount
    holder: Any
    holder_type: EntityType

    @property
    def holder_id(self) -> str:
        return self.holder.id


class AccountService:
    """Service for creating and looking up referral-holding entities."""

    def __init__(self, database: Database | None = None):
        """Initialize account service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def email_exists(self, email: str) -> bool:
        """Check whether a login account already uses this email."""
        with self.db.session() as session:
            found = session.scalar(select(UserAccount.id).where(UserAccount.email == email))
            return found is not None

    def phone_exists(self, phone: str) -> bool:
        """Check whether a login account already uses this phone."""
        with self.db.session() as session:
            found = session.scalar(select(UserAccount.id).where(UserAccount.phone == phone))
            return found is not None

    def create_account(
        self,
        profile: SignupProfile,
        password_hash: str,
        referral_code: str,
        phone_verified: bool = False,
    ) -> CreatedAccount:
        """Create a login account and, for business signups, its profile.

        Args:
            profile: Sanitised signup fields
            password_hash: Hashed password
            referral_code: Freshly generated code for the new referral holder
            phone_verified: Whether the phone was confirmed by OTP

        Returns:
            Created account and referral holder

        Raises:
            ConflictError: If email, phone or referral code is already taken
        """
        user_type = profile.user_type
        is_business = user_type in PROFILE_MODELS

        account = UserAccount(
            email=profile.email,
            phone=profile.phone,
            full_name=profile.full_name,
            password_hash=password_hash,
            user_type=user_type,
            date_of_birth=profile.date_of_birth,
            gender=profile.gender,
            interested_deals=list(profile.interested_deals),
            location=profile.location.model_dump() if profile.location else None,
            status=AccountStatus.PENDING,
            phone_verified=phone_verified,
            referral_code=None if is_business else referral_code,
            points=0,
            referrals=[],
        )

        try:
            with self.db.session() as session:
                session.add(account)
                session.flush()

                holder = account
                if is_business:
                    holder = self._build_profile(profile, account.id, referral_code)
                    session.add(holder)
                    session.flush()
        except IntegrityError as e:
            self.logger.warning("account_create_conflict", email=profile.email, error=str(e.orig))
            if _is_referral_code_violation(e):
                raise ReferralCodeTakenError(f"Referral code {referral_code} is taken") from e
            raise ConflictError("Account already exists") from e

        self.logger.info(
            "account_created",
            account_id=account.id,
            holder_id=holder.id,
            user_type=user_type.value,
            referral_code=referral_code,
        )
        return CreatedAccount(account=account, holder=holder, holder_type=user_type)

    def _build_profile(self, profile: SignupProfile, user_id: str, referral_code: str):
        if profile.user_type == EntityType.SERVICE_PROVIDER:
            info = profile.service_provider_info
            return ServiceProvider(
                user_id=user_id,
                business_name=info.business_name,
                service_type=info.service_type,
                years_experience=info.years_experience,
                description=info.description,
                referral_code=referral_code,
                points=0,
                referrals=[],
            )

        business = profile.business_data
        model = Company if profile.user_type == EntityType.COMPANY else Wholesaler
        return model(
            user_id=user_id,
            business_name=business.business_name,
            category=business.category,
            sub_category=business.sub_category,
            address=business.address.model_dump() if business.address else None,
            phones=list(business.phones),
            emails=list(business.emails),
            referral_code=referral_code,
            points=0,
            referrals=[],
        )

    def get_account(self, account_id: str) -> UserAccount | None:
        """Get login account by ID."""
        with self.db.session() as session:
            return session.get(UserAccount, account_id)

    def get_holder(self, entity_type: EntityType, entity_id: str):
        """Get a referral holder row by type and ID.

        Raises:
            NotFoundError: If no such entity exists
        """
        model = HOLDER_MODELS[entity_type]
        with self.db.session() as session:
            holder = session.get(model, entity_id)
        if holder is None:
            raise NotFoundError(f"{entity_type.value} {entity_id} not found")
        return holder

    def get_referral_holder(self, account: UserAccount) -> tuple[Any, EntityType]:
        """Resolve the row that holds the referral code for a login account.

        Raises:
            NotFoundError: If a business account has no profile row
        """
        profile_model = PROFILE_MODELS.get(account.user_type)
        if profile_model is None:
            return account, account.user_type

        with self.db.session() as session:
            holder = session.scalar(
                select(profile_model).where(profile_model.user_id == account.id)
            )
        if holder is None:
            raise NotFoundError(f"No {account.user_type.value} profile for account {account.id}")
        return holder, account.user_type

    def create_salesperson(
        self,
        full_name: str,
        email: str,
        referral_code: str,
        phone: str | None = None,
        sales_manager_id: str | None = None,
    ) -> Salesperson:
        """Create a salesperson.

        Raises:
            ConflictError: If the email or referral code is already taken
        """
        salesperson = Salesperson(
            full_name=full_name,
            email=email,
            phone=phone,
            sales_manager_id=sales_manager_id,
            referral_code=referral_code,
            referral_balance=0.0,
            referrals=[],
        )
        try:
            with self.db.session() as session:
                session.add(salesperson)
                session.flush()
        except IntegrityError as e:
            if _is_referral_code_violation(e):
                raise ReferralCodeTakenError(f"Referral code {referral_code} is taken") from e
            raise ConflictError("Salesperson already exists") from e

        self.logger.info("salesperson_created", salesperson_id=salesperson.id, referral_code=referral_code)
        return salesperson
