"""Referral service: the operations signup and referral endpoints consume."""

from typing import Any, Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from bazaar.accounts.models import HOLDER_MODELS, EntityType, UserAccount
from bazaar.accounts.service import AccountService
from bazaar.errors import ConflictError, NotFoundError, ReferralCodeTakenError, ValidationError
from bazaar.logging_config import get_logger
from bazaar.referral.codes import ReferralCodeGenerator
from bazaar.referral.ledger import AttributionLedger
from bazaar.referral.models import ReferralCommission
from bazaar.referral.resolver import ReferrerResolver, ResolvedReferrer
from bazaar.settings import settings
from bazaar.storage.db import Database, db
from bazaar.storage.models import utcnow

logger = get_logger(__name__)


class ReferralService:
    """Service for referral codes, referrer lookup and reward attribution."""

    def __init__(self, database: Database | None = None):
        """Initialize referral service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.generator = ReferralCodeGenerator(self.db)
        self.resolver = ReferrerResolver(self.db)
        self.ledger = AttributionLedger(self.db)
        self.accounts = AccountService(self.db)
        self.logger = get_logger(__name__)

    # ==================== CORE OPERATIONS ====================

    def generate_referral_code(self, entity_type: EntityType) -> str:
        """Generate a referral code unique across all entity types."""
        return self.generator.generate(entity_type)

    def resolve_referrer(
        self,
        code: str,
        referred_id: str | None = None,
        entity_types: Iterable[EntityType] | None = None,
    ) -> ResolvedReferrer:
        """Find the entity owning a referral code."""
        return self.resolver.resolve(code, referred_id=referred_id, entity_types=entity_types)

    def attribute_reward(
        self,
        referrer_id: str,
        referrer_type: EntityType,
        referred_id: str,
        referred_type: EntityType | None = None,
        referral_code: str | None = None,
    ) -> ReferralCommission | None:
        """Credit a referrer; a repeated call for the same referred entity is a no-op."""
        return self.ledger.attribute(
            referrer_id=referrer_id,
            referrer_type=referrer_type,
            referred_id=referred_id,
            referred_type=referred_type,
            referral_code=referral_code,
        )

    def process_signup_referral(
        self,
        code: str,
        referred_id: str,
        referred_type: EntityType,
    ) -> ReferralCommission | None:
        """Resolve a code used at signup and attribute the new entity.

        Raises:
            ValidationError, NotFoundError, SelfReferralError: From the resolver
            TransientStorageError: From the ledger
        """
        referrer = self.resolve_referrer(code, referred_id=referred_id)
        self.logger.info(
            "signup_with_referral",
            referral_code=referrer.referral_code,
            referrer_id=referrer.entity_id,
            referrer_type=referrer.entity_type.value,
            referred_id=referred_id,
        )
        return self.attribute_reward(
            referrer_id=referrer.entity_id,
            referrer_type=referrer.entity_type,
            referred_id=referred_id,
            referred_type=referred_type,
            referral_code=referrer.referral_code,
        )

    # ==================== ACCOUNT-FACING OPERATIONS ====================

    def apply_referral(self, account: UserAccount, code: str) -> tuple[ResolvedReferrer, ReferralCommission]:
        """Apply a referral code for an entity that already signed up.

        Raises:
            ConflictError: If the entity was already attributed to a referrer
        """
        if not code or not code.strip():
            raise ValidationError("Referral code is required")

        holder, holder_type = self.accounts.get_referral_holder(account)
        referrer = self.resolve_referrer(code, referred_id=holder.id)

        commission = self.attribute_reward(
            referrer_id=referrer.entity_id,
            referrer_type=referrer.entity_type,
            referred_id=holder.id,
            referred_type=holder_type,
            referral_code=referrer.referral_code,
        )
        if commission is None:
            raise ConflictError("A referral code has already been applied to this account")

        # Entities created before codes existed get theirs now
        self.ensure_referral_code(holder_type, holder.id)
        return referrer, commission

    def validate_code(self, code: str) -> ResolvedReferrer | None:
        """Resolve a code for display purposes; None if it does not resolve."""
        try:
            return self.resolve_referrer(code)
        except (ValidationError, NotFoundError):
            return None

    def ensure_referral_code(self, entity_type: EntityType, entity_id: str) -> str:
        """Return the entity's referral code, assigning one if missing.

        Raises:
            NotFoundError: If the entity does not exist
            ConflictError: If no unique code could be assigned
        """
        holder = self.accounts.get_holder(entity_type, entity_id)
        if holder.referral_code:
            return holder.referral_code

        model = HOLDER_MODELS[entity_type]
        for _ in range(self.generator.max_attempts):
            code = self.generator.generate(entity_type)
            try:
                with self.db.session() as session:
                    result = session.execute(
                        update(model)
                        .where(model.id == entity_id, model.referral_code.is_(None))
                        .values(referral_code=code, updated_at=utcnow())
                    )
            except IntegrityError:
                # Another entity took the code between check and write
                continue

            if result.rowcount == 0:
                # A concurrent request assigned one first
                return self.accounts.get_holder(entity_type, entity_id).referral_code

            self.logger.info("referral_code_assigned", entity_type=entity_type.value, entity_id=entity_id, code=code)
            return code

        raise ConflictError("Could not assign a unique referral code")

    def get_referral_data(self, account: UserAccount) -> dict[str, Any]:
        """Referral dashboard data for an account.

        Returns:
            Dict with code, reward accumulator, referral count and link
        """
        holder, holder_type = self.accounts.get_referral_holder(account)
        code = self.ensure_referral_code(holder_type, holder.id)
        commissions = self.ledger.summary(holder.id)

        return {
            "referral_code": code,
            "referral_link": f"{settings.referral_link_base}{code}",
            "referral_count": len(holder.referrals or []),
            "points": getattr(holder, "points", 0),
            "referral_balance": getattr(holder, "referral_balance", None),
            "commissions_earned": commissions["total_amount"],
            "user_type": holder_type.value,
        }

    def list_commissions(self, account: UserAccount, limit: int = 50, offset: int = 0) -> list[ReferralCommission]:
        """Commission records earned by the account's referral holder."""
        holder, _ = self.accounts.get_referral_holder(account)
        return self.ledger.list_commissions(holder.id, limit=limit, offset=offset)

    def create_salesperson(
        self,
        full_name: str,
        email: str,
        phone: str | None = None,
        sales_manager_id: str | None = None,
    ):
        """Create a salesperson with a fresh referral code.

        Raises:
            ConflictError: If the email is taken or no unique code could be assigned
        """
        for _ in range(self.generator.max_attempts):
            code = self.generate_referral_code(EntityType.SALESPERSON)
            try:
                return self.accounts.create_salesperson(
                    full_name=full_name,
                    email=email,
                    referral_code=code,
                    phone=phone,
                    sales_manager_id=sales_manager_id,
                )
            except ReferralCodeTakenError:
                self.logger.warning("referral_code_taken_retrying", code=code)

        raise ConflictError("Could not assign a unique referral code")


# Singleton instance
referral_service = ReferralService()
