"""Resolve a referral code to the entity that owns it."""

import re
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select

from bazaar.accounts.models import HOLDER_MODELS, EntityType
from bazaar.errors import NotFoundError, SelfReferralError, ValidationError
from bazaar.logging_config import get_logger
from bazaar.referral.codes import normalize_code
from bazaar.storage.db import Database, db

logger = get_logger(__name__)

# Salesperson codes are checked first: they pay currency, not points.
SCAN_ORDER: tuple[EntityType, ...] = (
    EntityType.SALESPERSON,
    EntityType.USER,
    EntityType.COMPANY,
    EntityType.WHOLESALER,
    EntityType.SERVICE_PROVIDER,
)

CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,16}$")


@dataclass(frozen=True)
class ResolvedReferrer:
    """Entity that owns a referral code."""
    entity_id: str
    entity_type: EntityType
    referral_code: str
    display_name: str | None = None


def _display_name(holder) -> str | None:
    return getattr(holder, "business_name", None) or getattr(holder, "full_name", None)


class ReferrerResolver:
    """Looks a code up across every holder table in a fixed order."""

    def __init__(self, database: Database | None = None):
        """Initialize resolver.

        Args:
            database: Database to search (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def resolve(
        self,
        code: str,
        referred_id: str | None = None,
        entity_types: Iterable[EntityType] | None = None,
    ) -> ResolvedReferrer:
        """Find the entity owning a referral code.

        Args:
            code: Referral code as supplied by the client
            referred_id: ID of the entity using the code, to reject self-referral
            entity_types: Restrict the scan to these types (scan order is kept)

        Returns:
            The first matching entity in scan order

        Raises:
            ValidationError: If the code is malformed
            NotFoundError: If no entity holds the code
            SelfReferralError: If the code belongs to the referred entity
        """
        normalized = normalize_code(code)
        if not CODE_PATTERN.match(normalized):
            raise ValidationError("Invalid referral code format")

        allowed = set(entity_types) if entity_types is not None else set(SCAN_ORDER)

        with self.db.session() as session:
            for entity_type in SCAN_ORDER:
                if entity_type not in allowed:
                    continue
                model = HOLDER_MODELS[entity_type]
                holder = session.scalar(select(model).where(model.referral_code == normalized))
                if holder is None:
                    continue

                if referred_id is not None and holder.id == referred_id:
                    self.logger.warning("self_referral_rejected", entity_id=referred_id, code=normalized)
                    raise SelfReferralError(referred_id)

                self.logger.debug(
                    "referrer_resolved",
                    code=normalized,
                    referrer_id=holder.id,
                    referrer_type=entity_type.value,
                )
                return ResolvedReferrer(
                    entity_id=holder.id,
                    entity_type=entity_type,
                    referral_code=normalized,
                    display_name=_display_name(holder),
                )

        self.logger.info("referral_code_not_found", code=normalized)
        raise NotFoundError("Invalid referral code")
