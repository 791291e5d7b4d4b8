"""Referral code generation."""

import secrets
import string
from typing import Callable

from sqlalchemy import select

from bazaar.accounts.models import HOLDER_MODELS, EntityType
from bazaar.errors import ConflictError
from bazaar.logging_config import get_logger
from bazaar.settings import settings
from bazaar.storage.db import Database, db

logger = get_logger(__name__)

# Readable alphabet for codes people type in: no 0, O, I, L, 1
READABLE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
# Salesperson codes are printed on material, full range is fine there
FULL_ALPHABET = string.ascii_uppercase + string.digits

ALPHABETS: dict[EntityType, str] = {
    EntityType.USER: READABLE_ALPHABET,
    EntityType.COMPANY: READABLE_ALPHABET,
    EntityType.WHOLESALER: READABLE_ALPHABET,
    EntityType.SERVICE_PROVIDER: READABLE_ALPHABET,
    EntityType.SALESPERSON: FULL_ALPHABET,
}


def random_code(entity_type: EntityType, length: int | None = None) -> str:
    """Draw a random referral code from the alphabet for the entity type.

    Format: ABC12XYZ (8 chars by default)
    """
    length = length or settings.referral_code_length
    alphabet = ALPHABETS[entity_type]
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str | None) -> str:
    """Upper-case and strip a user-supplied code."""
    return (code or "").strip().upper()


class ReferralCodeGenerator:
    """Generates referral codes that are unique across all holder tables."""

    def __init__(
        self,
        database: Database | None = None,
        max_attempts: int | None = None,
        candidate_factory: Callable[[EntityType], str] = random_code,
    ):
        """Initialize generator.

        Args:
            database: Database to check against (defaults to the global instance)
            max_attempts: Candidates to try before giving up
            candidate_factory: Produces one candidate code per call
        """
        self.db = database or db
        self.max_attempts = max_attempts or settings.referral_code_max_attempts
        self.candidate_factory = candidate_factory
        self.logger = get_logger(__name__)

    def code_exists(self, code: str) -> bool:
        """Check every holder table for the code."""
        with self.db.session() as session:
            for model in HOLDER_MODELS.values():
                found = session.scalar(select(model.id).where(model.referral_code == code))
                if found is not None:
                    return True
        return False

    def generate(self, entity_type: EntityType) -> str:
        """Generate a code no existing entity holds.

        The caller persists the code; a unique index on each table backs the
        check against a concurrent writer.

        Raises:
            ConflictError: If every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate_factory(entity_type)
            if not self.code_exists(code):
                if attempt > 1:
                    self.logger.info("referral_code_collision_resolved", attempts=attempt)
                return code
            self.logger.warning("referral_code_collision", entity_type=entity_type.value, attempt=attempt)

        self.logger.error(
            "referral_code_generation_exhausted",
            entity_type=entity_type.value,
            attempts=self.max_attempts,
        )
        raise ConflictError("Could not generate a unique referral code")
