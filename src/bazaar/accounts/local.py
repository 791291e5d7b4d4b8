"""Password hashing and session token issuance."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from bazaar.accounts.models import EntityType
from bazaar.logging_config import get_logger
from bazaar.settings import settings

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh tokens issued after a successful signup."""
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


class LocalAuthService:
    """Credentials and JWT handling for local accounts."""

    def __init__(self, secret_key: str | None = None):
        """Initialize auth service.

        Args:
            secret_key: JWT signing key (defaults to settings)
        """
        self.secret_key = secret_key or settings.jwt_secret_key
        self.logger = get_logger(__name__)

    # ==================== PASSWORD ====================

    def _truncate_password(self, password: str) -> str:
        """Truncate password to 72 bytes (bcrypt limit)."""
        return password.encode('utf-8')[:72].decode('utf-8', errors='ignore')

    def hash_password(self, password: str) -> str:
        """Hash a password."""
        return pwd_context.hash(self._truncate_password(password))

    def verify_password(self, password: str, hashed: str) -> bool:
        """Verify a password against hash."""
        return pwd_context.verify(self._truncate_password(password), hashed)

    # ==================== JWT TOKENS ====================

    def _encode(
        self,
        entity_id: str,
        identifier: str,
        entity_type: EntityType,
        token_type: str,
        expires_delta: timedelta,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": entity_id,
            "identifier": identifier,
            "entity_type": entity_type.value,
            "token_type": token_type,
            "exp": now + expires_delta,
            "iat": now,
        }
        return jwt.encode(payload, self.secret_key, algorithm=JWT_ALGORITHM)

    def issue_tokens(
        self,
        entity_id: str,
        identifier: str,
        entity_type: EntityType,
    ) -> TokenPair:
        """Issue an access/refresh token pair.

        Args:
            entity_id: Account ID placed in the ``sub`` claim
            identifier: Email or phone the entity signed up with
            entity_type: Entity variant of the account

        Returns:
            Token pair
        """
        access_delta = timedelta(hours=settings.access_token_expire_hours)
        access_token = self._encode(entity_id, identifier, entity_type, "access", access_delta)
        refresh_token = self._encode(
            entity_id,
            identifier,
            entity_type,
            "refresh",
            timedelta(days=settings.refresh_token_expire_days),
        )

        self.logger.debug("tokens_issued", entity_id=entity_id, entity_type=entity_type.value)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(access_delta.total_seconds()),
        )

    def verify_token(self, token: str, token_type: str = "access") -> dict[str, Any] | None:
        """Verify and decode a JWT.

        Args:
            token: JWT token string
            token_type: Expected ``token_type`` claim

        Returns:
            Token payload or None if invalid
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

        if payload.get("token_type") != token_type:
            return None
        return payload
