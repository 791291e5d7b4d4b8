"""Authentication dependencies for FastAPI."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bazaar.accounts.local import LocalAuthService
from bazaar.accounts.models import AccountStatus, UserAccount
from bazaar.accounts.service import AccountService
from bazaar.logging_config import get_logger

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

auth_service = LocalAuthService()


async def get_current_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UserAccount | None:
    """Get the account behind a bearer access token.

    Returns:
        Account or None if no valid token was sent
    """
    if not credentials:
        return None

    payload = auth_service.verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None

    account = AccountService().get_account(payload["sub"])
    if account is None or account.status == AccountStatus.SUSPENDED:
        logger.debug("token_account_unavailable", account_id=payload["sub"])
        return None

    request.state.account = account
    return account


def require_auth(account: UserAccount | None = Depends(get_current_account)) -> UserAccount:
    """Require authentication - raises 401 if not authenticated.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account
