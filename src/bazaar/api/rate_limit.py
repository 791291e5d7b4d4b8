"""Rate limiting configuration for the bazaar API."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from bazaar.settings import settings

# Single shared limiter instance - disabled outside production
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.env == "production",
)
