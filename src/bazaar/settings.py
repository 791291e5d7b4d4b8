"""Application settings and configuration."""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BAZAAR_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "bazaar"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json
    allowed_origins: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./bazaar.db"
    database_echo: bool = False

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    access_token_expire_hours: int = 2
    refresh_token_expire_days: int = 30

    # OTP
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 5
    otp_sweep_interval_minutes: int = 5

    # Referral program
    referral_code_length: int = Field(default=8, ge=4, le=16)
    referral_code_max_attempts: int = Field(default=10, ge=1)
    referral_points_reward: int = 5
    salesperson_referral_reward: float = 1.0
    referral_link_base: str = "https://barrim.com/referral?code="

    # SMS gateway
    sms_api_url: str = "https://www.bestsmsbulk.com/bestsmsbulkapi/common/sendSmsWpAPI.php"
    sms_username: str | None = None
    sms_password: str | None = None
    sms_sender_id: str = "Barrim"

    # Validation
    default_phone_region: str = "LB"

    # HTTP Client
    request_timeout_seconds: int = 10

    # Rate limiting (memory:// or a shared store such as redis://host:6379)
    rate_limit_storage_uri: str = "memory://"


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: BAZAAR_JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
