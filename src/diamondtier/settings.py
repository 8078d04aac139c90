"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "diamondtier"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:3000"
    site_url: str = "https://www.diamondtiercapital.com"
    trust_proxy_headers: bool = False  # Read client IPs from X-Forwarded-For

    # Sessions (JWT)
    jwt_secret_key: str = "change-me-in-production"
    session_expire_hours: int = 12
    session_cookie_name: str = "session"

    # Database
    database_url: str = "sqlite:///./diamondtier.db"

    # Affiliate program
    referral_cookie_name: str = "affiliate_referral"
    referral_cookie_days: int = 30
    default_commission_base: float = 1000.0  # Used when the funding amount can't be parsed
    default_commission_rate: float = 10.0  # Percent, used when a tier has no rate

    # One-time token that allows creating the first admin account
    admin_bootstrap_token: str | None = None

    # Email (SendGrid)
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str = "no-reply@diamondtiercapital.com"
    sendgrid_from_name: str = "Diamond Tier Capital"


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
