"""Application settings and configuration."""

import sys
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "reftrack"
    env: str = "development"
    port: int = 3000
    build_sha: str = Field(
        default="unknown",
        validation_alias=AliasChoices("build_sha", "railway_git_commit_sha"),
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Database
    database_url: str = "sqlite:///./reftrack.db"

    # Whop
    whop_webhook_secret: str = ""
    whop_checkout_url: str = ""
    debug_webhooks: bool = False

    # Admin endpoints (shared secret passed as ?key=)
    admin_test_key: str = ""

    # Discord
    discord_token: str | None = None
    discord_public_key: str | None = None
    client_id: str | None = None  # Discord application id
    guild_id: str | None = None
    reward_role_id: str | None = None
    announce_channel_id: str | None = None

    # Rewards
    reward_threshold: int = Field(default=3, ge=1)

    @property
    def is_production(self) -> bool:
        return self.env == "production"


# Global settings instance
settings = Settings()

# ── Production validation ────────────────────────────────────────────
if settings.is_production:
    if not settings.whop_webhook_secret.strip():
        print(
            "\n❌  FATAL: WHOP_WEBHOOK_SECRET is not set.\n"
            "   Every webhook would be rejected with 401.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    if settings.database_url.startswith("sqlite"):
        print(
            "\n❌  FATAL: DATABASE_URL points at SQLite in production.\n"
            "   Referral state would not survive a redeploy; use PostgreSQL.\n",
            file=sys.stderr,
        )
        sys.exit(1)
