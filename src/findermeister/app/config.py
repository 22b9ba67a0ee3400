"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./findermeister.db"
    sqlite_busy_timeout_seconds: int = 30

    # Auth / JWT
    jwt_secret_key: str = Field(
        default="change-me-in-production",
        validation_alias=AliasChoices("jwt_secret_key", "jwt_secret"),
    )
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 7 * 24 * 60

    # Email
    sendgrid_api_key: str = ""
    email_from: str = "noreply@findermeister.com"

    # CORS / Frontend
    cors_origins: str = "http://localhost:5173"
    frontend_url: str = "http://localhost:5173"

    # Internal cron endpoints
    internal_token: str = "findermeister-internal"

    # Token economy
    finder_signup_tokens: int = 5
    monthly_token_amount: int = 20
    default_proposal_token_cost: int = 1

    # Escrow
    submission_auto_release_days: int = 5
    accepted_auto_release_days: int = 3

    # Background maintenance
    maintenance_interval_minutes: int = 15
    maintenance_enabled: bool = True

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
