"""
Application Configuration
Pydantic Settings for environment-based configuration
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/

All settings are read from ``MEDCLAIM_``-prefixed environment variables or a
``.env`` file in the working directory.
"""

import json
import secrets
from functools import lru_cache
from typing import Annotated, Any, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from medclaim.core.enums import BackendMode


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/#dotenv-env-support
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="MEDCLAIM_",
    )

    # ============================================================================
    # Application Settings
    # ============================================================================
    APP_NAME: str = Field(default="MedClaim AI", description="Brand shown in the header")
    ENVIRONMENT: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment: development, staging, production, testing"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FILE: Optional[str] = Field(default=None, description="Optional log file path")
    JSON_LOGS: bool = Field(default=False, description="Serialize logs as JSON")

    # ============================================================================
    # Backend Selection
    # ============================================================================
    BACKEND_MODE: BackendMode = Field(
        default=BackendMode.DEMO,
        description="Backend: demo (in-memory) or live (hosted Supabase project)",
    )
    SUPABASE_URL: Optional[str] = Field(default=None, description="Supabase project URL")
    SUPABASE_ANON_KEY: Optional[str] = Field(default=None, description="Supabase anon (public) key")

    # ============================================================================
    # Backend Resources
    # ============================================================================
    CLAIMS_TABLE: str = Field(default="claims", description="Claims table name")
    CLAIMS_SCHEMA: str = Field(default="public", description="Schema watched by the change feed")
    DOCUMENTS_BUCKET: str = Field(default="claim-documents", description="Storage bucket for documents")
    REALTIME_CHANNEL: str = Field(default="claims_channel", description="Realtime channel name")
    SIGNED_URL_TTL_SECONDS: int = Field(
        default=3600, gt=0, description="Lifetime of signed document links (seconds)"
    )
    ALLOWED_DOCUMENT_TYPES: Annotated[list[str], NoDecode] = Field(
        default=["pdf", "jpg", "jpeg", "png"],
        description="File extensions accepted for supporting documents",
    )

    # ============================================================================
    # Display
    # ============================================================================
    CURRENCY_SYMBOL: str = Field(default="₹", description="Currency symbol for costs")
    DATE_FORMAT: str = Field(default="%d/%m/%Y", description="strftime format for claim dates")
    CHANGE_FEED_POLL_SECONDS: float = Field(
        default=2.0, gt=0, description="How often the dashboard re-renders from live state"
    )

    # ============================================================================
    # Demo Backend
    # ============================================================================
    DEMO_JWT_SECRET: str = Field(
        default_factory=lambda: secrets.token_urlsafe(48),
        description="Signing key for demo session tokens (min 32 chars)",
    )
    DEMO_JWT_ALGORITHM: str = Field(default="HS256", description="Demo token algorithm")
    DEMO_TOKEN_EXPIRE_MINUTES: int = Field(default=60, gt=0, description="Demo token lifetime")
    DEMO_AUTO_CONFIRM: bool = Field(
        default=True, description="Demo sign-up returns an active session without email verification"
    )
    DEMO_SEED_CLAIMS: bool = Field(default=True, description="Seed sample claims in demo mode")

    @staticmethod
    def _parse_list_field(value: Any) -> Any:
        """Allow JSON arrays or comma-separated strings for list settings."""
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return []
            if stripped.startswith("[") and stripped.endswith("]"):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in stripped.split(",") if item.strip()]
        return value

    @field_validator("ALLOWED_DOCUMENT_TYPES", mode="before")
    @classmethod
    def parse_document_types(cls, v: Any) -> Any:
        """Allow CSV or JSON input; extensions are stored lower-case without dots."""
        parsed = cls._parse_list_field(v)
        if isinstance(parsed, list):
            return [str(item).strip().lstrip(".").lower() for item in parsed if str(item).strip()]
        return parsed

    @field_validator("DEMO_JWT_SECRET")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """
        Ensure the demo signing key is sufficiently long.

        Source: https://cheatsheetseries.owasp.org/cheatsheets/Key_Management_Cheat_Sheet.html
        """
        if len(v) < 32:
            raise ValueError("Secret keys must be at least 32 characters long")
        return v

    @model_validator(mode="after")
    def validate_live_backend(self) -> "Settings":
        """Live mode cannot start without project credentials."""
        if self.BACKEND_MODE == BackendMode.LIVE and not (self.SUPABASE_URL and self.SUPABASE_ANON_KEY):
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required when BACKEND_MODE=live")
        return self

    # ============================================================================
    # Helper Properties
    # ============================================================================
    @property
    def is_demo(self) -> bool:
        """Check if the in-memory backend is selected"""
        return self.BACKEND_MODE == BackendMode.DEMO

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode"""
        return self.ENVIRONMENT.lower() == "testing"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
