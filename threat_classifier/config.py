"""Configuration management for the threat classification service.

This module uses Pydantic Settings to load configuration from environment
variables. The demo path (rule engine and canned scenarios) runs without any
secrets; only the live image analysis path needs GEMINI_API_KEY.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Sensitive values (API keys) must be provided via environment
    variables or a .env file.
    """

    # Gemini API Configuration
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Google Gemini API key for live image analysis"
    )

    # AI Model Configuration
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used to analyse uploaded images"
    )

    # Upload limits
    max_image_size_mb: int = Field(
        default=10,
        description="Maximum decoded image size accepted by the analyse endpoints"
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable per-client rate limiting"
    )
    analyze_rate_limit: str = Field(
        default="10/minute",
        description="Rate limit applied to the live image analysis endpoints"
    )
    trusted_proxies: str = Field(
        default="",
        description="Comma-separated proxy IPs allowed to set X-Forwarded-For"
    )

    # Risk context
    default_location: str = Field(
        default="Security Checkpoint",
        description="Location reported in risk assessments when none is given"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    @field_validator("gemini_api_key")
    @classmethod
    def normalize_gemini_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty or whitespace-only key as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("max_image_size_mb")
    @classmethod
    def validate_max_image_size(cls, v: int) -> int:
        """Validate that the image size limit is positive."""
        if v <= 0:
            raise ValueError("MAX_IMAGE_SIZE_MB must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance.

    Settings are loaded once and reused across the application lifetime.

    Returns:
        Settings: Validated application settings

    Raises:
        ValidationError: If environment variables are present but invalid
    """
    return Settings()
