"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Allocation rules (buffer, tolerance, batch size threshold) live here so
they can be tuned per deployment without code changes.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL (only needed for the supabase ledger backend)"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )

    # ===================
    # LEDGER STORAGE
    # ===================
    ledger_backend: str = Field(
        default="file",
        pattern="^(memory|file|supabase)$",
        description="Where the allocation ledger envelope is persisted"
    )
    ledger_file_path: str = Field(
        default="data/allocation_ledger.json",
        description="Envelope path for the file backend"
    )
    ledger_storage_table: str = Field(
        default="settings",
        description="Key/value table for the supabase backend"
    )
    ledger_storage_key: str = Field(
        default="allocation_ledger",
        description="Row key holding the ledger envelope"
    )

    # ===================
    # ALLOCATION RULES
    # ===================
    production_buffer_pct: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Extra quantity targeted for production (non-spot) orders"
    )
    fully_allocated_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        le=Decimal("0.5"),
        description="Relative tolerance for treating an order as fully allocated"
    )
    small_batch_threshold_kg: Decimal = Field(
        default=Decimal("900"),
        gt=0,
        description="Batches at or below this weight are consumed before large batches"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
