"""
Centralized configuration for the Lead Lifecycle Engine.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # API
    api_title: str = Field(default="Lead Lifecycle Engine API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    # Store
    database_url: Optional[str] = Field(default=None)
    database_pool_size: int = Field(default=5)
    database_max_overflow: int = Field(default=10)
    database_auto_create: bool = Field(default=True)  # create tables on startup

    # Shared secrets
    webhook_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("WEBHOOK_SECRET", "N8N_WEBHOOK_SECRET")
    )
    dispatch_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISPATCH_SECRET", "N8N_DISPATCH_SECRET")
    )
    cron_job_secret: Optional[str] = Field(default=None)  # legacy name for dispatch_secret
    lead_engine_api_key: Optional[str] = Field(default=None)

    # Outbound voice-call provider
    outbound_call_base_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OUTBOUND_CALL_BASE_URL", "OMNI_BASE_URL")
    )
    outbound_call_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OUTBOUND_CALL_API_KEY", "OMNI_API_KEY")
    )
    outbound_call_agent_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OUTBOUND_CALL_AGENT_ID", "OMNI_AGENT_ID")
    )
    outbound_call_from_number_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OUTBOUND_CALL_FROM_NUMBER_ID", "OMNI_FROM_NUMBER_ID")
    )
    outbound_call_timeout_seconds: float = Field(default=15.0)

    # Translation (OpenAI)
    openai_api_key: Optional[str] = Field(default=None)
    translation_model: str = Field(default="gpt-4.1-mini")
    translation_timeout_seconds: float = Field(default=20.0)

    # Dispatch batch
    dispatch_batch_size: int = Field(default=1, ge=1)
    follow_up_seed_batch_size: int = Field(default=1, ge=0)
    seed_candidate_scan_limit: int = Field(default=400, ge=1)
    due_count_page_size: int = Field(default=1000, ge=1)

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def effective_dispatch_secret(self) -> Optional[str]:
        """Preferred dispatch secret, falling back to the legacy cron secret."""
        if self.dispatch_secret is not None:
            return self.dispatch_secret
        return self.cron_job_secret

    @property
    def is_store_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def is_outbound_call_configured(self) -> bool:
        return all([
            self.outbound_call_base_url,
            self.outbound_call_api_key,
            self.outbound_call_agent_id,
            self.outbound_call_from_number_id,
        ])

    @property
    def is_translation_configured(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
