"""
Kernel configuration.

Settings are read from ``ALCHEMIST_*`` environment variables (or a ``.env``
file). Invalid values fail at construction time.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


MIN_API_KEY_LENGTH = 10


class KernelSettings(BaseSettings):
    """Runtime settings for the rules kernel and its HTTP API."""

    model_config = SettingsConfigDict(
        env_prefix="ALCHEMIST_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ALCHEMIST_GEMINI_API_KEY", "GOOGLE_GEMINI_API_KEY"),
        description="Gemini API key; the AI path is enabled only when it is set",
    )
    gemini_endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Gemini REST base URL",
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash-exp",
        description="Gemini model name",
    )
    gemini_max_requests_per_minute: int = Field(
        default=15,
        ge=1,
        le=60,
        description="Client-side rate limit for Gemini calls",
    )
    ai_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Hard timeout on one AI HTTP call",
    )
    ai_min_confidence: int = Field(
        default=50,
        ge=0,
        le=100,
        description="AI results below this confidence fall back to the rule-based parser",
    )
    autosave_debounce_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Quiet period before an auto-save fires",
    )
    snapshot_path: str = Field(
        default="data-alchemist-rules.db",
        description="SQLite file holding the rules snapshot",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the alchemist_kernel logger",
    )
    app_name: str = "Data Alchemist"
    app_version: str = "0.1.0"

    @property
    def ai_enabled(self) -> bool:
        return bool(self.gemini_api_key) and len(self.gemini_api_key) > MIN_API_KEY_LENGTH


@lru_cache()
def get_settings() -> KernelSettings:
    return KernelSettings()
