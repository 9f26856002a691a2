"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default so the library
works with no configuration at all.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Central configuration for the voice intake pipeline.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Confidence Thresholds ────────────────────────────────────
    review_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0,
        description="Fields below this confidence are flagged for review",
    )
    manual_review_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Sessions whose overall confidence is below this need manual review",
    )

    # ── Refinement ───────────────────────────────────────────────
    min_refinement_transcript_chars: int = Field(
        default=50, ge=0, description="Shortest transcript worth a second-pass extraction",
    )

    # ── Event Relay ──────────────────────────────────────────────
    event_queue_maxsize: int = Field(
        default=1000, ge=0, le=100_000, description="Pending tool-call events before producers wait",
    )

    # ── Feature Flags ────────────────────────────────────────────
    feature_spoken_dates: bool = Field(default=True, description="Parse spelled-out dates of birth")
    feature_address_splitting: bool = Field(
        default=True, description="Split a full address answer into street/city/state/ZIP",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
