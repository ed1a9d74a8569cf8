"""
Configuration settings for the focusloop engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with FOCUSLOOP_ (e.g. FOCUSLOOP_DATABASE_URL).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FOCUSLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///focusloop.db",
        description="SQLAlchemy connection string (sqlite or postgresql)",
    )

    # ========================================
    # Content Generator (LLM endpoint)
    # ========================================
    generator_url: str | None = Field(
        default=None,
        description="Base URL of the content generation service; unset = templates only",
    )
    generator_api_key: str | None = Field(
        default=None,
        description="Bearer token for the content generation service",
    )
    generator_model: str = Field(
        default="gpt-4o-mini",
        description="Model name forwarded to the content generation service",
    )
    generator_timeout_seconds: float = Field(
        default=15.0,
        description="Per-request timeout for generator calls",
    )
    generator_retry_attempts: int = Field(
        default=2,
        description="Attempts per generator call before falling back to templates",
    )

    # ========================================
    # Focus Sessions
    # ========================================
    session_default_duration_seconds: int = Field(
        default=1200,
        description="Target duration of a focus session (20 minutes)",
    )
    session_min_loops: int = Field(default=3, description="Loops required before completion")
    session_max_loops: int = Field(default=4, description="Maximum loops per session")
    difficulty_up_threshold: float = Field(
        default=0.8,
        description="Loop accuracy at or above which difficulty rises one band",
    )
    difficulty_down_threshold: float = Field(
        default=0.5,
        description="Loop accuracy at or below which difficulty drops one band",
    )
    frustration_threshold: float = Field(
        default=0.6,
        description="Frustration level forcing a difficulty decrease",
    )
    modality_switch_frustration_threshold: float = Field(
        default=0.7,
        description="Frustration level at which the next loop falls back to flashcards",
    )
    concept_mastery_threshold: float = Field(
        default=0.85,
        description="Subtopic mastery (0-1) counted as mastered",
    )
    review_threshold: float = Field(
        default=0.6,
        description="Subtopic mastery (0-1) below which a subtopic needs review",
    )
    max_new_subtopics: int = Field(
        default=2,
        description="Cap on new subtopics introduced by a review plan",
    )
    subtopics_per_loop: int = Field(default=3, description="Subtopics targeted by one artifact")

    # ========================================
    # Stale Session Sweep
    # ========================================
    sweep_interval_seconds: float = Field(
        default=60.0,
        description="Interval between stale-session sweeps",
    )
    sweep_grace_seconds: int = Field(
        default=600,
        description="Grace period past target duration before a session is cancelled",
    )

    # ========================================
    # Persistence Outbox (retry with backoff)
    # ========================================
    outbox_base_delay_seconds: float = Field(default=0.5)
    outbox_max_delay_seconds: float = Field(default=30.0)
    outbox_max_attempts: int = Field(default=8)

    # ========================================
    # Learner State
    # ========================================
    mission_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="How long an issued mission accepts graded answers and hint requests",
    )
    performance_window_size: int = Field(
        default=10,
        ge=5,
        le=20,
        description="Number of recent answers kept in the rolling performance window",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated by loguru)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(default="127.0.0.1", description="API server host")
    api_port: int = Field(default=8100, description="API server port")

    # ========================================
    # Helper Methods
    # ========================================
    def has_generator_configured(self) -> bool:
        """Check whether a remote content generator is configured."""
        return bool(self.generator_url)

    def get_session_config(self) -> dict[str, float | int]:
        """Session thresholds as a plain dict (for logging and diagnostics)."""
        return {
            "default_duration": self.session_default_duration_seconds,
            "min_loops": self.session_min_loops,
            "max_loops": self.session_max_loops,
            "difficulty_up": self.difficulty_up_threshold,
            "difficulty_down": self.difficulty_down_threshold,
            "frustration": self.frustration_threshold,
            "modality_switch_frustration": self.modality_switch_frustration_threshold,
            "mastery": self.concept_mastery_threshold,
            "review": self.review_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
