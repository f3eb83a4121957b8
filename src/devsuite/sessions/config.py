"""Configuration for the session recorder.

Loads from environment variables with the DEVSUITE_SESSIONS_ prefix.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigSessionRecorder(BaseSettings):
    """Configuration for recording and deriving session event logs.

    Environment variables use the DEVSUITE_SESSIONS_ prefix.
    Example: DEVSUITE_SESSIONS_ENFORCE_SINGLE_ACTIVE_SESSION=false
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVSUITE_SESSIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    enforce_single_active_session: bool = Field(
        default=True,
        description="Reject a start while the actor has a RUNNING or PAUSED session",
    )
    max_summary_length: int = Field(
        default=5000,
        ge=1,
        le=100000,
        description="Maximum length of a session's free-text summary",
    )
    warn_on_missing_start: bool = Field(
        default=True,
        description=(
            "Log a warning when a non-empty event log has no SESSION_STARTED "
            "event (derivation still reports zero running time)"
        ),
    )
