# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Derived summary models for session event logs.

These models are pure outputs. They are recomputed from the event log on
every read and are never stored as primary data.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from devsuite.sessions.enums import EnumSessionStatus
from devsuite.sessions.schemas import SessionEvent

_FROZEN = ConfigDict(frozen=True, extra="forbid", from_attributes=True)


class ModelSessionDurationSummary(BaseModel):
    """Session-level durations derived from the event log.

    The three durations are consistent with each other but are not required
    to sum to one number: the same running time can be credited to several
    tasks at once (overlap).

    Attributes:
        effective_duration_ms: Total time the session was RUNNING.
        active_task_duration_ms: Sum of every task's active time. Overlapping
            tasks each get full credit for shared time.
        unallocated_duration_ms: Running time with zero active tasks.
        has_overlap: True when task time exceeds effective time.
        has_unallocated_time: True when unallocated time is non-zero.
    """

    model_config = _FROZEN

    effective_duration_ms: int = Field(default=0, ge=0)
    active_task_duration_ms: int = Field(default=0, ge=0)
    unallocated_duration_ms: int = Field(default=0, ge=0)
    has_overlap: bool = False
    has_unallocated_time: bool = False


class ModelSessionTaskSummary(BaseModel):
    """Per-task activity within a single session."""

    model_config = _FROZEN

    task_id: str
    active_duration_ms: int = Field(default=0, ge=0)
    was_active: bool = False
    was_completed: bool = False
    first_activated_at: int | None = None
    last_deactivated_at: int | None = None


class ModelSessionDerivation(BaseModel):
    """Result of one derivation run.

    ``task_summaries`` is keyed by task id, in the order each task was first
    seen in the sorted log.
    """

    model_config = _FROZEN

    duration_summary: ModelSessionDurationSummary
    task_summaries: dict[str, ModelSessionTaskSummary] = Field(default_factory=dict)


class ModelSessionProjectSummary(BaseModel):
    """Active task time rolled up to a project."""

    model_config = _FROZEN

    project_id: str
    active_duration_ms: int = Field(default=0, ge=0)


class ModelTaskSessionMetadata(BaseModel):
    """A task's activity aggregated across every session that touched it.

    Attributes:
        total_tracked_ms: Sum of the task's active time over all sessions.
        total_paused_ms: Wall-clock time those sessions spent not running.
        pause_count: Number of SESSION_PAUSED events in those sessions.
        session_count: Number of sessions that touched the task.
        last_session_at: Timestamp of the latest task event in any session.
        last_session_task_duration_ms: Task time in that latest session.
    """

    model_config = _FROZEN

    total_tracked_ms: int = Field(default=0, ge=0)
    total_paused_ms: int = Field(default=0, ge=0)
    pause_count: int = Field(default=0, ge=0)
    session_count: int = Field(default=0, ge=0)
    last_session_at: int | None = None
    last_session_task_duration_ms: int = Field(default=0, ge=0)


class ModelSessionRecord(BaseModel):
    """Minimal projection of a session needed to derive its durations.

    ``status`` is the caller's known current state. The engine does not
    re-derive it from the log; it only uses it to decide how to treat the
    open-ended tail.
    """

    model_config = _FROZEN

    session_id: str = Field(..., min_length=1)
    status: EnumSessionStatus
    start_at: int = Field(..., ge=0)
    end_at: int | None = Field(default=None, ge=0)
    events: tuple[SessionEvent, ...] = ()


__all__ = [
    "ModelSessionDerivation",
    "ModelSessionDurationSummary",
    "ModelSessionProjectSummary",
    "ModelSessionRecord",
    "ModelSessionTaskSummary",
    "ModelTaskSessionMetadata",
]
