# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event-sourced work sessions.

This package derives "how much time was spent, on what" from an append-only
log of session lifecycle and task activity events. Durations are never
stored; they are recomputed from the log on every read.

Key Components:
    - SessionEvent: Tagged union of immutable event records
    - validation: Lifecycle state machine checks and the ordering guard
    - derive_session_durations: The duration derivation engine
    - reports: Task ordering, project rollups, cross-session task history
    - SessionRecorder: In-memory event producer with validation
    - ConfigSessionRecorder: Configuration for the recorder

Architecture:
    ```
    producer --validate--> append-only log --derive--> summaries
    ```

    Sessions follow the lifecycle:

    ```
    RUNNING <-> PAUSED
       |          |
       +--> FINISHED / CANCELLED (terminal)
    ```

Example:
    >>> from devsuite.sessions import derive_session_durations, make_session_event
    >>> result = derive_session_durations(
    ...     session_status="FINISHED",
    ...     session_start_at=0,
    ...     session_end_at=1000,
    ...     events=[
    ...         make_session_event("SESSION_STARTED", 0),
    ...         make_session_event("SESSION_FINISHED", 1000),
    ...     ],
    ... )
    >>> result.duration_summary.unallocated_duration_ms
    1000
"""

from __future__ import annotations

from devsuite.sessions.config import ConfigSessionRecorder
from devsuite.sessions.derivation import (
    derive_session_durations,
    derive_session_record,
)
from devsuite.sessions.enums import (
    ACTIVE_SESSION_STATUSES,
    TERMINAL_SESSION_STATUSES,
    EnumSessionCancelMode,
    EnumSessionEventType,
    EnumSessionStatus,
)
from devsuite.sessions.exceptions import (
    ActiveSessionExistsError,
    EventOrderError,
    SessionError,
    SessionNotFoundError,
    SessionTransitionError,
    SessionValidationError,
)
from devsuite.sessions.models import (
    ModelSessionDerivation,
    ModelSessionDurationSummary,
    ModelSessionProjectSummary,
    ModelSessionRecord,
    ModelSessionTaskSummary,
    ModelTaskSessionMetadata,
)
from devsuite.sessions.recorder import SessionListing, SessionRecorder, SessionState
from devsuite.sessions.reports import (
    build_project_summaries,
    sort_task_summaries,
    summarize_task_sessions,
)
from devsuite.sessions.schemas import (
    SessionEvent,
    make_session_event,
    parse_session_event,
    parse_session_events,
)
from devsuite.sessions.validation import (
    assert_can_apply,
    assert_can_cancel,
    assert_can_finish,
    assert_can_pause,
    assert_can_resume,
    assert_can_start,
    assert_event_timestamp_order,
    assert_session_not_terminal,
    is_terminal_status,
)

__all__ = [
    # Engine
    "derive_session_durations",
    "derive_session_record",
    # Events
    "SessionEvent",
    "make_session_event",
    "parse_session_event",
    "parse_session_events",
    # Enums
    "ACTIVE_SESSION_STATUSES",
    "TERMINAL_SESSION_STATUSES",
    "EnumSessionCancelMode",
    "EnumSessionEventType",
    "EnumSessionStatus",
    # Validation
    "assert_can_apply",
    "assert_can_cancel",
    "assert_can_finish",
    "assert_can_pause",
    "assert_can_resume",
    "assert_can_start",
    "assert_event_timestamp_order",
    "assert_session_not_terminal",
    "is_terminal_status",
    # Errors
    "ActiveSessionExistsError",
    "EventOrderError",
    "SessionError",
    "SessionNotFoundError",
    "SessionTransitionError",
    "SessionValidationError",
    # Derived models
    "ModelSessionDerivation",
    "ModelSessionDurationSummary",
    "ModelSessionProjectSummary",
    "ModelSessionRecord",
    "ModelSessionTaskSummary",
    "ModelTaskSessionMetadata",
    # Reports
    "build_project_summaries",
    "sort_task_summaries",
    "summarize_task_sessions",
    # Recorder
    "ConfigSessionRecorder",
    "SessionListing",
    "SessionRecorder",
    "SessionState",
]
