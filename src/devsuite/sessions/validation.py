# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Session lifecycle validation.

Pure predicates that guard the event log before anything is appended. Each
``assert_*`` function returns None when the action is legal and raises a
``SessionValidationError`` subclass otherwise. None of them has side effects.

State Machine:
    [No Session] ---(start)---> RUNNING
    RUNNING ---(pause)---> PAUSED
    PAUSED ---(resume)---> RUNNING
    RUNNING | PAUSED ---(finish)---> FINISHED
    RUNNING | PAUSED ---(cancel)---> CANCELLED

    Terminal states (FINISHED, CANCELLED) reject every mutating action.

Ordering Guard:
    ``assert_event_timestamp_order`` is independent of the state machine. It
    rejects an append whose timestamp is earlier than the session's last
    recorded event, so out-of-order writes surface at write time instead of
    being silently re-sorted at read time.
"""

from __future__ import annotations

from devsuite.sessions.enums import (
    TERMINAL_SESSION_STATUSES,
    EnumSessionEventType,
    EnumSessionStatus,
)
from devsuite.sessions.exceptions import (
    ActiveSessionExistsError,
    EventOrderError,
    SessionTransitionError,
)

# Action phrases for events that only require a non-terminal session.
# Each reads as "Cannot {action} a finished session".
_ACTIVITY_ACTIONS: dict[EnumSessionEventType, str] = {
    EnumSessionEventType.TASK_ACTIVATED: "activate tasks in",
    EnumSessionEventType.TASK_DEACTIVATED: "deactivate tasks in",
    EnumSessionEventType.TASK_MARKED_DONE: "mark tasks done in",
    EnumSessionEventType.TASK_RESET: "reset tasks in",
    EnumSessionEventType.STEP_LOGGED: "log steps in",
    EnumSessionEventType.PROJECT_ASSIGNED_TO_SESSION: "assign projects to",
    EnumSessionEventType.PROJECT_UNASSIGNED_FROM_SESSION: "unassign projects from",
}


def is_terminal_status(status: EnumSessionStatus) -> bool:
    """True if no more events may be appended in this status."""
    return status in TERMINAL_SESSION_STATUSES


def assert_session_not_terminal(status: EnumSessionStatus, action: str) -> None:
    """Reject ``action`` if the session already finished or was cancelled.

    Raises:
        SessionTransitionError: e.g. "Cannot pause a finished session".
    """
    if is_terminal_status(status):
        raise SessionTransitionError(action, status)


def assert_can_start(active_status: EnumSessionStatus | None, session_id: str | None = None) -> None:
    """Reject a start while the actor still has a RUNNING or PAUSED session.

    Args:
        active_status: Status of the actor's current active session, or None
            when there is none (the implicit IDLE state).
        session_id: Id of that active session, used in the error message.

    Raises:
        ActiveSessionExistsError: If an active session exists.
    """
    if active_status is not None and not is_terminal_status(active_status):
        raise ActiveSessionExistsError(active_status, session_id)


def assert_can_pause(status: EnumSessionStatus) -> None:
    """Pause is legal from RUNNING only."""
    assert_session_not_terminal(status, "pause")
    if status != EnumSessionStatus.RUNNING:
        raise SessionTransitionError(
            "pause", status, "Session must be RUNNING to pause"
        )


def assert_can_resume(status: EnumSessionStatus) -> None:
    """Resume is legal from PAUSED only."""
    assert_session_not_terminal(status, "resume")
    if status != EnumSessionStatus.PAUSED:
        raise SessionTransitionError(
            "resume", status, "Session must be PAUSED to resume"
        )


def assert_can_finish(status: EnumSessionStatus) -> None:
    """Finish is legal from RUNNING or PAUSED."""
    assert_session_not_terminal(status, "finish")


def assert_can_cancel(status: EnumSessionStatus) -> None:
    """Cancel is legal from RUNNING or PAUSED."""
    assert_session_not_terminal(status, "cancel")


def assert_event_timestamp_order(last_timestamp: int | None, next_timestamp: int) -> None:
    """Reject an append that would move the log backwards in time.

    Equal timestamps are accepted; they keep append order.

    Args:
        last_timestamp: Timestamp of the session's last event, or None for
            an empty log.
        next_timestamp: Timestamp of the event about to be appended.

    Raises:
        EventOrderError: If ``next_timestamp < last_timestamp``.
    """
    if last_timestamp is not None and next_timestamp < last_timestamp:
        raise EventOrderError(last_timestamp, next_timestamp)


def assert_can_apply(status: EnumSessionStatus, event_type: EnumSessionEventType) -> None:
    """Check any non-start event type against the session's current status.

    SESSION_STARTED is not accepted here: a start creates a new session and
    is validated with ``assert_can_start`` against the actor's active session.

    Raises:
        SessionTransitionError: If the event is illegal in ``status``.
        ValueError: If ``event_type`` is SESSION_STARTED.
    """
    if event_type == EnumSessionEventType.SESSION_STARTED:
        raise ValueError("SESSION_STARTED is validated with assert_can_start")
    if event_type == EnumSessionEventType.SESSION_PAUSED:
        assert_can_pause(status)
    elif event_type == EnumSessionEventType.SESSION_RESUMED:
        assert_can_resume(status)
    elif event_type == EnumSessionEventType.SESSION_FINISHED:
        assert_can_finish(status)
    elif event_type == EnumSessionEventType.SESSION_CANCELLED:
        assert_can_cancel(status)
    else:
        assert_session_not_terminal(status, _ACTIVITY_ACTIONS[EnumSessionEventType(event_type)])


__all__ = [
    "assert_can_apply",
    "assert_can_cancel",
    "assert_can_finish",
    "assert_can_pause",
    "assert_can_resume",
    "assert_can_start",
    "assert_event_timestamp_order",
    "assert_session_not_terminal",
    "is_terminal_status",
]
