# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Enums for the session event log.

This module defines the lifecycle states, event type tags, and cancellation
modes used across the session event log. Values are the wire tags stored in
the log, so ``EnumSessionStatus.RUNNING == "RUNNING"``.
"""

from __future__ import annotations

from enum import StrEnum


class EnumSessionStatus(StrEnum):
    """Lifecycle status of a work session.

    State Transitions:
        (no session) -> RUNNING:  start
        RUNNING -> PAUSED:        pause
        PAUSED -> RUNNING:        resume
        RUNNING | PAUSED -> FINISHED:   finish
        RUNNING | PAUSED -> CANCELLED:  cancel

    FINISHED and CANCELLED are terminal. Once reached, every further
    mutating action is rejected.

    Example:
        >>> EnumSessionStatus("PAUSED")
        <EnumSessionStatus.PAUSED: 'PAUSED'>
        >>> EnumSessionStatus.RUNNING == "RUNNING"
        True
    """

    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


class EnumSessionEventType(StrEnum):
    """Tags for the records in a session event log."""

    SESSION_STARTED = "SESSION_STARTED"
    SESSION_PAUSED = "SESSION_PAUSED"
    SESSION_RESUMED = "SESSION_RESUMED"
    SESSION_FINISHED = "SESSION_FINISHED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    TASK_ACTIVATED = "TASK_ACTIVATED"
    TASK_DEACTIVATED = "TASK_DEACTIVATED"
    TASK_MARKED_DONE = "TASK_MARKED_DONE"
    TASK_RESET = "TASK_RESET"
    STEP_LOGGED = "STEP_LOGGED"
    PROJECT_ASSIGNED_TO_SESSION = "PROJECT_ASSIGNED_TO_SESSION"
    PROJECT_UNASSIGNED_FROM_SESSION = "PROJECT_UNASSIGNED_FROM_SESSION"


class EnumSessionCancelMode(StrEnum):
    """How a cancelled session is kept.

    Values:
        DISCARD: The session is soft-deleted and hidden from reads.
        KEEP_EXCLUDED: The session stays readable but is excluded from
            summaries.
    """

    DISCARD = "DISCARD"
    KEEP_EXCLUDED = "KEEP_EXCLUDED"


TERMINAL_SESSION_STATUSES: frozenset[EnumSessionStatus] = frozenset(
    {EnumSessionStatus.FINISHED, EnumSessionStatus.CANCELLED}
)

ACTIVE_SESSION_STATUSES: frozenset[EnumSessionStatus] = frozenset(
    {EnumSessionStatus.RUNNING, EnumSessionStatus.PAUSED}
)


__all__ = [
    "ACTIVE_SESSION_STATUSES",
    "EnumSessionCancelMode",
    "EnumSessionEventType",
    "EnumSessionStatus",
    "TERMINAL_SESSION_STATUSES",
]
