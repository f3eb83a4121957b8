# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Exception types for session lifecycle validation.

This module defines a hierarchy of exceptions for the session event log:

- SessionError: Base exception for all session errors
- SessionValidationError: An action was rejected before anything was appended
- SessionTransitionError: The action is illegal in the session's current state
- EventOrderError: An append would go backwards in time
- ActiveSessionExistsError: The actor already has a running or paused session
- SessionNotFoundError: No session with the given id

Validation errors are caller-facing and are not retryable: repeating the
same action without changing state fails the same way. The duration
derivation engine never raises any of these.
"""

from __future__ import annotations

from devsuite.sessions.enums import EnumSessionStatus

__all__ = [
    "ActiveSessionExistsError",
    "EventOrderError",
    "SessionError",
    "SessionNotFoundError",
    "SessionTransitionError",
    "SessionValidationError",
]


class SessionError(Exception):
    """Base exception for session errors."""

    pass


class SessionValidationError(SessionError):
    """Raised when an action fails validation before any event is appended."""

    pass


class SessionTransitionError(SessionValidationError):
    """Raised when an action is illegal for the session's current status.

    Attributes:
        action: The attempted action (e.g. "pause", "activate tasks in").
        status: The session status that rejected it.

    Example:
        >>> str(SessionTransitionError("pause", EnumSessionStatus.FINISHED))
        'Cannot pause a finished session'
    """

    def __init__(
        self,
        action: str,
        status: EnumSessionStatus,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.status = status
        if message is None:
            message = f"Cannot {action} a {str(status).lower()} session"
        super().__init__(message)


class EventOrderError(SessionValidationError):
    """Raised when an appended event's timestamp precedes the last event.

    Attributes:
        last_timestamp: Timestamp of the session's last recorded event.
        next_timestamp: Timestamp of the rejected event.
    """

    def __init__(self, last_timestamp: int, next_timestamp: int) -> None:
        self.last_timestamp = last_timestamp
        self.next_timestamp = next_timestamp
        super().__init__(
            "Session events must be appended in chronological order "
            f"(last={last_timestamp}, next={next_timestamp})"
        )


class ActiveSessionExistsError(SessionValidationError):
    """Raised when starting a session while another one is still active."""

    def __init__(self, status: EnumSessionStatus, session_id: str | None = None) -> None:
        self.status = status
        self.session_id = session_id
        suffix = f" ({session_id} is {str(status).lower()})" if session_id else ""
        super().__init__(f"An active session already exists for this actor{suffix}")


class SessionNotFoundError(SessionError, KeyError):
    """Raised when a session id is unknown.

    Subclasses KeyError so lookups behave like a missing mapping key.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"
