# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-memory session event recorder.

Appends events to per-session logs after validating them against the
session lifecycle and the ordering guard. Durations are never stored here;
``derive`` replays the log through the derivation engine on every call.

Key Semantics:
    - Validate, then append: every action runs its lifecycle check and the
      timestamp ordering guard before anything changes. A rejected action
      leaves the session and its log untouched.
    - Append-Only: events are never edited or removed once recorded.
    - One Active Session: an actor may hold at most one RUNNING or PAUSED
      session when ``enforce_single_active_session`` is enabled.
    - Time Injection: timestamps come from the injected clock, so tests can
      pin time without patching.

State Machine:
    [No Session] ---(start)---> RUNNING
    RUNNING <---(pause/resume)---> PAUSED
    RUNNING | PAUSED ---(finish)---> FINISHED
    RUNNING | PAUSED ---(cancel)---> CANCELLED

Thread Safety:
    Uses per-session asyncio.Lock instances so each session has a single
    writer. Starts are serialized on the registry lock because they check
    the actor's other sessions.

Example:
    >>> recorder = SessionRecorder(ConfigSessionRecorder())
    >>> session_id = await recorder.start_session("user-1")
    >>> await recorder.activate_task(session_id, "task-1")
    >>> derivation = await recorder.derive(session_id)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from devsuite.sessions.config import ConfigSessionRecorder
from devsuite.sessions.derivation import derive_session_record, wall_clock_ms
from devsuite.sessions.enums import (
    ACTIVE_SESSION_STATUSES,
    EnumSessionCancelMode,
    EnumSessionEventType,
    EnumSessionStatus,
)
from devsuite.sessions.exceptions import SessionNotFoundError, SessionValidationError
from devsuite.sessions.models import (
    ModelSessionDerivation,
    ModelSessionDurationSummary,
    ModelSessionRecord,
)
from devsuite.sessions.schemas import (
    ModelSessionStartedEvent,
    ModelSessionStartedPayload,
    SessionEvent,
    make_session_event,
)
from devsuite.sessions.validation import (
    assert_can_apply,
    assert_can_start,
    assert_event_timestamp_order,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Internal State
# =============================================================================


@dataclass
class SessionState:
    """Mutable state for one recorded session.

    ``status``, ``end_at`` and the cancellation fields mirror the last
    lifecycle event in ``events``. They are kept alongside the log so reads
    do not have to replay it.

    Attributes:
        session_id: Identifier of the session.
        actor_id: The actor who started the session.
        status: Current lifecycle status.
        start_at: Timestamp of SESSION_STARTED.
        end_at: Timestamp of SESSION_FINISHED/SESSION_CANCELLED, else None.
        cancel_mode: Cancellation mode when cancelled.
        cancelled_at: Timestamp of cancellation.
        discarded_at: Timestamp of cancellation in DISCARD mode.
        summary: Optional free-text summary of the work.
        project_ids: Assigned projects, de-duplicated, in assignment order.
        is_excluded_from_summaries: True once cancelled in either mode.
        events: The append-only event log.
        updated_at: Timestamp of the last change.
    """

    session_id: str
    actor_id: str
    status: EnumSessionStatus
    start_at: int
    end_at: int | None = None
    cancel_mode: EnumSessionCancelMode | None = None
    cancelled_at: int | None = None
    discarded_at: int | None = None
    summary: str | None = None
    project_ids: list[str] = field(default_factory=list)
    is_excluded_from_summaries: bool = False
    events: list[SessionEvent] = field(default_factory=list)
    updated_at: int = 0

    @property
    def last_event_at(self) -> int | None:
        return self.events[-1].timestamp if self.events else None

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    def to_record(self) -> ModelSessionRecord:
        return ModelSessionRecord(
            session_id=self.session_id,
            status=self.status,
            start_at=self.start_at,
            end_at=self.end_at,
            events=tuple(self.events),
        )


@dataclass(frozen=True)
class SessionListing:
    """One row of ``SessionRecorder.list_sessions``.

    Attributes:
        session: Detached copy of the session state.
        duration_summary: Durations derived from the session's log.
    """

    session: SessionState
    duration_summary: ModelSessionDurationSummary


def _detach(state: SessionState) -> SessionState:
    return dataclasses.replace(
        state,
        project_ids=list(state.project_ids),
        events=list(state.events),
    )


# =============================================================================
# Session Recorder
# =============================================================================


class SessionRecorder:
    """Records session events in memory with lifecycle validation.

    Attributes:
        recorder_id: Unique identifier for this recorder instance.
    """

    def __init__(
        self,
        config: ConfigSessionRecorder,
        clock: Callable[[], int] | None = None,
        recorder_id: str | None = None,
    ) -> None:
        """Initialize the recorder.

        Args:
            config: Recorder configuration.
            clock: Time source in epoch milliseconds. Defaults to the wall
                clock.
            recorder_id: Optional identifier. If not provided, generates one
                with format "recorder-{random_hex}".
        """
        self._config = config
        self._clock = clock or wall_clock_ms
        self._recorder_id = recorder_id or f"recorder-{uuid4().hex[:8]}"
        self._sessions: dict[str, SessionState] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()  # Guards the registry and the locks dict

        logger.info(
            "SessionRecorder initialized",
            extra={
                "recorder_id": self._recorder_id,
                "enforce_single_active_session": config.enforce_single_active_session,
            },
        )

    @property
    def recorder_id(self) -> str:
        return self._recorder_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_session(
        self,
        actor_id: str,
        project_ids: Iterable[str] = (),
        summary: str | None = None,
    ) -> str:
        """Start a new RUNNING session for ``actor_id``.

        Args:
            actor_id: The actor starting the session.
            project_ids: Projects to assign at start (duplicates dropped).
            summary: Optional summary; stripped, empty becomes None.

        Returns:
            The new session id.

        Raises:
            ActiveSessionExistsError: If the actor already has an active
                session and single-active enforcement is on.
            SessionValidationError: If the summary is too long.
        """
        assigned = list(dict.fromkeys(project_ids))
        summary = self._normalize_summary(summary)

        async with self._locks_lock:
            if self._config.enforce_single_active_session:
                active = self._find_active(actor_id)
                try:
                    assert_can_start(
                        active.status if active else None,
                        active.session_id if active else None,
                    )
                except SessionValidationError:
                    logger.warning(
                        "Rejected session start",
                        extra={"actor_id": actor_id, "recorder_id": self._recorder_id},
                    )
                    raise

            now = self._clock()
            session_id = f"session-{uuid4().hex[:12]}"
            state = SessionState(
                session_id=session_id,
                actor_id=actor_id,
                status=EnumSessionStatus.RUNNING,
                start_at=now,
                summary=summary,
                project_ids=assigned,
                updated_at=now,
            )
            state.events.append(
                ModelSessionStartedEvent(
                    timestamp=now,
                    payload=ModelSessionStartedPayload(project_ids=tuple(assigned)),
                )
            )
            self._sessions[session_id] = state
            self._session_locks[session_id] = asyncio.Lock()

        logger.info(
            "Session started",
            extra={
                "session_id": session_id,
                "actor_id": actor_id,
                "project_count": len(assigned),
                "recorder_id": self._recorder_id,
            },
        )
        return session_id

    async def pause_session(self, session_id: str) -> str:
        def mutate(state: SessionState, now: int) -> None:
            state.status = EnumSessionStatus.PAUSED

        return await self._record(session_id, EnumSessionEventType.SESSION_PAUSED, {}, mutate)

    async def resume_session(self, session_id: str) -> str:
        def mutate(state: SessionState, now: int) -> None:
            state.status = EnumSessionStatus.RUNNING

        return await self._record(session_id, EnumSessionEventType.SESSION_RESUMED, {}, mutate)

    async def finish_session(self, session_id: str) -> str:
        def mutate(state: SessionState, now: int) -> None:
            state.status = EnumSessionStatus.FINISHED
            state.end_at = now

        return await self._record(session_id, EnumSessionEventType.SESSION_FINISHED, {}, mutate)

    async def cancel_session(
        self,
        session_id: str,
        cancel_mode: EnumSessionCancelMode,
    ) -> str:
        """Cancel a session.

        Both modes end the session and exclude it from summaries. DISCARD
        additionally marks it discarded, hiding it from default reads.
        """
        mode = EnumSessionCancelMode(cancel_mode)

        def mutate(state: SessionState, now: int) -> None:
            state.status = EnumSessionStatus.CANCELLED
            state.cancel_mode = mode
            state.cancelled_at = now
            state.discarded_at = now if mode is EnumSessionCancelMode.DISCARD else None
            state.end_at = now
            state.is_excluded_from_summaries = True

        return await self._record(
            session_id,
            EnumSessionEventType.SESSION_CANCELLED,
            {"cancel_mode": mode},
            mutate,
        )

    # =========================================================================
    # Activity
    # =========================================================================

    async def activate_task(self, session_id: str, task_id: str) -> str:
        return await self._record(
            session_id, EnumSessionEventType.TASK_ACTIVATED, {"task_id": task_id}
        )

    async def deactivate_task(self, session_id: str, task_id: str) -> str:
        return await self._record(
            session_id, EnumSessionEventType.TASK_DEACTIVATED, {"task_id": task_id}
        )

    async def mark_task_done(self, session_id: str, task_id: str) -> str:
        return await self._record(
            session_id, EnumSessionEventType.TASK_MARKED_DONE, {"task_id": task_id}
        )

    async def reset_task(self, session_id: str, task_id: str) -> str:
        """Reset a task, clearing the time it accumulated in this session."""
        return await self._record(
            session_id, EnumSessionEventType.TASK_RESET, {"task_id": task_id}
        )

    async def log_step(self, session_id: str, text: str, task_id: str | None = None) -> str:
        return await self._record(
            session_id,
            EnumSessionEventType.STEP_LOGGED,
            {"text": text, "task_id": task_id},
        )

    async def assign_project(self, session_id: str, project_id: str) -> str:
        def mutate(state: SessionState, now: int) -> None:
            if project_id not in state.project_ids:
                state.project_ids.append(project_id)

        return await self._record(
            session_id,
            EnumSessionEventType.PROJECT_ASSIGNED_TO_SESSION,
            {"project_id": project_id},
            mutate,
        )

    async def unassign_project(self, session_id: str, project_id: str) -> str:
        def mutate(state: SessionState, now: int) -> None:
            state.project_ids = [p for p in state.project_ids if p != project_id]

        return await self._record(
            session_id,
            EnumSessionEventType.PROJECT_UNASSIGNED_FROM_SESSION,
            {"project_id": project_id},
            mutate,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_session(
        self,
        session_id: str,
        include_discarded: bool = False,
    ) -> SessionState | None:
        """Get a copy of a session's state.

        Returns:
            A detached copy, or None if the session does not exist or was
            discarded and ``include_discarded`` is False.
        """
        try:
            lock = await self._get_session_lock(session_id)
        except SessionNotFoundError:
            return None
        async with lock:
            state = self._sessions[session_id]
            if state.is_discarded and not include_discarded:
                return None
            return _detach(state)

    async def get_events(self, session_id: str) -> list[SessionEvent]:
        """Get a session's events in append order.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        lock = await self._get_session_lock(session_id)
        async with lock:
            return list(self._require(session_id).events)

    async def get_active_session(self, actor_id: str) -> SessionState | None:
        """Get the actor's RUNNING session, else their PAUSED one, else None."""
        async with self._locks_lock:
            active = self._find_active(actor_id)
            if active is None:
                return None
            return _detach(active)

    async def list_sessions(
        self,
        actor_id: str,
        status: EnumSessionStatus | str | None = None,
        include_discarded: bool = False,
        now_ms: int | None = None,
    ) -> list[SessionListing]:
        """List an actor's sessions, newest first, with derived durations.

        Args:
            actor_id: Whose sessions to list.
            status: Only include sessions in this status.
            include_discarded: Include sessions cancelled with DISCARD.
            now_ms: Current time for open RUNNING sessions. Resolved once
                for the whole listing.

        Returns:
            One listing per matching session, ordered by ``start_at``
            descending. Sessions that started at the same moment are listed
            most recently created first.
        """
        wanted = EnumSessionStatus(status) if status is not None else None

        async with self._locks_lock:
            # Registry order is creation order; reverse it so the stable sort
            # below lists later-created sessions first among equal starts
            matching = [
                _detach(state)
                for state in reversed(self._sessions.values())
                if state.actor_id == actor_id
                and (include_discarded or not state.is_discarded)
                and (wanted is None or state.status == wanted)
            ]

        matching.sort(key=lambda state: state.start_at, reverse=True)
        now = now_ms if now_ms is not None else self._clock()

        listings = [
            SessionListing(
                session=state,
                duration_summary=derive_session_record(
                    state.to_record(),
                    now_ms=now,
                    warn_on_missing_start=self._config.warn_on_missing_start,
                ).duration_summary,
            )
            for state in matching
        ]

        logger.debug(
            "Listed sessions",
            extra={
                "actor_id": actor_id,
                "status": wanted.value if wanted else None,
                "session_count": len(listings),
                "recorder_id": self._recorder_id,
            },
        )
        return listings

    async def derive(
        self,
        session_id: str,
        now_ms: int | None = None,
    ) -> ModelSessionDerivation:
        """Derive durations for a session from its current log.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        lock = await self._get_session_lock(session_id)
        async with lock:
            record = self._require(session_id).to_record()

        return derive_session_record(
            record,
            now_ms=now_ms,
            clock=self._clock,
            warn_on_missing_start=self._config.warn_on_missing_start,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _record(
        self,
        session_id: str,
        event_type: EnumSessionEventType,
        payload: dict[str, Any],
        mutate: Callable[[SessionState, int], None] | None = None,
    ) -> str:
        lock = await self._get_session_lock(session_id)
        async with lock:
            state = self._require(session_id)
            now = self._clock()
            try:
                assert_can_apply(state.status, event_type)
                assert_event_timestamp_order(state.last_event_at, now)
            except SessionValidationError as e:
                logger.warning(
                    "Rejected session event",
                    extra={
                        "session_id": session_id,
                        "event_type": event_type.value,
                        "status": state.status.value,
                        "reason": str(e),
                        "recorder_id": self._recorder_id,
                    },
                )
                raise

            # Build the event before mutating so a bad payload changes nothing
            event = make_session_event(event_type, now, **payload)
            if mutate is not None:
                mutate(state, now)
            state.events.append(event)
            state.updated_at = now

        logger.debug(
            "Recorded session event",
            extra={
                "session_id": session_id,
                "event_type": event_type.value,
                "timestamp": now,
                "recorder_id": self._recorder_id,
            },
        )
        return session_id

    async def _get_session_lock(self, session_id: str) -> asyncio.Lock:
        """Look up a session's lock.

        Locks are created only by ``start_session``, so lookups of unknown
        ids never grow the lock map.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        async with self._locks_lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                raise SessionNotFoundError(session_id)
            return lock

    def _require(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)
        return state

    def _find_active(self, actor_id: str) -> SessionState | None:
        active = [
            state
            for state in self._sessions.values()
            if state.actor_id == actor_id and state.status in ACTIVE_SESSION_STATUSES
        ]
        for state in active:
            if state.status == EnumSessionStatus.RUNNING:
                return state
        return active[0] if active else None

    def _normalize_summary(self, summary: str | None) -> str | None:
        if summary is None:
            return None
        summary = summary.strip()
        if not summary:
            return None
        if len(summary) > self._config.max_summary_length:
            raise SessionValidationError(
                f"Session summary exceeds {self._config.max_summary_length} characters"
            )
        return summary


__all__ = [
    "SessionListing",
    "SessionRecorder",
    "SessionState",
]
