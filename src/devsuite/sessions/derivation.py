# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Session duration derivation.

Derives session and per-task durations from a session's event log. Nothing
here is stored: every call replays the full log from scratch, so results are
idempotent and safe to recompute on every read.

Key Semantics:
    - Sort, then fold: events are stably sorted by timestamp before the fold.
      Equal timestamps keep their input order and contribute zero delta
      between themselves.
    - Running time: elapsed time between consecutive events counts only
      while the session is running (after STARTED/RESUMED, before
      PAUSED/FINISHED/CANCELLED).
    - Overlap: while several tasks are active, each one is credited the full
      elapsed time. Task time is never split between concurrent tasks, so
      the sum of task durations can exceed the session's running time.
    - Unallocated time: running time with zero active tasks.
    - Open tail: a finished or cancelled session runs to ``session_end_at``;
      a RUNNING session without an end runs to ``now_ms``; a PAUSED session
      without an end gets no tail.
    - Terminal close-out: tasks still active when a session finished or was
      cancelled are closed at ``session_end_at``.

Failure Semantics:
    The engine is total. Missing or inconsistent data (no SESSION_STARTED,
    empty log, dangling active tasks) degrades to a well-defined zero or
    partial result. It never raises for well-typed input.

Thread Safety:
    Pure function over its inputs with only local state. Safe to call from
    any number of concurrent readers.

Example:
    >>> from devsuite.sessions.schemas import make_session_event
    >>> result = derive_session_durations(
    ...     session_status="FINISHED",
    ...     session_start_at=0,
    ...     session_end_at=600,
    ...     events=[
    ...         make_session_event("SESSION_STARTED", 0),
    ...         make_session_event("SESSION_PAUSED", 100),
    ...         make_session_event("SESSION_RESUMED", 500),
    ...         make_session_event("SESSION_FINISHED", 600),
    ...     ],
    ... )
    >>> result.duration_summary.effective_duration_ms
    200
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import assert_never

from devsuite.sessions.enums import EnumSessionStatus
from devsuite.sessions.models import (
    ModelSessionDerivation,
    ModelSessionDurationSummary,
    ModelSessionRecord,
    ModelSessionTaskSummary,
)
from devsuite.sessions.schemas import (
    ModelProjectAssignedEvent,
    ModelProjectUnassignedEvent,
    ModelSessionCancelledEvent,
    ModelSessionFinishedEvent,
    ModelSessionPausedEvent,
    ModelSessionResumedEvent,
    ModelSessionStartedEvent,
    ModelStepLoggedEvent,
    ModelTaskActivatedEvent,
    ModelTaskDeactivatedEvent,
    ModelTaskMarkedDoneEvent,
    ModelTaskResetEvent,
    SessionEvent,
)
from devsuite.sessions.validation import is_terminal_status

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


# =============================================================================
# Fold State
# =============================================================================


@dataclass
class TaskAccumulator:
    """Working state for one task during a fold.

    Created on first sighting of the task in the sorted log. A reset clears
    every field but keeps the entry, so the task still shows up in the output.
    """

    task_id: str
    active_duration_ms: int = 0
    was_active: bool = False
    was_completed: bool = False
    first_activated_at: int | None = None
    last_deactivated_at: int | None = None
    is_active: bool = False

    def reset(self) -> None:
        self.active_duration_ms = 0
        self.was_active = False
        self.was_completed = False
        self.first_activated_at = None
        self.last_deactivated_at = None
        self.is_active = False

    def to_summary(self) -> ModelSessionTaskSummary:
        return ModelSessionTaskSummary(
            task_id=self.task_id,
            active_duration_ms=self.active_duration_ms,
            was_active=self.was_active,
            was_completed=self.was_completed,
            first_activated_at=self.first_activated_at,
            last_deactivated_at=self.last_deactivated_at,
        )


@dataclass
class DurationFold:
    """Accumulator for the single left-to-right sweep over a session log.

    All accumulation lives here: ``advance`` credits elapsed time and
    ``apply`` performs one event's state transition. Callers drive the sweep
    and never touch the totals directly.

    Attributes:
        is_running: Whether the session is currently accruing time.
        last_timestamp: Timestamp of the last applied event.
        effective_duration_ms: Running time so far.
        unallocated_duration_ms: Running time with no active task so far.
        tasks: Per-task accumulators, in first-sighting order.
        active_task_ids: Currently active tasks (insertion-ordered set).
        saw_start: Whether a SESSION_STARTED event was applied.
    """

    is_running: bool = False
    last_timestamp: int | None = None
    effective_duration_ms: int = 0
    unallocated_duration_ms: int = 0
    tasks: dict[str, TaskAccumulator] = field(default_factory=dict)
    active_task_ids: dict[str, None] = field(default_factory=dict)
    saw_start: bool = False

    def task(self, task_id: str) -> TaskAccumulator:
        accumulator = self.tasks.get(task_id)
        if accumulator is None:
            accumulator = TaskAccumulator(task_id=task_id)
            self.tasks[task_id] = accumulator
        return accumulator

    def advance(self, delta: int) -> None:
        """Credit ``delta`` ms of elapsed time under the current state."""
        if delta <= 0 or not self.is_running:
            return
        self.effective_duration_ms += delta
        if not self.active_task_ids:
            self.unallocated_duration_ms += delta
            return
        # Overlap: every active task gets the full delta
        for task_id in self.active_task_ids:
            self.tasks[task_id].active_duration_ms += delta

    def advance_to(self, timestamp: int) -> None:
        if self.last_timestamp is not None:
            self.advance(max(0, timestamp - self.last_timestamp))

    def apply(self, event: SessionEvent) -> None:
        """Apply one event's state transition (no time is credited here)."""
        if isinstance(event, ModelSessionStartedEvent):
            self.saw_start = True
            self.is_running = True
        elif isinstance(event, ModelSessionResumedEvent):
            self.is_running = True
        elif isinstance(
            event,
            ModelSessionPausedEvent | ModelSessionFinishedEvent | ModelSessionCancelledEvent,
        ):
            self.is_running = False
        elif isinstance(event, ModelTaskActivatedEvent):
            accumulator = self.task(event.payload.task_id)
            accumulator.was_active = True
            accumulator.is_active = True
            if accumulator.first_activated_at is None:
                accumulator.first_activated_at = event.timestamp
            self.active_task_ids[accumulator.task_id] = None
        elif isinstance(event, ModelTaskDeactivatedEvent):
            accumulator = self.task(event.payload.task_id)
            accumulator.was_active = True
            accumulator.is_active = False
            accumulator.last_deactivated_at = event.timestamp
            self.active_task_ids.pop(accumulator.task_id, None)
        elif isinstance(event, ModelTaskMarkedDoneEvent):
            self.task(event.payload.task_id).was_completed = True
        elif isinstance(event, ModelTaskResetEvent):
            self.active_task_ids.pop(event.payload.task_id, None)
            self.task(event.payload.task_id).reset()
        elif isinstance(
            event,
            ModelStepLoggedEvent | ModelProjectAssignedEvent | ModelProjectUnassignedEvent,
        ):
            # Annotations only; they advance the clock but change no state
            pass
        else:
            assert_never(event)
        self.last_timestamp = event.timestamp

    def close_active_tasks(self, end_at: int) -> None:
        """Close every still-active task at ``end_at``."""
        for task_id in self.active_task_ids:
            accumulator = self.tasks[task_id]
            accumulator.was_active = True
            accumulator.is_active = False
            accumulator.last_deactivated_at = end_at
        self.active_task_ids.clear()


# =============================================================================
# Derivation
# =============================================================================


def resolve_effective_end(
    session_status: EnumSessionStatus | str,
    session_end_at: int | None,
    now_ms: int | None = None,
    clock: Callable[[], int] | None = None,
) -> int | None:
    """Where the open tail of a session stops accruing.

    Returns ``session_end_at`` when set; otherwise the current time for a
    RUNNING session (``now_ms``, then ``clock()``, then the wall clock);
    otherwise None.
    """
    if session_end_at is not None:
        return session_end_at
    if session_status != EnumSessionStatus.RUNNING:
        return None
    if now_ms is not None:
        return now_ms
    return (clock or wall_clock_ms)()


def derive_session_durations(
    *,
    session_status: EnumSessionStatus | str,
    session_start_at: int,
    session_end_at: int | None,
    events: Iterable[SessionEvent],
    now_ms: int | None = None,
    clock: Callable[[], int] | None = None,
    warn_on_missing_start: bool = True,
) -> ModelSessionDerivation:
    """Derive duration summaries from a session's event log.

    Args:
        session_status: The caller's known current status of the session.
        session_start_at: First moment the session became running (epoch ms).
            Only used when the log is empty.
        session_end_at: End timestamp for terminal sessions, else None.
        events: The session's events, in any order.
        now_ms: Current time for a RUNNING session without an end.
        clock: Fallback time source when ``now_ms`` is omitted. Defaults to
            the wall clock.
        warn_on_missing_start: Log a warning when a non-empty log has no
            SESSION_STARTED event.

    Returns:
        The session duration summary and per-task summaries.
    """
    status = EnumSessionStatus(session_status)
    ordered = sorted(events, key=lambda event: event.timestamp)

    fold = DurationFold()
    for event in ordered:
        fold.advance_to(event.timestamp)
        fold.apply(event)

    effective_end_at = resolve_effective_end(status, session_end_at, now_ms, clock)

    if not ordered:
        # No log at all: the whole known span is running time with no task
        if effective_end_at is not None:
            span = max(0, effective_end_at - session_start_at)
            fold.effective_duration_ms = span
            fold.unallocated_duration_ms = span
    elif effective_end_at is not None:
        fold.advance_to(effective_end_at)

    if session_end_at is not None and is_terminal_status(status):
        fold.close_active_tasks(session_end_at)

    if ordered and not fold.saw_start and warn_on_missing_start:
        logger.warning(
            "Session log has no SESSION_STARTED event; reporting zero running time",
            extra={
                "session_status": status.value,
                "event_count": len(ordered),
                "first_event_type": ordered[0].type,
            },
        )

    task_summaries = {
        task_id: accumulator.to_summary() for task_id, accumulator in fold.tasks.items()
    }
    active_task_duration_ms = sum(
        summary.active_duration_ms for summary in task_summaries.values()
    )

    duration_summary = ModelSessionDurationSummary(
        effective_duration_ms=fold.effective_duration_ms,
        active_task_duration_ms=active_task_duration_ms,
        unallocated_duration_ms=fold.unallocated_duration_ms,
        has_overlap=active_task_duration_ms > fold.effective_duration_ms,
        has_unallocated_time=fold.unallocated_duration_ms > 0,
    )

    logger.debug(
        "Derived session durations",
        extra={
            "session_status": status.value,
            "event_count": len(ordered),
            "task_count": len(task_summaries),
            "effective_duration_ms": duration_summary.effective_duration_ms,
            "unallocated_duration_ms": duration_summary.unallocated_duration_ms,
        },
    )

    return ModelSessionDerivation(
        duration_summary=duration_summary,
        task_summaries=task_summaries,
    )


def derive_session_record(
    record: ModelSessionRecord,
    *,
    now_ms: int | None = None,
    clock: Callable[[], int] | None = None,
    warn_on_missing_start: bool = True,
) -> ModelSessionDerivation:
    """Run ``derive_session_durations`` over a session projection."""
    return derive_session_durations(
        session_status=record.status,
        session_start_at=record.start_at,
        session_end_at=record.end_at,
        events=record.events,
        now_ms=now_ms,
        clock=clock,
        warn_on_missing_start=warn_on_missing_start,
    )


__all__ = [
    "DurationFold",
    "TaskAccumulator",
    "derive_session_durations",
    "derive_session_record",
    "resolve_effective_end",
    "wall_clock_ms",
]
