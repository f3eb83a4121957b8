# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Read-side rollups built on the derivation engine.

These helpers turn per-session derivations into the shapes read paths need:
ordered task lists, per-project totals, and a task's history across every
session that touched it. They share the engine's failure semantics and never
raise for well-typed input.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping

from devsuite.sessions.derivation import derive_session_record, wall_clock_ms
from devsuite.sessions.enums import EnumSessionEventType
from devsuite.sessions.models import (
    ModelSessionProjectSummary,
    ModelSessionRecord,
    ModelSessionTaskSummary,
    ModelTaskSessionMetadata,
)
from devsuite.sessions.schemas import TaskEvent

logger = logging.getLogger(__name__)


def sort_task_summaries(
    summaries: Iterable[ModelSessionTaskSummary],
) -> list[ModelSessionTaskSummary]:
    """Order task summaries by active time (longest first), then by task id."""
    return sorted(summaries, key=lambda s: (-s.active_duration_ms, s.task_id))


def build_project_summaries(
    task_summaries: Iterable[ModelSessionTaskSummary],
    task_projects: Mapping[str, str | None],
) -> list[ModelSessionProjectSummary]:
    """Roll task time up to the projects the tasks belong to.

    Tasks with no recorded time, tasks missing from ``task_projects`` and
    tasks without a project are skipped. Overlapping task time is summed as
    is, so a project total can exceed the session's running time.

    Args:
        task_summaries: Per-task summaries from one session.
        task_projects: Task id to project id (or None for unfiled tasks).

    Returns:
        One summary per project, in the order projects were first seen.
    """
    totals: dict[str, int] = {}
    for summary in task_summaries:
        if summary.active_duration_ms <= 0:
            continue
        project_id = task_projects.get(summary.task_id)
        if project_id is None:
            continue
        totals[project_id] = totals.get(project_id, 0) + summary.active_duration_ms

    return [
        ModelSessionProjectSummary(project_id=project_id, active_duration_ms=total)
        for project_id, total in totals.items()
    ]


def _last_task_event_at(record: ModelSessionRecord, task_id: str) -> int | None:
    timestamps = [
        event.timestamp
        for event in record.events
        if isinstance(event, TaskEvent) and event.payload.task_id == task_id
    ]
    return max(timestamps) if timestamps else None


def summarize_task_sessions(
    task_id: str,
    sessions: Iterable[ModelSessionRecord],
    *,
    now_ms: int | None = None,
    clock: Callable[[], int] | None = None,
) -> ModelTaskSessionMetadata:
    """Aggregate a task's activity across every session that touched it.

    A session touches a task when its log has at least one task event for
    that task. Sessions that never mention the task are ignored. Callers are
    expected to pass only sessions visible to the reader (discarded sessions
    filtered out).

    Paused time for a session is its wall-clock span (end, or now for an
    open session, minus start) less its effective running time, floored at 0.

    Args:
        task_id: The task to summarize.
        sessions: Candidate sessions, in any order.
        now_ms: Current time for open sessions. Resolved once for the call.
        clock: Fallback time source when ``now_ms`` is omitted.

    Returns:
        Totals across the touching sessions, zeroed when there are none.
    """
    now = now_ms if now_ms is not None else (clock or wall_clock_ms)()

    total_tracked_ms = 0
    total_paused_ms = 0
    pause_count = 0
    session_count = 0
    last_session_at: int | None = None
    last_session_task_duration_ms = 0

    for record in sessions:
        last_task_event_at = _last_task_event_at(record, task_id)
        if last_task_event_at is None:
            continue

        derivation = derive_session_record(record, now_ms=now)
        task_summary = derivation.task_summaries.get(task_id)
        task_duration_ms = task_summary.active_duration_ms if task_summary else 0
        total_tracked_ms += task_duration_ms

        span_ms = max(0, (record.end_at if record.end_at is not None else now) - record.start_at)
        total_paused_ms += max(0, span_ms - derivation.duration_summary.effective_duration_ms)
        pause_count += sum(
            1 for event in record.events if event.type == EnumSessionEventType.SESSION_PAUSED
        )
        session_count += 1

        if last_session_at is None or last_task_event_at > last_session_at:
            last_session_at = last_task_event_at
            last_session_task_duration_ms = task_duration_ms

    logger.debug(
        "Summarized task sessions",
        extra={
            "task_id": task_id,
            "session_count": session_count,
            "total_tracked_ms": total_tracked_ms,
        },
    )

    return ModelTaskSessionMetadata(
        total_tracked_ms=total_tracked_ms,
        total_paused_ms=total_paused_ms,
        pause_count=pause_count,
        session_count=session_count,
        last_session_at=last_session_at,
        last_session_task_duration_ms=last_session_task_duration_ms,
    )


__all__ = [
    "build_project_summaries",
    "sort_task_summaries",
    "summarize_task_sessions",
]
