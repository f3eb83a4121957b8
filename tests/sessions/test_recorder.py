# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for SessionRecorder.

Validates recorder behavior including:
- Lifecycle: start, pause, resume, finish, cancel
- Rejections leave the log untouched
- Single active session per actor
- Cancel modes and discarded visibility
- Derivation from the recorded log
- Concurrent appends to one session
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from pydantic import ValidationError

from devsuite.sessions import (
    ActiveSessionExistsError,
    ConfigSessionRecorder,
    EnumSessionCancelMode,
    EnumSessionStatus,
    EventOrderError,
    SessionNotFoundError,
    SessionRecorder,
    SessionTransitionError,
    SessionValidationError,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def recorder(recorder_config: ConfigSessionRecorder, clock) -> SessionRecorder:
    return SessionRecorder(recorder_config, clock=clock, recorder_id="recorder-test")


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_creates_running_session(self, recorder: SessionRecorder, clock) -> None:
        session_id = await recorder.start_session("user-1", project_ids=["p1", "p2", "p1"])

        state = await recorder.get_session(session_id)
        assert state is not None
        assert state.status == EnumSessionStatus.RUNNING
        assert state.start_at == 1000
        assert state.end_at is None
        assert state.project_ids == ["p1", "p2"]

        events = await recorder.get_events(session_id)
        assert [e.type for e in events] == ["SESSION_STARTED"]
        assert events[0].payload.project_ids == ("p1", "p2")

    @pytest.mark.asyncio
    async def test_full_lifecycle_derivation(self, recorder: SessionRecorder, clock) -> None:
        session_id = await recorder.start_session("user-1")
        clock.advance(500)
        await recorder.activate_task(session_id, "a")
        clock.advance(1000)
        await recorder.pause_session(session_id)
        clock.advance(2000)
        await recorder.resume_session(session_id)
        clock.advance(500)
        await recorder.finish_session(session_id)

        state = await recorder.get_session(session_id)
        assert state.status == EnumSessionStatus.FINISHED
        assert state.end_at == 5000

        derivation = await recorder.derive(session_id)
        assert derivation.duration_summary.effective_duration_ms == 2000
        assert derivation.duration_summary.unallocated_duration_ms == 500
        assert derivation.task_summaries["a"].active_duration_ms == 1500
        assert derivation.task_summaries["a"].last_deactivated_at == 5000

    @pytest.mark.asyncio
    async def test_running_session_derives_to_clock(self, recorder: SessionRecorder, clock) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.activate_task(session_id, "a")
        clock.advance(750)

        derivation = await recorder.derive(session_id)

        assert derivation.duration_summary.effective_duration_ms == 750
        assert derivation.task_summaries["a"].active_duration_ms == 750

    @pytest.mark.asyncio
    async def test_derive_with_explicit_now(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        derivation = await recorder.derive(session_id, now_ms=1300)

        assert derivation.duration_summary.effective_duration_ms == 300

    @pytest.mark.asyncio
    async def test_summary_is_normalized(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1", summary="  fixing auth  ")
        blank_id = await recorder.start_session("user-2", summary="   ")

        assert (await recorder.get_session(session_id)).summary == "fixing auth"
        assert (await recorder.get_session(blank_id)).summary is None


# =============================================================================
# Rejections
# =============================================================================


class TestRejections:
    @pytest.mark.asyncio
    async def test_pause_twice_rejected(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.pause_session(session_id)

        with pytest.raises(SessionTransitionError):
            await recorder.pause_session(session_id)

        assert len(await recorder.get_events(session_id)) == 2

    @pytest.mark.asyncio
    async def test_resume_running_rejected(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        with pytest.raises(SessionTransitionError):
            await recorder.resume_session(session_id)

    @pytest.mark.asyncio
    async def test_finished_session_rejects_activity(
        self, recorder: SessionRecorder, caplog: pytest.LogCaptureFixture
    ) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.finish_session(session_id)

        with caplog.at_level(logging.WARNING, logger="devsuite.sessions.recorder"):
            with pytest.raises(SessionTransitionError) as exc_info:
                await recorder.activate_task(session_id, "a")

        assert str(exc_info.value) == "Cannot activate tasks in a finished session"
        assert any(r.getMessage() == "Rejected session event" for r in caplog.records)
        assert len(await recorder.get_events(session_id)) == 2

    @pytest.mark.asyncio
    async def test_cancelled_session_rejects_finish(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.cancel_session(session_id, EnumSessionCancelMode.KEEP_EXCLUDED)

        with pytest.raises(SessionTransitionError, match="Cannot finish a cancelled session"):
            await recorder.finish_session(session_id)

    @pytest.mark.asyncio
    async def test_backwards_clock_rejected(self, recorder: SessionRecorder, clock) -> None:
        session_id = await recorder.start_session("user-1")
        clock.advance(-1)

        with pytest.raises(EventOrderError):
            await recorder.activate_task(session_id, "a")

        assert len(await recorder.get_events(session_id)) == 1

    @pytest.mark.asyncio
    async def test_invalid_payload_changes_nothing(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        with pytest.raises(ValidationError):
            await recorder.log_step(session_id, "")

        assert len(await recorder.get_events(session_id)) == 1

    @pytest.mark.asyncio
    async def test_invalid_project_leaves_assignments(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1", project_ids=["p1"])

        with pytest.raises(ValidationError):
            await recorder.assign_project(session_id, "")

        assert (await recorder.get_session(session_id)).project_ids == ["p1"]

    @pytest.mark.asyncio
    async def test_summary_too_long(self, recorder_config: ConfigSessionRecorder) -> None:
        recorder = SessionRecorder(
            recorder_config.model_copy(update={"max_summary_length": 10}),
            clock=lambda: 0,
        )

        with pytest.raises(SessionValidationError):
            await recorder.start_session("user-1", summary="x" * 11)

    @pytest.mark.asyncio
    async def test_unknown_session(self, recorder: SessionRecorder) -> None:
        assert await recorder.get_session("session-missing") is None

        with pytest.raises(SessionNotFoundError) as exc_info:
            await recorder.get_events("session-missing")
        assert str(exc_info.value) == "Session not found: session-missing"

        with pytest.raises(KeyError):
            await recorder.pause_session("session-missing")


# =============================================================================
# Single Active Session
# =============================================================================


class TestSingleActiveSession:
    @pytest.mark.asyncio
    async def test_second_start_rejected(self, recorder: SessionRecorder) -> None:
        first = await recorder.start_session("user-1")
        await recorder.pause_session(first)

        with pytest.raises(ActiveSessionExistsError) as exc_info:
            await recorder.start_session("user-1")

        assert exc_info.value.session_id == first

    @pytest.mark.asyncio
    async def test_other_actors_unaffected(self, recorder: SessionRecorder) -> None:
        await recorder.start_session("user-1")

        assert await recorder.start_session("user-2")

    @pytest.mark.asyncio
    async def test_start_after_finish(self, recorder: SessionRecorder) -> None:
        first = await recorder.start_session("user-1")
        await recorder.finish_session(first)

        second = await recorder.start_session("user-1")

        assert second != first
        assert (await recorder.get_active_session("user-1")).session_id == second

    @pytest.mark.asyncio
    async def test_enforcement_can_be_disabled(self, recorder_config: ConfigSessionRecorder) -> None:
        recorder = SessionRecorder(
            recorder_config.model_copy(update={"enforce_single_active_session": False}),
            clock=lambda: 0,
        )
        first = await recorder.start_session("user-1")
        await recorder.pause_session(first)
        second = await recorder.start_session("user-1")

        active = await recorder.get_active_session("user-1")

        # RUNNING wins over PAUSED
        assert active.session_id == second

    @pytest.mark.asyncio
    async def test_no_active_session(self, recorder: SessionRecorder) -> None:
        assert await recorder.get_active_session("nobody") is None


# =============================================================================
# Cancellation
# =============================================================================


class TestCancel:
    @pytest.mark.asyncio
    async def test_discard_hides_session(self, recorder: SessionRecorder, clock) -> None:
        session_id = await recorder.start_session("user-1")
        clock.advance(100)
        await recorder.cancel_session(session_id, EnumSessionCancelMode.DISCARD)

        assert await recorder.get_session(session_id) is None

        state = await recorder.get_session(session_id, include_discarded=True)
        assert state.status == EnumSessionStatus.CANCELLED
        assert state.cancel_mode == EnumSessionCancelMode.DISCARD
        assert state.discarded_at == 1100
        assert state.cancelled_at == 1100
        assert state.end_at == 1100
        assert state.is_excluded_from_summaries is True

    @pytest.mark.asyncio
    async def test_keep_excluded_stays_visible(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.cancel_session(session_id, "KEEP_EXCLUDED")

        state = await recorder.get_session(session_id)
        assert state is not None
        assert state.discarded_at is None
        assert state.is_excluded_from_summaries is True

        events = await recorder.get_events(session_id)
        assert events[-1].payload.cancel_mode == EnumSessionCancelMode.KEEP_EXCLUDED

    @pytest.mark.asyncio
    async def test_cancel_frees_the_actor(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.cancel_session(session_id, EnumSessionCancelMode.DISCARD)

        assert await recorder.get_active_session("user-1") is None
        assert await recorder.start_session("user-1")


# =============================================================================
# Activity
# =============================================================================


class TestActivity:
    @pytest.mark.asyncio
    async def test_activity_events_recorded_in_order(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.activate_task(session_id, "a")
        await recorder.log_step(session_id, "wrote the parser", task_id="a")
        await recorder.mark_task_done(session_id, "a")
        await recorder.deactivate_task(session_id, "a")
        await recorder.reset_task(session_id, "a")

        events = await recorder.get_events(session_id)

        assert [e.type for e in events] == [
            "SESSION_STARTED",
            "TASK_ACTIVATED",
            "STEP_LOGGED",
            "TASK_MARKED_DONE",
            "TASK_DEACTIVATED",
            "TASK_RESET",
        ]

    @pytest.mark.asyncio
    async def test_activity_allowed_while_paused(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.pause_session(session_id)

        await recorder.activate_task(session_id, "a")
        await recorder.log_step(session_id, "reading docs")

        assert len(await recorder.get_events(session_id)) == 4

    @pytest.mark.asyncio
    async def test_project_assignment(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1", project_ids=["p1"])
        await recorder.assign_project(session_id, "p2")
        await recorder.assign_project(session_id, "p1")
        await recorder.unassign_project(session_id, "p1")

        state = await recorder.get_session(session_id)

        assert state.project_ids == ["p2"]
        assert len(state.events) == 4

    @pytest.mark.asyncio
    async def test_returned_state_is_detached(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        state = await recorder.get_session(session_id)
        state.events.clear()
        state.project_ids.append("p9")

        fresh = await recorder.get_session(session_id)

        assert len(fresh.events) == 1
        assert fresh.project_ids == []

    @pytest.mark.asyncio
    async def test_concurrent_appends(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        await asyncio.gather(
            *(recorder.activate_task(session_id, f"task-{i}") for i in range(20))
        )

        events = await recorder.get_events(session_id)
        assert len(events) == 21
        activated = {e.payload.task_id for e in events[1:]}
        assert activated == {f"task-{i}" for i in range(20)}


# =============================================================================
# Listing
# =============================================================================


class TestListSessions:
    @pytest.mark.asyncio
    async def test_newest_first_with_durations(self, recorder: SessionRecorder, clock) -> None:
        first = await recorder.start_session("user-1")
        clock.advance(500)
        await recorder.finish_session(first)
        clock.advance(500)
        second = await recorder.start_session("user-1")
        await recorder.start_session("user-2")
        clock.advance(250)

        listings = await recorder.list_sessions("user-1")

        assert [listing.session.session_id for listing in listings] == [second, first]
        assert listings[0].duration_summary.effective_duration_ms == 250
        assert listings[1].duration_summary.effective_duration_ms == 500
        assert listings[1].duration_summary.unallocated_duration_ms == 500

    @pytest.mark.asyncio
    async def test_explicit_now(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        listings = await recorder.list_sessions("user-1", now_ms=1900)

        assert listings[0].session.session_id == session_id
        assert listings[0].duration_summary.effective_duration_ms == 900

    @pytest.mark.asyncio
    async def test_status_filter(self, recorder: SessionRecorder, clock) -> None:
        finished = await recorder.start_session("user-1")
        clock.advance(100)
        await recorder.finish_session(finished)
        running = await recorder.start_session("user-1")

        only_finished = await recorder.list_sessions("user-1", status=EnumSessionStatus.FINISHED)
        only_running = await recorder.list_sessions("user-1", status="RUNNING")
        only_paused = await recorder.list_sessions("user-1", status=EnumSessionStatus.PAUSED)

        assert [listing.session.session_id for listing in only_finished] == [finished]
        assert [listing.session.session_id for listing in only_running] == [running]
        assert only_paused == []

    @pytest.mark.asyncio
    async def test_discarded_hidden_by_default(self, recorder: SessionRecorder) -> None:
        discarded = await recorder.start_session("user-1")
        await recorder.cancel_session(discarded, EnumSessionCancelMode.DISCARD)
        kept = await recorder.start_session("user-1")

        visible = await recorder.list_sessions("user-1")
        everything = await recorder.list_sessions("user-1", include_discarded=True)

        assert [listing.session.session_id for listing in visible] == [kept]
        # Same start time: the later-created session comes first
        assert [listing.session.session_id for listing in everything] == [kept, discarded]

    @pytest.mark.asyncio
    async def test_listed_state_is_detached(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")

        listing = (await recorder.list_sessions("user-1"))[0]
        listing.session.events.clear()

        assert len(await recorder.get_events(session_id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_actor(self, recorder: SessionRecorder) -> None:
        assert await recorder.list_sessions("nobody") == []


# =============================================================================
# Lock Registry
# =============================================================================


class TestLockRegistry:
    @pytest.mark.asyncio
    async def test_missing_lookups_do_not_allocate_locks(self, recorder: SessionRecorder) -> None:
        for i in range(100):
            assert await recorder.get_session(f"session-missing-{i}") is None

        with pytest.raises(SessionNotFoundError):
            await recorder.get_events("session-missing")
        with pytest.raises(SessionNotFoundError):
            await recorder.derive("session-missing")
        with pytest.raises(SessionNotFoundError):
            await recorder.activate_task("session-missing", "a")

        assert len(recorder._session_locks) == 0

    @pytest.mark.asyncio
    async def test_one_lock_per_started_session(self, recorder: SessionRecorder) -> None:
        session_id = await recorder.start_session("user-1")
        await recorder.get_session(session_id)
        await recorder.get_session("session-missing")

        assert list(recorder._session_locks) == [session_id]
