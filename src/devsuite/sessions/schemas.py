# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event schemas for the session event log.

Every record in a session's log is one variant of the ``SessionEvent`` tagged
union. Each variant pairs a literal ``type`` tag with exactly one payload
model, so a ``TASK_ACTIVATED`` record always carries a ``task_id`` and a
``SESSION_CANCELLED`` record always carries a ``cancel_mode``.

IMPORTANT: ``timestamp`` has NO default. Producers inject the append time
explicitly (epoch milliseconds). This keeps derivations deterministic and
lets tests pin time without patching the clock.

Key Design Decisions:
    - Records are frozen (``frozen=True``) and reject unknown fields
      (``extra="forbid"``). The log is append-only; nothing edits a record
      after it has been written.
    - ``type`` is the pydantic discriminator. Validating an untyped mapping
      picks the variant by tag and then validates the payload against that
      variant only, so a mismatched payload fails loudly at parse time.
    - Timestamps are integer epoch milliseconds. Ties are legal and keep
      append order.

Example:
    >>> event = parse_session_event(
    ...     {"type": "TASK_ACTIVATED", "timestamp": 1000, "payload": {"task_id": "t1"}}
    ... )
    >>> type(event).__name__
    'ModelTaskActivatedEvent'
    >>> event.payload.task_id
    't1'
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from devsuite.sessions.enums import EnumSessionCancelMode, EnumSessionEventType

# Maximum length of a logged step, matching the session summary limit
STEP_TEXT_MAX_LENGTH: int = 5000

_FROZEN = ConfigDict(frozen=True, extra="forbid", from_attributes=True)


# =============================================================================
# Payloads
# =============================================================================


class ModelEmptyPayload(BaseModel):
    """Payload for events that carry no data (pause, resume, finish)."""

    model_config = _FROZEN


class ModelSessionStartedPayload(BaseModel):
    """Payload for SESSION_STARTED.

    Attributes:
        project_ids: Projects the session was started against, if any.
    """

    model_config = _FROZEN

    project_ids: tuple[str, ...] = Field(
        default=(),
        description="Projects assigned when the session started",
    )


class ModelSessionCancelledPayload(BaseModel):
    """Payload for SESSION_CANCELLED."""

    model_config = _FROZEN

    cancel_mode: EnumSessionCancelMode = Field(
        ...,
        description="Whether the session is discarded or kept but excluded",
    )


class ModelTaskEventPayload(BaseModel):
    """Payload shared by the four task events."""

    model_config = _FROZEN

    task_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the task the event refers to",
    )


class ModelStepLoggedPayload(BaseModel):
    """Payload for STEP_LOGGED.

    A step is a free-text note. It may be attached to a task but never
    changes task activity.
    """

    model_config = _FROZEN

    text: str = Field(
        ...,
        min_length=1,
        max_length=STEP_TEXT_MAX_LENGTH,
        description="Free-text description of the step",
    )
    task_id: str | None = Field(
        default=None,
        min_length=1,
        description="Task the step belongs to, if any",
    )


class ModelProjectEventPayload(BaseModel):
    """Payload for project assignment events."""

    model_config = _FROZEN

    project_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the project assigned or unassigned",
    )


# =============================================================================
# Event variants
# =============================================================================


class _ModelSessionEventBase(BaseModel):
    model_config = _FROZEN

    timestamp: int = Field(
        ...,
        ge=0,
        description="Append time in epoch milliseconds (authoritative ordering key)",
    )


class ModelSessionStartedEvent(_ModelSessionEventBase):
    type: Literal["SESSION_STARTED"] = "SESSION_STARTED"
    payload: ModelSessionStartedPayload = Field(default_factory=ModelSessionStartedPayload)


class ModelSessionPausedEvent(_ModelSessionEventBase):
    type: Literal["SESSION_PAUSED"] = "SESSION_PAUSED"
    payload: ModelEmptyPayload = Field(default_factory=ModelEmptyPayload)


class ModelSessionResumedEvent(_ModelSessionEventBase):
    type: Literal["SESSION_RESUMED"] = "SESSION_RESUMED"
    payload: ModelEmptyPayload = Field(default_factory=ModelEmptyPayload)


class ModelSessionFinishedEvent(_ModelSessionEventBase):
    type: Literal["SESSION_FINISHED"] = "SESSION_FINISHED"
    payload: ModelEmptyPayload = Field(default_factory=ModelEmptyPayload)


class ModelSessionCancelledEvent(_ModelSessionEventBase):
    type: Literal["SESSION_CANCELLED"] = "SESSION_CANCELLED"
    payload: ModelSessionCancelledPayload


class ModelTaskActivatedEvent(_ModelSessionEventBase):
    type: Literal["TASK_ACTIVATED"] = "TASK_ACTIVATED"
    payload: ModelTaskEventPayload


class ModelTaskDeactivatedEvent(_ModelSessionEventBase):
    type: Literal["TASK_DEACTIVATED"] = "TASK_DEACTIVATED"
    payload: ModelTaskEventPayload


class ModelTaskMarkedDoneEvent(_ModelSessionEventBase):
    type: Literal["TASK_MARKED_DONE"] = "TASK_MARKED_DONE"
    payload: ModelTaskEventPayload


class ModelTaskResetEvent(_ModelSessionEventBase):
    type: Literal["TASK_RESET"] = "TASK_RESET"
    payload: ModelTaskEventPayload


class ModelStepLoggedEvent(_ModelSessionEventBase):
    type: Literal["STEP_LOGGED"] = "STEP_LOGGED"
    payload: ModelStepLoggedPayload


class ModelProjectAssignedEvent(_ModelSessionEventBase):
    type: Literal["PROJECT_ASSIGNED_TO_SESSION"] = "PROJECT_ASSIGNED_TO_SESSION"
    payload: ModelProjectEventPayload


class ModelProjectUnassignedEvent(_ModelSessionEventBase):
    type: Literal["PROJECT_UNASSIGNED_FROM_SESSION"] = "PROJECT_UNASSIGNED_FROM_SESSION"
    payload: ModelProjectEventPayload


# =============================================================================
# Discriminated Union
# =============================================================================

SessionEvent = Annotated[
    ModelSessionStartedEvent
    | ModelSessionPausedEvent
    | ModelSessionResumedEvent
    | ModelSessionFinishedEvent
    | ModelSessionCancelledEvent
    | ModelTaskActivatedEvent
    | ModelTaskDeactivatedEvent
    | ModelTaskMarkedDoneEvent
    | ModelTaskResetEvent
    | ModelStepLoggedEvent
    | ModelProjectAssignedEvent
    | ModelProjectUnassignedEvent,
    Field(discriminator="type"),
]

TaskEvent = (
    ModelTaskActivatedEvent
    | ModelTaskDeactivatedEvent
    | ModelTaskMarkedDoneEvent
    | ModelTaskResetEvent
)

EVENT_MODELS: dict[EnumSessionEventType, type[_ModelSessionEventBase]] = {
    EnumSessionEventType.SESSION_STARTED: ModelSessionStartedEvent,
    EnumSessionEventType.SESSION_PAUSED: ModelSessionPausedEvent,
    EnumSessionEventType.SESSION_RESUMED: ModelSessionResumedEvent,
    EnumSessionEventType.SESSION_FINISHED: ModelSessionFinishedEvent,
    EnumSessionEventType.SESSION_CANCELLED: ModelSessionCancelledEvent,
    EnumSessionEventType.TASK_ACTIVATED: ModelTaskActivatedEvent,
    EnumSessionEventType.TASK_DEACTIVATED: ModelTaskDeactivatedEvent,
    EnumSessionEventType.TASK_MARKED_DONE: ModelTaskMarkedDoneEvent,
    EnumSessionEventType.TASK_RESET: ModelTaskResetEvent,
    EnumSessionEventType.STEP_LOGGED: ModelStepLoggedEvent,
    EnumSessionEventType.PROJECT_ASSIGNED_TO_SESSION: ModelProjectAssignedEvent,
    EnumSessionEventType.PROJECT_UNASSIGNED_FROM_SESSION: ModelProjectUnassignedEvent,
}

_SESSION_EVENT_ADAPTER: TypeAdapter[SessionEvent] = TypeAdapter(SessionEvent)


def parse_session_event(data: Mapping[str, Any]) -> SessionEvent:
    """Validate an untyped record into its ``SessionEvent`` variant.

    Args:
        data: Mapping with ``type``, ``timestamp`` and ``payload`` keys.

    Returns:
        The frozen event model selected by ``type``.

    Raises:
        pydantic.ValidationError: If the tag is unknown or the payload does
            not match the tag's payload shape.
    """
    return _SESSION_EVENT_ADAPTER.validate_python(dict(data))


def parse_session_events(records: Iterable[Mapping[str, Any]]) -> list[SessionEvent]:
    """Validate a sequence of untyped records, preserving their order."""
    return [parse_session_event(record) for record in records]


def make_session_event(
    event_type: EnumSessionEventType | str,
    timestamp: int,
    **payload: Any,
) -> SessionEvent:
    """Build an event from its tag, timestamp and payload fields.

    Example:
        >>> make_session_event("SESSION_CANCELLED", 10, cancel_mode="DISCARD").payload
        ModelSessionCancelledPayload(cancel_mode=<EnumSessionCancelMode.DISCARD: 'DISCARD'>)
    """
    return parse_session_event(
        {"type": str(event_type), "timestamp": timestamp, "payload": payload}
    )


__all__ = [
    "EVENT_MODELS",
    "STEP_TEXT_MAX_LENGTH",
    "ModelEmptyPayload",
    "ModelProjectAssignedEvent",
    "ModelProjectEventPayload",
    "ModelProjectUnassignedEvent",
    "ModelSessionCancelledEvent",
    "ModelSessionCancelledPayload",
    "ModelSessionFinishedEvent",
    "ModelSessionPausedEvent",
    "ModelSessionResumedEvent",
    "ModelSessionStartedEvent",
    "ModelSessionStartedPayload",
    "ModelStepLoggedEvent",
    "ModelStepLoggedPayload",
    "ModelTaskActivatedEvent",
    "ModelTaskDeactivatedEvent",
    "ModelTaskEventPayload",
    "ModelTaskMarkedDoneEvent",
    "ModelTaskResetEvent",
    "SessionEvent",
    "TaskEvent",
    "make_session_event",
    "parse_session_event",
    "parse_session_events",
]
