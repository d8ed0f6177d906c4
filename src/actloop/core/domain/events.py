"""
Domain Events for Agent Execution

Events are immutable facts about what happened during the decide/act/observe
loop. They form the append-only session history:

- Actions: what the decision policy chose to do (message, tool call,
  internal thought, finish signal).
- Observations: what the controller recorded after executing an action
  (tool result, error, plain success acknowledgement).

Both families are closed unions. Consumers dispatch with ``match`` and end
with ``assert_never`` so that adding a variant is a type-checker-visible
change rather than a silent default branch.

Timestamps and ids are stamped at construction and are not constructor
arguments. The only way to set them explicitly is ``event_from_dict``, which
restores previously persisted events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, TypeAlias, assert_never
from uuid import uuid4

from actloop.core.domain.enums import (
    ActionKind,
    EventCategory,
    MessageSource,
    ObservationKind,
)
from actloop.core.domain.serialization import parse_enum, parse_timestamp
from actloop.core.domain.tool_models import PAUSE_FLAG_ALIASES
from actloop.core.utils.time import utc_now

FINISH_TOOL_NAME = "finish"


def _new_event_id() -> str:
    return uuid4().hex


def new_call_id() -> str:
    """Generate a tool call id for actions that did not come with one."""
    return f"call_{uuid4().hex[:12]}"


def _freeze(value: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if value is None:
        return None
    return MappingProxyType(dict(value))


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class BaseEvent:
    """Common envelope shared by every action and observation."""

    category: ClassVar[EventCategory]

    id: str = field(default_factory=_new_event_id, init=False, compare=False)
    timestamp: datetime = field(default_factory=utc_now, init=False, compare=False)

    @property
    def is_visible(self) -> bool:
        """Whether the event may be surfaced to external consumers."""
        return True


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageAction(BaseEvent):
    """A chat message from the user or the agent."""

    category: ClassVar[EventCategory] = EventCategory.ACTION
    kind: ClassVar[ActionKind] = ActionKind.MESSAGE

    content: str
    source: MessageSource = MessageSource.AGENT


@dataclass(frozen=True)
class ToolCallAction(BaseEvent):
    """A request to invoke a named tool with an input mapping."""

    category: ClassVar[EventCategory] = EventCategory.ACTION
    kind: ClassVar[ActionKind] = ActionKind.TOOL_CALL

    tool_name: str
    input: Mapping[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=new_call_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input", _freeze(self.input))


@dataclass(frozen=True)
class ThinkAction(BaseEvent):
    """Internal reasoning. Recorded, never surfaced."""

    category: ClassVar[EventCategory] = EventCategory.ACTION
    kind: ClassVar[ActionKind] = ActionKind.THINK

    thought: str

    @property
    def is_visible(self) -> bool:
        return False


@dataclass(frozen=True)
class FinishAction(BaseEvent):
    """The agent signals the end of its turn.

    ``completed=False`` means the agent is handing the turn back (for
    instance to wait for the user) rather than declaring the task done.
    """

    category: ClassVar[EventCategory] = EventCategory.ACTION
    kind: ClassVar[ActionKind] = ActionKind.FINISH

    outputs: Mapping[str, Any] | None = None
    summary: str | None = None
    completed: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "outputs", _freeze(self.outputs))


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolResultObservation(BaseEvent):
    """Result of a tool call (or of the synthetic finish capability)."""

    category: ClassVar[EventCategory] = EventCategory.OBSERVATION
    kind: ClassVar[ObservationKind] = ObservationKind.TOOL_RESULT

    tool_name: str
    call_id: str
    payload: str | Mapping[str, Any] = ""
    success: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.payload, Mapping):
            object.__setattr__(self, "payload", _freeze(self.payload))

    @property
    def pause_requested(self) -> bool:
        """Whether the tool asked the controller to suspend the loop."""
        if not self.success or not isinstance(self.payload, Mapping):
            return False
        return any(self.payload.get(flag) is True for flag in PAUSE_FLAG_ALIASES)


@dataclass(frozen=True)
class ErrorObservation(BaseEvent):
    """A recoverable (or, for cancellation, terminal) failure."""

    category: ClassVar[EventCategory] = EventCategory.OBSERVATION
    kind: ClassVar[ObservationKind] = ObservationKind.ERROR

    message: str
    details: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", _freeze(self.details))


@dataclass(frozen=True)
class SuccessObservation(BaseEvent):
    """Acknowledgement for actions without side effects."""

    category: ClassVar[EventCategory] = EventCategory.OBSERVATION
    kind: ClassVar[ObservationKind] = ObservationKind.SUCCESS

    message: str | None = None


Action: TypeAlias = MessageAction | ToolCallAction | ThinkAction | FinishAction
Observation: TypeAlias = ToolResultObservation | ErrorObservation | SuccessObservation
Event: TypeAlias = Action | Observation


def is_action(event: BaseEvent) -> bool:
    """Return True for any action variant."""
    return event.category is EventCategory.ACTION


def is_observation(event: BaseEvent) -> bool:
    """Return True for any observation variant."""
    return event.category is EventCategory.OBSERVATION


def is_failure(observation: Observation) -> bool:
    """Whether an observation counts toward the consecutive error streak."""
    match observation:
        case ErrorObservation():
            return True
        case ToolResultObservation(success=success):
            return not success
        case SuccessObservation():
            return False
        case _:
            assert_never(observation)


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------


def create_message_action(
    content: str, source: MessageSource | str = MessageSource.AGENT
) -> MessageAction:
    """Create a message action stamped with the current time."""
    return MessageAction(content=content, source=MessageSource(source))


def create_tool_call_action(
    tool_name: str,
    tool_input: Mapping[str, Any] | None = None,
    call_id: str | None = None,
) -> ToolCallAction:
    """Create a tool call action; a call id is generated when omitted."""
    return ToolCallAction(
        tool_name=tool_name,
        input=tool_input or {},
        call_id=call_id or new_call_id(),
    )


def create_think_action(thought: str) -> ThinkAction:
    """Create an internal reasoning action."""
    return ThinkAction(thought=thought)


def create_finish_action(
    *,
    completed: bool = True,
    summary: str | None = None,
    outputs: Mapping[str, Any] | None = None,
) -> FinishAction:
    """Create a finish signal."""
    return FinishAction(outputs=outputs, summary=summary, completed=completed)


def create_tool_result_observation(
    tool_name: str,
    call_id: str,
    payload: str | Mapping[str, Any],
    success: bool,
) -> ToolResultObservation:
    """Create a tool result observation."""
    return ToolResultObservation(
        tool_name=tool_name, call_id=call_id, payload=payload, success=success
    )


def create_error_observation(
    message: str, details: Mapping[str, Any] | None = None
) -> ErrorObservation:
    """Create an error observation."""
    return ErrorObservation(message=message, details=details)


def create_success_observation(message: str | None = None) -> SuccessObservation:
    """Create a success acknowledgement."""
    return SuccessObservation(message=message)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def event_to_dict(event: Event) -> dict[str, Any]:
    """Serialize an event to JSON-compatible primitives."""
    data: dict[str, Any] = {
        "id": event.id,
        "category": event.category.value,
        "kind": event.kind.value,
        "timestamp": event.timestamp.isoformat(),
    }
    match event:
        case MessageAction(content=content, source=source):
            data.update(content=content, source=source.value)
        case ToolCallAction(tool_name=tool_name, input=tool_input, call_id=call_id):
            data.update(tool_name=tool_name, input=_thaw(tool_input), call_id=call_id)
        case ThinkAction(thought=thought):
            data.update(thought=thought)
        case FinishAction(outputs=outputs, summary=summary, completed=completed):
            data.update(
                outputs=_thaw(outputs) if outputs is not None else None,
                summary=summary,
                completed=completed,
            )
        case ToolResultObservation(
            tool_name=tool_name, call_id=call_id, payload=payload, success=success
        ):
            data.update(
                tool_name=tool_name,
                call_id=call_id,
                payload=_thaw(payload),
                success=success,
            )
        case ErrorObservation(message=message, details=details):
            data.update(
                message=message,
                details=_thaw(details) if details is not None else None,
            )
        case SuccessObservation(message=message):
            data.update(message=message)
        case _:
            assert_never(event)
    return data


def event_from_dict(data: Mapping[str, Any]) -> Event:
    """Restore a persisted event, keeping its original id and timestamp.

    Raises:
        ValueError: If the category/kind pair is unknown.
    """
    category = EventCategory(data["category"])
    kind = data["kind"]
    event: Event

    if category is EventCategory.ACTION:
        match ActionKind(kind):
            case ActionKind.MESSAGE:
                event = MessageAction(
                    content=data.get("content", ""),
                    source=parse_enum(data.get("source"), MessageSource, MessageSource.AGENT),
                )
            case ActionKind.TOOL_CALL:
                event = ToolCallAction(
                    tool_name=data["tool_name"],
                    input=data.get("input") or {},
                    call_id=data.get("call_id") or new_call_id(),
                )
            case ActionKind.THINK:
                event = ThinkAction(thought=data.get("thought", ""))
            case ActionKind.FINISH:
                event = FinishAction(
                    outputs=data.get("outputs"),
                    summary=data.get("summary"),
                    completed=bool(data.get("completed", True)),
                )
            case unknown:
                assert_never(unknown)
    else:
        match ObservationKind(kind):
            case ObservationKind.TOOL_RESULT:
                event = ToolResultObservation(
                    tool_name=data["tool_name"],
                    call_id=data.get("call_id", ""),
                    payload=data.get("payload", ""),
                    success=bool(data.get("success", True)),
                )
            case ObservationKind.ERROR:
                event = ErrorObservation(
                    message=data.get("message", ""), details=data.get("details")
                )
            case ObservationKind.SUCCESS:
                event = SuccessObservation(message=data.get("message"))
            case unknown:
                assert_never(unknown)

    if data.get("id"):
        object.__setattr__(event, "id", data["id"])
    timestamp = parse_timestamp(data.get("timestamp"))
    if timestamp is not None:
        object.__setattr__(event, "timestamp", timestamp)
    return event


def describe_event(event: Event) -> str:
    """One-line human readable rendering used in logs and the CLI."""
    match event:
        case MessageAction(content=content, source=source):
            return f"{source.value}: {content}"
        case ToolCallAction(tool_name=tool_name, input=tool_input):
            return f"call {tool_name}({', '.join(sorted(tool_input))})"
        case ThinkAction():
            return "thinking"
        case FinishAction(completed=completed, summary=summary):
            state = "completed" if completed else "handed back"
            return f"finish [{state}] {summary or ''}".rstrip()
        case ToolResultObservation(tool_name=tool_name, success=success):
            return f"{tool_name} -> {'ok' if success else 'failed'}"
        case ErrorObservation(message=message):
            return f"error: {message}"
        case SuccessObservation(message=message):
            return message or "ok"
        case _:
            assert_never(event)
