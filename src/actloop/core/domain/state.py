"""
Session State

One ``SessionState`` exists per conversation. It owns:

- the append-only event history
- the status state machine (idle, running, waiting_user, error, finished,
  truncated)
- derived metrics (iterations, tool calls, retrieval calls, timing)
- retry bookkeeping keyed by action id
- clarification bookkeeping (questions asked, answers received)
- a free-form metadata store for collaborators

Status is only changed through the transition methods below; the attribute
itself is read-only. The controller is the single writer of events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from actloop.core.domain.enums import MessageSource, SessionStatus
from actloop.core.domain.errors import ClarificationPendingError, StateTransitionError
from actloop.core.domain.events import (
    Action,
    BaseEvent,
    Event,
    MessageAction,
    ToolCallAction,
    event_from_dict,
    event_to_dict,
    is_action,
)
from actloop.core.domain.serialization import (
    format_timestamp,
    parse_enum,
    parse_timestamp,
    to_dict_optional,
)
from actloop.core.utils.time import elapsed_ms, utc_now

DEFAULT_RETRIEVAL_TOOL = "retrieve_context"
DEFAULT_MAX_ATTEMPTS = 3

# Allowed (source -> targets) pairs; reset() bypasses the table.
_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.RUNNING, SessionStatus.ERROR}),
    SessionStatus.RUNNING: frozenset(
        {
            SessionStatus.RUNNING,
            SessionStatus.WAITING_USER,
            SessionStatus.ERROR,
            SessionStatus.FINISHED,
            SessionStatus.TRUNCATED,
        }
    ),
    SessionStatus.WAITING_USER: frozenset({SessionStatus.RUNNING, SessionStatus.ERROR}),
    SessionStatus.ERROR: frozenset({SessionStatus.IDLE}),
    SessionStatus.FINISHED: frozenset({SessionStatus.IDLE}),
    SessionStatus.TRUNCATED: frozenset({SessionStatus.IDLE}),
}


@dataclass
class Metrics:
    """Counters derived from the history plus run timing."""

    iterations: int = 0
    tool_calls: int = 0
    retrieval_calls: int = 0
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "tool_calls": self.tool_calls,
            "retrieval_calls": self.retrieval_calls,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Metrics":
        return cls(
            iterations=int(data.get("iterations", 0)),
            tool_calls=int(data.get("tool_calls", 0)),
            retrieval_calls=int(data.get("retrieval_calls", 0)),
            start_time=parse_timestamp(data.get("start_time")) or utc_now(),
            end_time=parse_timestamp(data.get("end_time")),
        )


@dataclass
class RetryContext:
    """Attempt bookkeeping for one logical action."""

    action_id: str
    attempts: int = 0
    last_error: str | None = None
    start_time: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "start_time": format_timestamp(self.start_time),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RetryContext":
        return cls(
            action_id=data["action_id"],
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
            start_time=parse_timestamp(data.get("start_time")) or utc_now(),
        )


@dataclass
class ClarificationRecord:
    """A set of questions put to the user and, once answered, the answers."""

    id: str
    questions: list[str]
    reason: str
    assumptions: list[str] | None = None
    alternatives: list[str] | None = None
    user_responses: list[str] | None = None
    resolved: bool = False
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "questions": list(self.questions),
            "reason": self.reason,
            "resolved": self.resolved,
            "timestamp": format_timestamp(self.timestamp),
        }
        to_dict_optional(result, "assumptions", self.assumptions)
        to_dict_optional(result, "alternatives", self.alternatives)
        to_dict_optional(result, "user_responses", self.user_responses)
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClarificationRecord":
        return cls(
            id=data["id"],
            questions=list(data.get("questions", [])),
            reason=data.get("reason", ""),
            assumptions=data.get("assumptions"),
            alternatives=data.get("alternatives"),
            user_responses=data.get("user_responses"),
            resolved=bool(data.get("resolved", False)),
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now(),
        )


class SessionState:
    """
    Mutable state of a single conversation.

    Example:
        >>> state = SessionState("session-1")
        >>> state.start_iteration()
        >>> state.status
        <SessionStatus.RUNNING: 'running'>
    """

    def __init__(
        self,
        session_id: str,
        *,
        retrieval_tool_name: str = DEFAULT_RETRIEVAL_TOOL,
    ) -> None:
        self._session_id = session_id
        self.retrieval_tool_name = retrieval_tool_name
        self._history: list[Event] = []
        self._status = SessionStatus.IDLE
        self.metrics = Metrics()
        self.retry_contexts: dict[str, RetryContext] = {}
        self.clarification_history: list[ClarificationRecord] = []
        self.metadata: dict[str, Any] = {}
        self.current_task: str | None = None
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def history(self) -> tuple[Event, ...]:
        """Snapshot of the event log in append order."""
        return tuple(self._history)

    def __len__(self) -> int:
        return len(self._history)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_event(self, event: Event) -> None:
        """Append an event and update derived metrics."""
        if not isinstance(event, BaseEvent):
            raise TypeError(f"Expected an event, got {type(event).__name__}")
        self._history.append(event)

        if isinstance(event, ToolCallAction):
            self.metrics.tool_calls += 1
            if event.tool_name == self.retrieval_tool_name:
                self.metrics.retrieval_calls += 1
        elif isinstance(event, MessageAction) and event.source is MessageSource.USER:
            self.current_task = event.content

    def get_recent_history(self, n: int) -> list[Event]:
        """Return the last ``n`` events (oldest first)."""
        if n <= 0:
            return []
        return self._history[-n:]

    def get_last_user_message(self) -> MessageAction | None:
        for event in reversed(self._history):
            if isinstance(event, MessageAction) and event.source is MessageSource.USER:
                return event
        return None

    def get_last_action(self) -> Action | None:
        for event in reversed(self._history):
            if is_action(event):
                return event  # type: ignore[return-value]
        return None

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def _transition(self, target: SessionStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise StateTransitionError(self._status.value, target.value)
        self._status = target

    def start_iteration(self) -> None:
        """Count a new iteration and mark the session running."""
        self._transition(SessionStatus.RUNNING)
        self.metrics.iterations += 1

    def finish(self) -> None:
        self._transition(SessionStatus.FINISHED)
        self.metrics.end_time = utc_now()

    def wait_for_user(self) -> None:
        self._transition(SessionStatus.WAITING_USER)

    def resume_execution(self) -> None:
        """Leave ``waiting_user``; a no-op from any other status."""
        if self._status is SessionStatus.WAITING_USER:
            self._transition(SessionStatus.RUNNING)

    def set_error(self, error: BaseException | str | None = None) -> None:
        self._transition(SessionStatus.ERROR)
        if error is not None:
            self.last_error = str(error)
        self.metrics.end_time = utc_now()

    def truncate(self) -> None:
        """Mark the run as cut off by the iteration cap."""
        self._transition(SessionStatus.TRUNCATED)
        self.metrics.end_time = utc_now()

    def begin_run(self) -> None:
        """Return a terminal session to ``idle`` so a new run can start.

        History, metrics counters and bookkeeping are kept; only the run
        timing and last error are cleared.
        """
        if self._status.is_terminal:
            self._transition(SessionStatus.IDLE)
            self.metrics.start_time = utc_now()
            self.metrics.end_time = None
            self.last_error = None

    def reset(self) -> None:
        """Discard everything for a new conversation."""
        self._history = []
        self._status = SessionStatus.IDLE
        self.metrics = Metrics()
        self.retry_contexts = {}
        self.clarification_history = []
        self.metadata = {}
        self.current_task = None
        self.last_error = None

    # ------------------------------------------------------------------
    # Retry bookkeeping
    # ------------------------------------------------------------------

    def record_attempt(self, action_id: str, error: str | None = None) -> RetryContext:
        context = self.retry_contexts.get(action_id)
        if context is None:
            context = RetryContext(action_id=action_id)
            self.retry_contexts[action_id] = context
        context.attempts += 1
        if error is not None:
            context.last_error = error
        return context

    def should_retry(self, action_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> bool:
        context = self.retry_contexts.get(action_id)
        attempts = context.attempts if context else 0
        return attempts < max_attempts

    def get_retry_context(self, action_id: str) -> RetryContext | None:
        return self.retry_contexts.get(action_id)

    def clear_retry(self, action_id: str) -> None:
        self.retry_contexts.pop(action_id, None)

    # ------------------------------------------------------------------
    # Clarification bookkeeping
    # ------------------------------------------------------------------

    def pending_clarification(self) -> ClarificationRecord | None:
        for record in self.clarification_history:
            if not record.resolved:
                return record
        return None

    def record_clarification(
        self,
        questions: Iterable[str],
        reason: str,
        id: str,
        assumptions: Iterable[str] | None = None,
        alternatives: Iterable[str] | None = None,
    ) -> ClarificationRecord:
        """Record a new set of questions for the user.

        Raises:
            ClarificationPendingError: If another record is still unresolved.
        """
        pending = self.pending_clarification()
        if pending is not None:
            raise ClarificationPendingError(pending.id)

        record = ClarificationRecord(
            id=id,
            questions=list(questions),
            reason=reason,
            assumptions=list(assumptions) if assumptions else None,
            alternatives=list(alternatives) if alternatives else None,
        )
        self.clarification_history.append(record)
        return record

    def add_clarification_responses(self, id: str, responses: Iterable[str]) -> bool:
        """Attach answers to a clarification and mark it resolved.

        Returns:
            False if no record has the given id.
        """
        for record in self.clarification_history:
            if record.id == id:
                record.user_responses = list(responses)
                record.resolved = True
                return True
        return False

    def is_waiting_for_clarification(self) -> bool:
        return (
            self._status is SessionStatus.WAITING_USER
            and self.pending_clarification() is not None
        )

    def get_clarification_context(self) -> str:
        """Render resolved clarifications as context for the decision policy."""
        resolved = [record for record in self.clarification_history if record.resolved]
        if not resolved:
            return ""

        lines = ["## Clarifications provided by the user"]
        for record in resolved:
            lines.append("")
            lines.append(f"Reason: {record.reason}")
            responses = record.user_responses or []
            for index, question in enumerate(record.questions):
                answer = responses[index] if index < len(responses) else "(no answer)"
                lines.append(f"Q: {question}")
                lines.append(f"A: {answer}")
            # Answers beyond the question count are kept as free-form notes.
            for extra in responses[len(record.questions):]:
                lines.append(f"Note: {extra}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def get_duration(self) -> int:
        """Run duration in milliseconds (up to now while still open)."""
        return elapsed_ms(self.metrics.start_time, self.metrics.end_time)

    def to_summary(self) -> dict[str, Any]:
        pending = self.pending_clarification()
        return {
            "session_id": self._session_id,
            "status": self._status.value,
            "iterations": self.metrics.iterations,
            "tool_calls": self.metrics.tool_calls,
            "retrieval_calls": self.metrics.retrieval_calls,
            "duration_ms": self.get_duration(),
            "history_length": len(self._history),
            "current_task": self.current_task,
            "last_error": self.last_error,
            "pending_clarification": pending.id if pending else None,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the whole session for the persistence boundary."""
        return {
            "session_id": self._session_id,
            "status": self._status.value,
            "retrieval_tool_name": self.retrieval_tool_name,
            "history": [event_to_dict(event) for event in self._history],
            "metrics": self.metrics.to_dict(),
            "retry_contexts": {
                key: context.to_dict() for key, context in self.retry_contexts.items()
            },
            "clarification_history": [
                record.to_dict() for record in self.clarification_history
            ],
            "metadata": dict(self.metadata),
            "current_task": self.current_task,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionState":
        """Restore a session; tool call counters are recomputed from history."""
        state = cls(
            data["session_id"],
            retrieval_tool_name=data.get("retrieval_tool_name", DEFAULT_RETRIEVAL_TOOL),
        )
        state._history = [event_from_dict(item) for item in data.get("history", [])]
        state._status = parse_enum(data.get("status"), SessionStatus, SessionStatus.IDLE)
        state.metrics = Metrics.from_dict(data.get("metrics", {}))
        calls = [e for e in state._history if isinstance(e, ToolCallAction)]
        state.metrics.tool_calls = len(calls)
        state.metrics.retrieval_calls = sum(
            1 for call in calls if call.tool_name == state.retrieval_tool_name
        )
        state.retry_contexts = {
            key: RetryContext.from_dict(value)
            for key, value in data.get("retry_contexts", {}).items()
        }
        state.clarification_history = [
            ClarificationRecord.from_dict(item)
            for item in data.get("clarification_history", [])
        ]
        state.metadata = dict(data.get("metadata", {}))
        state.current_task = data.get("current_task")
        state.last_error = data.get("last_error")
        return state
