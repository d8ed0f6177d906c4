"""
Core Domain Enums

Defines all status values, event kinds, and mode constants
to eliminate magic strings throughout the codebase.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """Status of a session as driven by the controller state machine."""

    IDLE = "idle"
    RUNNING = "running"
    WAITING_USER = "waiting_user"
    ERROR = "error"
    FINISHED = "finished"
    # Iteration cap reached; distinct from both success and error.
    TRUNCATED = "truncated"

    @property
    def is_terminal(self) -> bool:
        """Whether the status ends the current run."""
        return self in (
            SessionStatus.ERROR,
            SessionStatus.FINISHED,
            SessionStatus.TRUNCATED,
        )


class EventCategory(str, Enum):
    """Top-level split of the event log."""

    ACTION = "action"
    OBSERVATION = "observation"


class ActionKind(str, Enum):
    """Kinds of actions a decision policy can produce."""

    MESSAGE = "message"
    TOOL_CALL = "tool_call"
    THINK = "think"
    FINISH = "finish"


class ObservationKind(str, Enum):
    """Kinds of observations the controller records."""

    TOOL_RESULT = "tool_result"
    ERROR = "error"
    SUCCESS = "success"


class MessageSource(str, Enum):
    """Origin of a message action."""

    USER = "user"
    AGENT = "agent"


class AgentMode(str, Enum):
    """Execution modes that alter the continuation policy.

    - DEFAULT: continue until finish, pause, error streak or cap.
    - PLAN: planning-only; once the agent has messaged the user in the
      current run the loop stops so the next turn must finish explicitly.
    - CODE: same continuation rules as DEFAULT, kept as a distinct label
      for profiles that enable write-capable tools.
    """

    DEFAULT = "default"
    PLAN = "plan"
    CODE = "code"


class StopReason(str, Enum):
    """Why the controller loop stopped."""

    FINISHED = "finished"
    HANDED_BACK = "handed_back"
    PAUSED = "paused"
    ERROR_STREAK = "error_streak"
    MODE_RULE = "mode_rule"
    ITERATION_CAP = "iteration_cap"
    CANCELLED = "cancelled"


class ErrorCategory(str, Enum):
    """Classification of tool failures for retry and recovery."""

    RETRIABLE = "retriable"
    FIXABLE = "fixable"
    TERMINAL = "terminal"
    USER_INPUT = "user_input"


class ParamType(str, Enum):
    """Coarse parameter types supported by the tool contract."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
