"""Domain-specific exception types for actloop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class ActloopError(Exception):
    """Base exception for actloop domain errors."""

    message: str
    code: str = "actloop_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}


class ToolError(ActloopError):
    """Error raised for tool invocation failures."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if tool_name:
            details.setdefault("tool_name", tool_name)
        self.tool_name = tool_name
        super().__init__(message=message, code="tool_error", details=details)


class ToolRegistrationError(ActloopError):
    """Error raised when a tool cannot be added to a registry."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="tool_registration_error", details=details)


class PolicyError(ActloopError):
    """Error raised when the decision policy cannot produce an action."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="policy_error", details=details)


class ConfigError(ActloopError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)


class ExecutionCancelledError(ActloopError):
    """Error raised to the caller when a run is cancelled.

    ``result`` carries the run result assembled at the moment of
    cancellation so callers can still inspect history and summary.
    """

    def __init__(
        self,
        message: str = "cancelled",
        *,
        result: Any = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        self.result = result
        super().__init__(message=message, code="cancelled", details=details)


class StateTransitionError(ActloopError):
    """Error raised on an illegal session status transition."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            message=f"Illegal status transition: {current} -> {target}",
            code="state_transition_error",
            details={"current": current, "target": target},
        )


class ClarificationPendingError(ActloopError):
    """Error raised when a clarification is recorded while another is open."""

    def __init__(self, pending_id: str) -> None:
        self.pending_id = pending_id
        super().__init__(
            message=f"Clarification {pending_id} is still unresolved",
            code="clarification_pending",
            details={"pending_id": pending_id},
        )


class ConcurrentRunError(ActloopError):
    """Error raised when a second run is started on a busy session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session {session_id} already has a run in progress",
            code="concurrent_run",
            details={"session_id": session_id},
        )


class NotFoundError(ActloopError):
    """Error raised when a resource is not found."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="not_found", details=details)


class ValidationError(ActloopError):
    """Error raised for validation failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="validation_error", details=details)


def tool_error_payload(
    error: ToolError, extra: Dict[str, Any] | None = None
) -> Dict[str, Any]:
    """Convert a ToolError into a standardized error detail payload."""
    payload = {
        "error": str(error),
        "error_type": type(error).__name__,
        "details": error.details or {},
    }
    if extra:
        payload.update(extra)
    return payload
