"""
Domain Models and Business Logic

This package contains the core of the execution engine:
- Events (actions and observations)
- Session state and its status machine
- Continuation policy and controller
- Tool registry, execution and error classification
- Configuration schemas
"""

from actloop.core.domain.enums import AgentMode, SessionStatus, StopReason
from actloop.core.domain.models import RunResult, StepRecord
from actloop.core.domain.state import SessionState

__all__ = [
    "AgentMode",
    "RunResult",
    "SessionState",
    "SessionStatus",
    "StepRecord",
    "StopReason",
]
