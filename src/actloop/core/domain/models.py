"""
Core Domain Models

Records exchanged between the controller and its callers:

- StepRecord: pushed to streaming observers for each executed step
- RunResult: returned by ``Controller.run``
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from actloop.core.domain.enums import SessionStatus, StopReason
from actloop.core.domain.events import Action, Observation, event_to_dict
from actloop.core.utils.time import utc_now


@dataclass(frozen=True)
class StepRecord:
    """
    One streaming update emitted by the controller.

    A normal iteration produces two records, one carrying the action and one
    carrying the observation. The final record of a run has
    ``is_complete=True`` and names the ``stop_reason``. Internal thoughts are
    never placed in ``action``.

    Attributes:
        iteration: Session-wide iteration number the record belongs to.
        action: The action just recorded, if any.
        observation: The observation just recorded, if any.
        is_complete: Whether the run has stopped.
        stop_reason: Why the run stopped (only on the final record).
        timestamp: When the record was emitted.
    """

    iteration: int
    action: Action | None = None
    observation: Observation | None = None
    is_complete: bool = False
    stop_reason: StopReason | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "iteration": self.iteration,
            "action": event_to_dict(self.action) if self.action else None,
            "observation": event_to_dict(self.observation) if self.observation else None,
            "is_complete": self.is_complete,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "timestamp": self.timestamp.isoformat(),
        }


StepObserver = Callable[[StepRecord], None]


@dataclass
class RunResult:
    """
    Outcome of one controller run.

    Attributes:
        session_id: Session the run belonged to.
        status: Session status when the run stopped.
        stop_reason: Which continuation rule ended the run.
        iterations: Iterations executed in this run.
        summary: ``SessionState.to_summary()`` at the end of the run.
        final_message: Finish summary, last agent message or error text.
        outputs: Outputs attached to a FinishAction, if any.
        pending_clarification: Id of the open clarification when paused.
    """

    session_id: str
    status: SessionStatus
    stop_reason: StopReason
    iterations: int
    summary: dict[str, Any] = field(default_factory=dict)
    final_message: str = ""
    outputs: dict[str, Any] | None = None
    pending_clarification: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SessionStatus.FINISHED

    @property
    def needs_user(self) -> bool:
        return self.status is SessionStatus.WAITING_USER

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "stop_reason": self.stop_reason.value,
            "iterations": self.iterations,
            "summary": self.summary,
            "final_message": self.final_message,
            "outputs": self.outputs,
            "pending_clarification": self.pending_clarification,
        }
