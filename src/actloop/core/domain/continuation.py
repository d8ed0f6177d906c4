"""
Continuation Policy

Decides, once per iteration, whether the controller loop proceeds. The rules
are evaluated in a fixed precedence and the first match wins:

1. finish       - a FinishAction was executed (completed or handed back)
2. pause        - a tool result carried the pause flag
3. error streak - too many consecutive failed observations in this run
4. mode rule    - plan mode: the agent messaged the user in this run
5. cap          - the run reached its iteration budget
6. otherwise continue

The policy is pure: it reads the per-run counters in ``RunProgress`` and the
last action/observation pair, and returns a ``ContinuationDecision``. Applying
the resulting status transition is the controller's job.
"""

from __future__ import annotations

from dataclasses import dataclass

from actloop.core.domain.enums import AgentMode, MessageSource, StopReason
from actloop.core.domain.events import (
    Action,
    FinishAction,
    MessageAction,
    Observation,
    ToolResultObservation,
    is_failure,
)

DEFAULT_MAX_ITERATIONS = 20
DEFAULT_MAX_CONSECUTIVE_ERRORS = 3


@dataclass(frozen=True)
class ContinuationDecision:
    """Outcome of one policy evaluation."""

    should_continue: bool
    reason: StopReason | None = None

    @classmethod
    def proceed(cls) -> "ContinuationDecision":
        return cls(should_continue=True)

    @classmethod
    def stop(cls, reason: StopReason) -> "ContinuationDecision":
        return cls(should_continue=False, reason=reason)


@dataclass
class RunProgress:
    """Counters scoped to a single ``Controller.run`` call."""

    iterations: int = 0
    error_streak: int = 0
    agent_messages: int = 0

    def record(self, action: Action | None, observation: Observation) -> None:
        """Fold one executed step into the counters."""
        if is_failure(observation):
            self.error_streak += 1
        else:
            self.error_streak = 0
        if isinstance(action, MessageAction) and action.source is MessageSource.AGENT:
            self.agent_messages += 1


class ContinuationPolicy:
    """Ordered stop rules for the controller loop."""

    def __init__(
        self,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
        mode: AgentMode = AgentMode.DEFAULT,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1")
        self.max_iterations = max_iterations
        self.max_consecutive_errors = max_consecutive_errors
        self.mode = AgentMode(mode)

    def evaluate(
        self,
        action: Action | None,
        observation: Observation,
        progress: RunProgress,
    ) -> ContinuationDecision:
        """Apply the rules in precedence order.

        Args:
            action: Action executed this iteration; None when the decision
                policy itself failed and no action was produced.
            observation: Observation recorded for the iteration.
            progress: Counters for the current run, already updated with
                this iteration.
        """
        if isinstance(action, FinishAction):
            if action.completed is not False:
                return ContinuationDecision.stop(StopReason.FINISHED)
            return ContinuationDecision.stop(StopReason.HANDED_BACK)

        if isinstance(observation, ToolResultObservation) and observation.pause_requested:
            return ContinuationDecision.stop(StopReason.PAUSED)

        if progress.error_streak >= self.max_consecutive_errors:
            return ContinuationDecision.stop(StopReason.ERROR_STREAK)

        if self.mode is AgentMode.PLAN and progress.agent_messages > 0:
            return ContinuationDecision.stop(StopReason.MODE_RULE)

        if progress.iterations >= self.max_iterations:
            return ContinuationDecision.stop(StopReason.ITERATION_CAP)

        return ContinuationDecision.proceed()
