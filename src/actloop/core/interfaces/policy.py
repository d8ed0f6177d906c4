"""
Decision Policy Protocol

The decision policy maps the current session state to exactly one action.
In production it is usually backed by a language model; the engine does
not prescribe how the policy builds its request. It receives the full
``SessionState`` and may use ``get_recent_history`` for a bounded window and
``get_clarification_context`` for answers the user already gave.
"""

from typing import Protocol, runtime_checkable

from actloop.core.domain.events import Action
from actloop.core.domain.state import SessionState


@runtime_checkable
class DecisionPolicyProtocol(Protocol):
    """Protocol for the component that chooses the next action."""

    async def step(self, state: SessionState) -> Action:
        """
        Decide the next action.

        Must return exactly one action per call. Must not append events or
        change the status; ``state.metadata`` is the place for the policy's
        own bookkeeping. May suspend on network I/O. Raising is allowed;
        the controller records the failure as an error observation.

        Args:
            state: Current session snapshot.

        Returns:
            One of MessageAction, ToolCallAction, ThinkAction, FinishAction.
        """
        ...
