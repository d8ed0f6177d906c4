"""
Session Service

Application-layer entry point for multi-turn conversations: load a session
from the state manager, run one controller turn, persist the result.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

import structlog

from actloop.application.factory import EngineFactory
from actloop.core.domain.errors import NotFoundError
from actloop.core.domain.models import RunResult, StepObserver
from actloop.core.domain.state import SessionState
from actloop.core.interfaces.policy import DecisionPolicyProtocol
from actloop.core.interfaces.state import StateManagerProtocol

VERSION_KEY = "_version"


class SessionService:
    """Run and inspect persisted sessions.

    Args:
        factory: Builds controllers and, unless ``state_manager`` is given,
            the state manager.
        policy: Decision policy used for every turn run by this service.
        state_manager: Persistence backend.
    """

    def __init__(
        self,
        factory: EngineFactory,
        policy: DecisionPolicyProtocol | None = None,
        state_manager: StateManagerProtocol | None = None,
    ) -> None:
        self._factory = factory
        self._policy = policy
        self._state_manager = state_manager or factory.create_state_manager()
        self._versions: dict[str, int] = {}
        self.logger = structlog.get_logger(__name__).bind(component="session_service")

    @property
    def state_manager(self) -> StateManagerProtocol:
        return self._state_manager

    async def load_state(self, session_id: str) -> SessionState | None:
        data = await self._state_manager.load_state(session_id)
        if not data:
            return None
        self._versions[session_id] = int(data.get(VERSION_KEY, 0))
        return SessionState.from_dict(data)

    async def save_state(self, state: SessionState) -> bool:
        data: dict[str, Any] = state.to_dict()
        data[VERSION_KEY] = self._versions.get(state.session_id, 0)
        saved = await self._state_manager.save_state(state.session_id, data)
        if saved:
            self._versions[state.session_id] = int(data[VERSION_KEY])
        else:
            self.logger.warning("session_not_persisted", session_id=state.session_id)
        return saved

    async def _require_state(self, session_id: str) -> SessionState:
        state = await self.load_state(session_id)
        if state is None:
            raise NotFoundError(
                f"Session not found: {session_id}", details={"session_id": session_id}
            )
        return state

    async def run_turn(
        self,
        session_id: str,
        message: str | None,
        *,
        observer: StepObserver | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Run one turn, creating the session on first use.

        The session is persisted even when the run is cancelled or raises.
        """
        state = await self.load_state(session_id)
        if state is None:
            state = self._factory.new_state(session_id)
        self.logger.info(
            "turn_start", session_id=session_id, status=state.status.value, new=not len(state)
        )
        return await self._run(state, message, observer=observer, cancel_event=cancel_event)

    async def answer_clarification(
        self,
        session_id: str,
        responses: Iterable[str],
        *,
        observer: StepObserver | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Resolve the pending clarification of a session and resume it.

        Raises:
            NotFoundError: If the session does not exist or has no pending
                clarification.
        """
        state = await self._require_state(session_id)
        pending = state.pending_clarification()
        if pending is None:
            raise NotFoundError(
                f"Session {session_id} has no pending clarification",
                details={"session_id": session_id},
            )
        self.logger.info(
            "clarification_answered", session_id=session_id, clarification_id=pending.id
        )
        return await self._run(
            state,
            None,
            observer=observer,
            cancel_event=cancel_event,
            answers=(pending.id, list(responses)),
        )

    async def _run(
        self,
        state: SessionState,
        message: str | None,
        *,
        observer: StepObserver | None,
        cancel_event: asyncio.Event | None,
        answers: tuple[str, list[str]] | None = None,
    ) -> RunResult:
        if self._policy is None:
            raise ValueError("SessionService needs a decision policy to run turns")

        controller = self._factory.create_controller(self._policy, state=state)
        if observer is not None:
            controller.add_observer(observer)
        try:
            if answers is not None:
                controller.resume(*answers)
            result = await controller.run(message, cancel_event=cancel_event)
        finally:
            await self.save_state(state)

        self.logger.info(
            "turn_complete",
            session_id=state.session_id,
            status=result.status.value,
            stop_reason=result.stop_reason.value,
        )
        return result

    async def get_summary(self, session_id: str) -> dict[str, Any]:
        """Return ``SessionState.to_summary()`` for a stored session."""
        state = await self._require_state(session_id)
        return state.to_summary()

    async def get_state(self, session_id: str) -> SessionState:
        return await self._require_state(session_id)

    async def list_sessions(self) -> list[str]:
        return await self._state_manager.list_sessions()

    async def delete_session(self, session_id: str) -> None:
        await self._state_manager.delete_state(session_id)
        self._versions.pop(session_id, None)
