"""
Controller

Drives one session through decide -> act -> observe iterations:

1. ``state.start_iteration()``
2. ask the decision policy for the next action
3. record the action
4. execute it (tool call, finish signal, message or thought)
5. record the observation
6. evaluate the continuation policy; stop or loop

Every step is pushed to the controller's own observers as a ``StepRecord``
and, for ``stream()``, yielded to the caller. The controller is the only
writer of events into ``SessionState`` apart from user messages seeded
through ``add_user_message``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Iterable, TypeVar
from uuid import uuid4

import structlog

from actloop.core.domain.continuation import (
    DEFAULT_MAX_CONSECUTIVE_ERRORS,
    DEFAULT_MAX_ITERATIONS,
    ContinuationPolicy,
    RunProgress,
)
from actloop.core.domain.enums import AgentMode, MessageSource, SessionStatus, StopReason
from actloop.core.domain.error_classifier import ErrorClassifier
from actloop.core.domain.errors import (
    ActloopError,
    ClarificationPendingError,
    ConcurrentRunError,
    ExecutionCancelledError,
    NotFoundError,
    PolicyError,
)
from actloop.core.domain.events import (
    FINISH_TOOL_NAME,
    Action,
    ErrorObservation,
    FinishAction,
    MessageAction,
    Observation,
    ThinkAction,
    ToolCallAction,
    ToolResultObservation,
    create_error_observation,
    create_message_action,
    create_success_observation,
    create_tool_result_observation,
)
from actloop.core.domain.models import RunResult, StepObserver, StepRecord
from actloop.core.domain.state import DEFAULT_MAX_ATTEMPTS, SessionState
from actloop.core.domain.tool_executor import ToolExecutor
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.core.interfaces.logging import LoggerProtocol
from actloop.core.interfaces.policy import DecisionPolicyProtocol

T = TypeVar("T")

CANCELLED_MESSAGE = "cancelled"

ACTION_TYPES = (MessageAction, ToolCallAction, ThinkAction, FinishAction)


class Controller:
    """
    Agent loop for a single session.

    The tool registry is frozen on construction. A controller runs at most
    one loop at a time; a second concurrent ``run()`` or ``stream()`` raises
    ``ConcurrentRunError``.

    Example:
        >>> controller = Controller(policy=my_policy, registry=registry)
        >>> result = await controller.run("status?")
        >>> result.status
        <SessionStatus.FINISHED: 'finished'>
    """

    def __init__(
        self,
        *,
        policy: DecisionPolicyProtocol,
        registry: ToolRegistry,
        state: SessionState | None = None,
        session_id: str | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
        max_retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
        mode: AgentMode | str = AgentMode.DEFAULT,
        classifier: ErrorClassifier | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._state = state if state is not None else SessionState(session_id or uuid4().hex)
        self._policy = policy
        self._registry = registry
        self._registry.freeze()
        self._continuation = ContinuationPolicy(
            max_iterations=max_iterations,
            max_consecutive_errors=max_consecutive_errors,
            mode=AgentMode(mode),
        )
        self._logger = logger or structlog.get_logger(__name__).bind(
            component="controller", session_id=self._state.session_id
        )
        self._executor = ToolExecutor(
            registry=registry,
            classifier=classifier
            or ErrorClassifier(
                terminal_after=max_retry_attempts,
                retrieval_tool_name=self._state.retrieval_tool_name,
            ),
            max_retry_attempts=max_retry_attempts,
            logger=self._logger,
        )
        self._observers: list[StepObserver] = []
        self._lock = asyncio.Lock()
        self._last_result: RunResult | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def mode(self) -> AgentMode:
        return self._continuation.mode

    @property
    def last_result(self) -> RunResult | None:
        """Result of the most recent completed (or cancelled) run."""
        return self._last_result

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: StepObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StepObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, record: StepRecord) -> None:
        for observer in list(self._observers):
            try:
                observer(record)
            except Exception as error:
                self._logger.warning(
                    "observer_failed",
                    error=str(error),
                    error_type=type(error).__name__,
                )

    # ------------------------------------------------------------------
    # Session seeding
    # ------------------------------------------------------------------

    def add_user_message(self, content: str) -> MessageAction:
        """Append a user message to the session history."""
        message = create_message_action(content, MessageSource.USER)
        self._state.add_event(message)
        return message

    def resume(self, clarification_id: str, responses: Iterable[str]) -> None:
        """Answer a pending clarification and leave ``waiting_user``.

        Call ``run()`` afterwards to continue the loop.

        Raises:
            NotFoundError: If no clarification has the given id.
        """
        if not self._state.add_clarification_responses(clarification_id, responses):
            raise NotFoundError(
                f"Clarification not found: {clarification_id}",
                details={"clarification_id": clarification_id},
            )
        self._state.resume_execution()
        self._logger.info("clarification_resolved", clarification_id=clarification_id)

    def reset(self) -> None:
        """Discard the session state for a new conversation."""
        if self._lock.locked():
            raise ConcurrentRunError(self._state.session_id)
        self._state.reset()
        self._last_result = None

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(
        self,
        user_message: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Run the loop until a continuation rule stops it.

        Args:
            user_message: Optional user message appended before the first
                iteration.
            cancel_event: Setting it aborts the in-flight policy or tool
                await.

        Raises:
            ConcurrentRunError: If a run is already in progress.
            ClarificationPendingError: If the session waits for answers.
            ExecutionCancelledError: If ``cancel_event`` was set.
        """
        async with self._exclusive():
            async for _ in self._loop(user_message, cancel_event):
                pass
        if self._last_result is None:
            raise ActloopError("Run ended without a result", code="run_incomplete")
        return self._last_result

    async def stream(
        self,
        user_message: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StepRecord]:
        """Like ``run`` but yields each ``StepRecord`` as it happens.

        The ``RunResult`` is available from ``last_result`` once the
        iterator is exhausted. Closing the iterator early cancels the run.
        """
        async with self._exclusive():
            steps = self._loop(user_message, cancel_event)
            try:
                async for record in steps:
                    yield record
            finally:
                await steps.aclose()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise ConcurrentRunError(self._state.session_id)
        async with self._lock:
            yield

    def _prepare_run(self, user_message: str | None) -> None:
        pending = self._state.pending_clarification()
        if pending is not None:
            raise ClarificationPendingError(pending.id)

        if self._state.status is SessionStatus.WAITING_USER:
            self._state.resume_execution()
        else:
            self._state.begin_run()

        if user_message:
            self.add_user_message(user_message)

    async def _loop(
        self,
        user_message: str | None,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[StepRecord]:
        self._prepare_run(user_message)
        progress = RunProgress()
        stopped = False
        self._logger.info(
            "run_start",
            status=self._state.status.value,
            mode=self._continuation.mode.value,
            max_iterations=self._continuation.max_iterations,
        )

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise ExecutionCancelledError()

                self._state.start_iteration()
                progress.iterations += 1
                iteration = self._state.metrics.iterations
                self._logger.info(
                    "iteration_start", iteration=iteration, run_iteration=progress.iterations
                )

                action = None
                try:
                    decided = await self._race(self._policy.step(self._state), cancel_event)
                    if not isinstance(decided, ACTION_TYPES):
                        raise PolicyError(
                            f"Expected an action, got {type(decided).__name__}",
                            details={"returned": repr(decided)},
                        )
                    action = decided
                except ExecutionCancelledError:
                    raise
                except Exception as error:
                    self._logger.error(
                        "policy_failed",
                        iteration=iteration,
                        error=str(error),
                        error_type=type(error).__name__,
                    )
                    observation: Observation = create_error_observation(
                        f"Decision policy failed: {error}",
                        {"error_type": type(error).__name__},
                    )
                else:
                    self._state.add_event(action)
                    if not isinstance(action, ThinkAction):
                        record = StepRecord(iteration=iteration, action=action)
                        self._notify(record)
                        yield record
                    observation = await self._execute(action, cancel_event)

                self._state.add_event(observation)
                record = StepRecord(iteration=iteration, observation=observation)
                self._notify(record)
                yield record

                progress.record(action, observation)
                decision = self._continuation.evaluate(action, observation, progress)
                reason = decision.reason
                if reason is None:
                    continue

                self._apply_stop(reason, observation)
                self._last_result = self._build_result(reason, progress, action)
                self._logger.info(
                    "continuation_stop",
                    reason=reason.value,
                    status=self._state.status.value,
                    iterations=progress.iterations,
                )
                final = StepRecord(iteration=iteration, is_complete=True, stop_reason=reason)
                self._notify(final)
                stopped = True
                yield final
                return
        except GeneratorExit:
            if not stopped:
                self._record_cancellation(progress)
            raise
        except (ExecutionCancelledError, asyncio.CancelledError) as error:
            self._record_cancellation(progress)
            if isinstance(error, asyncio.CancelledError):
                raise
            raise ExecutionCancelledError(result=self._last_result) from None

    async def _race(self, awaitable: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
        """Await ``awaitable`` unless ``cancel_event`` fires first."""
        if cancel_event is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise ExecutionCancelledError()

    async def _execute(self, action: Action, cancel_event: asyncio.Event | None) -> Observation:
        match action:
            case ToolCallAction():
                execution = await self._race(
                    self._executor.execute(action, self._state), cancel_event
                )
                observation = execution.observation
                if isinstance(observation, ToolResultObservation) and observation.pause_requested:
                    self._pause(observation)
                return observation
            case FinishAction(outputs=outputs, summary=summary, completed=completed):
                return create_tool_result_observation(
                    FINISH_TOOL_NAME,
                    f"{FINISH_TOOL_NAME}_{action.id[:12]}",
                    {
                        "completed": completed,
                        "summary": summary,
                        "outputs": dict(outputs) if outputs is not None else None,
                    },
                    True,
                )
            case MessageAction():
                return create_success_observation("Message delivered")
            case ThinkAction():
                return create_success_observation()
            case _:
                return create_error_observation(
                    f"Unsupported action type: {type(action).__name__}"
                )

    def _pause(self, observation: ToolResultObservation) -> None:
        payload = observation.payload
        if isinstance(payload, str):
            payload = {}
        questions = payload.get("questions")
        if questions:
            record = self._state.record_clarification(
                questions=list(questions),
                reason=str(payload.get("reason", "")),
                id=observation.call_id,
                assumptions=payload.get("assumptions"),
                alternatives=payload.get("alternatives"),
            )
            self._logger.info(
                "clarification_requested",
                clarification_id=record.id,
                questions=len(record.questions),
            )
        self._state.wait_for_user()
        self._logger.info("execution_paused_for_user", tool=observation.tool_name)

    def _apply_stop(self, reason: StopReason, observation: Observation) -> None:
        match reason:
            case StopReason.FINISHED:
                self._state.finish()
            case StopReason.HANDED_BACK | StopReason.MODE_RULE | StopReason.PAUSED:
                if self._state.status is not SessionStatus.WAITING_USER:
                    self._state.wait_for_user()
            case StopReason.ERROR_STREAK:
                self._state.set_error(_failure_text(observation))
            case StopReason.ITERATION_CAP:
                self._state.truncate()
            case StopReason.CANCELLED:
                self._state.set_error(CANCELLED_MESSAGE)

    def _record_cancellation(self, progress: RunProgress) -> None:
        iteration = self._state.metrics.iterations
        observation = create_error_observation(CANCELLED_MESSAGE)
        self._state.add_event(observation)
        if not self._state.status.is_terminal:
            self._apply_stop(StopReason.CANCELLED, observation)
        self._last_result = self._build_result(StopReason.CANCELLED, progress, None)
        self._logger.warning("run_cancelled", iteration=iteration)
        self._notify(StepRecord(iteration=iteration, observation=observation))
        self._notify(
            StepRecord(iteration=iteration, is_complete=True, stop_reason=StopReason.CANCELLED)
        )

    def _build_result(
        self, reason: StopReason, progress: RunProgress, action: Action | None
    ) -> RunResult:
        outputs: dict[str, Any] | None = None
        final_message = ""
        if isinstance(action, FinishAction):
            outputs = dict(action.outputs) if action.outputs is not None else None
            final_message = action.summary or ""

        if reason in (StopReason.ERROR_STREAK, StopReason.CANCELLED):
            final_message = self._state.last_error or ""
        elif not final_message:
            final_message = self._last_agent_message()

        pending = self._state.pending_clarification()
        return RunResult(
            session_id=self._state.session_id,
            status=self._state.status,
            stop_reason=reason,
            iterations=progress.iterations,
            summary=self._state.to_summary(),
            final_message=final_message,
            outputs=outputs,
            pending_clarification=pending.id if pending else None,
        )

    def _last_agent_message(self) -> str:
        for event in reversed(self._state.history):
            if isinstance(event, MessageAction):
                return event.content if event.source is MessageSource.AGENT else ""
        return ""


def _failure_text(observation: Observation) -> str:
    match observation:
        case ErrorObservation(message=message):
            return message
        case ToolResultObservation(payload=payload):
            if isinstance(payload, str):
                return payload
            return str(payload.get("error", "Tool failed"))
        case _:
            return "Too many consecutive errors"
