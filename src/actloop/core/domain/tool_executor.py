"""Tool execution helpers for the controller.

``ToolExecutor`` turns a ``ToolCallAction`` into an observation:

- unknown tool name -> ErrorObservation (recoverable)
- validation failure -> failed ToolResultObservation, tool never runs
- raised exception -> ErrorObservation
- returned outcome -> ToolResultObservation

Failures are also recorded as retry attempts on the session, keyed by tool
name plus canonical input, and classified so the decision policy can tell a
transient failure from one that needs a different approach.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Mapping

import structlog

from actloop.core.domain.error_classifier import ErrorClassifier
from actloop.core.domain.events import (
    Observation,
    ToolCallAction,
    create_error_observation,
    create_tool_result_observation,
)
from actloop.core.domain.state import DEFAULT_MAX_ATTEMPTS, SessionState
from actloop.core.domain.tool_models import ToolOutcome
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.core.interfaces.logging import LoggerProtocol


def retry_key(tool_name: str, tool_input: Mapping[str, Any]) -> str:
    """Stable retry-context id for a tool name plus its input."""
    canonical = json.dumps(dict(tool_input), sort_keys=True, default=str)
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]
    return f"{tool_name}:{digest}"


@dataclass
class ToolExecution:
    """What happened when a tool call was executed.

    ``outcome`` is None when the tool could not be resolved or raised.
    """

    observation: Observation
    outcome: ToolOutcome | None = None
    latency_ms: int = 0


class ToolExecutor:
    """Resolve, validate and execute tool calls, producing observations."""

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        classifier: ErrorClassifier | None = None,
        max_retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._registry = registry
        self._classifier = classifier or ErrorClassifier(terminal_after=max_retry_attempts)
        self._max_retry_attempts = max_retry_attempts
        self._logger = logger or structlog.get_logger(__name__)

    async def execute(self, action: ToolCallAction, state: SessionState) -> ToolExecution:
        """Execute one tool call. Never raises for tool-level failures."""
        tool = self._registry.get(action.tool_name)
        if tool is None:
            self._logger.warning("tool_not_found", tool=action.tool_name)
            return ToolExecution(
                observation=create_error_observation(
                    f"Tool not found: {action.tool_name}",
                    {
                        "tool_name": action.tool_name,
                        "call_id": action.call_id,
                        "available_tools": self._registry.names(),
                    },
                )
            )

        tool_input = dict(action.input)
        key = retry_key(action.tool_name, tool_input)

        validation = tool.validate(tool_input)
        if not validation.valid:
            self._logger.warning(
                "tool_validation_failed",
                tool=action.tool_name,
                error=validation.error,
                args_keys=list(tool_input),
            )
            outcome = ToolOutcome.fail(f"Parameter validation failed: {validation.error}")
            return ToolExecution(
                observation=self._failed_result(action, outcome, key, state),
                outcome=outcome,
            )

        self._logger.info("tool_execute", tool=action.tool_name, args_keys=list(tool_input))
        start_time = time.monotonic()
        try:
            outcome = await tool.execute(tool_input)
        except Exception as error:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            self._logger.error(
                "tool_exception",
                tool=action.tool_name,
                error=str(error),
                error_type=type(error).__name__,
            )
            details = {
                "tool_name": action.tool_name,
                "call_id": action.call_id,
                "error_type": type(error).__name__,
                **self._retry_details(action, str(error), key, state),
            }
            return ToolExecution(
                observation=create_error_observation(
                    f"Tool {action.tool_name} raised: {error}", details
                ),
                latency_ms=latency_ms,
            )

        latency_ms = int((time.monotonic() - start_time) * 1000)
        self._logger.info(
            "tool_complete",
            tool=action.tool_name,
            success=outcome.success,
            latency_ms=latency_ms,
        )

        if outcome.success:
            state.clear_retry(key)
            observation = create_tool_result_observation(
                action.tool_name, action.call_id, _success_payload(outcome.result), True
            )
        else:
            observation = self._failed_result(action, outcome, key, state)
        return ToolExecution(observation=observation, outcome=outcome, latency_ms=latency_ms)

    def _failed_result(
        self,
        action: ToolCallAction,
        outcome: ToolOutcome,
        key: str,
        state: SessionState,
    ) -> Observation:
        error = outcome.error or "Error occurred"
        payload = {
            "error": error,
            **outcome.metadata,
            **self._retry_details(action, error, key, state),
        }
        return create_tool_result_observation(action.tool_name, action.call_id, payload, False)

    def _retry_details(
        self, action: ToolCallAction, error: str, key: str, state: SessionState
    ) -> dict[str, Any]:
        context = state.record_attempt(key, error)
        classified = self._classifier.classify(
            error,
            tool_name=action.tool_name,
            tool_input=action.input,
            previous_attempts=context.attempts,
        )
        retry_allowed = state.should_retry(key, self._max_retry_attempts)
        if not retry_allowed:
            self._logger.warning(
                "tool_retries_exhausted",
                tool=action.tool_name,
                attempts=context.attempts,
            )
        return {
            **classified.to_dict(),
            "attempts": context.attempts,
            "retry_allowed": retry_allowed,
        }


def _success_payload(result: Any) -> str | Mapping[str, Any]:
    if result is None:
        return "Success"
    if isinstance(result, (str, Mapping)):
        return result
    return {"result": result}
