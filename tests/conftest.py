"""Test configuration and shared fixtures."""

from __future__ import annotations

from typing import Any, Iterable

import pytest

from actloop.core.domain.enums import ParamType
from actloop.core.domain.errors import ToolError
from actloop.core.domain.events import Action
from actloop.core.domain.state import SessionState
from actloop.core.domain.tool_models import ParamSpec, ToolOutcome
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.infrastructure.tools.base_tool import BaseTool


class ListPolicy:
    """Decision policy returning queued actions; exceptions in the queue are raised."""

    def __init__(self, actions: Iterable[Action | BaseException]) -> None:
        self.queue = list(actions)
        self.calls = 0
        self.seen_history_lengths: list[int] = []

    async def step(self, state: SessionState) -> Action:
        self.calls += 1
        self.seen_history_lengths.append(len(state))
        if not self.queue:
            raise AssertionError("policy called more often than scripted")
        item = self.queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class EchoTool(BaseTool):
    tool_name = "echo"
    tool_description = "Return the text it was given"
    tool_parameters = (
        ParamSpec("text", ParamType.STRING, "Text to echo", required=True),
        ParamSpec("loud", ParamType.BOOLEAN, "Upper-case the text"),
    )

    async def _execute(self, text: str, loud: bool = False, **kwargs: Any) -> ToolOutcome:
        return self.success(text.upper() if loud else text)


class FailingTool(BaseTool):
    tool_name = "flaky"
    tool_description = "Always fails with a domain error"
    tool_parameters = (ParamSpec("target", ParamType.STRING, "Anything"),)

    async def _execute(self, **kwargs: Any) -> ToolOutcome:
        raise ToolError("backend rejected the request", tool_name=self.tool_name)


class CrashingTool(BaseTool):
    tool_name = "crash"
    tool_description = "Raises an unexpected exception"

    async def _execute(self, **kwargs: Any) -> ToolOutcome:
        raise RuntimeError("boom")


class PausingTool(BaseTool):
    tool_name = "pause"
    tool_description = "Asks the controller to pause, camelCase flag"

    async def _execute(self, **kwargs: Any) -> ToolOutcome:
        return self.success({"pauseExecution": True, "note": "waiting"})


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([EchoTool(), FailingTool(), CrashingTool(), PausingTool()])


@pytest.fixture
def make_policy():
    def _make(*actions: Action | BaseException) -> ListPolicy:
        return ListPolicy(actions)

    return _make
