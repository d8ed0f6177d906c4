"""
Finish Tool

Callable form of the finish signal for decision policies that can only emit
tool calls. The scripted policy and language-model adapters translate a
``finish`` tool call into a ``FinishAction``; this class exists so the
capability is described alongside the real tools and validates its input
the same way.
"""

from __future__ import annotations

from typing import Any

from actloop.core.domain.enums import ParamType
from actloop.core.domain.events import FINISH_TOOL_NAME
from actloop.core.domain.tool_models import ParamSpec, ToolOutcome
from actloop.infrastructure.tools.base_tool import BaseTool


class FinishTool(BaseTool):
    """Signal the end of the agent's turn."""

    tool_name = FINISH_TOOL_NAME
    tool_description = (
        "End the current turn. Set completed=false to hand the turn back to "
        "the user without declaring the task done."
    )
    tool_parameters = (
        ParamSpec("summary", ParamType.STRING, "Short summary of what was done."),
        ParamSpec(
            "completed",
            ParamType.BOOLEAN,
            "Whether the task is done.",
            default=True,
        ),
        ParamSpec("outputs", ParamType.OBJECT, "Structured results of the task."),
    )

    async def _execute(
        self,
        summary: str | None = None,
        completed: bool = True,
        outputs: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> ToolOutcome:
        return self.success({"completed": completed, "summary": summary, "outputs": outputs})
