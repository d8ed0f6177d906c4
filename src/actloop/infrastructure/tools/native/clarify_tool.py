"""
Clarify Requirements Tool

Lets the agent ask targeted questions before acting on a vague request.
The result carries the reserved ``pause_execution`` flag, so the controller
records the questions as a clarification and stops the loop with
``waiting_user`` until the answers arrive.
"""

from __future__ import annotations

from typing import Any

from actloop.core.domain.enums import ParamType
from actloop.core.domain.errors import ToolError
from actloop.core.domain.tool_models import PAUSE_FLAG, ParamSpec, ToolOutcome
from actloop.infrastructure.tools.base_tool import BaseTool

MIN_QUESTIONS = 2
MAX_QUESTIONS = 8

# Substrings that mark a question as too vague to be useful.
GENERIC_PATTERNS = (
    "what do you want",
    "tell me more",
    "any preferences",
    "anything else",
    "more details",
    "what exactly",
)


class ClarifyRequirementsTool(BaseTool):
    """Ask the user specific questions and pause until they answer."""

    tool_name = "clarify_requirements"
    tool_description = (
        "Ask clarifying questions when the request is vague, ambiguous or "
        "missing critical context (formats, credentials, target systems...). "
        "Execution pauses until the user answers; do not proceed before that. "
        "Ask 2-8 specific questions, each about a different aspect."
    )
    tool_parameters = (
        ParamSpec(
            "questions",
            ParamType.ARRAY,
            "Specific, targeted questions. Each one investigates a different "
            "aspect of the unclear requirement.",
            required=True,
            item_type=ParamType.STRING,
        ),
        ParamSpec(
            "reason",
            ParamType.STRING,
            "Why these questions are necessary and what context is missing.",
            required=True,
        ),
        ParamSpec(
            "assumptions_to_verify",
            ParamType.ARRAY,
            "Assumptions currently made that need confirmation.",
            item_type=ParamType.STRING,
        ),
        ParamSpec(
            "alternative_approaches",
            ParamType.ARRAY,
            "Alternative approaches worth discussing with the user.",
            item_type=ParamType.STRING,
        ),
    )

    async def _execute(
        self,
        questions: list[str],
        reason: str,
        assumptions_to_verify: list[str] | None = None,
        alternative_approaches: list[str] | None = None,
        **kwargs: Any,
    ) -> ToolOutcome:
        questions = [str(question) for question in questions]
        assumptions = [str(item) for item in assumptions_to_verify or []]
        alternatives = [str(item) for item in alternative_approaches or []]

        if len(questions) < MIN_QUESTIONS:
            raise ToolError(
                f"Ask at least {MIN_QUESTIONS} questions to clarify requirements",
                tool_name=self.name,
            )
        if len(questions) > MAX_QUESTIONS:
            raise ToolError(
                "Too many questions at once. Ask a few focused, specific questions.",
                tool_name=self.name,
            )
        generic = [q for q in questions if _is_generic(q)]
        if generic:
            raise ToolError(
                'Ask specific questions (e.g. "Which database?" not "Tell me more")',
                tool_name=self.name,
                details={"generic_questions": generic},
            )

        return self.success(
            {
                "message": _render_message(questions, reason, assumptions, alternatives),
                "questions": questions,
                "reason": reason,
                "assumptions": assumptions,
                "alternatives": alternatives,
                "status": "awaiting_user_response",
                PAUSE_FLAG: True,
            }
        )


def _is_generic(question: str) -> bool:
    lowered = question.lower()
    return any(pattern in lowered for pattern in GENERIC_PATTERNS)


def _render_message(
    questions: list[str],
    reason: str,
    assumptions: list[str],
    alternatives: list[str],
) -> str:
    lines = ["**I need more context before going further**", "", f"**Why:** {reason}", ""]
    if assumptions:
        lines.append("**Assumptions to confirm:**")
        lines.extend(f"{i}. {item}" for i, item in enumerate(assumptions, 1))
        lines.append("")
    lines.append("**Questions:**")
    lines.extend(f"{i}. {question}" for i, question in enumerate(questions, 1))
    if alternatives:
        lines.append("")
        lines.append("**Alternative approaches:**")
        lines.extend(f"{i}. {item}" for i, item in enumerate(alternatives, 1))
    lines.append("")
    lines.append("_Waiting for your answers._")
    return "\n".join(lines)
