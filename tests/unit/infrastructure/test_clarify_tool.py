"""Tests for ClarifyRequirementsTool."""

import pytest

from actloop.core.domain.tool_models import PAUSE_FLAG
from actloop.infrastructure.tools.native.clarify_tool import ClarifyRequirementsTool


@pytest.fixture
def tool() -> ClarifyRequirementsTool:
    return ClarifyRequirementsTool()


@pytest.mark.asyncio
async def test_valid_questions_pause(tool):
    outcome = await tool.execute(
        {
            "questions": ["Which database engine?", "Which region should it deploy to?"],
            "reason": "The deployment target is not specified",
            "assumptions_to_verify": ["The app is containerized"],
            "alternative_approaches": ["Deploy to a managed service"],
        }
    )

    assert outcome.success
    assert outcome.pause_requested
    result = outcome.result
    assert result[PAUSE_FLAG] is True
    assert result["status"] == "awaiting_user_response"
    assert result["questions"] == ["Which database engine?", "Which region should it deploy to?"]
    assert result["assumptions"] == ["The app is containerized"]
    assert result["alternatives"] == ["Deploy to a managed service"]
    assert "1. Which database engine?" in result["message"]
    assert "**Why:** The deployment target is not specified" in result["message"]
    assert "Alternative approaches" in result["message"]


@pytest.mark.asyncio
async def test_optional_sections_are_omitted(tool):
    outcome = await tool.execute({"questions": ["Which port?", "Which host?"], "reason": "r"})

    assert outcome.result["assumptions"] == []
    assert "Assumptions to confirm" not in outcome.result["message"]


@pytest.mark.asyncio
async def test_single_question_rejected(tool):
    outcome = await tool.execute({"questions": ["Which port?"], "reason": "r"})

    assert not outcome.success
    assert "at least 2" in outcome.error
    assert not outcome.pause_requested


@pytest.mark.asyncio
async def test_too_many_questions_rejected(tool):
    questions = [f"Which option {i}?" for i in range(9)]

    outcome = await tool.execute({"questions": questions, "reason": "r"})

    assert not outcome.success
    assert outcome.error.startswith("Too many questions")


@pytest.mark.asyncio
async def test_generic_questions_rejected(tool):
    outcome = await tool.execute(
        {"questions": ["Can you tell me more?", "Which port?"], "reason": "r"}
    )

    assert not outcome.success
    assert outcome.metadata["details"]["generic_questions"] == ["Can you tell me more?"]


@pytest.mark.asyncio
async def test_reason_is_required(tool):
    outcome = await tool.execute({"questions": ["Which port?", "Which host?"]})

    assert not outcome.success
    assert "reason" in outcome.error
