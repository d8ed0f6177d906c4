"""Tests for FinishTool."""

import pytest

from actloop.infrastructure.tools.native.finish_tool import FinishTool


@pytest.mark.asyncio
async def test_defaults_to_completed():
    outcome = await FinishTool().execute({"summary": "done"})

    assert outcome.success
    assert outcome.result == {"completed": True, "summary": "done", "outputs": None}


@pytest.mark.asyncio
async def test_hand_back_with_outputs():
    outcome = await FinishTool().execute(
        {"completed": False, "outputs": {"files": ["a.py"]}}
    )

    assert outcome.result["completed"] is False
    assert outcome.result["outputs"] == {"files": ["a.py"]}


@pytest.mark.asyncio
async def test_completed_must_be_boolean():
    outcome = await FinishTool().execute({"completed": "yes"})

    assert not outcome.success


def test_schema_has_no_required_fields():
    schema = FinishTool().describe()

    assert schema["name"] == "finish"
    assert schema["input_schema"]["required"] == []
    assert schema["input_schema"]["properties"]["completed"]["default"] is True
