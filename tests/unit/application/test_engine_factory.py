"""Tests for EngineFactory."""

from unittest.mock import AsyncMock

import pytest

from actloop.application.factory import EngineFactory
from actloop.core.domain.config_schema import ConfigValidationError, validate_profile_config
from actloop.core.domain.enums import AgentMode, SessionStatus
from actloop.core.domain.events import create_finish_action, create_message_action
from actloop.core.domain.state import SessionState
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.infrastructure.persistence import FileStateManager


@pytest.fixture
def policy():
    mock = AsyncMock()
    mock.step.return_value = create_finish_action(summary="done")
    return mock


def test_loads_packaged_dev_profile():
    factory = EngineFactory()

    assert factory.profile == "dev"
    assert factory.config.engine.max_iterations == 20


def test_overrides_are_validated():
    factory = EngineFactory("dev", overrides={"max_iterations": 3, "mode": AgentMode.PLAN})

    assert factory.config.engine.max_iterations == 3
    assert factory.config.engine.mode is AgentMode.PLAN


def test_none_overrides_are_ignored():
    factory = EngineFactory("plan", overrides={"max_iterations": None, "mode": None})

    assert factory.config.engine.max_iterations == 10


def test_invalid_override_rejected():
    with pytest.raises(ConfigValidationError):
        EngineFactory("dev", overrides={"max_iterations": 0})


def test_explicit_config_skips_loading(tmp_path):
    config = validate_profile_config(
        {"tools": ["finish"], "persistence": {"work_dir": str(tmp_path)}}
    )

    factory = EngineFactory("does-not-exist", config=config)

    assert factory.create_registry().names() == ["finish"]
    manager = factory.create_state_manager()
    assert isinstance(manager, FileStateManager)
    assert manager.work_dir == tmp_path


def test_new_state_uses_retrieval_tool_name():
    config = validate_profile_config({"engine": {"retrieval_tool_name": "search"}})

    state = EngineFactory(config=config).new_state("s1")

    assert state.session_id == "s1"
    assert state.retrieval_tool_name == "search"


@pytest.mark.asyncio
async def test_controller_uses_profile_limits(policy):
    config = validate_profile_config(
        {"engine": {"max_iterations": 2, "mode": "plan"}, "tools": ["finish"]}
    )
    policy.step.side_effect = [create_message_action("thinking out loud")]

    controller = EngineFactory(config=config).create_controller(policy, session_id="s1")
    result = await controller.run("plan please")

    assert controller.mode is AgentMode.PLAN
    assert controller.state.session_id == "s1"
    assert controller.registry.frozen
    assert result.status is SessionStatus.WAITING_USER


@pytest.mark.asyncio
async def test_controller_keeps_given_state_and_registry(policy):
    state = SessionState("given")
    registry = ToolRegistry()

    controller = EngineFactory().create_controller(policy, state=state, registry=registry)
    result = await controller.run("hi")

    assert controller.state is state
    assert controller.registry is registry
    assert result.status is SessionStatus.FINISHED
    policy.step.assert_awaited_once_with(state)
