"""
Unit tests for domain events

Tests verify:
- Construction helpers and immutability
- Action/observation predicates and failure detection
- Serialization round trip keeps id and timestamp
"""

from dataclasses import FrozenInstanceError

import pytest

from actloop.core.domain.enums import ActionKind, MessageSource, ObservationKind
from actloop.core.domain.events import (
    ErrorObservation,
    SuccessObservation,
    ThinkAction,
    create_error_observation,
    create_finish_action,
    create_message_action,
    create_success_observation,
    create_think_action,
    create_tool_call_action,
    create_tool_result_observation,
    describe_event,
    event_from_dict,
    event_to_dict,
    is_action,
    is_failure,
    is_observation,
)


def test_message_action_defaults_to_agent_source():
    message = create_message_action("hello")

    assert message.source is MessageSource.AGENT
    assert message.kind is ActionKind.MESSAGE
    assert is_action(message)
    assert not is_observation(message)


def test_events_are_frozen():
    message = create_message_action("hello", "user")

    with pytest.raises(FrozenInstanceError):
        message.content = "changed"  # type: ignore[misc]


def test_tool_call_input_is_read_only_copy():
    raw = {"command": "ls"}
    call = create_tool_call_action("shell", raw)

    raw["command"] = "rm"
    assert call.input["command"] == "ls"
    with pytest.raises(TypeError):
        call.input["command"] = "pwd"  # type: ignore[index]


def test_tool_call_generates_call_id():
    first = create_tool_call_action("shell", {})
    second = create_tool_call_action("shell", {})

    assert first.call_id.startswith("call_")
    assert first.call_id != second.call_id
    assert create_tool_call_action("shell", {}, "call_fixed").call_id == "call_fixed"


def test_timestamp_is_not_a_constructor_argument():
    with pytest.raises(TypeError):
        ThinkAction(thought="x", timestamp=None)  # type: ignore[call-arg]


def test_think_action_is_invisible():
    assert create_think_action("secret").is_visible is False
    assert create_message_action("hi").is_visible is True


@pytest.mark.parametrize(
    "observation, expected",
    [
        (create_error_observation("bad"), True),
        (create_tool_result_observation("echo", "c1", "ok", True), False),
        (create_tool_result_observation("echo", "c1", {"error": "x"}, False), True),
        (create_success_observation(), False),
    ],
)
def test_is_failure(observation, expected):
    assert is_failure(observation) is expected


def test_pause_requested_accepts_both_flag_spellings():
    snake = create_tool_result_observation("t", "c", {"pause_execution": True}, True)
    camel = create_tool_result_observation("t", "c", {"pauseExecution": True}, True)
    truthy_string = create_tool_result_observation("t", "c", {"pause_execution": "yes"}, True)
    failed = create_tool_result_observation("t", "c", {"pause_execution": True}, False)

    assert snake.pause_requested
    assert camel.pause_requested
    assert not truthy_string.pause_requested
    assert not failed.pause_requested


def test_serialization_round_trip_keeps_identity():
    events = [
        create_message_action("status?", MessageSource.USER),
        create_tool_call_action("shell", {"command": "ls", "opts": {"a": [1, 2]}}),
        create_think_action("hmm"),
        create_finish_action(completed=False, summary="over to you", outputs={"n": 1}),
        create_tool_result_observation("shell", "call_1", {"stdout": "x"}, True),
        create_error_observation("boom", {"error_type": "RuntimeError"}),
        create_success_observation("ok"),
    ]

    for event in events:
        data = event_to_dict(event)
        restored = event_from_dict(data)

        assert restored == event
        assert restored.id == event.id
        assert restored.timestamp == event.timestamp
        assert type(restored) is type(event)


def test_serialized_payload_is_plain_dict():
    observation = create_tool_result_observation("t", "c", {"nested": {"k": "v"}}, True)

    data = event_to_dict(observation)

    assert data["kind"] == ObservationKind.TOOL_RESULT.value
    assert type(data["payload"]) is dict
    assert data["payload"]["nested"] == {"k": "v"}


def test_event_from_dict_rejects_unknown_kind():
    with pytest.raises(ValueError):
        event_from_dict({"category": "action", "kind": "teleport"})


def test_describe_event():
    assert describe_event(create_message_action("hi", "user")) == "user: hi"
    assert describe_event(create_error_observation("bad")) == "error: bad"
    assert describe_event(create_finish_action(summary="done")) == "finish [completed] done"
    assert isinstance(create_error_observation("x"), ErrorObservation)
    assert isinstance(create_success_observation(), SuccessObservation)
