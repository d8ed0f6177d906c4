"""
Unit tests for Controller

Tests verify:
- The decide/act/observe loop records one action and one observation per step
- Each continuation rule maps to the expected status
- Pause, clarification and resume
- Cancellation and concurrent run protection
- Observers and streaming
"""

import asyncio

import pytest

from actloop.core.domain.controller import Controller
from actloop.core.domain.enums import AgentMode, MessageSource, SessionStatus, StopReason
from actloop.core.domain.errors import (
    ClarificationPendingError,
    ConcurrentRunError,
    ExecutionCancelledError,
    NotFoundError,
)
from actloop.core.domain.events import (
    ErrorObservation,
    FinishAction,
    MessageAction,
    SuccessObservation,
    ThinkAction,
    ToolCallAction,
    ToolResultObservation,
    create_finish_action,
    create_message_action,
    create_think_action,
    create_tool_call_action,
)
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.infrastructure.tools.native.clarify_tool import ClarifyRequirementsTool
from conftest import EchoTool, FailingTool


class BlockingPolicy:
    """Policy that never returns until cancelled."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.calls = 0

    async def step(self, state):
        self.calls += 1
        self.entered.set()
        await asyncio.Event().wait()


def _controller(policy, registry, **kwargs) -> Controller:
    return Controller(policy=policy, registry=registry, session_id="test-session", **kwargs)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_message_tool_finish(self, registry, make_policy):
        """Three steps record six events after the user message."""
        policy = make_policy(
            create_message_action("Checking"),
            create_tool_call_action("echo", {"text": "all good"}),
            create_finish_action(summary="Status reported", outputs={"ok": True}),
        )
        controller = _controller(policy, registry)

        result = await controller.run("status?")

        history = controller.state.history
        assert len(history) == 7
        assert isinstance(history[0], MessageAction)
        assert history[0].source is MessageSource.USER
        assert [type(event) for event in history[1:]] == [
            MessageAction,
            SuccessObservation,
            ToolCallAction,
            ToolResultObservation,
            FinishAction,
            ToolResultObservation,
        ]
        assert history[4].payload == "all good"
        assert result.status is SessionStatus.FINISHED
        assert result.stop_reason is StopReason.FINISHED
        assert result.iterations == 3
        assert result.final_message == "Status reported"
        assert result.outputs == {"ok": True}
        assert policy.calls == 3
        assert policy.seen_history_lengths == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_finish_observation_shape(self, registry, make_policy):
        """The finish signal is observed as a synthetic finish tool result."""
        finish = create_finish_action(summary="done")
        controller = _controller(make_policy(finish), registry)

        await controller.run()

        observation = controller.state.history[-1]
        assert observation.tool_name == "finish"
        assert observation.call_id == f"finish_{finish.id[:12]}"
        assert observation.payload == {"completed": True, "summary": "done", "outputs": None}

    def test_registry_is_frozen(self, registry, make_policy):
        _controller(make_policy(), registry)

        assert registry.frozen

    def test_empty_registry_is_used_as_given(self, make_policy):
        """An empty registry still belongs to the controller."""
        empty = ToolRegistry()
        controller = _controller(make_policy(), empty)

        assert controller.registry is empty

    @pytest.mark.asyncio
    async def test_final_message_falls_back_to_agent_message(self, registry, make_policy):
        policy = make_policy(create_message_action("Here you go"), create_finish_action())
        controller = _controller(policy, registry)

        result = await controller.run("hi")

        assert result.final_message == "Here you go"


class TestStopRules:
    @pytest.mark.asyncio
    async def test_handed_back(self, registry, make_policy):
        """An incomplete finish waits for the user instead of finishing."""
        policy = make_policy(create_finish_action(completed=False, summary="Need the file"))
        controller = _controller(policy, registry)

        result = await controller.run("fix it")

        assert result.status is SessionStatus.WAITING_USER
        assert result.stop_reason is StopReason.HANDED_BACK
        assert result.final_message == "Need the file"
        assert result.pending_clarification is None

    @pytest.mark.asyncio
    async def test_error_streak(self, registry, make_policy):
        """Three failures in a row end the run in error."""
        policy = make_policy(*[create_tool_call_action("crash", {}) for _ in range(5)])
        controller = _controller(policy, registry, max_consecutive_errors=3)

        result = await controller.run("go")

        assert policy.calls == 3
        assert result.status is SessionStatus.ERROR
        assert result.stop_reason is StopReason.ERROR_STREAK
        assert controller.state.last_error == "Tool crash raised: boom"
        assert result.final_message == "Tool crash raised: boom"

    @pytest.mark.asyncio
    async def test_success_resets_error_streak(self, registry, make_policy):
        policy = make_policy(
            create_tool_call_action("crash", {}),
            create_tool_call_action("crash", {}),
            create_tool_call_action("echo", {"text": "ok"}),
            create_tool_call_action("crash", {}),
            create_tool_call_action("crash", {}),
            create_finish_action(),
        )
        controller = _controller(policy, registry, max_consecutive_errors=3)

        result = await controller.run("go")

        assert result.status is SessionStatus.FINISHED
        assert policy.calls == 6

    @pytest.mark.asyncio
    async def test_iteration_cap_truncates(self, registry, make_policy):
        """The cap bounds the number of policy calls per run."""
        policy = make_policy(*[create_message_action(f"m{i}") for i in range(10)])
        controller = _controller(policy, registry, max_iterations=4)

        result = await controller.run("go")

        assert policy.calls == 4
        assert result.status is SessionStatus.TRUNCATED
        assert result.stop_reason is StopReason.ITERATION_CAP
        assert result.final_message == "m3"

    @pytest.mark.asyncio
    async def test_cap_is_per_run(self, registry, make_policy):
        """A truncated session gets a fresh budget on the next run."""
        policy = make_policy(*[create_message_action(f"m{i}") for i in range(4)])
        controller = _controller(policy, registry, max_iterations=2)

        await controller.run("first")
        result = await controller.run("second")

        assert result.status is SessionStatus.TRUNCATED
        assert result.iterations == 2
        assert controller.state.metrics.iterations == 4

    @pytest.mark.asyncio
    async def test_plan_mode_stops_after_agent_message(self, registry, make_policy):
        policy = make_policy(create_think_action("plan"), create_message_action("1. read 2. fix"))
        controller = _controller(policy, registry, mode=AgentMode.PLAN)

        result = await controller.run("plan it")

        assert policy.calls == 2
        assert result.status is SessionStatus.WAITING_USER
        assert result.stop_reason is StopReason.MODE_RULE
        assert controller.mode is AgentMode.PLAN

    @pytest.mark.asyncio
    async def test_policy_failure_is_recorded(self, registry, make_policy):
        """A raising policy costs an iteration but does not end the run."""
        policy = make_policy(RuntimeError("model unavailable"), create_finish_action())
        controller = _controller(policy, registry)

        result = await controller.run("go")

        errors = [e for e in controller.state.history if isinstance(e, ErrorObservation)]
        assert len(errors) == 1
        assert errors[0].message == "Decision policy failed: model unavailable"
        assert errors[0].details["error_type"] == "RuntimeError"
        assert result.status is SessionStatus.FINISHED
        assert result.iterations == 2

    @pytest.mark.asyncio
    async def test_non_action_from_policy_is_a_policy_failure(self, registry, make_policy):
        policy = make_policy(None, {"type": "finish"}, create_finish_action())
        controller = _controller(policy, registry)

        result = await controller.run("go")

        errors = [e for e in controller.state.history if isinstance(e, ErrorObservation)]
        assert [e.message for e in errors] == [
            "Decision policy failed: Expected an action, got NoneType",
            "Decision policy failed: Expected an action, got dict",
        ]
        assert errors[0].details["error_type"] == "PolicyError"
        assert result.status is SessionStatus.FINISHED
        assert result.iterations == 3

    @pytest.mark.asyncio
    async def test_non_action_counts_toward_error_streak(self, registry, make_policy):
        policy = make_policy(None, None, None, create_finish_action())
        controller = _controller(policy, registry, max_consecutive_errors=3)

        result = await controller.run("go")

        assert policy.calls == 3
        assert result.status is SessionStatus.ERROR
        assert result.stop_reason is StopReason.ERROR_STREAK

    @pytest.mark.asyncio
    async def test_unknown_tool_is_recoverable(self, registry, make_policy):
        policy = make_policy(create_tool_call_action("teleport", {}), create_finish_action())
        controller = _controller(policy, registry)

        result = await controller.run("go")

        observation = controller.state.history[2]
        assert isinstance(observation, ErrorObservation)
        assert observation.message == "Tool not found: teleport"
        assert result.status is SessionStatus.FINISHED

    @pytest.mark.asyncio
    async def test_retry_details_in_payload(self, make_policy):
        registry = ToolRegistry([FailingTool()])
        policy = make_policy(
            create_tool_call_action("flaky", {"target": "db"}),
            create_tool_call_action("flaky", {"target": "db"}),
            create_finish_action(),
        )
        controller = _controller(policy, registry, max_retry_attempts=2)

        await controller.run("go")

        failures = [
            e
            for e in controller.state.history
            if isinstance(e, ToolResultObservation) and not e.success
        ]
        assert [f.payload["attempts"] for f in failures] == [1, 2]
        assert [f.payload["retry_allowed"] for f in failures] == [True, False]
        assert failures[0].payload["error"] == "backend rejected the request"
        assert failures[0].payload["error_type"] == "ToolError"
        assert "category" in failures[0].payload
        assert not any(isinstance(e, ErrorObservation) for e in controller.state.history)


class TestPauseAndResume:
    @pytest.mark.asyncio
    async def test_pause_flag_stops_without_further_policy_calls(self, registry, make_policy):
        policy = make_policy(create_tool_call_action("pause", {}), create_finish_action())
        controller = _controller(policy, registry)

        result = await controller.run()

        assert len(controller.state) == 2
        assert policy.calls == 1
        assert result.status is SessionStatus.WAITING_USER
        assert result.stop_reason is StopReason.PAUSED
        assert controller.state.pending_clarification() is None

    @pytest.mark.asyncio
    async def test_clarification_round_trip(self, make_policy):
        """Questions are recorded, answered, and the next run continues counting."""
        registry = ToolRegistry([ClarifyRequirementsTool(), EchoTool()])
        ask = create_tool_call_action(
            "clarify_requirements",
            {
                "questions": ["Which database engine?", "Which port should it use?"],
                "reason": "Connection details are missing",
                "assumptions_to_verify": ["Runs locally"],
            },
        )
        policy = make_policy(ask, create_finish_action(summary="Configured"))
        controller = _controller(policy, registry)

        paused = await controller.run("set up the db")

        assert paused.stop_reason is StopReason.PAUSED
        assert paused.pending_clarification == ask.call_id
        assert controller.state.is_waiting_for_clarification()
        record = controller.state.pending_clarification()
        assert record.reason == "Connection details are missing"
        assert record.assumptions == ["Runs locally"]

        with pytest.raises(ClarificationPendingError):
            await controller.run()

        controller.resume(ask.call_id, ["postgres", "5432"])
        assert controller.state.status is SessionStatus.RUNNING

        records = [record async for record in controller.stream()]

        assert records[0].iteration == 2
        assert records[-1].stop_reason is StopReason.FINISHED
        assert controller.last_result.status is SessionStatus.FINISHED
        assert "A: postgres" in controller.state.get_clarification_context()

    def test_resume_unknown_clarification(self, registry, make_policy):
        controller = _controller(make_policy(), registry)

        with pytest.raises(NotFoundError):
            controller.resume("missing", ["x"])

    @pytest.mark.asyncio
    async def test_user_message_resumes_handed_back_session(self, registry, make_policy):
        policy = make_policy(
            create_finish_action(completed=False, summary="Which file?"),
            create_finish_action(summary="Fixed"),
        )
        controller = _controller(policy, registry)

        await controller.run("fix the bug")
        result = await controller.run("main.py")

        assert result.status is SessionStatus.FINISHED
        assert controller.state.current_task == "main.py"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_event_aborts_policy_call(self, registry):
        policy = BlockingPolicy()
        controller = _controller(policy, registry)
        records = []
        controller.add_observer(records.append)
        cancel = asyncio.Event()

        task = asyncio.create_task(controller.run("go", cancel_event=cancel))
        await policy.entered.wait()
        cancel.set()

        with pytest.raises(ExecutionCancelledError) as exc_info:
            await task

        assert controller.state.status is SessionStatus.ERROR
        assert controller.state.last_error == "cancelled"
        last = controller.state.history[-1]
        assert isinstance(last, ErrorObservation)
        assert last.message == "cancelled"
        assert exc_info.value.result.stop_reason is StopReason.CANCELLED
        assert records[-1].stop_reason is StopReason.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_event_set_before_run(self, registry, make_policy):
        policy = make_policy(create_finish_action())
        controller = _controller(policy, registry)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ExecutionCancelledError):
            await controller.run("go", cancel_event=cancel)

        assert policy.calls == 0
        assert controller.state.status is SessionStatus.ERROR

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, registry):
        policy = BlockingPolicy()
        controller = _controller(policy, registry)

        task = asyncio.create_task(controller.run("go"))
        await policy.entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state.status is SessionStatus.ERROR
        assert controller.last_result.stop_reason is StopReason.CANCELLED

    @pytest.mark.asyncio
    async def test_closing_stream_early_cancels_run(self, registry, make_policy):
        """An action left by an abandoned stream is still followed by an observation."""
        policy = make_policy(
            create_tool_call_action("echo", {"text": "hi"}), create_finish_action()
        )
        controller = _controller(policy, registry)

        steps = controller.stream("go")
        async for record in steps:
            if record.action is not None:
                break
        await steps.aclose()

        history = controller.state.history
        assert [type(e) for e in history] == [MessageAction, ToolCallAction, ErrorObservation]
        assert history[-1].message == "cancelled"
        assert controller.state.status is SessionStatus.ERROR
        assert controller.last_result.stop_reason is StopReason.CANCELLED
        assert policy.calls == 1

    @pytest.mark.asyncio
    async def test_closing_stream_after_completion_keeps_outcome(self, registry, make_policy):
        controller = _controller(make_policy(create_finish_action()), registry)

        steps = controller.stream("go")
        async for record in steps:
            if record.is_complete:
                break
        await steps.aclose()

        assert controller.state.status is SessionStatus.FINISHED
        assert controller.last_result.stop_reason is StopReason.FINISHED
        assert not isinstance(controller.state.history[-1], ErrorObservation)

    @pytest.mark.asyncio
    async def test_cancelled_session_can_run_again(self, registry, make_policy):
        controller = _controller(make_policy(create_finish_action()), registry)
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(ExecutionCancelledError):
            await controller.run("go", cancel_event=cancel)

        result = await controller.run("again")

        assert result.status is SessionStatus.FINISHED


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_run_rejected(self, registry, make_policy):
        policy = BlockingPolicy()
        controller = _controller(policy, registry)

        task = asyncio.create_task(controller.run("go"))
        await policy.entered.wait()

        with pytest.raises(ConcurrentRunError):
            await controller.run("again")
        with pytest.raises(ConcurrentRunError):
            controller.reset()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_reset_clears_state(self, registry, make_policy):
        controller = _controller(make_policy(create_finish_action()), registry)
        await controller.run("go")

        controller.reset()

        assert len(controller.state) == 0
        assert controller.state.status is SessionStatus.IDLE
        assert controller.last_result is None


class TestObservers:
    @pytest.mark.asyncio
    async def test_failing_observer_is_ignored(self, registry, make_policy):
        def broken(record):
            raise ValueError("observer bug")

        seen = []
        controller = _controller(make_policy(create_finish_action()), registry)
        controller.add_observer(broken)
        controller.add_observer(seen.append)

        result = await controller.run("go")

        assert result.status is SessionStatus.FINISHED
        assert len(seen) == 3
        assert seen[-1].is_complete

    @pytest.mark.asyncio
    async def test_removed_observer_gets_nothing(self, registry, make_policy):
        seen = []
        controller = _controller(make_policy(create_finish_action()), registry)
        controller.add_observer(seen.append)
        controller.remove_observer(seen.append)

        await controller.run("go")

        assert seen == []

    @pytest.mark.asyncio
    async def test_thoughts_never_reach_step_records(self, registry, make_policy):
        """Thoughts are kept in history but never surfaced as actions."""
        policy = make_policy(create_think_action("secret"), create_finish_action())
        controller = _controller(policy, registry)

        records = [record async for record in controller.stream("go")]

        assert not any(isinstance(r.action, ThinkAction) for r in records)
        assert isinstance(records[0].observation, SuccessObservation)
        assert any(isinstance(e, ThinkAction) for e in controller.state.history)
        assert [r.iteration for r in records] == [1, 2, 2, 2]
        assert records[-1].is_complete
        assert controller.last_result.iterations == 2

    @pytest.mark.asyncio
    async def test_step_records_serialize(self, registry, make_policy):
        controller = _controller(make_policy(create_finish_action(summary="ok")), registry)

        records = [record.to_dict() async for record in controller.stream("go")]

        assert records[0]["action"]["kind"] == "finish"
        assert records[-1]["stop_reason"] == "finished"
