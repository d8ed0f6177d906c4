"""
Scripted Decision Policy

Replays a fixed list of actions from a YAML or JSON script. Used by the CLI
and the tests to drive the controller without a language model.

Script format (a top-level list, or a mapping with an ``actions`` list)::

    actions:
      - type: message
        content: checking
      - type: tool_call
        tool: shell
        input: {command: "echo ok"}
      - type: think
        thought: the command worked
      - type: finish
        summary: done

A ``tool_call`` to ``finish`` is translated into a ``FinishAction``. The
replay position is kept in ``state.metadata`` so a session paused for a
clarification can be resumed by a new process with the same script.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Sequence

import structlog
import yaml

from actloop.core.domain.errors import PolicyError
from actloop.core.domain.events import (
    FINISH_TOOL_NAME,
    Action,
    create_finish_action,
    create_message_action,
    create_think_action,
    create_tool_call_action,
)
from actloop.core.domain.state import SessionState

logger = structlog.get_logger(__name__)

CURSOR_KEY = "scripted_policy.cursor"
_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}

EXHAUSTED_SUMMARY = "Script exhausted"


def parse_action(data: Mapping[str, Any]) -> Action:
    """Build an action from one script entry.

    Raises:
        PolicyError: If the entry has an unknown or missing ``type``.
    """
    action_type = str(data.get("type", "")).lower()
    match action_type:
        case "message":
            return create_message_action(str(data.get("content", "")))
        case "tool_call" | "tool":
            tool_name = data.get("tool") or data.get("tool_name")
            if not tool_name:
                raise PolicyError("tool_call entry needs a 'tool'", details=dict(data))
            tool_input = data.get("input") or {}
            if tool_name == FINISH_TOOL_NAME:
                return _finish_from(tool_input)
            return create_tool_call_action(tool_name, tool_input, data.get("call_id"))
        case "think":
            return create_think_action(str(data.get("thought", "")))
        case "finish":
            return _finish_from(data)
        case _:
            raise PolicyError(
                f"Unknown action type: {action_type or '<missing>'}",
                details={"entry": dict(data)},
            )


def _finish_from(data: Mapping[str, Any]) -> Action:
    return create_finish_action(
        completed=_as_bool(data.get("completed", True), "completed"),
        summary=data.get("summary"),
        outputs=data.get("outputs"),
    )


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise PolicyError(f"'{field}' must be a boolean, got {value!r}", details={field: value})


def load_script(path: str | Path) -> list[dict[str, Any]]:
    """Read a script file (``.json``, otherwise YAML).

    Raises:
        PolicyError: If the file is missing or malformed.
    """
    script_path = Path(path)
    try:
        text = script_path.read_text(encoding="utf-8")
    except OSError as error:
        raise PolicyError(
            f"Cannot read script {script_path}: {error}", details={"path": str(script_path)}
        ) from error

    try:
        if script_path.suffix.lower() == ".json":
            content = json.loads(text)
        else:
            content = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as error:
        raise PolicyError(
            f"Cannot parse script {script_path}: {error}", details={"path": str(script_path)}
        ) from error

    if isinstance(content, Mapping):
        content = content.get("actions")
    if not isinstance(content, list) or not all(isinstance(e, Mapping) for e in content):
        raise PolicyError(
            f"Script {script_path} must contain a list of actions",
            details={"path": str(script_path)},
        )
    return [dict(entry) for entry in content]


class ScriptedPolicy:
    """Decision policy that returns the next scripted action on each step.

    Entries are parsed up front so a malformed script fails before the
    first iteration. When the script runs out, the policy hands the turn
    back with ``FinishAction(completed=False)``.
    """

    def __init__(self, entries: Sequence[Mapping[str, Any]]) -> None:
        self._actions_data = [dict(entry) for entry in entries]
        for entry in self._actions_data:
            parse_action(entry)
        self.calls = 0

    @classmethod
    def from_file(cls, path: str | Path) -> "ScriptedPolicy":
        return cls(load_script(path))

    def __len__(self) -> int:
        return len(self._actions_data)

    def cursor(self, state: SessionState) -> int:
        return int(state.metadata.get(CURSOR_KEY, 0))

    async def step(self, state: SessionState) -> Action:
        self.calls += 1
        cursor = self.cursor(state)
        if cursor >= len(self._actions_data):
            logger.warning("script_exhausted", session_id=state.session_id, cursor=cursor)
            return create_finish_action(completed=False, summary=EXHAUSTED_SUMMARY)

        state.metadata[CURSOR_KEY] = cursor + 1
        action = parse_action(self._actions_data[cursor])
        logger.debug(
            "scripted_action", session_id=state.session_id, cursor=cursor, kind=action.kind.value
        )
        return action
