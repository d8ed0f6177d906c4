"""
Built-in tool catalog.

Maps short tool names (as used in profile ``tools:`` lists) to the class and
module implementing them, and instantiates them into a ``ToolRegistry``.
"""

from __future__ import annotations

import copy
import importlib
from typing import Any, Iterable

import structlog

from actloop.core.domain.errors import ConfigError
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.core.interfaces.tools import ToolProtocol

logger = structlog.get_logger(__name__)

ToolSpec = dict[str, Any]

_TOOL_CATALOG: dict[str, ToolSpec] = {
    "clarify_requirements": {
        "type": "ClarifyRequirementsTool",
        "module": "actloop.infrastructure.tools.native.clarify_tool",
        "params": {},
    },
    "finish": {
        "type": "FinishTool",
        "module": "actloop.infrastructure.tools.native.finish_tool",
        "params": {},
    },
    "shell": {
        "type": "ShellTool",
        "module": "actloop.infrastructure.tools.native.shell_tool",
        "params": {},
    },
}


def available_tools() -> list[str]:
    return list(_TOOL_CATALOG)


def get_tool_definition(tool_name: str) -> ToolSpec | None:
    """Return a deep-copied tool definition by short name."""
    definition = _TOOL_CATALOG.get(tool_name)
    if not definition:
        return None
    return copy.deepcopy(definition)


def resolve_tool_spec(tool_spec: str | ToolSpec) -> ToolSpec | None:
    """
    Resolve a tool spec into a full definition with type, module, and params.

    Args:
        tool_spec: Either a short tool name or a ``{type, module, params}``
            dict. A dict without ``module`` is looked up by ``type`` in the
            catalog and its params are merged over the catalog defaults.

    Returns:
        Full tool spec dict or None if unresolved.
    """
    if isinstance(tool_spec, str):
        return get_tool_definition(tool_spec)

    tool_type = tool_spec.get("type")
    if not tool_type:
        return None

    defaults = next(
        (spec for spec in _TOOL_CATALOG.values() if spec["type"] == tool_type), None
    )
    module = tool_spec.get("module") or (defaults["module"] if defaults else None)
    if not module:
        return None

    params = dict(defaults["params"]) if defaults else {}
    params.update(tool_spec.get("params", {}))
    return {"type": tool_type, "module": module, "params": params}


def instantiate_tool(tool_spec: str | ToolSpec) -> ToolProtocol:
    """Import and construct one tool.

    Raises:
        ConfigError: If the spec cannot be resolved or imported.
    """
    resolved = resolve_tool_spec(tool_spec)
    if resolved is None:
        raise ConfigError(
            f"Unknown tool: {tool_spec}",
            details={"tool": tool_spec, "available_tools": available_tools()},
        )

    try:
        module = importlib.import_module(resolved["module"])
        tool_class = getattr(module, resolved["type"])
    except (ImportError, AttributeError) as error:
        raise ConfigError(
            f"Cannot load tool {resolved['type']} from {resolved['module']}: {error}",
            details=resolved,
        ) from error

    return tool_class(**resolved["params"])


def build_registry(tool_specs: Iterable[str | ToolSpec] | None = None) -> ToolRegistry:
    """Build a registry from profile tool specs (all built-ins when None)."""
    specs = list(tool_specs) if tool_specs is not None else available_tools()
    registry = ToolRegistry()
    for spec in specs:
        registry.register(instantiate_tool(spec))
    logger.debug("tool_registry_built", tools=registry.names())
    return registry
