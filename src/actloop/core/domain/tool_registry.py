"""
Tool Registry

A fixed, name-keyed set of tools. Names are resolved once at registration:
duplicates are rejected, and once a controller takes ownership the registry
is frozen so no tool can be added mid-run. Lookups use exact name match; a
missing name is a recoverable condition for the caller, never an exception.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from actloop.core.domain.errors import ToolRegistrationError
from actloop.core.interfaces.tools import ToolProtocol


class ToolRegistry:
    """Read-mostly mapping of tool name to implementation."""

    def __init__(self, tools: Iterable[ToolProtocol] = ()) -> None:
        self._tools: dict[str, ToolProtocol] = {}
        self._frozen = False
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolProtocol) -> None:
        """Add a tool.

        Raises:
            ToolRegistrationError: If the registry is frozen, the name is
                empty, or the name is already taken.
        """
        if self._frozen:
            raise ToolRegistrationError(
                f"Cannot register '{tool.name}': registry is frozen",
                details={"tool_name": tool.name},
            )
        if not tool.name:
            raise ToolRegistrationError(
                f"{type(tool).__name__} has no name",
                details={"tool_type": type(tool).__name__},
            )
        if tool.name in self._tools:
            raise ToolRegistrationError(
                f"Tool '{tool.name}' is already registered",
                details={"tool_name": tool.name},
            )
        self._tools[tool.name] = tool

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> ToolProtocol | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def describe_all(self) -> list[dict[str, Any]]:
        """Schemas of every tool, in registration order."""
        return [tool.describe() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolProtocol]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
