"""
Tool Execution Protocol

This module defines the protocol interface for tool implementations.
Tools are named capabilities the decision policy may invoke through a
ToolCallAction (file operations, command execution, retrieval, asking the
user for clarification, ...).

Protocol implementations must provide:
- Tool metadata (name, description, declared parameters)
- Input validation
- Async execution returning a ToolOutcome
- A deterministic schema projection for the decision policy
"""

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from actloop.core.domain.tool_models import ParamSpec, ToolOutcome, ValidationResult


@runtime_checkable
class ToolProtocol(Protocol):
    """
    Protocol defining the contract for tool implementations.

    Tool Lifecycle:
        1. Policy reads ``describe()`` to learn the tool's input schema
        2. Controller resolves the tool by exact ``name``
        3. ``execute()`` validates the input, failing fast without side effects
        4. Domain logic runs and a ToolOutcome is returned

    Pausing:
        A tool may set ``pause_execution: True`` inside ``ToolOutcome.result``
        to ask the controller to stop the loop and wait for the user. This is
        the only channel from a tool to the continuation policy.

    Statelessness:
        Tools hold no session state. Any resource they own (connections,
        terminal handles, caches) is theirs to manage and serialize.
    """

    @property
    def name(self) -> str:
        """
        Unique snake_case identifier used for exact-match lookup.

        Example:
            >>> tool.name
            'clarify_requirements'
        """
        ...

    @property
    def description(self) -> str:
        """Human-readable description used by the policy for tool selection."""
        ...

    @property
    def parameters(self) -> Sequence[ParamSpec]:
        """Declared parameters, in declaration order."""
        ...

    def validate(self, tool_input: Mapping[str, Any]) -> ValidationResult:
        """
        Validate an input mapping against ``parameters``.

        Checks that:
        - Every required parameter is present
        - Every declared key that is present matches its coarse type
        - Enum values are respected

        Unknown extra keys are tolerated.

        Returns:
            ValidationResult(valid=True) or ValidationResult(valid=False, error=...)
        """
        ...

    async def execute(self, tool_input: Mapping[str, Any]) -> ToolOutcome:
        """
        Validate and execute.

        Validation failures return ``ToolOutcome(success=False)`` before any
        side effect. Exceptions raised by domain logic propagate; the
        controller converts them into error observations.
        """
        ...

    def describe(self) -> dict[str, Any]:
        """
        Machine-consumable schema for the decision policy.

        Must be pure: two calls with no intervening change return equal
        structures.

        Returns:
            {
                "name": "...",
                "description": "...",
                "input_schema": {
                    "type": "object",
                    "properties": {...},
                    "required": [...]
                }
            }
        """
        ...
