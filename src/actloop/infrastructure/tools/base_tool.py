"""Base tool class that reduces boilerplate for ToolProtocol implementations.

Provides:
- Class-level attributes for ``name``, ``description`` and ``parameters``
  instead of requiring ``@property`` methods on every tool.
- A default ``validate`` that checks required parameters, coarse types and
  enum membership from the declared ``ParamSpec`` list.
- A default ``describe`` that projects the parameters into a JSON schema.
- An ``execute`` that validates first and only then calls ``_execute``.
  ``ToolError`` raised by ``_execute`` becomes a failed ``ToolOutcome``;
  anything else propagates to the controller.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import structlog

from actloop.core.domain.errors import ToolError, tool_error_payload
from actloop.core.domain.tool_models import ParamSpec, ToolOutcome, ValidationResult

logger = structlog.get_logger(__name__)


class BaseTool:
    """Convenience base class for tools that satisfy ``ToolProtocol``.

    Subclasses must set at minimum:
      - ``tool_name``  (``str``)
      - ``tool_description`` (``str``)
      - ``tool_parameters`` (``tuple[ParamSpec, ...]``)

    And override ``_execute`` with the actual tool logic. ``_execute``
    receives the validated input as keyword arguments, so it should accept
    ``**kwargs`` to tolerate undeclared keys.
    """

    # ------------------------------------------------------------------ #
    # Subclass configuration (override these)
    # ------------------------------------------------------------------ #

    tool_name: str = ""
    """Unique snake_case identifier for the tool (e.g. ``"shell"``)."""

    tool_description: str = ""
    """Human-readable description used by the policy for tool selection."""

    tool_parameters: tuple[ParamSpec, ...] = ()
    """Declared parameters in the order they are shown to the policy."""

    # ------------------------------------------------------------------ #
    # ToolProtocol-compatible properties
    # ------------------------------------------------------------------ #

    @property
    def name(self) -> str:
        return self.tool_name

    @property
    def description(self) -> str:
        return self.tool_description

    @property
    def parameters(self) -> Sequence[ParamSpec]:
        return self.tool_parameters

    # ------------------------------------------------------------------ #
    # Default implementations
    # ------------------------------------------------------------------ #

    def validate(self, tool_input: Mapping[str, Any]) -> ValidationResult:
        """Validate ``tool_input`` against the declared parameters.

        Checks that:
        - All ``required`` parameters are present.
        - Present declared parameters match their coarse type.
        - Enum values are valid when specified.

        Unknown keys are tolerated.
        """
        for spec in self.parameters:
            if spec.required and spec.name not in tool_input:
                return ValidationResult.fail(f"Missing required parameter: {spec.name}")

        declared = {spec.name: spec for spec in self.parameters}
        for key, value in tool_input.items():
            spec = declared.get(key)
            if spec is None:
                continue
            if not spec.matches_type(value):
                return ValidationResult.fail(
                    f"Parameter '{key}' must be of type {spec.type.value}"
                )
            if spec.enum is not None and value not in spec.enum:
                return ValidationResult.fail(
                    f"Parameter '{key}' must be one of {list(spec.enum)}"
                )

        return ValidationResult.ok()

    def describe(self) -> dict[str, Any]:
        """Project the declared parameters into a fresh schema dictionary."""
        properties = {spec.name: spec.to_schema() for spec in self.parameters}
        required = [spec.name for spec in self.parameters if spec.required]
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def execute(self, tool_input: Mapping[str, Any]) -> ToolOutcome:
        """Validate, then delegate to ``_execute``.

        Returns:
            ``ToolOutcome(success=False)`` without running ``_execute`` when
            validation fails, otherwise whatever ``_execute`` returns.
        """
        validation = self.validate(tool_input)
        if not validation.valid:
            return ToolOutcome.fail(f"Parameter validation failed: {validation.error}")

        try:
            return await self._execute(**dict(tool_input))
        except ToolError as exc:
            logger.warning(
                "tool.execute_failed",
                tool=self.name,
                error=str(exc),
            )
            payload = tool_error_payload(exc, {"kwargs": _sanitize_kwargs(dict(tool_input))})
            message = payload.pop("error")
            return ToolOutcome.fail(message, **payload)

    async def _execute(self, **kwargs: Any) -> ToolOutcome:
        """Actual tool logic to be implemented by subclasses.

        Raises:
            ToolError: For expected domain failures (converted to an outcome).
            Exception: Anything else propagates to the controller.
        """
        raise NotImplementedError(f"{type(self).__name__} must implement _execute()")

    # ------------------------------------------------------------------ #
    # Outcome helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def success(result: Any = None) -> ToolOutcome:
        return ToolOutcome.ok(result)

    @staticmethod
    def error(message: str) -> ToolOutcome:
        return ToolOutcome.fail(message)


def _sanitize_kwargs(kwargs: dict[str, Any], max_str_len: int = 200) -> dict[str, Any]:
    """Create a loggable copy of kwargs with long strings truncated."""
    sanitized: dict[str, Any] = {}
    for key, value in kwargs.items():
        if isinstance(value, str) and len(value) > max_str_len:
            sanitized[key] = value[:max_str_len] + "..."
        else:
            sanitized[key] = value
    return sanitized
