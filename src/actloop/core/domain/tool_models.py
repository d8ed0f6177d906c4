"""
Tool Contract Models

Value objects shared by the tool protocol, the base tool implementation
and the controller:

- ParamSpec: one declared tool parameter
- ValidationResult: outcome of ``validate``
- ToolOutcome: outcome of ``execute``
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from actloop.core.domain.enums import ParamType

PAUSE_FLAG = "pause_execution"
# Accepted for tools written against the camelCase result convention.
PAUSE_FLAG_ALIASES = (PAUSE_FLAG, "pauseExecution")


@dataclass(frozen=True)
class ParamSpec:
    """
    Declared parameter of a tool.

    Attributes:
        name: Parameter key in the tool input mapping.
        type: Coarse type (string, number, boolean, object, array).
        description: Text shown to the decision policy.
        required: Whether the key must be present.
        default: Documented default, applied by the tool itself.
        enum: Allowed values, checked when the key is present.
        item_type: Element type for arrays, projected into ``items``.
    """

    name: str
    type: ParamType
    description: str = ""
    required: bool = False
    default: Any = None
    enum: tuple[Any, ...] | None = None
    item_type: ParamType | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ParamType(self.type))
        if self.item_type is not None:
            object.__setattr__(self, "item_type", ParamType(self.item_type))
        if self.enum is not None:
            object.__setattr__(self, "enum", tuple(self.enum))

    def matches_type(self, value: Any) -> bool:
        """Coarse type check; objects and arrays skip deep shape checks."""
        match self.type:
            case ParamType.STRING:
                return isinstance(value, str)
            case ParamType.NUMBER:
                return isinstance(value, (int, float)) and not isinstance(value, bool)
            case ParamType.BOOLEAN:
                return isinstance(value, bool)
            case ParamType.OBJECT:
                return isinstance(value, dict)
            case ParamType.ARRAY:
                return isinstance(value, (list, tuple))
        return False

    def to_schema(self) -> dict[str, Any]:
        """Project the parameter into a JSON-schema property."""
        prop: dict[str, Any] = {"type": self.type.value, "description": self.description}
        if self.enum is not None:
            prop["enum"] = list(self.enum)
        if self.type is ParamType.ARRAY and self.item_type is not None:
            prop["items"] = {"type": self.item_type.value}
        if self.default is not None:
            prop["default"] = copy.deepcopy(self.default)
        return prop


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a tool input."""

    valid: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


@dataclass
class ToolOutcome:
    """
    Result of a tool execution.

    Attributes:
        success: Whether the tool achieved its purpose.
        result: Domain output on success (string, mapping, list...).
        error: Error text on failure.
    """

    success: bool
    result: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: Any = None) -> "ToolOutcome":
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutcome":
        return cls(success=False, error=error, metadata=dict(metadata))

    @property
    def pause_requested(self) -> bool:
        """True when the result carries the reserved pause flag."""
        if not self.success or not isinstance(self.result, dict):
            return False
        return any(self.result.get(flag) is True for flag in PAUSE_FLAG_ALIASES)
