"""
Configuration Schema Validation

Pydantic models for engine profiles (``configs/*.yaml``). Validation errors
carry the file path and, where pydantic reports one, the offending field.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from actloop.core.domain.continuation import (
    DEFAULT_MAX_CONSECUTIVE_ERRORS,
    DEFAULT_MAX_ITERATIONS,
)
from actloop.core.domain.enums import AgentMode
from actloop.core.domain.errors import ConfigError
from actloop.core.domain.state import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRIEVAL_TOOL

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EngineSettingsSchema(BaseModel):
    """Controller limits and behaviour."""

    model_config = ConfigDict(extra="forbid")

    max_iterations: int = Field(
        DEFAULT_MAX_ITERATIONS,
        ge=1,
        description="Decision policy calls allowed per run before truncation.",
    )
    max_consecutive_errors: int = Field(
        DEFAULT_MAX_CONSECUTIVE_ERRORS,
        ge=1,
        description="Failed observations in a row that abort the run.",
    )
    max_retry_attempts: int = Field(
        DEFAULT_MAX_ATTEMPTS,
        ge=1,
        description="Attempts per identical tool call before retries are refused.",
    )
    mode: AgentMode = Field(AgentMode.DEFAULT, description="Agent mode (default, plan, code).")
    retrieval_tool_name: str = Field(
        DEFAULT_RETRIEVAL_TOOL,
        min_length=1,
        description="Tool whose calls are counted as retrieval calls.",
    )
    history_window: int = Field(
        20,
        ge=1,
        description="Number of recent events shown when inspecting a session.",
    )


class PersistenceSchema(BaseModel):
    """Where sessions are stored."""

    type: Literal["file"] = "file"
    work_dir: str = ".actloop"


class LoggingSchema(BaseModel):
    level: LogLevel = "WARNING"

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class EngineProfileSchema(BaseModel):
    """
    Schema for profile configuration files (configs/*.yaml).

    Unknown top-level sections are allowed so profiles can carry settings
    for collaborators; the engine section itself is strict.
    """

    model_config = ConfigDict(extra="allow")

    engine: EngineSettingsSchema = Field(default_factory=EngineSettingsSchema)
    tools: list[str | dict[str, Any]] = Field(
        default_factory=list,
        description="Tool names or {type, module, params} specs.",
    )
    persistence: PersistenceSchema = Field(default_factory=PersistenceSchema)
    logging: LoggingSchema = Field(default_factory=LoggingSchema)

    @field_validator("tools")
    @classmethod
    def tools_have_names(cls, value: list[str | dict[str, Any]]) -> list[str | dict[str, Any]]:
        for item in value:
            if isinstance(item, str) and not item.strip():
                raise ValueError("tool names must not be empty")
            if isinstance(item, dict) and not item.get("type"):
                raise ValueError("tool spec dicts need a 'type'")
        return value


class ConfigValidationError(ConfigError):
    """
    Error raised when configuration validation fails.

    Includes file path and field path in the message when known.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        field_path: Optional[str] = None,
    ) -> None:
        self.file_path = file_path
        self.field_path = field_path

        parts = []
        if file_path:
            parts.append(f"File: {file_path}")
        if field_path:
            parts.append(f"Field: {field_path}")
        parts.append(message)

        super().__init__(
            " | ".join(parts),
            details={
                "file_path": str(file_path) if file_path else None,
                "field_path": field_path,
            },
        )


def validate_profile_config(
    data: dict[str, Any] | None,
    file_path: Optional[Path] = None,
) -> EngineProfileSchema:
    """
    Validate profile configuration data.

    Args:
        data: Configuration dictionary (None for an empty file)
        file_path: Optional file path for error messages

    Returns:
        Validated EngineProfileSchema

    Raises:
        ConfigValidationError: If validation fails
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError("profile must be a mapping", file_path=file_path)
    try:
        return EngineProfileSchema(**data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field_path = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigValidationError(
            first.get("msg", str(e)),
            file_path=file_path,
            field_path=field_path,
        ) from e
