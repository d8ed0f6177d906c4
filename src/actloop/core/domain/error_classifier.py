"""Classification of tool failures for retry and recovery hints.

The controller attaches the classification to failed tool observations so
the decision policy can see whether retrying the same call makes sense,
whether a different strategy is needed, or whether the user must step in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from actloop.core.domain.enums import ErrorCategory

_NETWORK = re.compile(r"ECONNREFUSED|ETIMEDOUT|ENOTFOUND|network|timed? ?out|connection", re.I)
_PERMISSION = re.compile(r"EACCES|EPERM|permission denied|access denied", re.I)
_NOT_FOUND = re.compile(r"ENOENT|file not found|cannot find|no such file", re.I)
_SYNTAX = re.compile(r"SyntaxError|unexpected token|parse error|compilation error", re.I)
_USER_INPUT = re.compile(r"configuration required|missing required|provide|specify", re.I)
_COMMAND_NOT_FOUND = re.compile(r"command not found|not recognized", re.I)
_NO_MATCH = re.compile(r"text not found|no match", re.I)
_NO_RESULTS = re.compile(r"no results|empty|not found", re.I)


@dataclass(frozen=True)
class ClassifiedError:
    """A failure with its category and optional recovery hints."""

    category: ErrorCategory
    original_error: str
    suggestion: str | None = None
    alternative_strategies: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"category": self.category.value}
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.alternative_strategies:
            result["alternative_strategies"] = list(self.alternative_strategies)
        return result


class ErrorClassifier:
    """Pattern-based classifier over error text and call context."""

    def __init__(self, *, terminal_after: int = 3, retrieval_tool_name: str = "retrieve_context"):
        self.terminal_after = terminal_after
        self.retrieval_tool_name = retrieval_tool_name

    def classify(
        self,
        error: str,
        *,
        tool_name: str,
        tool_input: Mapping[str, Any] | None = None,
        previous_attempts: int = 0,
    ) -> ClassifiedError:
        if _NETWORK.search(error):
            return ClassifiedError(
                ErrorCategory.RETRIABLE, error, suggestion="Transient failure, retry the call"
            )
        if _PERMISSION.search(error):
            return ClassifiedError(
                ErrorCategory.FIXABLE,
                error,
                alternative_strategies=(
                    "Check file permissions",
                    "Use a location the agent can write to",
                ),
            )
        if _NOT_FOUND.search(error):
            return ClassifiedError(
                ErrorCategory.FIXABLE,
                error,
                alternative_strategies=(
                    "Check if the path is correct",
                    "Search the workspace for the file",
                    "Create the file first",
                ),
            )
        if _SYNTAX.search(error):
            return ClassifiedError(
                ErrorCategory.FIXABLE, error, suggestion="Fix the syntax and try again"
            )
        if _USER_INPUT.search(error):
            return ClassifiedError(
                ErrorCategory.USER_INPUT, error, suggestion="Ask the user for the missing information"
            )

        specific = self._classify_tool_specific(error, tool_name, tool_input or {})
        if specific is not None:
            return specific

        if previous_attempts >= self.terminal_after:
            return ClassifiedError(
                ErrorCategory.TERMINAL,
                error,
                suggestion="Multiple attempts failed, user intervention needed",
            )
        return ClassifiedError(ErrorCategory.RETRIABLE, error)

    def _classify_tool_specific(
        self, error: str, tool_name: str, tool_input: Mapping[str, Any]
    ) -> ClassifiedError | None:
        if tool_name == "shell":
            if _COMMAND_NOT_FOUND.search(error):
                return ClassifiedError(
                    ErrorCategory.FIXABLE,
                    error,
                    alternative_strategies=(
                        "Check if the command is installed",
                        "Use the full path to the executable",
                    ),
                )
            command = str(tool_input.get("command", ""))
            if ("pip" in command or "npm" in command) and re.search(r"registry|index", error, re.I):
                return ClassifiedError(
                    ErrorCategory.RETRIABLE,
                    error,
                    suggestion="Package index error, retry or use a different index",
                )
        elif tool_name == "edit_file" and _NO_MATCH.search(error):
            return ClassifiedError(
                ErrorCategory.FIXABLE,
                error,
                alternative_strategies=(
                    "Check exact text including whitespace",
                    "Read the file before editing",
                ),
            )
        elif tool_name == self.retrieval_tool_name and _NO_RESULTS.search(error):
            return ClassifiedError(
                ErrorCategory.FIXABLE,
                error,
                alternative_strategies=(
                    "Try different search terms",
                    "Use a broader query",
                ),
            )
        return None
