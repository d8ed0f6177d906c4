"""
Logging Protocol Interface for Core Domain.

Lets the controller and tool registry accept an injected logger without
depending on a concrete logging library. ``structlog`` bound loggers satisfy
it structurally and are the default everywhere.
"""

from typing import Any, Protocol


class LoggerProtocol(Protocol):
    """Structured, event-name-first logger."""

    def info(self, event: str, **kwargs: Any) -> None:
        ...

    def warning(self, event: str, **kwargs: Any) -> None:
        ...

    def error(self, event: str, **kwargs: Any) -> None:
        ...

    def debug(self, event: str, **kwargs: Any) -> None:
        ...
