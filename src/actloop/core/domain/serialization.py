"""
Serialization Utilities
========================

Helpers shared by the ``to_dict`` / ``from_dict`` pairs of the event model
and session state. Everything serializes to JSON-compatible primitives so
the persistence layer can write sessions with the standard ``json`` module.

Usage:
    from actloop.core.domain.serialization import parse_timestamp, to_dict_optional

    result = {"id": record.id}
    to_dict_optional(result, "assumptions", record.assumptions)
"""

from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

E = TypeVar("E", bound=Enum)


def format_timestamp(value: datetime | None) -> str | None:
    """Render a datetime as ISO 8601, passing ``None`` through."""
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """
    Parse a timestamp from string or datetime.

    Args:
        value: ISO format string, datetime object, or None

    Returns:
        datetime object or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def to_dict_optional(
    result: dict[str, Any],
    key: str,
    value: Any,
    default: Any = None,
    *,
    skip_empty: bool = True,
) -> None:
    """
    Add a key to result dict only if value differs from default.

    Args:
        result: Dictionary to add the key to (modified in place)
        key: Key name to add
        value: Value to add
        default: Default value to compare against (skip if equal)
        skip_empty: If True, also skip empty strings, lists, and dicts
    """
    if value == default:
        return

    if skip_empty and value in ("", [], {}):
        return

    if isinstance(value, datetime):
        result[key] = value.isoformat()
    elif isinstance(value, Enum):
        result[key] = value.value
    elif hasattr(value, "to_dict"):
        result[key] = value.to_dict()
    else:
        result[key] = value


def parse_enum(value: str | Enum | None, enum_class: type[E], default: E) -> E:
    """
    Parse an enum value from string or enum.

    Args:
        value: String value, enum instance, or None
        enum_class: The Enum class to parse into
        default: Default value if None

    Returns:
        Enum instance
    """
    if value is None:
        return default
    if isinstance(value, enum_class):
        return value
    return enum_class(value)
