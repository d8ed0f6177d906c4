"""Session persistence implementations."""

from actloop.infrastructure.persistence.file_state import FileStateManager

__all__ = ["FileStateManager"]
