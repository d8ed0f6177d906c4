"""
State Management Protocol

This module defines the protocol interface for session persistence.
The engine itself never persists; collaborators use a state manager to
suspend a conversation (for example while it waits for the user) and resume
it after a process restart.

State data is the dictionary produced by ``SessionState.to_dict()``:
- session_id, status
- history (serialized events)
- metrics, retry_contexts, clarification_history, metadata
- _version / _updated_at, added by the state manager
"""

from typing import Any, Protocol


class StateManagerProtocol(Protocol):
    """
    Protocol defining the contract for state persistence.

    Thread Safety:
        Implementations must handle concurrent access to the same session_id
        safely, typically using locks.

    Error Handling:
        - save_state: Returns False on failure, logs error internally
        - load_state: Returns None if the session does not exist or on error
        - delete_state: Should not raise if the session doesn't exist
        - list_sessions: Returns empty list on error
    """

    async def save_state(self, session_id: str, state_data: dict[str, Any]) -> bool:
        """
        Save session state with versioning.

        Args:
            session_id: Unique identifier for the session
            state_data: Serialized session. Will be modified to include
                       _version and _updated_at fields.

        Returns:
            True if state was saved successfully, False otherwise
        """
        ...

    async def load_state(self, session_id: str) -> dict[str, Any] | None:
        """
        Load session state by ID.

        Returns:
            The serialized session, or None if it doesn't exist or on error
        """
        ...

    async def delete_state(self, session_id: str) -> None:
        """Delete session state (idempotent)."""
        ...

    async def list_sessions(self) -> list[str]:
        """Return all stored session IDs, sorted alphabetically."""
        ...
