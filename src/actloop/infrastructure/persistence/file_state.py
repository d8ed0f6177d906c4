"""
File-Based State Manager

JSON-file implementation of ``StateManagerProtocol`` for local use and the
CLI. One file per session under ``{work_dir}/states/{session_id}.json``:

- async file I/O using aiofiles
- a ``_version`` counter and ``_updated_at`` stamp on every save
- atomic writes (write to a temp file, then replace)
- asyncio locks per session id for concurrent writers
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from actloop.core.domain.errors import ValidationError
from actloop.core.utils.time import utc_now

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class FileStateManager:
    """
    File-based session persistence.

    Each state file contains:
    - session_id: Unique identifier
    - timestamp: Last save time
    - state_data: The serialized session (with _version and _updated_at)

    Example:
        >>> manager = FileStateManager(work_dir=".actloop")
        >>> await manager.save_state("session_1", state.to_dict())
        >>> loaded = await manager.load_state("session_1")
        >>> loaded["_version"]
        1
    """

    def __init__(
        self,
        work_dir: str | Path = ".actloop",
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.states_dir = self.work_dir / "states"
        self.states_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._time_provider = time_provider or utc_now
        self.logger = structlog.get_logger(__name__).bind(component="file_state")

    def _state_file(self, session_id: str) -> Path:
        if not _SESSION_ID_PATTERN.match(session_id):
            raise ValidationError(
                f"Invalid session id: {session_id!r}",
                details={"session_id": session_id},
            )
        return self.states_dir / f"{session_id}.json"

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def _build_payload(self, session_id: str, state_data: dict[str, Any]) -> dict[str, Any]:
        now = self._time_provider().isoformat()
        state_copy = dict(state_data)
        state_copy["_version"] = int(state_copy.get("_version", 0)) + 1
        state_copy["_updated_at"] = now
        return {"session_id": session_id, "timestamp": now, "state_data": state_copy}

    async def save_state(self, session_id: str, state_data: dict[str, Any]) -> bool:
        """
        Save session state atomically, bumping its version.

        Returns:
            True if state was saved, False on serialization or I/O errors.
        """
        state_file = self._state_file(session_id)
        temp_file = state_file.with_suffix(".json.tmp")

        async with self._get_lock(session_id):
            try:
                payload = self._build_payload(session_id, state_data)
                payload_json = json.dumps(payload, indent=2, ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                self.logger.error(
                    "state_save_serialization_failed", session_id=session_id, error=str(exc)
                )
                return False

            try:
                async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                    await f.write(payload_json)
                os.replace(temp_file, state_file)
            except OSError as exc:
                self.logger.error("state_save_failed", session_id=session_id, error=str(exc))
                return False

        state_data["_version"] = payload["state_data"]["_version"]
        state_data["_updated_at"] = payload["state_data"]["_updated_at"]
        self.logger.info(
            "state_saved", session_id=session_id, version=payload["state_data"]["_version"]
        )
        return True

    async def load_state(self, session_id: str) -> dict[str, Any] | None:
        """
        Load session state.

        Returns:
            The stored state data, or None if the session doesn't exist or
            the file cannot be read.
        """
        state_file = self._state_file(session_id)
        if not state_file.exists():
            return None

        try:
            async with aiofiles.open(state_file, encoding="utf-8") as f:
                content = await f.read()
            payload = json.loads(content)
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.error("state_load_failed", session_id=session_id, error=str(exc))
            return None

        self.logger.debug("state_loaded", session_id=session_id)
        return payload.get("state_data") or None

    async def delete_state(self, session_id: str) -> None:
        """Delete session state. Idempotent."""
        state_file = self._state_file(session_id)
        try:
            state_file.unlink(missing_ok=True)
        except OSError as exc:
            self.logger.error("state_delete_failed", session_id=session_id, error=str(exc))
            return
        self._locks.pop(session_id, None)
        self.logger.info("state_deleted", session_id=session_id)

    async def list_sessions(self) -> list[str]:
        """Return all stored session ids, sorted alphabetically."""
        try:
            return sorted(path.stem for path in self.states_dir.glob("*.json"))
        except OSError as exc:
            self.logger.error("list_sessions_failed", error=str(exc))
            return []
