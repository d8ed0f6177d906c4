"""Application Layer - Engine Factory.

Wires controllers, tool registries and state managers from a validated
engine profile.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from actloop.application.profile_loader import DEFAULT_PROFILE, ProfileLoader
from actloop.core.domain.config_schema import EngineProfileSchema, validate_profile_config
from actloop.core.domain.controller import Controller
from actloop.core.domain.enums import AgentMode
from actloop.core.domain.state import SessionState
from actloop.core.domain.tool_registry import ToolRegistry
from actloop.core.interfaces.policy import DecisionPolicyProtocol
from actloop.infrastructure.persistence.file_state import FileStateManager
from actloop.infrastructure.tools.registry import build_registry


class EngineFactory:
    """Factory for controllers and their collaborators.

    Args:
        profile: Profile name (or YAML path) to load.
        config_dir: Directory holding profile files; defaults to the
            packaged ``configs`` directory.
        config: Already validated profile; skips loading ``profile``.
        overrides: ``engine`` settings applied on top of the profile (the
            CLI uses this for ``--max-iterations`` and ``--mode``).
    """

    def __init__(
        self,
        profile: str = DEFAULT_PROFILE,
        config_dir: str | Path | None = None,
        *,
        config: EngineProfileSchema | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        self.profile = profile
        self.logger = structlog.get_logger(__name__).bind(component="engine_factory")
        self.profile_loader = ProfileLoader(Path(config_dir) if config_dir else None)
        base = config or self.profile_loader.load_safe(profile)
        self._config = self._apply_overrides(base, overrides)

    @staticmethod
    def _apply_overrides(
        config: EngineProfileSchema, overrides: dict[str, Any] | None
    ) -> EngineProfileSchema:
        changes = {key: value for key, value in (overrides or {}).items() if value is not None}
        if not changes:
            return config
        data = config.model_dump(mode="json")
        data["engine"].update(changes)
        return validate_profile_config(data)

    @property
    def config(self) -> EngineProfileSchema:
        return self._config

    def create_state_manager(self) -> FileStateManager:
        return FileStateManager(work_dir=self._config.persistence.work_dir)

    def create_registry(self) -> ToolRegistry:
        """Instantiate the profile's tools (all built-ins when none listed)."""
        return build_registry(self._config.tools or None)

    def new_state(self, session_id: str) -> SessionState:
        return SessionState(
            session_id, retrieval_tool_name=self._config.engine.retrieval_tool_name
        )

    def create_controller(
        self,
        policy: DecisionPolicyProtocol,
        *,
        state: SessionState | None = None,
        session_id: str | None = None,
        registry: ToolRegistry | None = None,
    ) -> Controller:
        """Create a controller configured from the profile's engine section."""
        engine = self._config.engine
        if state is None and session_id is not None:
            state = self.new_state(session_id)
        controller = Controller(
            policy=policy,
            registry=registry if registry is not None else self.create_registry(),
            state=state,
            max_iterations=engine.max_iterations,
            max_consecutive_errors=engine.max_consecutive_errors,
            max_retry_attempts=engine.max_retry_attempts,
            mode=AgentMode(engine.mode),
        )
        self.logger.debug(
            "controller_created",
            session_id=controller.state.session_id,
            profile=self.profile,
            tools=controller.registry.names(),
            mode=controller.mode.value,
        )
        return controller
