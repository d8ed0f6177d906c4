"""Helpers shared by CLI commands: global options, logging, factory setup."""

from __future__ import annotations

import logging
from typing import Any

import structlog
import typer

from actloop.api.cli.output_formatter import ActloopConsole
from actloop.application.factory import EngineFactory
from actloop.core.domain.config_schema import ConfigValidationError


def global_options(ctx: typer.Context) -> dict[str, Any]:
    return ctx.obj or {}


def configure_logging(level_name: str) -> None:
    """Route structlog and stdlib logging at ``level_name``."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def build_factory(
    ctx: typer.Context,
    console: ActloopConsole,
    overrides: dict[str, Any] | None = None,
) -> EngineFactory:
    """Create the engine factory for the global ``--profile``.

    Configures logging from ``--debug`` or the profile's logging level.
    Exits with code 1 when the profile is missing or invalid.
    """
    opts = global_options(ctx)
    profile = opts.get("profile", "dev")
    try:
        factory = EngineFactory(profile, opts.get("config_dir"), overrides=overrides)
    except FileNotFoundError as exc:
        console.print_error(f"Profile not found: {profile}")
        raise typer.Exit(1) from exc
    except ConfigValidationError as exc:
        console.print_error(f"Invalid profile {profile}: {exc}")
        raise typer.Exit(1) from exc

    configure_logging("DEBUG" if opts.get("debug") else factory.config.logging.level)
    return factory
