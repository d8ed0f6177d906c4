"""Run commands - drive a session with a scripted decision policy."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional
from uuid import uuid4

import typer

from actloop.api.cli.common import build_factory, global_options
from actloop.api.cli.output_formatter import ActloopConsole
from actloop.application.session_service import SessionService
from actloop.core.domain.enums import AgentMode, SessionStatus
from actloop.core.domain.errors import ActloopError
from actloop.core.domain.models import RunResult
from actloop.infrastructure.policy.scripted_policy import ScriptedPolicy

# Exit codes by final status; anything else exits 0.
_EXIT_CODES = {SessionStatus.ERROR: 1, SessionStatus.TRUNCATED: 2}


def _load_policy(script: Path, console: ActloopConsole) -> ScriptedPolicy:
    try:
        return ScriptedPolicy.from_file(script)
    except ActloopError as exc:
        console.print_error(exc.message)
        raise typer.Exit(1) from exc


def _finish(result: RunResult, console: ActloopConsole, output_format: str) -> None:
    if output_format == "json":
        typer.echo(json.dumps(result.to_dict(), ensure_ascii=False, default=str))
    else:
        console.print_result(result)
    code = _EXIT_CODES.get(result.status, 0)
    if code:
        raise typer.Exit(code)


def _check_format(output_format: str) -> None:
    if output_format not in ("text", "json"):
        raise typer.BadParameter(
            f"Invalid output format: {output_format}. Must be 'text' or 'json'"
        )


def run_script(
    ctx: typer.Context,
    script: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="YAML or JSON file with scripted actions"
    ),
    session_id: Optional[str] = typer.Option(
        None, "--session-id", "-s", help="Session to create or continue"
    ),
    message: Optional[str] = typer.Option(
        None, "--message", "-m", help="User message appended before the first iteration"
    ),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", min=1, help="Override the profile's iteration cap"
    ),
    mode: Optional[AgentMode] = typer.Option(None, "--mode", help="Override the agent mode"),
    output_format: str = typer.Option(
        "text", "--output-format", "-f", help="Output format: 'text' or 'json'"
    ),
) -> None:
    """Run a session with a scripted decision policy.

    Examples:
        actloop run script.yaml --message "status?"

        actloop --profile plan run script.yaml --session-id demo
    """
    _check_format(output_format)
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    factory = build_factory(
        ctx,
        console,
        overrides={"max_iterations": max_iterations, "mode": mode.value if mode else None},
    )
    policy = _load_policy(script, console)
    session_id = session_id or f"session-{uuid4().hex[:8]}"
    service = SessionService(factory, policy)

    observer = console.print_step if output_format == "text" else None
    if observer is not None:
        console.print_system_message(f"Session: {session_id}")
        if message:
            console.print_system_message(f"User: {message}", "user")
        console.print_divider()

    try:
        result = asyncio.run(service.run_turn(session_id, message, observer=observer))
    except ActloopError as exc:
        console.print_error(exc.message)
        raise typer.Exit(1) from exc

    _finish(result, console, output_format)


def answer(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session waiting for answers"),
    responses: list[str] = typer.Argument(..., help="Answers, in question order"),
    script: Path = typer.Option(
        ..., "--script", exists=True, dir_okay=False, help="Script the session was started with"
    ),
    output_format: str = typer.Option(
        "text", "--output-format", "-f", help="Output format: 'text' or 'json'"
    ),
) -> None:
    """Answer a pending clarification and resume the session."""
    _check_format(output_format)
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    factory = build_factory(ctx, console)
    policy = _load_policy(script, console)
    service = SessionService(factory, policy)

    observer = console.print_step if output_format == "text" else None
    try:
        result = asyncio.run(
            service.answer_clarification(session_id, responses, observer=observer)
        )
    except ActloopError as exc:
        console.print_error(exc.message)
        raise typer.Exit(1) from exc

    _finish(result, console, output_format)
