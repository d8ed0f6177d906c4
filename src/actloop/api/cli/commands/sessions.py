"""Sessions command - Inspect and delete stored sessions."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.table import Table

from actloop.api.cli.common import build_factory, global_options
from actloop.api.cli.output_formatter import ActloopConsole
from actloop.application.session_service import SessionService
from actloop.core.domain.errors import NotFoundError
from actloop.core.domain.events import describe_event

app = typer.Typer(help="Session management")


def _service(ctx: typer.Context, console: ActloopConsole) -> SessionService:
    return SessionService(build_factory(ctx, console))


@app.command("list")
def list_sessions(ctx: typer.Context) -> None:
    """List stored sessions."""
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    service = _service(ctx, console)

    async def _list() -> list[dict]:
        summaries = []
        for session_id in await service.list_sessions():
            try:
                summaries.append(await service.get_summary(session_id))
            except NotFoundError:
                continue
        return summaries

    summaries = asyncio.run(_list())
    table = Table(title="Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("Iterations", justify="right")
    table.add_column("Task", style="white")
    for summary in summaries:
        table.add_row(
            summary["session_id"],
            summary["status"],
            str(summary["iterations"]),
            summary.get("current_task") or "",
        )
    console.console.print(table)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    events: Optional[int] = typer.Option(
        None, "--events", "-n", min=0, help="Recent events to show (default: profile window)"
    ),
) -> None:
    """Show a session summary and its most recent events."""
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    factory = build_factory(ctx, console)
    service = SessionService(factory)

    try:
        state = asyncio.run(service.get_state(session_id))
    except NotFoundError as exc:
        console.print_error(f"Session '{session_id}' not found")
        raise typer.Exit(1) from exc

    console.print_summary(state.to_summary())
    window = factory.config.engine.history_window if events is None else events
    recent = [event for event in state.get_recent_history(window) if event.is_visible]
    if recent:
        table = Table(title="Recent events")
        table.add_column("Time", style="dim")
        table.add_column("Event", style="white")
        for event in recent:
            table.add_row(event.timestamp.strftime("%H:%M:%S"), describe_event(event))
        console.console.print(table)

    context = state.get_clarification_context()
    if context:
        console.console.print(context)


@app.command("delete")
def delete_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a stored session."""
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    service = _service(ctx, console)

    if not yes:
        typer.confirm(f"Delete session {session_id}?", abort=True)
    asyncio.run(service.delete_session(session_id))
    console.print_system_message(f"Deleted session {session_id}", "success")
