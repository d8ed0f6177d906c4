"""Tools command - List and describe the profile's tools."""

import typer
from rich.table import Table

from actloop.api.cli.common import build_factory, global_options
from actloop.api.cli.output_formatter import ActloopConsole
from actloop.core.domain.errors import ConfigError

app = typer.Typer(help="Tool management")


def _registry(ctx: typer.Context, console: ActloopConsole):
    factory = build_factory(ctx, console)
    try:
        return factory.create_registry()
    except ConfigError as exc:
        console.print_error(exc.message)
        raise typer.Exit(1) from exc


@app.command("list")
def list_tools(ctx: typer.Context):
    """List the tools available to the profile."""
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    registry = _registry(ctx, console)

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")
    for tool in registry:
        table.add_row(tool.name, tool.description)
    console.console.print(table)


@app.command("describe")
def describe_tool(
    ctx: typer.Context,
    tool_name: str = typer.Argument(..., help="Tool name to describe"),
):
    """Show a tool's description and input schema."""
    console = ActloopConsole(debug=global_options(ctx).get("debug", False))
    registry = _registry(ctx, console)

    tool = registry.get(tool_name)
    if tool is None:
        console.print_error(f"Tool '{tool_name}' not found")
        raise typer.Exit(1)

    console.console.print(f"\n[bold cyan]{tool.name}[/bold cyan]")
    console.console.print(f"{tool.description}\n")
    console.console.print_json(data=tool.describe()["input_schema"])
