"""actloop CLI entry point."""

from typing import Optional

import typer
from rich.console import Console

from actloop.api.cli.commands import run, sessions, tools

app = typer.Typer(
    name="actloop",
    help="actloop - agent execution engine",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.command("run")(run.run_script)
app.command("answer")(run.answer)
app.add_typer(sessions.app, name="sessions", help="Session management")
app.add_typer(tools.app, name="tools", help="Tool management")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    debug: bool = typer.Option(
        False, "--debug", "-d", help="Enable debug logging and full tool payloads"
    ),
    config_dir: Optional[str] = typer.Option(
        None, "--config-dir", help="Directory with profile YAML files"
    ),
):
    """actloop agent CLI."""
    ctx.obj = {"profile": profile, "debug": debug, "config_dir": config_dir}


@app.command()
def version():
    """Show actloop version."""
    from actloop import __version__

    console.print(f"[bold blue]actloop[/bold blue] [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
