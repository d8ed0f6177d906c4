"""Rich output formatting for the actloop CLI.

Renders controller step records, run results and session summaries with a
shared theme.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from actloop.core.domain.enums import MessageSource, SessionStatus
from actloop.core.domain.events import (
    ErrorObservation,
    FinishAction,
    MessageAction,
    SuccessObservation,
    ToolCallAction,
    ToolResultObservation,
    describe_event,
)
from actloop.core.domain.models import RunResult, StepRecord

ACTLOOP_THEME = Theme(
    {
        "agent": "bold cyan",
        "user": "bold green",
        "system": "bold blue",
        "error": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "debug": "dim white",
        "info": "white",
        "action": "bold yellow",
        "observation": "cyan",
    }
)

_STATUS_STYLES = {
    SessionStatus.FINISHED: "success",
    SessionStatus.WAITING_USER: "warning",
    SessionStatus.TRUNCATED: "warning",
    SessionStatus.ERROR: "error",
}

MAX_PAYLOAD_CHARS = 800


class ActloopConsole:
    """Console with actloop styling.

    Args:
        debug: Show full tool payloads instead of one-line summaries.
        console: Rich console to write to (a themed one is created if
            omitted).
    """

    def __init__(self, debug: bool = False, console: Optional[Console] = None) -> None:
        self.console = console or Console(theme=ACTLOOP_THEME)
        self.debug_mode = debug

    def print_system_message(self, message: str, style: str = "system") -> None:
        self.console.print(f"[{style}][i] {message}[/{style}]")

    def print_error(self, message: str) -> None:
        self.console.print(
            Panel(f"[X] {message}", title="[Error]", title_align="left", border_style="red")
        )

    def print_warning(self, message: str) -> None:
        self.console.print(f"[warning][!] {message}[/warning]")

    def print_divider(self) -> None:
        self.console.rule(style="dim")

    # ------------------------------------------------------------------
    # Step rendering
    # ------------------------------------------------------------------

    def print_step(self, record: StepRecord) -> None:
        """Observer callback: render one controller step."""
        if record.is_complete:
            reason = record.stop_reason.value if record.stop_reason else "unknown"
            self.console.print(f"[system]-- stopped: {reason} --[/system]")
            return
        if record.action is not None:
            self._print_action(record.iteration, record.action)
        if record.observation is not None:
            self._print_observation(record.observation)

    def _print_action(self, iteration: int, action: Any) -> None:
        prefix = f"[debug]#{iteration}[/debug]"
        match action:
            case MessageAction(content=content, source=MessageSource.AGENT):
                self.console.print(
                    Panel(content, title="[Agent]", title_align="left", border_style="cyan")
                )
            case ToolCallAction(tool_name=tool_name, input=tool_input):
                args = json.dumps(dict(tool_input), ensure_ascii=False, default=str)
                self.console.print(f"{prefix} [action]{tool_name}[/action] {args}")
            case FinishAction():
                self.console.print(f"{prefix} [action]{describe_event(action)}[/action]")
            case _:
                self.console.print(f"{prefix} {describe_event(action)}")

    def _print_observation(self, observation: Any) -> None:
        match observation:
            case ToolResultObservation(payload=payload, success=success):
                if observation.pause_requested and isinstance(payload, Mapping):
                    message = payload.get("message") or describe_event(observation)
                    self.console.print(
                        Panel(
                            str(message),
                            title="[Clarification]",
                            title_align="left",
                            border_style="yellow",
                        )
                    )
                    return
                style = "observation" if success else "error"
                self.console.print(f"  [{style}]{describe_event(observation)}[/{style}]")
                if self.debug_mode or not success:
                    self.console.print(f"  [debug]{_shorten(payload)}[/debug]")
            case ErrorObservation():
                self.console.print(f"  [error]{describe_event(observation)}[/error]")
            case SuccessObservation():
                if self.debug_mode:
                    self.console.print(f"  [debug]{describe_event(observation)}[/debug]")

    # ------------------------------------------------------------------
    # Results and sessions
    # ------------------------------------------------------------------

    def print_result(self, result: RunResult) -> None:
        style = _STATUS_STYLES.get(result.status, "info")
        lines = [
            f"[bold]Session:[/bold] {result.session_id}",
            f"[bold]Status:[/bold] [{style}]{result.status.value}[/{style}]",
            f"[bold]Stop reason:[/bold] {result.stop_reason.value}",
            f"[bold]Iterations:[/bold] {result.iterations}",
        ]
        if result.final_message:
            lines.append(f"[bold]Message:[/bold] {result.final_message}")
        if result.pending_clarification:
            lines.append(
                f"[warning]Waiting for answers to clarification "
                f"{result.pending_clarification}[/warning]"
            )
        if result.outputs:
            lines.append(f"[bold]Outputs:[/bold] {_shorten(result.outputs)}")
        self.console.print(Panel("\n".join(lines), title="[Result]", title_align="left"))

    def print_summary(self, summary: Mapping[str, Any]) -> None:
        table = Table(title=f"Session {summary.get('session_id')}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        for key, value in summary.items():
            table.add_row(key, "" if value is None else str(value))
        self.console.print(table)


def _shorten(value: Any, limit: int = MAX_PAYLOAD_CHARS) -> str:
    text = value if isinstance(value, str) else json.dumps(_plain(value), default=str)
    return text if len(text) <= limit else text[:limit] + "..."


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
