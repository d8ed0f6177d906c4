"""
Shell Tool

Runs a shell command with a dangerous-command block list and a timeout.
A non-zero exit code is a failed outcome; the process output is kept in the
outcome metadata so the decision policy can inspect it.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from actloop.core.domain.enums import ParamType
from actloop.core.domain.errors import ToolError
from actloop.core.domain.tool_models import ParamSpec, ToolOutcome
from actloop.infrastructure.tools.base_tool import BaseTool

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30

DANGEROUS_PATTERNS = (
    "rm -rf /",
    "rm -rf /*",
    "dd if=/dev/zero",
    "dd if=/dev/random",
    "format c:",
    "del /f /s /q",
    ":(){ :|:& };:",  # fork bomb
    "> /dev/sda",
    "mkfs.",
)


class ShellTool(BaseTool):
    """Execute shell commands with safety limits and timeout."""

    tool_name = "shell"
    tool_description = "Execute shell commands with timeout and safety limits"
    tool_parameters = (
        ParamSpec("command", ParamType.STRING, "Shell command to execute", required=True),
        ParamSpec(
            "timeout",
            ParamType.NUMBER,
            f"Command timeout in seconds (default: {DEFAULT_TIMEOUT})",
            default=DEFAULT_TIMEOUT,
        ),
        ParamSpec("cwd", ParamType.STRING, "Working directory for the command (optional)"),
    )

    async def _execute(
        self,
        command: str,
        timeout: float = DEFAULT_TIMEOUT,
        cwd: str | None = None,
        **kwargs: Any,
    ) -> ToolOutcome:
        if is_dangerous(command):
            raise ToolError(
                "Command blocked for safety reasons",
                tool_name=self.name,
                details={"command": command},
            )
        if timeout <= 0:
            raise ToolError("timeout must be positive", tool_name=self.name)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as error:
            raise ToolError(str(error), tool_name=self.name) from error

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("shell_timeout", command=command, timeout=timeout)
            return ToolOutcome.fail(f"Command timed out after {timeout}s", command=command)
        except asyncio.CancelledError:
            process.kill()
            raise

        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""
        result = {
            "stdout": stdout_text,
            "stderr": stderr_text,
            "returncode": process.returncode,
            "command": command,
        }
        if process.returncode != 0:
            return ToolOutcome.fail(
                stderr_text or f"Command failed with code {process.returncode}",
                **result,
            )
        return self.success(result)


def is_dangerous(command: str) -> bool:
    lowered = command.lower()
    return any(pattern in lowered for pattern in DANGEROUS_PATTERNS)
