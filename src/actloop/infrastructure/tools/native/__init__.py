"""
Native Tools Package

Tools shipped with the engine. They implement ToolProtocol through BaseTool.
"""

from actloop.infrastructure.tools.native.clarify_tool import ClarifyRequirementsTool
from actloop.infrastructure.tools.native.finish_tool import FinishTool
from actloop.infrastructure.tools.native.shell_tool import ShellTool

__all__ = ["ClarifyRequirementsTool", "FinishTool", "ShellTool"]
