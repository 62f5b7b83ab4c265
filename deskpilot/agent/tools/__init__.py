"""工具系统：基类、注册表和内置工具集合。"""

from pathlib import Path

from deskpilot.agent.tools.base import Tool, ToolCall, ToolResult
from deskpilot.agent.tools.clipboard import CopyToClipboardTool, ReadClipboardTool
from deskpilot.agent.tools.filesystem import filesystem_tools
from deskpilot.agent.tools.memory import memory_tools
from deskpilot.agent.tools.network import network_tools
from deskpilot.agent.tools.process import process_tools
from deskpilot.agent.tools.registry import ToolRegistry
from deskpilot.agent.tools.shell import ShellTool
from deskpilot.memory.context import ContextManager


def default_tool_registry(
    context: ContextManager,
    workspace: Path | None = None,
    exec_timeout: int = 60,
    restrict_to_workspace: bool = False,
) -> ToolRegistry:
    """
    注册全部内置工具。

    restrict_to_workspace 为 True 时，文件工具和 Shell 工具都被限制在 workspace 内。
    """
    allowed_dir = workspace if restrict_to_workspace else None
    registry = ToolRegistry()
    for tool in filesystem_tools(allowed_dir):
        registry.register(tool)
    registry.register(ShellTool(
        timeout=exec_timeout,
        working_dir=str(workspace) if restrict_to_workspace and workspace else None,
        restrict_to_workspace=restrict_to_workspace,
    ))
    for tool in process_tools():
        registry.register(tool)
    registry.register(ReadClipboardTool())
    registry.register(CopyToClipboardTool())
    for tool in network_tools():
        registry.register(tool)
    for tool in memory_tools(context):
        registry.register(tool)
    return registry


__all__ = [
    "ShellTool",
    "Tool",
    "ToolCall",
    "ToolRegistry",
    "ToolResult",
    "default_tool_registry",
]
