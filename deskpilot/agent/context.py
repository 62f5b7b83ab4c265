"""
上下文构建器模块 —— 负责组装每次推理调用的消息列表。

一次回合中的推理输入由以下部分按顺序拼成：
  1. 系统提示词：核心身份 + 处理器专用提示 + 可用工具说明
  2. 记忆上下文：温检索合成的 system 消息（如果有）+ 热窗口中的最近消息
  3. 当前用户消息

有工具被执行时，追问（follow-up）调用在上面的基础上追加：
  4. 模型的第一次回复（assistant）
  5. 合成的 "Tool results" 消息（user）

角色展平：
    不是所有推理协议都有原生的 tool 角色，所以提交前由 flatten_roles()
    把 tool 角色的消息改写为带 "[tool] " 前缀的 user 消息。

【Java 类比】类似于一个 PromptTemplateService，把模板 + 变量渲染成最终的请求体。
"""

import platform
import time
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from deskpilot import __logo__
from deskpilot.agent.handlers.base import Handler
from deskpilot.agent.tools.base import ToolCall, ToolResult
from deskpilot.agent.tools.registry import ToolRegistry
from deskpilot.memory.models import ASSISTANT, SYSTEM, TOOL, USER, Message

TOOL_DIRECTIVE_USAGE = (
    "To use a tool, include it in your response like: [TOOL: tool_name(arg1=value1, arg2=value2)]"
)
TOOL_RESULTS_HEADER = "Tool results:"


def flatten_roles(messages: Sequence[Message]) -> list[dict[str, str]]:
    """
    转换为推理接口的 {"role", "content"} 列表，tool 角色改写为 user。

    参数:
        messages: 上下文消息（可能包含 tool 角色）

    返回:
        只包含 system / user / assistant 角色的消息列表
    """
    flattened = []
    for message in messages:
        if message.role == TOOL:
            flattened.append({"role": USER, "content": f"[tool] {message.content}"})
        else:
            flattened.append(message.to_llm())
    return flattened


def render_tool_results(results: Sequence[tuple[ToolCall, ToolResult]]) -> str:
    """
    把工具结果渲染为纯文本，每个工具一段：

        [list_dir(path=/tmp)]
        📄 a.txt
    """
    return "\n\n".join(f"[{call.render()}]\n{result.render()}" for call, result in results)


class ContextBuilder:
    """
    上下文构建器。

    属性：
        tools: 工具注册表，用来生成工具说明
        workspace: 工作区路径（写进系统提示词，可选）
    """

    def __init__(self, tools: ToolRegistry, workspace: Path | None = None):
        self.tools = tools
        self.workspace = workspace

    def build_system_prompt(self, handler: Handler) -> str:
        """核心身份 + 处理器提示 + 工具说明，用 "---" 分隔。"""
        parts = [self._get_identity(), f"# Handler: {handler.name}\n\n{handler.system_prompt}"]
        tools_section = self.describe_tools(handler)
        if tools_section:
            parts.append(tools_section)
        return "\n\n---\n\n".join(parts)

    def _get_identity(self) -> str:
        now = datetime.now().strftime("%Y-%m-%d %H:%M (%A)")
        tz = time.strftime("%Z") or "UTC"
        system = platform.system()
        runtime = f"{'macOS' if system == 'Darwin' else system} {platform.machine()}, Python {platform.python_version()}"
        lines = [
            f"# deskpilot {__logo__}",
            "",
            "You are deskpilot, a helpful AI assistant for PC automation. You can read and organize files, "
            "run shell commands, inspect processes and the network, use the clipboard, and keep notes "
            "across conversations.",
            "",
            "## Current Time",
            f"{now} ({tz})",
            "",
            "## Runtime",
            runtime,
        ]
        if self.workspace is not None:
            lines += ["", "## Workspace", f"Your workspace is at: {self.workspace.expanduser().resolve()}"]
        lines += [
            "",
            "Reply directly with text for normal conversation. Only request a tool when you need its result.",
            "Always be helpful, accurate, and concise.",
        ]
        return "\n".join(lines)

    def describe_tools(self, handler: Handler) -> str:
        """生成处理器可用工具的说明，没有可用工具时返回空字符串。"""
        usage = self.tools.describe(handler.tools)
        if not usage:
            return ""
        return "# Tools\n\nYou have access to the following tools:\n" + "\n".join(usage) + "\n\n" + TOOL_DIRECTIVE_USAGE

    def build_messages(
        self,
        handler: Handler,
        history: Sequence[Message],
        current_message: str,
    ) -> list[dict[str, Any]]:
        """
        构建第一次推理调用的消息列表。

        参数：
            handler: 本回合的处理器
            history: 记忆上下文（温检索 system 消息 + 热窗口）
            current_message: 本回合的用户输入
        """
        messages: list[dict[str, Any]] = [{"role": SYSTEM, "content": self.build_system_prompt(handler)}]
        messages.extend(flatten_roles(history))
        messages.append({"role": USER, "content": current_message})
        return messages

    def build_followup(
        self,
        messages: Sequence[dict[str, Any]],
        reply: str,
        results: Sequence[tuple[ToolCall, ToolResult]],
    ) -> list[dict[str, Any]]:
        """在第一次调用的消息后追加模型回复和工具结果，用于追问调用。"""
        followup = list(messages)
        followup.append({"role": ASSISTANT, "content": reply})
        followup.append({
            "role": USER,
            "content": (
                f"{TOOL_RESULTS_HEADER}\n\n{render_tool_results(results)}\n\n"
                "Using these results, give the final answer to the original request. "
                "Do not request more tools."
            ),
        })
        return followup
