"""
剪贴板工具模块 (agent/tools/clipboard.py)

基于 pyperclip 读写系统剪贴板。Linux 上需要 xclip / xsel / wl-clipboard 之一，
缺失时 pyperclip 抛出 PyperclipException，这里转换为 ToolExecutionFailed。
"""

import asyncio
from typing import Any

import pyperclip

from deskpilot.agent.tools.base import Tool
from deskpilot.errors import ToolExecutionFailed


class ReadClipboardTool(Tool):

    @property
    def name(self) -> str:
        return "read_clipboard"

    @property
    def description(self) -> str:
        return "Read the current text content of the clipboard."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        try:
            text = await asyncio.to_thread(pyperclip.paste)
        except pyperclip.PyperclipException as e:
            raise ToolExecutionFailed(f"clipboard unavailable: {e}")
        return text or "(clipboard is empty)"


class CopyToClipboardTool(Tool):

    @property
    def name(self) -> str:
        return "copy_to_clipboard"

    @property
    def description(self) -> str:
        return "Copy text to the clipboard."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Text to copy"},
            },
            "required": ["text"],
        }

    async def execute(self, text: str, **kwargs: Any) -> str:
        try:
            await asyncio.to_thread(pyperclip.copy, text)
        except pyperclip.PyperclipException as e:
            raise ToolExecutionFailed(f"clipboard unavailable: {e}")
        return f"Copied {len(text)} characters to clipboard"
