"""
记忆工具模块 (agent/tools/memory.py)

让模型通过工具指令读写持久记忆：
  - save_note:     保存一条笔记，可带标签
  - get_notes:     按标签（任一匹配）列出笔记
  - search_memory: 在历史消息中搜索

工具持有 ContextManager 引用，所有读写都经由同一个 MemoryStore 实例串行化。
"""

import re
from collections.abc import Sequence
from typing import Any

from deskpilot.agent.tools.base import Tool
from deskpilot.memory.context import ContextManager
from deskpilot.utils.helpers import preview


def _split_tags(tags: Any) -> list[str]:
    """标签既可以是列表，也可以是 "a, b c" 形式的字符串。"""
    if not tags:
        return []
    if isinstance(tags, str):
        return [t for t in re.split(r"[,\s]+", tags) if t]
    return [str(t).strip() for t in tags if str(t).strip()]


class _MemoryTool(Tool):

    def __init__(self, context: ContextManager):
        self._context = context


class SaveNoteTool(_MemoryTool):

    @property
    def name(self) -> str:
        return "save_note"

    @property
    def description(self) -> str:
        return "Save a note to long-term memory, optionally with comma-separated tags."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Note text"},
                "tags": {"type": "string", "description": "Comma-separated tags"},
            },
            "required": ["content"],
        }

    async def execute(self, content: str, tags: str | Sequence[str] = "", **kwargs: Any) -> str:
        tag_list = _split_tags(tags)
        note_id = await self._context.save_note(content, tag_list)
        suffix = f" [{', '.join(tag_list)}]" if tag_list else ""
        return f"Saved note {note_id}{suffix}"


class GetNotesTool(_MemoryTool):

    @property
    def name(self) -> str:
        return "get_notes"

    @property
    def description(self) -> str:
        return "List saved notes, optionally only those carrying any of the given tags."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "tags": {"type": "string", "description": "Comma-separated tags to filter by"},
                "limit": {"type": "integer", "description": "Maximum notes", "minimum": 1},
            },
        }

    async def execute(self, tags: str | Sequence[str] = "", limit: int = 20, **kwargs: Any) -> str:
        notes = await self._context.get_notes(_split_tags(tags) or None, limit=limit)
        if not notes:
            return "No notes found"
        lines = []
        for note in notes:
            label = f" [{', '.join(note.tags)}]" if note.tags else ""
            lines.append(f"- {note.content}{label} ({note.created_at[:10]})")
        return "\n".join(lines)


class SearchMemoryTool(_MemoryTool):

    @property
    def name(self) -> str:
        return "search_memory"

    @property
    def description(self) -> str:
        return "Search earlier conversation messages for the given text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Text to search for"},
                "limit": {"type": "integer", "description": "Maximum results", "minimum": 1},
            },
            "required": ["query"],
        }

    async def execute(self, query: str, limit: int = 10, **kwargs: Any) -> str:
        messages = await self._context.search(query, limit=limit)
        if not messages:
            return f"Nothing found for '{query}'"
        return "\n".join(
            f"[{m.created_at[:16] if m.created_at else '?'}] {m.role}: {preview(m.content, 200)}"
            for m in messages
        )


def memory_tools(context: ContextManager) -> list[Tool]:
    return [SaveNoteTool(context), GetNotesTool(context), SearchMemoryTool(context)]
