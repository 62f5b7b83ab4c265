"""
分层记忆模块 —— deskpilot 的"长期记忆"。

- MemoryStore: 冷存储（SQLite），会话 / 消息 / 笔记
- ContextManager: 热窗口 + 温检索 + 回合提交
- Retriever: 可插拔的历史检索接口
"""

from deskpilot.memory.context import ContextManager
from deskpilot.memory.models import Message, Note, Session
from deskpilot.memory.retrieval import EmbeddingRetriever, Retriever, ScoredMessage, SubstringRetriever
from deskpilot.memory.store import MemoryStore

__all__ = [
    "ContextManager",
    "EmbeddingRetriever",
    "MemoryStore",
    "Message",
    "Note",
    "Retriever",
    "ScoredMessage",
    "Session",
    "SubstringRetriever",
]
