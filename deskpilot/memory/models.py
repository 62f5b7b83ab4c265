"""
记忆数据模型模块 (memory/models.py)

本模块定义两层数据结构：

1. ORM 表模型（SQLAlchemy 声明式）—— 冷存储的三张表
   - sessions: id, created_at, updated_at, summary, metadata
   - messages: id, session_id, role, content, handler, token_count, created_at, metadata
   - notes:    id, content, tags, created_at
   所有时间戳都是 UTC ISO-8601 文本（见 utils.helpers.to_iso），便于跨平台迁移。

2. 领域对象（dataclass）—— 进程内流转的 Message / Session / Note
   存储层只返回领域对象，上层代码不接触 ORM 实例。

【Java 开发者类比】
    ORM 模型类似 JPA 的 @Entity，dataclass 类似 DTO。
    Base.metadata.create_all 相当于 hibernate.hbm2ddl.auto=update 的建表逻辑。
"""

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import JSON, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase

# 消息角色
SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"
ROLES = (SYSTEM, USER, ASSISTANT, TOOL)


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True)
    created_at = Column(String(40), nullable=False, index=True)
    updated_at = Column(String(40), nullable=False, index=True)
    summary = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class MessageRecord(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    handler = Column(String(64), nullable=True)
    token_count = Column(Integer, nullable=True)
    created_at = Column(String(40), nullable=False, index=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class NoteRecord(Base):
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True)
    content = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(String(40), nullable=False, index=True)


@dataclass
class Message:
    """
    会话中的一条消息。

    新建时只需要 role 和 content；id / session_id / created_at 由存储层在持久化时填充，
    持久化之后的 Message 视为不可变。
    """
    role: str
    content: str
    handler: str | None = None
    token_count: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    session_id: str | None = None
    created_at: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, handler: str | None = None) -> "Message":
        return cls(role=USER, content=content, handler=handler)

    @classmethod
    def assistant(cls, content: str, handler: str | None = None, **kwargs: Any) -> "Message":
        return cls(role=ASSISTANT, content=content, handler=handler, **kwargs)

    @classmethod
    def tool(cls, content: str) -> "Message":
        return cls(role=TOOL, content=content)

    @property
    def persisted(self) -> bool:
        return self.id is not None

    def to_llm(self) -> dict[str, str]:
        """转换为推理接口需要的 {"role", "content"} 格式。"""
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    """一段逻辑对话。updated_at 单调不减。"""
    id: str
    created_at: str
    updated_at: str
    summary: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Note:
    """独立于会话的持久笔记，按标签过滤。"""
    id: str
    content: str
    tags: list[str]
    created_at: str
