"""
冷存储模块 (memory/store.py) —— 会话、消息、笔记的持久化记录。

本模块基于 SQLAlchemy 2.x 异步引擎 + aiosqlite 驱动，把对话写入本地 SQLite 文件。

核心约定：
1. 每个写操作都在单个事务中完成（session.begin()），要么全部生效，要么全部回滚
2. 所有写操作经过同一把 asyncio.Lock 串行化，一个进程只允许一个 MemoryStore 持有数据库文件
3. 任何存储层异常（SQLAlchemyError / OSError）都包装成 PersistenceFailure 抛给调用方，绝不吞掉
4. 时间戳由存储层统一签发：UTC ISO-8601 文本，严格递增，
   因此"按 created_at 排序"与"按插入顺序排序"一致；同值时再按 rowid 兜底

"当天会话"策略：
    get_or_create_current_session() 返回今天（UTC 日历日）最近创建的会话，没有则新建。
    这样随手重启程序也能沿用当天的上下文；需要严格会话边界的场景应显式调用 create_session()。
    时钟可注入（clock 参数），测试可以模拟"第二天"。

【Java 开发者类比】
    MemoryStore 类似一个 Spring Data Repository + @Transactional Service 的合体，
    async_sessionmaker 类似 EntityManagerFactory。
"""

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from deskpilot.errors import PersistenceFailure
from deskpilot.memory.models import (
    ROLES,
    Base,
    Message,
    MessageRecord,
    Note,
    NoteRecord,
    Session,
    SessionRecord,
)
from deskpilot.utils.helpers import to_iso, utc_now

# 同一 created_at 时按 SQLite 隐式 rowid（即插入顺序）排序
_MESSAGE_ROWID = literal_column("messages.rowid")


class MemoryStore:
    """
    持久化记忆存储。

    用法：
        store = MemoryStore("~/.deskpilot/memory.db")
        await store.init()
        sid = await store.get_or_create_current_session()
        await store.add_message(sid, "user", "hello")
        await store.close()

    或者作为异步上下文管理器：async with MemoryStore(path) as store: ...
    """

    def __init__(
        self,
        db_path: str | Path,
        clock: Callable[[], datetime] | None = None,
        echo: bool = False,
    ):
        """
        参数:
            db_path: SQLite 数据库文件路径（支持 ~）
            clock: 返回当前时间的可调用对象，默认 utc_now；测试中用来模拟跨天
            echo: 是否打印 SQL（调试用）
        """
        self.db_path = Path(db_path).expanduser()
        self.engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_path}", echo=echo)
        self._session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self._clock = clock or utc_now
        self._write_lock = asyncio.Lock()
        self._last_stamp = ""

    async def init(self) -> None:
        """创建数据库文件所在目录并建表（已存在的表不受影响）。"""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceFailure(f"could not initialise memory store at {self.db_path}: {e}") from e
        logger.debug(f"Memory store ready at {self.db_path}")

    async def close(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> "MemoryStore":
        await self.init()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # 事务与时间戳
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _write(self, action: str) -> AsyncIterator[AsyncSession]:
        """串行化的写事务：退出时提交，异常时回滚并包装为 PersistenceFailure。"""
        async with self._write_lock:
            try:
                async with self._session_factory() as session, session.begin():
                    yield session
            except PersistenceFailure:
                raise
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Memory store {action} failed: {e}")
                raise PersistenceFailure(f"{action} failed: {e}") from e

    @asynccontextmanager
    async def _read(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Memory store {action} failed: {e}")
            raise PersistenceFailure(f"{action} failed: {e}") from e

    def _stamp(self) -> str:
        """签发严格递增的时间戳（与上一个相同或更早时顺延 1 微秒）。只在写锁内调用。"""
        moment = self._clock()
        stamp = to_iso(moment)
        if stamp <= self._last_stamp:
            stamp = to_iso(datetime.fromisoformat(self._last_stamp) + timedelta(microseconds=1))
        self._last_stamp = stamp
        return stamp

    # ------------------------------------------------------------------
    # 会话
    # ------------------------------------------------------------------

    async def create_session(self, metadata: dict[str, Any] | None = None) -> str:
        """显式新建一个会话，返回会话 ID。"""
        async with self._write("create_session") as session:
            record = self._new_session_record(metadata)
            session.add(record)
        logger.info(f"Created session {record.id}")
        return record.id

    async def get_or_create_current_session(self) -> str:
        """返回今天最近创建的会话；今天还没有会话则新建一个。"""
        async with self._write("get_or_create_current_session") as session:
            today = to_iso(self._clock())[:10]
            result = await session.execute(
                select(SessionRecord.id)
                .where(SessionRecord.created_at.like(f"{today}%"))
                .order_by(SessionRecord.created_at.desc())
                .limit(1)
            )
            existing = result.scalar_one_or_none()
            if existing:
                return existing
            record = self._new_session_record(None)
            session.add(record)
        logger.info(f"Started daily session {record.id}")
        return record.id

    def _new_session_record(self, metadata: dict[str, Any] | None) -> SessionRecord:
        now = self._stamp()
        return SessionRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            metadata_=metadata or {},
        )

    async def get_session(self, session_id: str) -> Session | None:
        async with self._read("get_session") as session:
            record = await session.get(SessionRecord, session_id)
            return _to_session(record) if record else None

    async def get_sessions(self, limit: int = 20) -> list[Session]:
        """最近活跃的会话，按 updated_at 倒序。"""
        async with self._read("get_sessions") as session:
            result = await session.execute(
                select(SessionRecord).order_by(SessionRecord.updated_at.desc()).limit(limit)
            )
            return [_to_session(r) for r in result.scalars()]

    async def update_session_summary(self, session_id: str, summary: str) -> None:
        """更新会话的滚动摘要，同时推进 updated_at。"""
        async with self._write("update_session_summary") as session:
            record = await _require_session(session, session_id)
            record.summary = summary
            record.updated_at = max(record.updated_at, self._stamp())

    async def clear_session(self, session_id: str) -> None:
        """删除会话的全部消息，再删除会话本身。不可恢复。"""
        async with self._write("clear_session") as session:
            await session.execute(delete(MessageRecord).where(MessageRecord.session_id == session_id))
            await session.execute(delete(SessionRecord).where(SessionRecord.id == session_id))
        logger.info(f"Cleared session {session_id}")

    # ------------------------------------------------------------------
    # 消息
    # ------------------------------------------------------------------

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        handler: str | None = None,
        token_count: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """追加一条消息并推进所属会话的 updated_at（同一事务），返回消息 ID。"""
        message = Message(
            role=role,
            content=content,
            handler=handler,
            token_count=token_count,
            metadata=metadata or {},
        )
        [stored] = await self.add_messages(session_id, [message])
        return stored.id

    async def add_messages(self, session_id: str, messages: Sequence[Message]) -> list[Message]:
        """
        在一个事务中追加多条消息（一整个回合的用户消息 + 助手消息）。

        返回:
            填充了 id / session_id / created_at 的消息副本，顺序与入参一致

        异常:
            PersistenceFailure: 会话不存在或写入失败（此时一条都不会落盘）
        """
        for m in messages:
            if m.role not in ROLES:
                raise ValueError(f"invalid role: {m.role!r}")

        stored: list[Message] = []
        async with self._write("add_messages") as session:
            record = await _require_session(session, session_id)
            for m in messages:
                saved = replace(m, id=str(uuid.uuid4()), session_id=session_id, created_at=self._stamp())
                session.add(MessageRecord(
                    id=saved.id,
                    session_id=session_id,
                    role=saved.role,
                    content=saved.content,
                    handler=saved.handler,
                    token_count=saved.token_count,
                    created_at=saved.created_at,
                    metadata_=saved.metadata or {},
                ))
                stored.append(saved)
            if stored:
                record.updated_at = max(record.updated_at, stored[-1].created_at)
        return stored

    async def get_messages(self, session_id: str, limit: int = 100) -> list[Message]:
        """会话内的消息，最新的在前。"""
        async with self._read("get_messages") as session:
            result = await session.execute(
                select(MessageRecord)
                .where(MessageRecord.session_id == session_id)
                .order_by(MessageRecord.created_at.desc(), _MESSAGE_ROWID.desc())
                .limit(limit)
            )
            return [_to_message(r) for r in result.scalars()]

    async def get_recent_messages(self, limit: int = 200) -> list[Message]:
        """跨会话的最近消息，最新的在前（供向量检索做候选集）。"""
        async with self._read("get_recent_messages") as session:
            result = await session.execute(
                select(MessageRecord)
                .order_by(MessageRecord.created_at.desc(), _MESSAGE_ROWID.desc())
                .limit(limit)
            )
            return [_to_message(r) for r in result.scalars()]

    async def count_messages(self, session_id: str) -> int:
        async with self._read("count_messages") as session:
            result = await session.execute(
                select(func.count()).select_from(MessageRecord).where(MessageRecord.session_id == session_id)
            )
            return result.scalar_one()

    async def search_messages(self, query: str, limit: int = 50) -> list[Message]:
        """
        子串匹配搜索所有会话的消息内容，最新的在前。

        这是语义检索的占位实现，只保证返回"某个相关子集"，不保证相关度排序。
        空查询返回空列表。
        """
        if not query.strip():
            return []
        async with self._read("search_messages") as session:
            result = await session.execute(
                select(MessageRecord)
                .where(MessageRecord.content.contains(query, autoescape=True))
                .order_by(MessageRecord.created_at.desc(), _MESSAGE_ROWID.desc())
                .limit(limit)
            )
            return [_to_message(r) for r in result.scalars()]

    # ------------------------------------------------------------------
    # 笔记
    # ------------------------------------------------------------------

    async def save_note(self, content: str, tags: Sequence[str] = ()) -> str:
        """保存一条笔记，标签去重后按原顺序保存。"""
        unique_tags = list(dict.fromkeys(t.strip() for t in tags if t.strip()))
        async with self._write("save_note") as session:
            record = NoteRecord(
                id=str(uuid.uuid4()),
                content=content,
                tags=unique_tags,
                created_at=self._stamp(),
            )
            session.add(record)
        return record.id

    async def get_notes(self, tags: Sequence[str] | None = None, limit: int = 100) -> list[Note]:
        """
        获取笔记，最新的在前。

        tags 过滤语义是"任一标签命中"（并集），不是交集；tags 为空表示不过滤。
        先过滤再截取 limit 条。
        """
        wanted = set(tags or ())
        async with self._read("get_notes") as session:
            stmt = select(NoteRecord).order_by(NoteRecord.created_at.desc())
            if not wanted:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            notes = [_to_note(r) for r in result.scalars()]
        if wanted:
            notes = [n for n in notes if wanted.intersection(n.tags)]
        return notes[:limit]


async def _require_session(session: AsyncSession, session_id: str) -> SessionRecord:
    record = await session.get(SessionRecord, session_id)
    if record is None:
        raise PersistenceFailure(f"unknown session: {session_id}")
    return record


def _to_session(record: SessionRecord) -> Session:
    return Session(
        id=record.id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        summary=record.summary,
        metadata=dict(record.metadata_ or {}),
    )


def _to_message(record: MessageRecord) -> Message:
    return Message(
        id=record.id,
        session_id=record.session_id,
        role=record.role,
        content=record.content,
        handler=record.handler,
        token_count=record.token_count,
        created_at=record.created_at,
        metadata=dict(record.metadata_ or {}),
    )


def _to_note(record: NoteRecord) -> Note:
    return Note(id=record.id, content=record.content, tags=list(record.tags or []), created_at=record.created_at)
