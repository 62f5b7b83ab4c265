"""
上下文管理器模块 (memory/context.py) —— 热 / 温 / 冷三层记忆的协调者。

三层记忆：
- 热（Hot）：进程内最近若干回合的消息，上限 max_hot = hot_turns * 2（每回合 user + assistant）
- 温（Warm）：按当前请求从历史中检索出的相关消息，以一条合成的 system 消息注入上下文
- 冷（Cold）：MemoryStore 中的完整持久记录

一致性规则：
    先写冷存储，成功后才追加到热窗口。冷存储写失败时热窗口保持不变，
    因此永远不会出现"热窗口里有、数据库里没有"的消息。
    热窗口超出上限时淘汰最旧的消息（只是移出内存，数据库中的记录不受影响）。

读路径容错：
    温检索失败只记录警告并返回纯热窗口上下文，回合继续进行；
    写路径（提交回合）失败则把 PersistenceFailure 抛给调用方，由回合执行器终止回合。

并发约束：
    一个 ContextManager 独占自己的热窗口，同一时刻只能被一个回合执行器使用。
"""

from collections.abc import Sequence
from dataclasses import replace

from loguru import logger

from deskpilot.memory.models import Message, Note
from deskpilot.memory.retrieval import Retriever, SubstringRetriever
from deskpilot.memory.store import MemoryStore

RETRIEVED_CONTEXT_HEADER = "Relevant context from previous conversations:\n"


class ContextManager:
    """
    维护当前会话的热窗口，并负责把每个回合写入冷存储。

    【Java 类比】类似一个带本地 LRU 缓存的 Service：
    写操作 write-through 到数据库，读操作优先返回缓存，再按需查询历史。
    """

    def __init__(
        self,
        store: MemoryStore,
        hot_turns: int = 3,
        warm_chunks: int = 10,
        similarity_threshold: float = 0.7,
        retriever: Retriever | None = None,
        warm_retrieval: bool = True,
        restore_hot: bool = False,
    ):
        """
        参数:
            store: 冷存储
            hot_turns: 热窗口保留的回合数
            warm_chunks: 温检索最多注入的消息条数
            similarity_threshold: 温检索结果的最低分数
            retriever: 检索实现，默认子串匹配
            warm_retrieval: 是否启用温检索
            restore_hot: 启动时是否从当天会话的最近消息恢复热窗口
        """
        self.store = store
        self.hot_turns = hot_turns
        self.max_hot = max(hot_turns, 0) * 2
        self.warm_chunks = warm_chunks
        self.similarity_threshold = similarity_threshold
        self.retriever = retriever or SubstringRetriever(store)
        self.warm_retrieval = warm_retrieval
        self.restore_hot = restore_hot
        self._hot: list[Message] = []
        self._session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        """当前会话 ID（start() 之前为 None）。"""
        return self._session_id

    @property
    def hot_window(self) -> list[Message]:
        """热窗口的只读副本。"""
        return list(self._hot)

    async def start(self) -> str:
        """绑定到当天的会话（幂等），按需恢复热窗口，返回会话 ID。"""
        if self._session_id is not None:
            return self._session_id
        self._session_id = await self.store.get_or_create_current_session()
        if self.restore_hot and self.max_hot:
            try:
                recent = await self.store.get_messages(self._session_id, limit=self.max_hot)
            except Exception as e:
                logger.warning(f"Could not restore hot window for session {self._session_id}: {e}")
            else:
                self._hot = list(reversed(recent))
                logger.debug(f"Restored {len(self._hot)} messages into the hot window")
        return self._session_id

    async def add_message(self, message: Message, handler: str | None = None) -> Message:
        """
        持久化一条消息，成功后追加到热窗口并裁剪。

        返回:
            持久化后的消息（带 id / created_at）

        异常:
            PersistenceFailure: 写入失败，热窗口不变
        """
        session_id = await self.start()
        if handler and not message.handler:
            message = replace(message, handler=handler)
        [stored] = await self.store.add_messages(session_id, [message])
        self._append([stored])
        return stored

    async def commit_turn(self, user: Message, assistant: Message) -> tuple[Message, Message]:
        """
        原子地提交一个回合：用户消息和助手消息在同一个事务中落盘，
        要么都写入，要么都不写入；写入成功后再一起进入热窗口。
        """
        session_id = await self.start()
        stored_user, stored_assistant = await self.store.add_messages(session_id, [user, assistant])
        self._append([stored_user, stored_assistant])
        return stored_user, stored_assistant

    def _append(self, messages: Sequence[Message]) -> None:
        self._hot.extend(messages)
        overflow = len(self._hot) - self.max_hot
        if overflow > 0:
            del self._hot[:overflow]

    def get_context(self) -> list[Message]:
        """原样返回热窗口（按时间先后）。"""
        return list(self._hot)

    async def get_context_with_retrieval(self, query: str) -> list[Message]:
        """
        热窗口 + 温检索。

        有检索结果时，在热窗口之前插入一条合成的 system 消息：
            Relevant context from previous conversations:
            [user]: ...
            [assistant]: ...
        让模型先把检索内容当作背景，再看最近的对话。
        已经在热窗口中的消息、分数低于阈值的结果会被剔除。
        """
        context = self.get_context()
        if not self.warm_retrieval or self.warm_chunks <= 0 or not query.strip():
            return context

        try:
            hits = await self.retriever.search(query, limit=self.warm_chunks + len(self._hot))
        except Exception as e:
            logger.warning(f"Warm retrieval failed, continuing with hot context only: {e}")
            return context

        hot_ids = {m.id for m in self._hot}
        relevant = [
            h.message for h in hits
            if h.score >= self.similarity_threshold and h.message.id not in hot_ids
        ][: self.warm_chunks]
        if not relevant:
            return context

        lines = "\n".join(f"[{m.role}]: {m.content}" for m in relevant)
        logger.debug(f"Warm retrieval injected {len(relevant)} messages")
        return [Message.system(RETRIEVED_CONTEXT_HEADER + lines), *context]

    async def new_session(self) -> str:
        """开启一个新会话（不删除任何历史），清空热窗口。"""
        self._session_id = await self.store.create_session()
        self._hot.clear()
        return self._session_id

    async def clear(self) -> str:
        """删除当前会话的全部持久记录，然后切换到新会话。"""
        if self._session_id is not None:
            await self.store.clear_session(self._session_id)
        return await self.new_session()

    # 笔记和搜索的便捷入口

    async def save_note(self, content: str, tags: Sequence[str] = ()) -> str:
        return await self.store.save_note(content, tags)

    async def get_notes(self, tags: Sequence[str] | None = None, limit: int = 100) -> list[Note]:
        return await self.store.get_notes(tags, limit=limit)

    async def search(self, query: str, limit: int = 50) -> list[Message]:
        return await self.store.search_messages(query, limit=limit)
