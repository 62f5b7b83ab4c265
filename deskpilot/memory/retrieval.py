"""
温检索模块 (memory/retrieval.py)

定义"从历史中找出与当前请求相关的消息"的可插拔契约：

    Retriever.search(query, limit) -> list[ScoredMessage]   # 按相关度从高到低

内置两种实现：
- SubstringRetriever: 包装 MemoryStore.search_messages 的子串匹配，命中即 1.0 分。
  这是默认实现，也是语义检索的占位。
- EmbeddingRetriever: 对最近的 N 条消息做暴力余弦相似度排序，
  向量由外部注入的 Embedder 提供（本项目不内置任何向量模型）。

ContextManager 只依赖 Retriever 接口，替换检索后端不需要改动调用方。

【Java 开发者类比】
    Retriever 相当于一个策略接口（Strategy Pattern），
    SubstringRetriever / EmbeddingRetriever 是两个策略实现。
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

from deskpilot.memory.models import Message
from deskpilot.memory.store import MemoryStore

T = TypeVar("T")


@dataclass
class ScoredMessage:
    """带相关度分数的检索结果，score 取值 [0, 1]。"""
    message: Message
    score: float


class Retriever(ABC):
    """温检索契约。"""

    @abstractmethod
    async def search(self, query: str, limit: int) -> list[ScoredMessage]:
        """返回最多 limit 条结果，按相关度从高到低。"""


class Embedder(ABC):
    """文本向量化协作者，由使用方提供（本地模型、远程 API 均可）。"""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """为每段文本返回一个向量，顺序与输入一致。"""


class SubstringRetriever(Retriever):
    """子串匹配检索（默认）。结果按时间倒序，分数恒为 1.0。"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def search(self, query: str, limit: int) -> list[ScoredMessage]:
        messages = await self.store.search_messages(query, limit=limit)
        return [ScoredMessage(message=m, score=1.0) for m in messages]


class EmbeddingRetriever(Retriever):
    """
    基于向量相似度的检索。

    每次检索取最近 candidates 条消息，与查询一起向量化后按余弦相似度排序。
    只适合小规模历史；大规模场景应替换为真正的向量索引。
    """

    def __init__(self, store: MemoryStore, embedder: Embedder, candidates: int = 200, threshold: float = 0.0):
        self.store = store
        self.embedder = embedder
        self.candidates = candidates
        self.threshold = threshold

    async def search(self, query: str, limit: int) -> list[ScoredMessage]:
        if not query.strip():
            return []
        pool = await self.store.get_recent_messages(limit=self.candidates)
        if not pool:
            return []
        vectors = await self.embedder.embed([query] + [m.content for m in pool])
        query_vec, candidate_vecs = vectors[0], vectors[1:]
        ranked = find_similar(query_vec, list(zip(pool, candidate_vecs)), self.threshold, limit)
        return [ScoredMessage(message=m, score=s) for m, s in ranked]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    两个向量的余弦相似度。

    长度不一致、为空或任一向量为零向量时返回 0.0。
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def find_similar(
    query: Sequence[float],
    candidates: Sequence[tuple[T, Sequence[float]]],
    threshold: float,
    limit: int,
) -> list[tuple[T, float]]:
    """在候选集中找出相似度 >= threshold 的条目，按相似度降序取前 limit 个。"""
    scored = [(item, cosine_similarity(query, vec)) for item, vec in candidates]
    kept = [(item, score) for item, score in scored if score >= threshold]
    kept.sort(key=lambda pair: pair[1], reverse=True)
    return kept[:limit]
