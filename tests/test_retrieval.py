"""Tests for similarity helpers and the pluggable retrievers."""

import pytest

from deskpilot.memory.retrieval import (
    Embedder,
    EmbeddingRetriever,
    SubstringRetriever,
    cosine_similarity,
    find_similar,
)

VOCABULARY = ("backup", "disk", "music", "vault")


class BagOfWordsEmbedder(Embedder):
    """One dimension per vocabulary word."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [[float(text.lower().count(word)) for word in VOCABULARY] for text in texts]


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    @pytest.mark.parametrize("a,b", [([], []), ([1.0], [1.0, 2.0]), ([0.0, 0.0], [1.0, 1.0])])
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestFindSimilar:
    def test_threshold_order_and_limit(self):
        candidates = [
            ("far", [0.0, 1.0]),
            ("close", [1.0, 0.1]),
            ("exact", [1.0, 0.0]),
        ]
        result = find_similar([1.0, 0.0], candidates, threshold=0.5, limit=5)
        assert [item for item, _ in result] == ["exact", "close"]

        assert find_similar([1.0, 0.0], candidates, threshold=0.5, limit=1)[0][0] == "exact"


@pytest.mark.asyncio
class TestRetrievers:
    async def test_substring_hits_score_one(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "check the backup disk")
        hits = await SubstringRetriever(store).search("backup", limit=5)
        assert [(h.message.content, h.score) for h in hits] == [("check the backup disk", 1.0)]

    async def test_embedding_retriever_ranks_by_similarity(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "play some music")
        await store.add_message(sid, "user", "the backup disk is full")
        await store.add_message(sid, "user", "backup the vault")

        retriever = EmbeddingRetriever(store, BagOfWordsEmbedder(), threshold=0.1)
        hits = await retriever.search("backup disk", limit=5)
        assert [h.message.content for h in hits] == ["the backup disk is full", "backup the vault"]
        assert hits[0].score == pytest.approx(1.0)

    async def test_embedding_retriever_empty_inputs(self, store):
        retriever = EmbeddingRetriever(store, BagOfWordsEmbedder())
        assert await retriever.search("backup", limit=5) == []
        assert await retriever.search("  ", limit=5) == []
