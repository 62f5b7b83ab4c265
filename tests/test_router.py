"""Tests for handler scoring and routing."""

import pytest

from deskpilot.agent.handlers import default_registry
from deskpilot.agent.handlers.base import Handler, KeywordScorer
from deskpilot.agent.handlers.router import HandlerRegistry


@pytest.fixture
def registry():
    return default_registry()


class TestKeywordScorer:
    def test_no_hits_scores_zero(self):
        assert KeywordScorer(("file",))("hello") == 0.0

    def test_hits_raise_score(self):
        scorer = KeywordScorer(("file", "list"))
        assert scorer("open the FILE") == pytest.approx(0.6)
        assert scorer("list the file") == pytest.approx(0.7)

    def test_score_is_capped(self):
        keywords = tuple(f"k{i}" for i in range(10))
        assert KeywordScorer(keywords)(" ".join(keywords)) == 1.0

    def test_custom_scorer_is_clamped(self):
        handler = Handler("wild", "", "", scorer=lambda text: 7.0)
        assert handler.score("anything") == 1.0
        negative = Handler("neg", "", "", scorer=lambda text: -1.0)
        assert negative.score("anything") == 0.0


class TestRouting:
    def test_builtin_order(self, registry):
        assert registry.names == ["coder", "filer", "shell", "memory", "general"]

    def test_file_listing_goes_to_filer(self, registry):
        decision = registry.resolve("list files in /tmp")
        assert decision.name == "filer"
        assert decision.score > 0.0
        assert not decision.forced

    def test_unmatched_request_falls_back(self, registry):
        decision = registry.resolve("hello there")
        assert decision.name == "general"
        assert decision.score == 0.0

    def test_routing_is_deterministic(self, registry):
        text = "restart the service on port 8080"
        assert {registry.select(text) for _ in range(20)} == {"shell"}

    def test_forced_handler_bypasses_scoring(self, registry):
        decision = registry.resolve("list files in /tmp", forced="coder")
        assert decision.name == "coder"
        assert decision.forced

    def test_unknown_forced_handler_routes_by_score(self, registry):
        decision = registry.resolve("list files in /tmp", forced="nobody")
        assert decision.name == "filer"
        assert not decision.forced

    def test_tie_goes_to_first_registered(self):
        registry = HandlerRegistry(default="fallback")
        registry.register(Handler("alpha", "", "", keywords=("disk",)))
        registry.register(Handler("beta", "", "", keywords=("disk",)))
        registry.register(Handler("fallback", "", ""))

        decision = registry.resolve("disk usage")
        assert decision.name == "alpha"
        assert decision.ambiguous

    def test_clear_winner_is_not_ambiguous(self, registry):
        assert not registry.resolve("list files in /tmp").ambiguous

    def test_duplicate_registration_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(Handler("filer", "", ""))


class TestToolPermissions:
    def test_general_allows_everything(self, registry):
        assert registry.get("general").allows("kill_process")

    def test_memory_handler_is_restricted(self, registry):
        memory = registry.get("memory")
        assert memory.allows("save_note")
        assert not memory.allows("shell")
