"""Tests for the memory inspection commands."""

import asyncio

import pytest
from typer.testing import CliRunner

from deskpilot.cli.commands import app
from deskpilot.config.schema import Config
from deskpilot.memory.store import MemoryStore

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "memory.db"
    config = Config()
    config.memory.db_path = str(path)
    monkeypatch.setattr("deskpilot.config.loader.load_config", lambda *args, **kwargs: config)
    return path


def _sessions(path):
    async def run():
        async with MemoryStore(path) as store:
            return await store.get_sessions(limit=10)

    return asyncio.run(run())


class TestMemoryMessages:
    def test_empty_database_creates_no_session(self, db_path):
        result = runner.invoke(app, ["memory", "messages"])

        assert result.exit_code == 0
        assert "No sessions yet." in result.output
        assert _sessions(db_path) == []

    def test_shows_latest_session_without_creating_one(self, db_path):
        async def seed():
            async with MemoryStore(db_path) as store:
                sid = await store.create_session()
                await store.add_message(sid, "user", "where is my report")
                return sid

        sid = asyncio.run(seed())

        result = runner.invoke(app, ["memory", "messages"])

        assert result.exit_code == 0
        assert sid in result.output
        assert "where is my report" in result.output
        assert [s.id for s in _sessions(db_path)] == [sid]
