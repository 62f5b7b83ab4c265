"""Shared fixtures: a temporary SQLite store, a scripted inference provider and small test tools."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio

from deskpilot.agent.handlers import default_registry
from deskpilot.agent.loop import TurnExecutor
from deskpilot.agent.tools.base import Tool
from deskpilot.agent.tools.filesystem import filesystem_tools
from deskpilot.agent.tools.registry import ToolRegistry
from deskpilot.errors import ToolExecutionFailed
from deskpilot.memory.context import ContextManager
from deskpilot.memory.store import MemoryStore
from deskpilot.providers.base import InferenceProvider, InferenceResponse

# Placed in a ScriptedProvider script: the call blocks until it is cancelled.
BLOCK = object()


class FakeClock:
    """Controllable clock for MemoryStore; frozen unless advanced."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class ScriptedProvider(InferenceProvider):
    """Replies from a fixed script: strings become replies, exceptions are raised, BLOCK hangs."""

    def __init__(self, *replies: Any):
        super().__init__()
        self.replies = list(replies)
        self.calls: list[list[dict[str, Any]]] = []
        self.stops: list[list[str] | None] = []
        self.started = asyncio.Event()
        self.cancelled = False
        self.active = 0
        self.max_active = 0

    async def infer(self, messages, model=None, max_tokens=2048, temperature=0.7, stop=None):
        self.calls.append(list(messages))
        self.stops.append(stop)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            reply = self.replies.pop(0) if self.replies else "ok"
            if reply is BLOCK:
                self.started.set()
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise
            await asyncio.sleep(0.01)
            if isinstance(reply, BaseException):
                raise reply
            return InferenceResponse(content=reply, input_tokens=10, output_tokens=5, model="test/model")
        finally:
            self.active -= 1

    def get_default_model(self) -> str:
        return "test/model"


class EchoTool(Tool):
    def __init__(self):
        self.seen: list[str] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the given text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string"},
                "times": {"type": "integer", "minimum": 1},
            },
            "required": ["text"],
        }

    async def execute(self, text: str, times: int = 1, **kwargs: Any) -> str:
        self.seen.append(text)
        return " ".join([text] * times)


class ExplodingTool(Tool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        raise ToolExecutionFailed("kaput")


class SlowTool(Tool):
    """Signals `started`, then waits for `release` before finishing."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Waits until released."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        self.started.set()
        await self.release.wait()
        return "slow done"


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def store(tmp_path, clock):
    memory = MemoryStore(tmp_path / "memory.db", clock=clock)
    await memory.init()
    yield memory
    await memory.close()


@pytest_asyncio.fixture
async def context(store):
    manager = ContextManager(store, hot_turns=3, warm_chunks=5, similarity_threshold=0.7)
    await manager.start()
    return manager


@pytest.fixture
def echo():
    return EchoTool()


@pytest.fixture
def slow():
    return SlowTool()


@pytest.fixture
def tools(echo, slow):
    registry = ToolRegistry()
    for tool in filesystem_tools():
        registry.register(tool)
    registry.register(echo)
    registry.register(ExplodingTool())
    registry.register(slow)
    return registry


@pytest.fixture
def make_executor(context, tools):
    """Build a TurnExecutor around the shared context and tools with the given provider."""

    def _make(provider: InferenceProvider, **kwargs: Any) -> TurnExecutor:
        kwargs.setdefault("summarize_on_new", False)
        return TurnExecutor(
            provider=provider,
            context=context,
            handlers=default_registry(),
            tools=tools,
            **kwargs,
        )

    return _make
