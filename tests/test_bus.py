"""Tests for the message bus."""

import asyncio

import pytest

from deskpilot.bus.events import STATE_DONE, STATE_FAILED, InboundMessage, OutboundMessage
from deskpilot.bus.queue import MessageBus


@pytest.mark.asyncio
class TestMessageBus:
    async def test_inbound_is_fifo(self):
        bus = MessageBus()
        await bus.publish_inbound(InboundMessage(content="one"))
        await bus.publish_inbound(InboundMessage(content="two", handler="filer"))
        assert bus.inbound_size == 2

        first = await bus.consume_inbound()
        second = await bus.consume_inbound()
        assert (first.content, first.handler) == ("one", None)
        assert (second.content, second.handler) == ("two", "filer")

    async def test_dispatch_survives_failing_subscriber(self):
        bus = MessageBus()
        received: list[str] = []

        async def broken(msg: OutboundMessage) -> None:
            raise RuntimeError("printer on fire")

        async def collect(msg: OutboundMessage) -> None:
            received.append(msg.content)

        bus.subscribe_outbound(broken)
        bus.subscribe_outbound(collect)
        dispatcher = asyncio.create_task(bus.dispatch_outbound())
        try:
            await bus.publish_outbound(OutboundMessage(content="first"))
            await bus.publish_outbound(OutboundMessage(content="second"))
            for _ in range(100):
                if len(received) == 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            bus.stop()
            await asyncio.wait_for(dispatcher, timeout=5)

        assert received == ["first", "second"]
        assert bus.outbound_size == 0

    async def test_stop_delivers_messages_still_queued(self):
        bus = MessageBus()
        received: list[str] = []
        busy = asyncio.Event()
        release = asyncio.Event()

        async def slow_printer(msg: OutboundMessage) -> None:
            if msg.content == "first":
                busy.set()
                await release.wait()
            received.append(msg.content)

        bus.subscribe_outbound(slow_printer)
        dispatcher = asyncio.create_task(bus.dispatch_outbound())
        await bus.publish_outbound(OutboundMessage(content="first"))
        await busy.wait()
        await bus.publish_outbound(OutboundMessage(content="turn cancelled"))
        bus.stop()
        release.set()
        await asyncio.wait_for(dispatcher, timeout=5)

        assert received == ["first", "turn cancelled"]
        assert bus.outbound_size == 0


class TestOutboundMessage:
    def test_ok_reflects_state(self):
        assert OutboundMessage(content="x", state=STATE_DONE).ok
        assert not OutboundMessage(content="x", state=STATE_FAILED).ok
