"""
异步消息队列模块 - 消息总线的核心实现。

入站流程：前端 → publish_inbound() → inbound 队列 → consume_inbound() → 回合执行器
出站流程：回合执行器 → publish_outbound() → outbound 队列 → dispatch_outbound() → 订阅回调

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- subscribe_outbound + dispatch_outbound 类似于 @EventListener 机制
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from deskpilot.bus.events import InboundMessage, OutboundMessage

OutboundCallback = Callable[[OutboundMessage], Awaitable[None]]


class MessageBus:
    """
    异步消息总线。

    属性:
        inbound: 入站消息队列（前端 → 回合执行器）
        outbound: 出站消息队列（回合执行器 → 前端）
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._outbound_subscribers: list[OutboundCallback] = []
        self._running = False

    async def publish_inbound(self, msg: InboundMessage) -> None:
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """取下一条入站消息，队列为空时异步阻塞。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        return await self.outbound.get()

    def subscribe_outbound(self, callback: OutboundCallback) -> None:
        """注册出站消息回调，可以注册多个。"""
        self._outbound_subscribers.append(callback)

    async def dispatch_outbound(self) -> None:
        """
        出站消息分发器（后台常驻任务）。

        以 1 秒超时轮询出站队列，以便 stop() 之后及时退出；退出前把队列中剩余的消息发完。
        单个回调的异常只记录日志，不中断分发。
        """
        self._running = True
        while self._running:
            try:
                msg = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self._deliver(msg)
        while not self.outbound.empty():
            await self._deliver(self.outbound.get_nowait())

    async def _deliver(self, msg: OutboundMessage) -> None:
        for callback in self._outbound_subscribers:
            try:
                await callback(msg)
            except Exception as e:
                logger.error(f"Error dispatching outbound message: {e}")

    def stop(self) -> None:
        self._running = False

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        return self.outbound.qsize()
