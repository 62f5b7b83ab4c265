"""
消息总线模块 - 解耦交互前端与回合执行器。

消息流向：
  用户输入 → 前端 → InboundMessage → 消息总线 → TurnExecutor.run()
  回合结果 → OutboundMessage → 消息总线 → 前端打印

前端只负责读输入和打印输出，回合在后台任务中执行，
所以推理进行中前端仍然可以接收 /cancel 之类的输入。

【Java 开发者类比】
- MessageBus 类似两个 LinkedBlockingQueue 加一个观察者列表
"""

from deskpilot.bus.events import InboundMessage, OutboundMessage
from deskpilot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
