"""
消息事件类型定义模块。

- InboundMessage：入站消息（前端 → 回合执行器）
- OutboundMessage：出站消息（回合执行器 → 前端）
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# 出站消息的状态
STATE_DONE = "done"
STATE_FAILED = "failed"
STATE_CANCELLED = "cancelled"
STATE_INFO = "info"


@dataclass
class InboundMessage:
    """
    入站消息 - 用户的一次输入。

    属性:
        content: 用户输入文本（可以是 /new 这类斜杠命令）
        handler: 强制指定的处理器名称，None 表示自动路由
        timestamp: 接收时间
        metadata: 前端附加数据
    """

    content: str
    handler: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class OutboundMessage:
    """
    出站消息 - 一个回合（或命令）的结果。

    属性:
        content: 回复文本；失败时是错误描述
        handler: 处理该回合的处理器
        state: done / failed / cancelled / info
        metadata: 附加数据（工具名、是否部分完成、token 数等）
    """

    content: str
    handler: str | None = None
    state: str = STATE_DONE
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state in (STATE_DONE, STATE_INFO)
