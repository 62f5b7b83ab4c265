"""处理器描述、内置处理器和路由器。"""

from deskpilot.agent.handlers.base import Handler, KeywordScorer
from deskpilot.agent.handlers.builtin import builtin_handlers
from deskpilot.agent.handlers.router import HandlerRegistry, RouteDecision


def default_registry(default: str = "general") -> HandlerRegistry:
    """注册全部内置处理器的路由器。"""
    registry = HandlerRegistry(default=default)
    for handler in builtin_handlers():
        registry.register(handler)
    return registry


__all__ = [
    "Handler",
    "HandlerRegistry",
    "KeywordScorer",
    "RouteDecision",
    "builtin_handlers",
    "default_registry",
]
