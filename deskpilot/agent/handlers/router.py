"""
处理器注册表 / 路由器 (agent/handlers/router.py)

select(text, forced) 的规则：
  1. forced 已注册：原样返回，完全跳过打分
  2. 否则对每个处理器打分，取严格最高分；同分时先注册者胜出
  3. 所有处理器都是 0 分：回退到默认处理器

路由永远产生恰好一个处理器名称，不会失败。最高分出现并列时在 RouteDecision
上标记 ambiguous 并记录一条 debug 日志，仅供参考。
"""

from dataclasses import dataclass

from loguru import logger

from deskpilot.agent.handlers.base import Handler


@dataclass(frozen=True)
class RouteDecision:
    """一次路由的结果。"""
    name: str
    score: float
    ambiguous: bool = False
    forced: bool = False


class HandlerRegistry:
    """
    处理器注册表。启动时按固定顺序注册，之后只读。

    【Java 类比】类似 List<Handler> + 策略模式的选择器。
    """

    def __init__(self, default: str = "general"):
        self.default = default
        self._handlers: dict[str, Handler] = {}

    def register(self, handler: Handler) -> None:
        if handler.name in self._handlers:
            raise ValueError(f"handler already registered: {handler.name}")
        self._handlers[handler.name] = handler

    def get(self, name: str) -> Handler | None:
        return self._handlers.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def resolve(self, text: str, forced: str | None = None) -> RouteDecision:
        """
        选出处理该请求的处理器。

        参数:
            text: 用户请求文本
            forced: 显式指定的处理器名称；未注册时记录警告并按打分路由
        """
        if forced:
            if forced in self._handlers:
                return RouteDecision(name=forced, score=1.0, forced=True)
            logger.warning(f"Unknown handler '{forced}' requested, routing by score")

        best: Handler | None = None
        best_score = 0.0
        tied = False
        for handler in self._handlers.values():
            score = handler.score(text)
            if score > best_score:
                best, best_score, tied = handler, score, False
            elif score == best_score and score > 0.0:
                tied = True

        if best is None:
            return RouteDecision(name=self.default, score=0.0)
        if tied:
            logger.debug(f"Routing tie at score {best_score:.2f}, picked first registered: {best.name}")
        return RouteDecision(name=best.name, score=best_score, ambiguous=tied)

    def select(self, text: str, forced: str | None = None) -> str:
        return self.resolve(text, forced).name
