"""回合执行核心：执行器、上下文构建、工具指令解析。"""

from deskpilot.agent.context import ContextBuilder, flatten_roles
from deskpilot.agent.loop import TurnExecutor, TurnResult, TurnState
from deskpilot.agent.parser import parse_tool_calls

__all__ = ["ContextBuilder", "TurnExecutor", "TurnResult", "TurnState", "flatten_roles", "parse_tool_calls"]
