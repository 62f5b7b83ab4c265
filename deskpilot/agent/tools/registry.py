"""
工具注册表模块 (agent/tools/registry.py)

模块职责：
    管理所有可用工具，提供注册、注销、查找、描述和执行能力。
    是回合执行器与具体工具实现之间的中间层。

执行契约 execute(ToolCall) -> ToolResult：
    - 工具不存在：ToolResult(success=False, error="unknown tool: <name>")
    - 缺少必填参数：ToolResult(success=False, error="missing required argument: <name>")
    - 工具内部抛出任何异常：ToolResult(success=False, error=<异常描述>)
    - 永远不向调用方抛工具错误；每次 execute 恰好执行一次副作用，注册表不做重试

设计模式对比（Java 视角）：
    类似于 Spring 中的 ServiceLocator 模式：register() 相当于注册 Bean，
    execute() 相当于按名称查找 Bean 并调用其方法。
"""

from collections.abc import Iterable

from loguru import logger

from deskpilot.agent.tools.base import Tool, ToolCall, ToolResult
from deskpilot.errors import ToolArgumentMissing, ToolError, ToolUnknown


class ToolRegistry:
    """
    工具注册表。

    内部以 {名称 -> 工具实例} 存储，别名指向同一个实例；
    tool_names 只列出主名称，保持注册顺序。
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._aliases: dict[str, str] = {}

    def register(self, tool: Tool) -> None:
        """注册一个工具及其别名。同名工具会被覆盖（后注册的优先）。"""
        self._tools[tool.name] = tool
        for alias in tool.aliases:
            self._aliases[alias] = tool.name

    def unregister(self, name: str) -> None:
        """按名称注销工具及其别名，不存在时静默忽略。"""
        tool = self._tools.pop(name, None)
        if tool:
            for alias in tool.aliases:
                self._aliases.pop(alias, None)

    def get(self, name: str) -> Tool | None:
        """按名称或别名获取工具实例。"""
        return self._tools.get(self._aliases.get(name, name))

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def resolve(self, name: str) -> str:
        """把别名解析为主名称；未知名称原样返回。"""
        return self._aliases.get(name, name)

    def describe(self, names: Iterable[str] | None = None) -> list[str]:
        """
        生成工具用法说明行（写进系统提示词）。

        参数:
            names: 只描述这些工具；None 表示全部。未注册的名称会被跳过。
        """
        selected = self._tools.values() if names is None else [t for n in names if (t := self.get(n))]
        return [tool.usage() for tool in selected]

    async def execute(self, call: ToolCall) -> ToolResult:
        """
        执行一次工具调用。

        流程：查找工具 → 位置参数绑定与类型转换 → 必填检查 → Schema 校验 → 执行。
        所有工具错误都转换为 ToolResult，保护回合不被单个工具打断。
        """
        tool = self.get(call.name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {call.name}")
            return ToolResult.fail(str(ToolUnknown(call.name)))

        try:
            params = tool.bind_params(call.arguments)
            missing = [k for k in tool.required if k not in params]
            if missing:
                raise ToolArgumentMissing(tool.name, ", ".join(missing))
            errors = tool.validate_params(params)
            if errors:
                return ToolResult.fail(f"invalid arguments for {tool.name}: " + "; ".join(errors))
            output = await tool.execute(**params)
            return ToolResult.ok(output)
        except ToolError as e:
            logger.warning(f"Tool {tool.name} failed: {e}")
            return ToolResult.fail(str(e))
        except Exception as e:
            logger.warning(f"Tool {tool.name} raised {type(e).__name__}: {e}")
            return ToolResult.fail(f"{tool.name} failed: {e}")

    @property
    def tool_names(self) -> list[str]:
        """所有已注册工具的主名称列表。"""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return self.has(name)
