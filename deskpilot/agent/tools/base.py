"""
工具基类模块 (agent/tools/base.py)

模块职责：
    定义工具系统的三个基础类型：
      - ToolCall:   一次工具调用请求（工具名 + 参数字典），由解析模型回复得到，只在当前回合内存在
      - ToolResult: 一次工具调用的结果（成功标志、输出文本、可选错误文本）
      - Tool:       所有具体工具的抽象基类

    每个工具必须实现4个核心接口：name、description、parameters、execute。
    基类还提供参数预处理能力：
      - bind_params():     把 arg0 / arg1 ... 这类位置参数按声明顺序绑定到参数名上，
                           并把字符串值转换为声明的 integer / number / boolean 类型
      - validate_params(): 按 JSON Schema 校验参数，返回错误列表

在架构中的位置：
    ToolRegistry 持有 Tool 实例的集合，回合执行器通过 registry.execute(ToolCall) 间接调用工具。
    工具执行失败时直接抛异常（优先抛 ToolExecutionFailed），由注册表统一转换为失败的 ToolResult。

设计模式对比（Java 视角）：
    - Tool 相当于 abstract class + 模板方法
    - ToolCall / ToolResult 相当于不可变的 DTO
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """一次工具调用请求。"""
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        """渲染为 name(key=value, ...) 形式，用于日志和结果文本。"""
        args = ", ".join(f"{k}={v}" for k, v in self.arguments.items())
        return f"{self.name}({args})"


@dataclass
class ToolResult:
    """
    一次工具调用的结果。

    错误是数据而不是控制流：失败的工具仍然产生一个结果，交给模型在下一次推理中处理。
    """
    success: bool
    output: str = ""
    error: str | None = None

    @classmethod
    def ok(cls, output: str) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, output="", error=error)

    def render(self) -> str:
        """渲染为纯文本，失败时输出 Error: ..."""
        if self.success:
            return self.output or "(no output)"
        return f"Error: {self.error}"


class Tool(ABC):
    """
    工具的抽象基类。

    子类需要实现：
      - name: 工具名称，模型在工具指令中使用此名称
      - description: 工具功能描述，写进系统提示词
      - parameters: JSON Schema 格式的参数定义（properties 的声明顺序即位置参数顺序）
      - execute(): 实际执行逻辑，返回输出文本；失败时抛出异常

    可选覆盖：
      - aliases: 额外注册的别名（如 shell 的别名 run_command）
    """

    # JSON Schema 类型 -> Python 类型的映射表，用于参数校验
    _TYPE_MAP = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
    }

    _TRUE_WORDS = {"true", "yes", "1", "on"}
    _FALSE_WORDS = {"false", "no", "0", "off"}

    aliases: tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """工具名称。"""

    @property
    @abstractmethod
    def description(self) -> str:
        """工具功能描述。"""

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """工具参数的 JSON Schema 定义。"""

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        """
        执行工具。

        返回:
            str: 输出文本，会回传给模型作为后续推理的上下文

        异常:
            ToolExecutionFailed 或任意异常: 注册表会将其转换为失败的 ToolResult
        """

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def bind_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        参数预处理：位置参数绑定 + 字符串类型转换。

        内联工具指令 [TOOL: kill_process(1234)] 解析出的是 {"arg0": "1234"}，
        这里会按 properties 的声明顺序绑定为 {"pid": 1234}。
        已经显式给出的参数名不会被位置参数覆盖。
        """
        props: dict[str, Any] = self.parameters.get("properties", {})
        bound: dict[str, Any] = {}
        positional: list[tuple[int, Any]] = []
        for key, value in params.items():
            if key.startswith("arg") and key[3:].isdigit() and key not in props:
                positional.append((int(key[3:]), value))
            else:
                bound[key] = value

        free_slots = [name for name in props if name not in bound]
        for (_, value), slot in zip(sorted(positional), free_slots):
            bound[slot] = value

        for key, value in list(bound.items()):
            if key in props and isinstance(value, str):
                bound[key] = self._coerce(value, props[key].get("type"))
        return bound

    def _coerce(self, value: str, target: str | None) -> Any:
        """把字符串转成声明的标量类型；无法转换时原样返回，交给校验报错。"""
        text = value.strip()
        try:
            if target == "integer":
                return int(text)
            if target == "number":
                return float(text)
        except ValueError:
            return value
        if target == "boolean":
            lowered = text.lower()
            if lowered in self._TRUE_WORDS:
                return True
            if lowered in self._FALSE_WORDS:
                return False
        return value

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """
        根据 JSON Schema 校验工具参数。

        返回:
            list[str]: 错误信息列表，空列表表示校验通过。
        """
        schema = self.parameters or {}
        if schema.get("type", "object") != "object":
            raise ValueError(f"Schema must be object type, got {schema.get('type')!r}")
        return self._validate(params, {**schema, "type": "object"}, "")

    def _validate(self, val: Any, schema: dict[str, Any], path: str) -> list[str]:
        """递归校验单个值是否符合 JSON Schema 片段。"""
        t, label = schema.get("type"), path or "parameter"
        # bool 是 int 的子类，integer/number 字段需要单独排除布尔值
        if t in ("integer", "number") and isinstance(val, bool):
            return [f"{label} should be {t}"]
        if t in self._TYPE_MAP and not isinstance(val, self._TYPE_MAP[t]):
            return [f"{label} should be {t}"]

        errors = []
        if "enum" in schema and val not in schema["enum"]:
            errors.append(f"{label} must be one of {schema['enum']}")
        if t in ("integer", "number"):
            if "minimum" in schema and val < schema["minimum"]:
                errors.append(f"{label} must be >= {schema['minimum']}")
            if "maximum" in schema and val > schema["maximum"]:
                errors.append(f"{label} must be <= {schema['maximum']}")
        if t == "object":
            props = schema.get("properties", {})
            for k, v in val.items():
                if k in props:
                    errors.extend(self._validate(v, props[k], path + "." + k if path else k))
        if t == "array" and "items" in schema:
            for i, item in enumerate(val):
                errors.extend(self._validate(item, schema["items"], f"{path}[{i}]" if path else f"[{i}]"))
        return errors

    def usage(self) -> str:
        """
        生成写进系统提示词的一行用法说明，例如：
            - list_dir(path?, recursive?): List the contents of a directory.
        可选参数带 ? 后缀。
        """
        required = set(self.required)
        args = ", ".join(
            name if name in required else f"{name}?"
            for name in self.parameters.get("properties", {})
        )
        return f"- {self.name}({args}): {self.description}"
