"""
工具指令解析模块 (agent/parser.py)

从模型回复中提取工具调用指令。识别两种写法：

1. 整段回复是一个 JSON 对象：
       {"tool": "list_dir", "args": {"path": "/tmp"}}
2. 文本中任意位置的行内方括号写法：
       [TOOL: list_dir(path=/tmp)]
       [TOOL: kill_process(1234)]        -> {"arg0": "1234"}

优先级规则：
    先尝试把去掉首尾空白的整段回复当作 JSON 解析；只要解析结果是带字符串 "tool" 字段的对象，
    就只返回这一个调用，不再扫描行内写法（JSON 字符串值里出现的 [TOOL: ...] 不会被重复执行）。
    否则按出现顺序扫描全部行内指令。没有任何指令是最常见的正常情况，返回空列表。

行内参数按逗号切分：key=value 形式去掉两侧空白后作为命名参数；
不带等号的值按它在切分结果中的下标命名为 arg0、arg1 ...，空片段被跳过。
"""

import json
import re

from deskpilot.agent.tools.base import ToolCall

INLINE_TOOL_PATTERN = re.compile(r"\[TOOL:\s*(\w+)\(([^)]*)\)\]")


def parse_tool_calls(reply: str) -> list[ToolCall]:
    """
    解析回复中的全部工具调用。

    参数:
        reply: 模型回复文本

    返回:
        list[ToolCall]: 按出现顺序排列的工具调用
    """
    json_call = _parse_json_call(reply)
    if json_call is not None:
        return [json_call]
    return [
        ToolCall(name=match.group(1), arguments=_parse_inline_args(match.group(2)))
        for match in INLINE_TOOL_PATTERN.finditer(reply)
    ]


def _parse_json_call(reply: str) -> ToolCall | None:
    text = reply.strip()
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("tool")
    if not isinstance(name, str) or not name:
        return None
    args = data.get("args")
    return ToolCall(name=name, arguments=dict(args) if isinstance(args, dict) else {})


def _parse_inline_args(raw: str) -> dict[str, str]:
    args: dict[str, str] = {}
    for i, part in enumerate(raw.split(",")):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        if sep:
            args[key.strip()] = value.strip()
        else:
            args[f"arg{i}"] = part
    return args
