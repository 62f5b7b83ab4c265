"""
Shell 命令工具 (agent/tools/shell.py)

ShellTool（别名 run_command）在子进程中执行一条 Shell 命令。

防护措施：
  - 黑名单：正则命中即拒绝（rm -rf、磁盘格式化、关机、fork 炸弹等）
  - 白名单：配置后只有命中的命令才允许执行
  - 工作区限制：命令中出现的绝对路径必须位于工作目录之内，且不允许 ../ 跳出
  - 超时：到时杀掉子进程
  - 截断：输出超过 MAX_OUTPUT_CHARS 时截断

结果语义：
    退出码 0 → 返回 stdout（stderr 非空时附在后面）；
    非零退出码、超时、被拦截 → 抛出 ToolExecutionFailed，由注册表转成失败的 ToolResult。

【Java 类比】ProcessBuilder + 一个简易的 SecurityManager；超时控制相当于 Future.get(timeout)。
"""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

from deskpilot.agent.tools.base import Tool
from deskpilot.errors import ToolExecutionFailed

MAX_OUTPUT_CHARS = 10000

DEFAULT_DENY_PATTERNS = [
    r"\brm\s+-[rf]{1,2}\b",          # rm -r / rm -rf / rm -fr
    r"\bdel\s+/[fq]\b",              # Windows del /f、del /q
    r"\brmdir\s+/s\b",               # Windows rmdir /s
    r"\b(format|mkfs|diskpart)\b",
    r"\bdd\s+if=",
    r">\s*/dev/sd",
    r"\b(shutdown|reboot|poweroff)\b",
    r":\(\)\s*\{.*\};\s*:",          # :(){ :|:& };:
]

_WINDOWS_PATH = re.compile(r"[A-Za-z]:\\[^\\\"']+")
_POSIX_PATH = re.compile(r"(?:^|[\s|>])(/[^\s\"'>]+)")


class ShellTool(Tool):
    """在子进程中执行 Shell 命令。"""

    aliases = ("run_command",)

    def __init__(
        self,
        timeout: int = 60,
        working_dir: str | None = None,
        deny_patterns: list[str] | None = None,
        allow_patterns: list[str] | None = None,
        restrict_to_workspace: bool = False,
    ):
        """
        参数:
            timeout: 单条命令的最长执行时间（秒）
            working_dir: 默认工作目录，None 时用当前进程的工作目录
            deny_patterns: 黑名单正则，None 时使用 DEFAULT_DENY_PATTERNS
            allow_patterns: 白名单正则，为空表示不启用白名单
            restrict_to_workspace: 命令只能触及工作目录内的路径
        """
        self.timeout = timeout
        self.working_dir = working_dir
        self.restrict_to_workspace = restrict_to_workspace
        self._deny = [re.compile(p) for p in (deny_patterns or DEFAULT_DENY_PATTERNS)]
        self._allow = [re.compile(p) for p in (allow_patterns or [])]

    @property
    def name(self) -> str:
        return "shell"

    @property
    def description(self) -> str:
        return "Run a shell command and return its output. Destructive commands are refused."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The shell command to run"},
                "working_dir": {"type": "string", "description": "Directory to run the command in"},
            },
            "required": ["command"],
        }

    async def execute(self, command: str, working_dir: str | None = None, **kwargs: Any) -> str:
        cwd = working_dir or self.working_dir or os.getcwd()
        reason = self._check_patterns(command) or self._check_paths(command, cwd)
        if reason:
            raise ToolExecutionFailed(f"command blocked by safety guard ({reason})")

        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ToolExecutionFailed(f"command timed out after {self.timeout} seconds")

        output = _format_output(stdout, stderr)
        if proc.returncode != 0:
            raise ToolExecutionFailed(f"exit code {proc.returncode}\n{output}")
        return output

    def _check_patterns(self, command: str) -> str | None:
        lowered = command.strip().lower()
        if any(p.search(lowered) for p in self._deny):
            return "dangerous pattern detected"
        if self._allow and not any(p.search(lowered) for p in self._allow):
            return "not in allowlist"
        return None

    def _check_paths(self, command: str, cwd: str) -> str | None:
        """工作区限制：拒绝 ../ 跳转和工作目录之外的绝对路径。"""
        if not self.restrict_to_workspace:
            return None
        if "../" in command or "..\\" in command:
            return "path traversal detected"

        root = Path(cwd).resolve()
        candidates = _WINDOWS_PATH.findall(command) + _POSIX_PATH.findall(command)
        for raw in candidates:
            target = Path(raw.strip()).resolve()
            if target != root and root not in target.parents:
                return "path outside working dir"
        return None


def _format_output(stdout: bytes, stderr: bytes) -> str:
    parts = []
    if stdout:
        parts.append(stdout.decode("utf-8", errors="replace"))
    err = stderr.decode("utf-8", errors="replace") if stderr else ""
    if err.strip():
        parts.append(f"STDERR:\n{err}")
    if not parts:
        return "(no output)"
    text = "\n".join(parts)
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + f"\n... (truncated, {len(text) - MAX_OUTPUT_CHARS} more chars)"
    return text
