"""
进程与系统信息工具模块 (agent/tools/process.py)

基于 psutil 跨平台读取进程列表和系统资源：
  - list_processes: 按 CPU 占用列出前 N 个进程
  - find_process:   按名称（子串，大小写不敏感）查找进程
  - process_info:   查看单个进程的详情
  - kill_process:   终止进程
  - system_info:    操作系统、CPU、内存概况

psutil 的调用是阻塞的（process_iter 会逐个读取 /proc），统一通过 asyncio.to_thread 执行。
"""

import asyncio
import platform
from typing import Any

import psutil

from deskpilot.agent.tools.base import Tool
from deskpilot.errors import ToolExecutionFailed

_PROC_ATTRS = ["pid", "name", "cpu_percent", "memory_info"]


def _format_row(info: dict[str, Any]) -> str:
    mem = info.get("memory_info")
    mem_mb = mem.rss / (1024 * 1024) if mem else 0.0
    return f"{info['pid']:>7}  {(info.get('name') or '?')[:30]:<30}  {info.get('cpu_percent') or 0.0:>5.1f}%  {mem_mb:>8.1f} MB"


_HEADER = f"{'PID':>7}  {'NAME':<30}  {'CPU':>6}  {'MEMORY':>11}"


def _snapshot() -> list[dict[str, Any]]:
    rows = []
    for proc in psutil.process_iter(_PROC_ATTRS):
        rows.append(proc.info)
    return rows


class ListProcessesTool(Tool):
    """按 CPU 占用降序列出进程。"""

    @property
    def name(self) -> str:
        return "list_processes"

    @property
    def description(self) -> str:
        return "List running processes sorted by CPU usage."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "description": "Maximum rows to return", "minimum": 1},
            },
        }

    async def execute(self, limit: int = 30, **kwargs: Any) -> str:
        rows = await asyncio.to_thread(_snapshot)
        rows.sort(key=lambda r: r.get("cpu_percent") or 0.0, reverse=True)
        lines = [_HEADER] + [_format_row(r) for r in rows[:limit]]
        return "\n".join(lines)


class FindProcessTool(Tool):
    """按名称查找进程。"""

    @property
    def name(self) -> str:
        return "find_process"

    @property
    def description(self) -> str:
        return "Find running processes whose name contains the given text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Process name or part of it"},
            },
            "required": ["name"],
        }

    async def execute(self, name: str, **kwargs: Any) -> str:
        needle = name.lower()
        rows = await asyncio.to_thread(_snapshot)
        matches = [r for r in rows if needle in (r.get("name") or "").lower()]
        if not matches:
            return f"No processes matching '{name}'"
        return "\n".join([_HEADER] + [_format_row(r) for r in matches])


class ProcessInfoTool(Tool):
    """查看单个进程详情。"""

    @property
    def name(self) -> str:
        return "process_info"

    @property
    def description(self) -> str:
        return "Show details (command line, status, memory) of a process by PID."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pid": {"type": "integer", "description": "Process ID"},
            },
            "required": ["pid"],
        }

    async def execute(self, pid: int, **kwargs: Any) -> str:
        return await asyncio.to_thread(self._describe, pid)

    @staticmethod
    def _describe(pid: int) -> str:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                mem = proc.memory_info()
                return "\n".join([
                    f"PID: {proc.pid}",
                    f"Name: {proc.name()}",
                    f"Status: {proc.status()}",
                    f"Command: {' '.join(proc.cmdline()) or '(unavailable)'}",
                    f"Memory: {mem.rss / (1024 * 1024):.1f} MB",
                    f"Parent PID: {proc.ppid()}",
                ])
        except psutil.NoSuchProcess:
            raise ToolExecutionFailed(f"no process with pid {pid}")
        except psutil.AccessDenied:
            raise ToolExecutionFailed(f"access denied for pid {pid}")


class KillProcessTool(Tool):
    """终止进程（先 terminate，3 秒内未退出再 kill）。"""

    @property
    def name(self) -> str:
        return "kill_process"

    @property
    def description(self) -> str:
        return "Terminate a process by PID."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pid": {"type": "integer", "description": "Process ID to terminate"},
            },
            "required": ["pid"],
        }

    async def execute(self, pid: int, **kwargs: Any) -> str:
        return await asyncio.to_thread(self._kill, pid)

    @staticmethod
    def _kill(pid: int) -> str:
        try:
            proc = psutil.Process(pid)
            name = proc.name()
            proc.terminate()
            try:
                proc.wait(timeout=3)
            except psutil.TimeoutExpired:
                proc.kill()
        except psutil.NoSuchProcess:
            raise ToolExecutionFailed(f"no process with pid {pid}")
        except psutil.AccessDenied:
            raise ToolExecutionFailed(f"access denied for pid {pid}")
        return f"Terminated process {pid} ({name})"


class SystemInfoTool(Tool):
    """操作系统和资源概况。"""

    @property
    def name(self) -> str:
        return "system_info"

    @property
    def description(self) -> str:
        return "Show operating system, CPU and memory information."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        return await asyncio.to_thread(self._collect)

    @staticmethod
    def _collect() -> str:
        mem = psutil.virtual_memory()
        gib = 1024 ** 3
        return "\n".join([
            f"OS: {platform.system()} {platform.release()}",
            f"Host: {platform.node()}",
            f"CPU cores: {psutil.cpu_count(logical=True)}",
            f"CPU usage: {psutil.cpu_percent(interval=0.2):.1f}%",
            f"Memory: {mem.used / gib:.1f} / {mem.total / gib:.1f} GiB ({mem.percent:.0f}%)",
        ])


def process_tools() -> list[Tool]:
    return [ListProcessesTool(), FindProcessTool(), ProcessInfoTool(), KillProcessTool(), SystemInfoTool()]
