"""
网络工具模块 (agent/tools/network.py)

提供三个网络诊断工具：
  - check_port:       检查本机端口是否被占用
  - check_connection: 测试到 host:port 的 TCP 连通性
  - http_get:         发起 HTTP GET 请求并返回状态码和正文片段（基于 httpx）

URL 只允许 http / https，防止 file:// 等协议读取本地资源。
"""

import asyncio
import socket
from typing import Any
from urllib.parse import urlparse

import httpx

from deskpilot.agent.tools.base import Tool
from deskpilot.errors import ToolExecutionFailed

USER_AGENT = "Mozilla/5.0 (compatible; deskpilot)"
MAX_REDIRECTS = 5
MAX_BODY_CHARS = 5000


def _validate_url(url: str) -> tuple[bool, str]:
    """
    校验 URL 安全性。

    返回:
        tuple[bool, str]: (是否合法, 错误信息)
    """
    try:
        p = urlparse(url)
        if p.scheme not in ("http", "https"):
            return False, f"only http/https allowed, got '{p.scheme or 'none'}'"
        if not p.netloc:
            return False, "missing domain"
        return True, ""
    except ValueError as e:
        return False, str(e)


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(1.0)
        return sock.connect_ex((host, port)) == 0


class CheckPortTool(Tool):
    """检查本机端口是否有服务在监听。"""

    @property
    def name(self) -> str:
        return "check_port"

    @property
    def description(self) -> str:
        return "Check whether a local port is in use."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "port": {"type": "integer", "description": "Port number", "minimum": 1, "maximum": 65535},
                "host": {"type": "string", "description": "Host to check (default 127.0.0.1)"},
            },
            "required": ["port"],
        }

    async def execute(self, port: int, host: str = "127.0.0.1", **kwargs: Any) -> str:
        in_use = await asyncio.to_thread(_port_in_use, host, port)
        state = "in use" if in_use else "free"
        return f"Port {port} on {host} is {state}"


class CheckConnectionTool(Tool):
    """测试 TCP 连通性。"""

    @property
    def name(self) -> str:
        return "check_connection"

    @property
    def description(self) -> str:
        return "Test whether a TCP connection to host:port can be opened."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "host": {"type": "string", "description": "Hostname or IP"},
                "port": {"type": "integer", "description": "Port number", "minimum": 1, "maximum": 65535},
                "timeout": {"type": "number", "description": "Timeout in seconds", "minimum": 0},
            },
            "required": ["host"],
        }

    async def execute(self, host: str, port: int = 443, timeout: float = 5.0, **kwargs: Any) -> str:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionFailed(f"connection to {host}:{port} timed out after {timeout}s")
        except OSError as e:
            raise ToolExecutionFailed(f"cannot connect to {host}:{port}: {e}")
        writer.close()
        await writer.wait_closed()
        return f"Connected to {host}:{port}"


class HttpGetTool(Tool):
    """
    HTTP GET 请求工具。

    返回状态码、Content-Type 和截断后的正文。非 2xx 状态码视为失败。
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "http_get"

    @property
    def description(self) -> str:
        return "Fetch a URL with HTTP GET and return the status and body."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to fetch"},
            },
            "required": ["url"],
        }

    async def execute(self, url: str, **kwargs: Any) -> str:
        is_valid, error_msg = _validate_url(url)
        if not is_valid:
            raise ToolExecutionFailed(f"URL validation failed: {error_msg}")

        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=MAX_REDIRECTS,
                timeout=self.timeout,
            ) as client:
                r = await client.get(url, headers={"User-Agent": USER_AGENT})
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ToolExecutionFailed(f"HTTP {e.response.status_code} from {url}")
        except httpx.HTTPError as e:
            raise ToolExecutionFailed(f"request to {url} failed: {e}")

        body = r.text
        if len(body) > MAX_BODY_CHARS:
            body = body[:MAX_BODY_CHARS] + f"\n... (truncated, {len(r.text) - MAX_BODY_CHARS} more chars)"
        ctype = r.headers.get("content-type", "")
        return f"Status: {r.status_code}\nContent-Type: {ctype}\nURL: {r.url}\n\n{body}"


def network_tools() -> list[Tool]:
    return [CheckPortTool(), CheckConnectionTool(), HttpGetTool()]
