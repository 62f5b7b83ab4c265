"""
文件系统工具模块 (agent/tools/filesystem.py)

模块职责：
    提供文件系统相关工具，允许模型通过工具指令操作本地文件：
      - ReadFileTool:   读取文件内容
      - WriteFileTool:  写入文件内容（自动创建父目录）
      - EditFileTool:   精确替换文件中的文本片段
      - ListDirTool:    列出目录内容（可递归）
      - CopyPathTool / MovePathTool / DeletePathTool: 复制、移动、删除
      - FileInfoTool:   查看文件元信息

    所有工具都支持可选的目录限制（allowed_dir），防止越权访问工作区之外的路径。
    失败时抛出 ToolExecutionFailed，由注册表转换为失败的 ToolResult。
    目录遍历、复制等可能较慢的操作通过 asyncio.to_thread 放到线程池执行，不阻塞事件循环。

安全设计：
    _resolve_path() 会展开 ~、解析为绝对路径（消除 ../），并检查是否在允许的目录内。
"""

import asyncio
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any

from deskpilot.agent.tools.base import Tool
from deskpilot.errors import ToolExecutionFailed

# 递归列目录时最多返回的条目数，防止撑爆上下文
MAX_LISTING_ENTRIES = 500


def _resolve_path(path: str, allowed_dir: Path | None = None) -> Path:
    """
    解析并校验文件路径。

    异常:
        ToolExecutionFailed: 路径超出允许目录范围
    """
    resolved = Path(path).expanduser().resolve()
    if allowed_dir:
        root = allowed_dir.expanduser().resolve()
        if resolved != root and root not in resolved.parents:
            raise ToolExecutionFailed(f"path {path} is outside allowed directory {allowed_dir}")
    return resolved


class _FileTool(Tool):
    """文件类工具的公共基类，持有 allowed_dir。"""

    def __init__(self, allowed_dir: Path | None = None):
        self._allowed_dir = allowed_dir

    def _path(self, path: str) -> Path:
        return _resolve_path(path, self._allowed_dir)


class ReadFileTool(_FileTool):
    """文件读取工具。类比 Java: Files.readString(Path)。"""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a text file at the given path."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to read"},
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **kwargs: Any) -> str:
        file_path = self._path(path)
        if not file_path.exists():
            raise ToolExecutionFailed(f"file not found: {path}")
        if not file_path.is_file():
            raise ToolExecutionFailed(f"not a file: {path}")
        try:
            return await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except UnicodeDecodeError:
            raise ToolExecutionFailed(f"not a UTF-8 text file: {path}")


class WriteFileTool(_FileTool):
    """文件写入工具，父目录不存在时自动创建。"""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file at the given path. Creates parent directories if needed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to write to"},
                "content": {"type": "string", "description": "The content to write"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str, **kwargs: Any) -> str:
        file_path = self._path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        return f"Successfully wrote {len(content)} bytes to {path}"


class EditFileTool(_FileTool):
    """
    文件编辑工具（精确文本替换）。

    要求旧文本在文件中精确存在且唯一（出现多次会拒绝，避免误改）。
    """

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return "Edit a file by replacing old_text with new_text. The old_text must occur exactly once."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to edit"},
                "old_text": {"type": "string", "description": "The exact text to find and replace"},
                "new_text": {"type": "string", "description": "The text to replace with"},
            },
            "required": ["path", "old_text", "new_text"],
        }

    async def execute(self, path: str, old_text: str, new_text: str, **kwargs: Any) -> str:
        file_path = self._path(path)
        if not file_path.exists():
            raise ToolExecutionFailed(f"file not found: {path}")

        content = file_path.read_text(encoding="utf-8")
        count = content.count(old_text)
        if count == 0:
            raise ToolExecutionFailed("old_text not found in file; make sure it matches exactly")
        if count > 1:
            raise ToolExecutionFailed(f"old_text appears {count} times; provide more context to make it unique")

        file_path.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
        return f"Successfully edited {path}"


class ListDirTool(_FileTool):
    """
    目录列表工具。

    以 📁 / 📄 区分目录和文件；recursive=true 时列出子目录中的内容（相对路径），
    最多 MAX_LISTING_ENTRIES 条。
    """

    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return "List the contents of a directory (defaults to the current directory)."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to list"},
                "recursive": {"type": "boolean", "description": "Include subdirectories"},
            },
        }

    async def execute(self, path: str = ".", recursive: bool = False, **kwargs: Any) -> str:
        dir_path = self._path(path)
        if not dir_path.exists():
            raise ToolExecutionFailed(f"directory not found: {path}")
        if not dir_path.is_dir():
            raise ToolExecutionFailed(f"not a directory: {path}")

        items = await asyncio.to_thread(self._collect, dir_path, recursive)
        if not items:
            return f"Directory {path} is empty"
        return "\n".join(items)

    @staticmethod
    def _collect(dir_path: Path, recursive: bool) -> list[str]:
        entries = sorted(dir_path.rglob("*") if recursive else dir_path.iterdir())
        items = []
        for item in entries[:MAX_LISTING_ENTRIES]:
            prefix = "📁 " if item.is_dir() else "📄 "
            label = item.relative_to(dir_path).as_posix() if recursive else item.name
            items.append(f"{prefix}{label}")
        if len(entries) > MAX_LISTING_ENTRIES:
            items.append(f"... ({len(entries) - MAX_LISTING_ENTRIES} more entries)")
        return items


class CopyPathTool(_FileTool):
    """复制文件或整个目录。"""

    @property
    def name(self) -> str:
        return "copy_path"

    @property
    def description(self) -> str:
        return "Copy a file or directory to a new location."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "source": {"type": "string", "description": "Path to copy from"},
                "destination": {"type": "string", "description": "Path to copy to"},
            },
            "required": ["source", "destination"],
        }

    async def execute(self, source: str, destination: str, **kwargs: Any) -> str:
        src, dst = self._path(source), self._path(destination)
        if not src.exists():
            raise ToolExecutionFailed(f"source not found: {source}")
        if src.is_dir():
            await asyncio.to_thread(shutil.copytree, src, dst)
        else:
            dst.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copy2, src, dst)
        return f"Copied {source} to {destination}"


class MovePathTool(_FileTool):
    """移动或重命名文件/目录。"""

    @property
    def name(self) -> str:
        return "move_path"

    @property
    def description(self) -> str:
        return "Move or rename a file or directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "source": {"type": "string", "description": "Path to move"},
                "destination": {"type": "string", "description": "New path"},
            },
            "required": ["source", "destination"],
        }

    async def execute(self, source: str, destination: str, **kwargs: Any) -> str:
        src, dst = self._path(source), self._path(destination)
        if not src.exists():
            raise ToolExecutionFailed(f"source not found: {source}")
        await asyncio.to_thread(shutil.move, str(src), str(dst))
        return f"Moved {source} to {destination}"


class DeletePathTool(_FileTool):
    """
    删除文件或目录。

    非空目录必须显式传 recursive=true 才会删除。
    """

    @property
    def name(self) -> str:
        return "delete_path"

    @property
    def description(self) -> str:
        return "Delete a file or directory. Non-empty directories require recursive=true."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to delete"},
                "recursive": {"type": "boolean", "description": "Delete non-empty directories"},
            },
            "required": ["path"],
        }

    async def execute(self, path: str, recursive: bool = False, **kwargs: Any) -> str:
        target = self._path(path)
        if not target.exists():
            raise ToolExecutionFailed(f"path not found: {path}")
        if target.is_dir():
            if any(target.iterdir()) and not recursive:
                raise ToolExecutionFailed(f"directory {path} is not empty; pass recursive=true")
            await asyncio.to_thread(shutil.rmtree, target)
        else:
            target.unlink()
        return f"Deleted {path}"


class FileInfoTool(_FileTool):
    """查看文件或目录的类型、大小和修改时间。"""

    @property
    def name(self) -> str:
        return "file_info"

    @property
    def description(self) -> str:
        return "Show type, size and modification time of a file or directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to inspect"},
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **kwargs: Any) -> str:
        target = self._path(path)
        if not target.exists():
            raise ToolExecutionFailed(f"path not found: {path}")
        stat = target.stat()
        kind = "directory" if target.is_dir() else "symlink" if target.is_symlink() else "file"
        modified = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
        return "\n".join([
            f"Path: {target}",
            f"Type: {kind}",
            f"Size: {stat.st_size} bytes",
            f"Modified: {modified}",
        ])


def filesystem_tools(allowed_dir: Path | None = None) -> list[Tool]:
    """构建全部文件系统工具实例（按注册顺序）。"""
    return [
        ReadFileTool(allowed_dir),
        WriteFileTool(allowed_dir),
        EditFileTool(allowed_dir),
        ListDirTool(allowed_dir),
        CopyPathTool(allowed_dir),
        MovePathTool(allowed_dir),
        DeletePathTool(allowed_dir),
        FileInfoTool(allowed_dir),
    ]
