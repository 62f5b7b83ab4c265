"""
内置处理器 (agent/handlers/builtin.py)

注册顺序即同分时的优先顺序：coder, filer, shell, memory, general。
general 是默认兜底处理器，可以使用全部工具。
"""

import os
import platform

from deskpilot.agent.handlers.base import Handler

CODER_KEYWORDS = (
    "code", "write", "function", "script", "debug", "fix", "implement", "refactor", "class", "method",
)
FILER_KEYWORDS = (
    "file", "folder", "directory", "find", "search", "list", "copy", "move", "delete", "rename",
)
SHELL_KEYWORDS = (
    "run", "execute", "command", "install", "process", "port", "service", "start", "stop", "restart",
)
MEMORY_KEYWORDS = (
    "remember", "recall", "history", "yesterday", "earlier", "before", "last time", "previous",
)


def _coder() -> Handler:
    return Handler(
        name="coder",
        description="Writes, edits, debugs and explains code",
        system_prompt=(
            "You are the coding specialist. You write, edit, debug, and explain code.\n\n"
            "Guidelines:\n"
            "- Write clean, idiomatic code\n"
            "- Prefer standard libraries over external dependencies\n"
            "- Handle errors gracefully\n"
            "- When editing existing code, change only what is needed and use edit_file\n"
            "- Always explain your changes briefly"
        ),
        tools=("read_file", "write_file", "edit_file", "list_dir", "shell"),
        keywords=CODER_KEYWORDS,
    )


def _filer() -> Handler:
    return Handler(
        name="filer",
        description="Reads, writes, lists and organizes files",
        system_prompt=(
            "You are the file specialist. You handle all file system operations.\n\n"
            "Guidelines:\n"
            "- Use absolute paths when the user gives them\n"
            "- Do not overwrite or delete files unless the user clearly asked for it\n"
            "- Summarize directory listings instead of repeating them verbatim"
        ),
        tools=(
            "read_file", "write_file", "edit_file", "list_dir",
            "copy_path", "move_path", "delete_path", "file_info",
        ),
        keywords=FILER_KEYWORDS,
    )


def _shell() -> Handler:
    shell = os.environ.get("SHELL") or os.environ.get("COMSPEC") or "sh"
    return Handler(
        name="shell",
        description="Runs shell commands and inspects processes, ports and the system",
        system_prompt=(
            "You are the shell specialist. You generate and execute shell commands.\n\n"
            f"Current OS: {platform.system()} {platform.release()}\n"
            f"Shell: {shell}\n\n"
            "Guidelines:\n"
            "- Generate safe, non-destructive commands by default\n"
            "- Explain what each command does\n"
            "- Use portable commands when possible\n"
            "- Never run commands that delete system files, change boot configuration "
            "or execute downloaded scripts without review"
        ),
        tools=(
            "shell", "list_processes", "find_process", "process_info", "kill_process", "system_info",
            "check_port", "check_connection", "http_get", "read_clipboard", "copy_to_clipboard",
        ),
        keywords=SHELL_KEYWORDS,
    )


def _memory() -> Handler:
    return Handler(
        name="memory",
        description="Recalls earlier conversations and manages notes",
        system_prompt=(
            "You are the memory specialist. You help recall past interactions and keep notes.\n\n"
            "Responsibilities:\n"
            "- Answer questions about conversation history using search_memory\n"
            "- Save important facts and user preferences with save_note\n"
            "- When summarizing, keep key decisions and files that were created or modified"
        ),
        tools=("save_note", "get_notes", "search_memory"),
        keywords=MEMORY_KEYWORDS,
    )


def _general() -> Handler:
    return Handler(
        name="general",
        description="General-purpose assistant, used when no specialist matches",
        system_prompt="Answer directly and concisely. Use tools only when they are needed.",
        tools=None,
    )


def builtin_handlers() -> list[Handler]:
    """按注册顺序返回全部内置处理器。"""
    return [_coder(), _filer(), _shell(), _memory(), _general()]
