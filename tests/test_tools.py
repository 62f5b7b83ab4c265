"""Tests for the tool registry and the built-in tools."""

import asyncio
import os
import sys

import pyperclip
import pytest

from deskpilot.agent.tools import ShellTool, ToolCall, ToolRegistry, default_tool_registry
from deskpilot.agent.tools.clipboard import CopyToClipboardTool, ReadClipboardTool
from deskpilot.agent.tools.filesystem import filesystem_tools
from deskpilot.agent.tools.memory import memory_tools
from deskpilot.agent.tools.network import CheckPortTool, HttpGetTool, _validate_url
from deskpilot.agent.tools.process import FindProcessTool, ProcessInfoTool, SystemInfoTool


@pytest.fixture
def fs(tmp_path):
    registry = ToolRegistry()
    for tool in filesystem_tools(allowed_dir=tmp_path):
        registry.register(tool)
    return registry


@pytest.mark.asyncio
class TestRegistry:
    async def test_unknown_tool(self, tools):
        result = await tools.execute(ToolCall("nope"))
        assert not result.success
        assert result.error == "unknown tool: nope"

    async def test_missing_required_argument(self, tools):
        result = await tools.execute(ToolCall("echo", {}))
        assert not result.success
        assert result.error == "missing required argument: text"

    async def test_positional_arguments_bind_in_order(self, tools, echo):
        result = await tools.execute(ToolCall("echo", {"arg0": "hi", "arg1": "3"}))
        assert result.success
        assert result.output == "hi hi hi"

    async def test_invalid_argument_type(self, tools):
        result = await tools.execute(ToolCall("echo", {"text": "hi", "times": "many"}))
        assert not result.success
        assert result.error.startswith("invalid arguments for echo")

    async def test_tool_error_becomes_failed_result(self, tools):
        result = await tools.execute(ToolCall("explode"))
        assert not result.success
        assert result.error == "kaput"
        assert result.render() == "Error: kaput"

    async def test_unexpected_exception_is_contained(self, tools, echo, monkeypatch):
        async def broken(**kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(echo, "execute", broken)
        result = await tools.execute(ToolCall("echo", {"text": "x"}))
        assert not result.success
        assert result.error == "echo failed: boom"

    async def test_aliases_resolve_to_the_same_tool(self):
        registry = ToolRegistry()
        registry.register(ShellTool())
        assert registry.get("run_command") is registry.get("shell")
        assert registry.resolve("run_command") == "shell"
        assert "run_command" not in registry.tool_names

        registry.unregister("shell")
        assert "run_command" not in registry

    async def test_describe_marks_optional_arguments(self, tools):
        [line] = tools.describe(["echo"])
        assert line == "- echo(text, times?): Echo the given text."
        assert tools.describe(["not_registered"]) == []

    async def test_default_registry_contains_all_tool_groups(self, context, tmp_path):
        registry = default_tool_registry(context, workspace=tmp_path)
        for name in ("read_file", "shell", "list_processes", "read_clipboard", "check_port", "save_note"):
            assert name in registry


@pytest.mark.asyncio
class TestFilesystemTools:
    async def test_write_read_and_list(self, fs, tmp_path):
        target = tmp_path / "notes" / "a.txt"
        result = await fs.execute(ToolCall("write_file", {"path": str(target), "content": "hello"}))
        assert result.success

        read = await fs.execute(ToolCall("read_file", {"arg0": str(target)}))
        assert read.output == "hello"

        listing = await fs.execute(ToolCall("list_dir", {"path": str(tmp_path)}))
        assert listing.output == "📁 notes"

        recursive = await fs.execute(ToolCall("list_dir", {"path": str(tmp_path), "recursive": "true"}))
        assert recursive.output.splitlines() == ["📁 notes", "📄 notes/a.txt"]

    async def test_empty_directory(self, fs, tmp_path):
        result = await fs.execute(ToolCall("list_dir", {"path": str(tmp_path)}))
        assert result.output == f"Directory {tmp_path} is empty"

    async def test_edit_requires_unique_match(self, fs, tmp_path):
        target = tmp_path / "code.py"
        target.write_text("x = 1\nx = 1\n", encoding="utf-8")
        result = await fs.execute(ToolCall("edit_file", {"path": str(target), "old_text": "x = 1", "new_text": "x = 2"}))
        assert not result.success
        assert "appears 2 times" in result.error

        target.write_text("x = 1\n", encoding="utf-8")
        result = await fs.execute(ToolCall("edit_file", {"path": str(target), "old_text": "x = 1", "new_text": "x = 2"}))
        assert result.success
        assert target.read_text(encoding="utf-8") == "x = 2\n"

    async def test_copy_move_and_delete(self, fs, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("data", encoding="utf-8")

        assert (await fs.execute(ToolCall("copy_path", {"source": str(source), "destination": str(tmp_path / "b.txt")}))).success
        assert (await fs.execute(ToolCall("move_path", {"source": str(source), "destination": str(tmp_path / "c.txt")}))).success
        assert not source.exists()
        assert (tmp_path / "b.txt").read_text(encoding="utf-8") == "data"

        assert (await fs.execute(ToolCall("delete_path", {"path": str(tmp_path / "c.txt")}))).success
        assert not (tmp_path / "c.txt").exists()

    async def test_non_empty_directory_needs_recursive_delete(self, fs, tmp_path):
        folder = tmp_path / "folder"
        folder.mkdir()
        (folder / "x.txt").write_text("x", encoding="utf-8")

        result = await fs.execute(ToolCall("delete_path", {"path": str(folder)}))
        assert not result.success
        result = await fs.execute(ToolCall("delete_path", {"path": str(folder), "recursive": "yes"}))
        assert result.success
        assert not folder.exists()

    async def test_paths_outside_allowed_dir_are_rejected(self, fs, tmp_path):
        result = await fs.execute(ToolCall("read_file", {"path": str(tmp_path.parent / "elsewhere.txt")}))
        assert not result.success
        assert "outside allowed directory" in result.error

    async def test_file_info(self, fs, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("12345", encoding="utf-8")
        result = await fs.execute(ToolCall("file_info", {"path": str(target)}))
        assert "Type: file" in result.output
        assert "Size: 5 bytes" in result.output

    async def test_missing_file(self, fs, tmp_path):
        result = await fs.execute(ToolCall("read_file", {"path": str(tmp_path / "nope.txt")}))
        assert not result.success
        assert result.error.startswith("file not found")


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
class TestShellTool:
    async def test_successful_command(self, tmp_path):
        output = await ShellTool(working_dir=str(tmp_path)).execute("echo hello")
        assert output.strip() == "hello"

    async def test_non_zero_exit_fails(self):
        registry = ToolRegistry()
        registry.register(ShellTool())
        result = await registry.execute(ToolCall("run_command", {"command": "exit 3"}))
        assert not result.success
        assert result.error.startswith("exit code 3")

    async def test_dangerous_command_is_blocked(self):
        registry = ToolRegistry()
        registry.register(ShellTool())
        result = await registry.execute(ToolCall("shell", {"command": "rm -rf /"}))
        assert not result.success
        assert "blocked by safety guard" in result.error

    async def test_timeout(self):
        registry = ToolRegistry()
        registry.register(ShellTool(timeout=1))
        result = await registry.execute(ToolCall("shell", {"command": "sleep 5"}))
        assert not result.success
        assert "timed out" in result.error


@pytest.mark.asyncio
class TestMemoryTools:
    async def test_save_and_filter_notes(self, context):
        registry = ToolRegistry()
        for tool in memory_tools(context):
            registry.register(tool)

        saved = await registry.execute(ToolCall("save_note", {"content": "router ip is 10.0.0.1", "tags": "network, home"}))
        assert saved.success
        assert saved.output.startswith("Saved note")

        await registry.execute(ToolCall("save_note", {"content": "dentist on friday"}))

        notes = await registry.execute(ToolCall("get_notes", {"tags": "home"}))
        assert "router ip is 10.0.0.1" in notes.output
        assert "dentist" not in notes.output

        empty = await registry.execute(ToolCall("get_notes", {"tags": "missing"}))
        assert empty.output == "No notes found"

    async def test_search_memory(self, context):
        registry = ToolRegistry()
        for tool in memory_tools(context):
            registry.register(tool)
        await context.store.add_message(context.session_id, "user", "the wifi password is on the fridge")

        found = await registry.execute(ToolCall("search_memory", {"arg0": "wifi password"}))
        assert "fridge" in found.output
        missing = await registry.execute(ToolCall("search_memory", {"query": "boat"}))
        assert missing.output == "Nothing found for 'boat'"


@pytest.mark.asyncio
class TestProcessTools:
    async def test_system_info(self):
        output = await SystemInfoTool().execute()
        assert "CPU" in output

    async def test_process_info_for_self(self):
        output = await ProcessInfoTool().execute(pid=os.getpid())
        assert str(os.getpid()) in output

    async def test_find_missing_process(self):
        output = await FindProcessTool().execute(name="definitely-not-running-xyz")
        assert output == "No processes matching 'definitely-not-running-xyz'"

    async def test_unknown_pid_fails(self):
        registry = ToolRegistry()
        registry.register(ProcessInfoTool())
        result = await registry.execute(ToolCall("process_info", {"arg0": "999999999"}))
        assert not result.success


@pytest.mark.asyncio
class TestClipboardTools:
    async def test_copy_and_read(self, monkeypatch):
        board = {"text": ""}
        monkeypatch.setattr(pyperclip, "copy", lambda text: board.update(text=text))
        monkeypatch.setattr(pyperclip, "paste", lambda: board["text"])

        assert await ReadClipboardTool().execute() == "(clipboard is empty)"
        assert await CopyToClipboardTool().execute(text="hello") == "Copied 5 characters to clipboard"
        assert await ReadClipboardTool().execute() == "hello"

    async def test_unavailable_clipboard_fails(self, monkeypatch):
        def unavailable():
            raise pyperclip.PyperclipException("no clipboard mechanism")

        monkeypatch.setattr(pyperclip, "paste", unavailable)
        registry = ToolRegistry()
        registry.register(ReadClipboardTool())
        result = await registry.execute(ToolCall("read_clipboard"))
        assert not result.success
        assert "clipboard unavailable" in result.error


@pytest.mark.asyncio
class TestNetworkTools:
    async def test_check_port_sees_listening_server(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            output = await CheckPortTool().execute(port=port)
        finally:
            server.close()
            await server.wait_closed()
        assert output == f"Port {port} on 127.0.0.1 is in use"

    async def test_only_http_urls_are_fetched(self):
        ok, error = _validate_url("file:///etc/passwd")
        assert not ok
        assert error

        registry = ToolRegistry()
        registry.register(HttpGetTool())
        result = await registry.execute(ToolCall("http_get", {"url": "ftp://example.com"}))
        assert not result.success
        assert result.error.startswith("URL validation failed")
