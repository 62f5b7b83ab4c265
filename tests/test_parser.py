"""Tests for tool directive parsing."""

from deskpilot.agent.parser import parse_tool_calls


class TestInlineDirectives:
    def test_named_arguments(self):
        [call] = parse_tool_calls("Let me look. [TOOL: list_dir(path=/tmp, recursive=true)]")
        assert call.name == "list_dir"
        assert call.arguments == {"path": "/tmp", "recursive": "true"}

    def test_positional_arguments_use_split_index(self):
        [call] = parse_tool_calls("[TOOL: f(a, key = v, b)]")
        assert call.arguments == {"arg0": "a", "key": "v", "arg2": "b"}

    def test_empty_parts_are_skipped(self):
        [call] = parse_tool_calls("[TOOL: kill_process(1234, )]")
        assert call.arguments == {"arg0": "1234"}

    def test_no_arguments(self):
        [call] = parse_tool_calls("[TOOL: read_clipboard()]")
        assert call.name == "read_clipboard"
        assert call.arguments == {}

    def test_multiple_calls_keep_order(self):
        reply = "First [TOOL: file_info(path=a.txt)] then [TOOL: read_file(path=b.txt)] done."
        assert [c.name for c in parse_tool_calls(reply)] == ["file_info", "read_file"]

    def test_plain_reply_has_no_calls(self):
        assert parse_tool_calls("Just a normal answer.") == []
        assert parse_tool_calls("") == []

    def test_malformed_directive_is_ignored(self):
        assert parse_tool_calls("[TOOL: list_dir path=/tmp]") == []


class TestJsonDirectives:
    def test_whole_reply_json(self):
        [call] = parse_tool_calls('  {"tool": "list_dir", "args": {"path": "/tmp"}}  ')
        assert call.name == "list_dir"
        assert call.arguments == {"path": "/tmp"}

    def test_json_wins_over_inline_text_inside_it(self):
        reply = '{"tool": "write_file", "args": {"path": "n.md", "content": "[TOOL: shell(command=ls)]"}}'
        calls = parse_tool_calls(reply)
        assert [c.name for c in calls] == ["write_file"]

    def test_json_without_args(self):
        [call] = parse_tool_calls('{"tool": "system_info"}')
        assert call.arguments == {}

    def test_json_without_tool_field_falls_back_to_inline(self):
        reply = '{"note": "[TOOL: read_clipboard()]"}'
        assert [c.name for c in parse_tool_calls(reply)] == ["read_clipboard"]

    def test_json_embedded_in_prose_is_not_a_call(self):
        assert parse_tool_calls('Use {"tool": "list_dir"} next time.') == []

    def test_invalid_json_is_plain_text(self):
        assert parse_tool_calls('{"tool": "list_dir",') == []
