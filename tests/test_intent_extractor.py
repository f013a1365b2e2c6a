"""Tests for the Harper intent extractor, slash commands and @ completion."""

import pytest

from harper.core.models import OperationKind
from harper.exceptions import ValidationFailureError
from harper.intent import (
    IntentExtractor,
    PathCompleter,
    SlashCommandName,
    complete_path,
    extract,
    parse_quoted_args,
    parse_slash_command,
    rewrite_file_references,
)


@pytest.fixture
def extractor():
    return IntentExtractor()


class TestBracketCommands:
    def test_plain_text_has_no_operations(self, extractor):
        assert extractor.extract("Just chatting, nothing to run [not a command].") == []

    def test_run_command(self, extractor):
        [d] = extractor.extract("Let me look: [RUN_COMMAND ls -la]")
        assert d.kind == OperationKind.RUN_COMMAND
        assert d.args == {"command": "ls -la"}
        assert d.is_valid

    def test_source_order(self, extractor):
        ops = extractor.extract("[READ_FILE a.txt] then [RUN_COMMAND ls] then [SEARCH: python asyncio]")
        assert [d.kind for d in ops] == [
            OperationKind.READ_FILE,
            OperationKind.RUN_COMMAND,
            OperationKind.SEARCH_WEB,
        ]
        assert ops[2].args == {"query": "python asyncio"}

    def test_span_matches_raw(self, extractor):
        text = "abc [RUN_COMMAND ls] def"
        [d] = extractor.extract(text)
        start, end = d.span
        assert text[start:end] == d.raw == "[RUN_COMMAND ls]"

    def test_keywords_are_case_sensitive(self, extractor):
        assert extractor.extract("[run_command ls]") == []

    def test_metacharacters_kept_verbatim(self, extractor):
        [d] = extractor.extract("[RUN_COMMAND ls; cat /etc/passwd]")
        assert d.args["command"] == "ls; cat /etc/passwd"

    def test_nested_brackets(self, extractor):
        [d] = extractor.extract("[RUN_COMMAND echo [a]]")
        assert d.args["command"] == "echo [a]"

    def test_apostrophe_does_not_hide_close(self, extractor):
        [d] = extractor.extract("[RUN_COMMAND echo it's] done")
        assert d.args["command"] == "echo it's"

    def test_unbalanced_brackets_become_invalid_descriptor(self, extractor):
        [d] = extractor.extract("[RUN_COMMAND echo hi\nmore text")
        assert d.kind == OperationKind.RUN_COMMAND
        assert d.validation_error == "Unbalanced brackets in RUN_COMMAND command"
        assert d.raw == "[RUN_COMMAND echo hi"

    def test_empty_command_is_invalid(self, extractor):
        [d] = extractor.extract("[RUN_COMMAND ]")
        assert not d.is_valid
        assert "No command" in d.validation_error

    def test_module_level_extract(self):
        assert len(extract("[GIT_STATUS]")) == 1


class TestKeywordArguments:
    def test_write_file_quoted_content(self, extractor):
        [d] = extractor.extract('[WRITE_FILE notes/todo.txt "buy milk and eggs"]')
        assert d.args == {"path": "notes/todo.txt", "content": "buy milk and eggs"}

    def test_write_file_unquoted_content(self, extractor):
        [d] = extractor.extract("[WRITE_FILE a.txt hello there]")
        assert d.args["content"] == "hello there"

    def test_github_issue(self, extractor):
        [d] = extractor.extract('[GITHUB_ISSUE "Crash on start" "Steps: run it"]')
        assert d.kind == OperationKind.GITHUB_ISSUE
        assert d.args == {"title": "Crash on start", "body": "Steps: run it"}

    def test_github_issue_wrong_arity(self, extractor):
        [d] = extractor.extract('[GITHUB_ISSUE "only a title"]')
        assert d.validation_error == "GITHUB_ISSUE expects 2 arguments, got 1"

    def test_github_pr(self, extractor):
        [d] = extractor.extract('[GITHUB_PR "Add x" "Body" feature/x]')
        assert d.args == {"title": "Add x", "body": "Body", "branch": "feature/x"}

    def test_db_query(self, extractor):
        [d] = extractor.extract("[DB_QUERY data.db SELECT * FROM users]")
        assert d.kind == OperationKind.DB_QUERY
        assert d.args == {"db_path": "data.db", "query": "SELECT * FROM users"}

    def test_api_test(self, extractor):
        [d] = extractor.extract('[API_TEST post https://api.example.com/items "" body]')
        assert d.kind == OperationKind.API_PROBE
        assert d.args["method"] == "POST"
        assert d.args["url"] == "https://api.example.com/items"
        assert d.args["headers"] == {}
        assert d.args["body"] == "body"

    def test_api_test_minimal(self, extractor):
        [d] = extractor.extract("[API_TEST GET https://example.com]")
        assert d.args == {"method": "GET", "url": "https://example.com", "headers": {}, "body": ""}

    def test_api_test_bad_method(self, extractor):
        [d] = extractor.extract("[API_TEST FETCH https://example.com]")
        assert "Unsupported HTTP method" in d.validation_error

    def test_screenpipe_defaults(self, extractor):
        [d] = extractor.extract('[SCREENPIPE "standup notes"]')
        assert d.args == {"query": "standup notes", "content_type": "ocr", "limit": 10}

    def test_screenpipe_bad_limit(self, extractor):
        [d] = extractor.extract("[SCREENPIPE notes audio many]")
        assert "limit must be an integer" in d.validation_error

    def test_git_actions(self, extractor):
        ops = extractor.extract('[GIT_STATUS] [GIT_DIFF] [GIT_ADD a.py b.py] [GIT_COMMIT "fix parser"]')
        assert [d.args for d in ops] == [
            {"action": "status"},
            {"action": "diff"},
            {"action": "add", "files": ["a.py", "b.py"]},
            {"action": "commit", "message": "fix parser"},
        ]
        assert all(d.kind == OperationKind.GIT_ACTION for d in ops)

    def test_git_status_rejects_args(self, extractor):
        [d] = extractor.extract("[GIT_STATUS --short]")
        assert not d.is_valid

    def test_image_resize(self, extractor):
        [d] = extractor.extract("[IMAGE_RESIZE in.png out.png 100 50]")
        assert d.args == {"input": "in.png", "output": "out.png", "width": 100, "height": 50}

    def test_image_resize_negative(self, extractor):
        [d] = extractor.extract("[IMAGE_RESIZE in.png out.png -1 50]")
        assert "positive" in d.validation_error

    def test_image_info_and_code_analyze(self, extractor):
        ops = extractor.extract("[IMAGE_INFO pic.png] [CODE_ANALYZE src/app.py]")
        assert ops[0].kind == OperationKind.IMAGE_INSPECT
        assert ops[1].args == {"path": "src/app.py"}

    def test_todo_actions(self, extractor):
        ops = extractor.extract('[TODO add "write release notes"] [TODO list] [TODO remove 2] [TODO clear]')
        assert [d.args for d in ops] == [
            {"action": "add", "description": "write release notes"},
            {"action": "list"},
            {"action": "remove", "index": 2},
            {"action": "clear"},
        ]
        assert all(d.kind == OperationKind.TODO for d in ops)

    def test_todo_colon_note_is_plain_text(self, extractor):
        assert extractor.extract("[TODO: refactor later]") == []

    def test_todo_add_unquoted(self, extractor):
        [d] = extractor.extract("[TODO add fix the flaky test]")
        assert d.args == {"action": "add", "description": "fix the flaky test"}

    @pytest.mark.parametrize(
        "text,error",
        [
            ("[TODO]", "No TODO action provided"),
            ("[TODO add]", "TODO add requires a description"),
            ("[TODO remove]", "TODO remove requires an index"),
            ("[TODO remove first]", "Invalid todo index: first"),
            ("[TODO remove 0]", "Invalid todo index: 0"),
            ("[TODO list everything]", "TODO list takes no arguments"),
            ("[TODO finish]", "Unknown TODO action: finish"),
        ],
    )
    def test_todo_malformed(self, extractor, text, error):
        [d] = extractor.extract(text)
        assert d.kind == OperationKind.TODO
        assert error in d.validation_error


class TestToolCalls:
    def test_builtin_alias(self, extractor):
        text = 'Reading: [TOOL: read_file] {"path": "README.md"} done'
        [d] = extractor.extract(text)
        assert d.kind == OperationKind.READ_FILE
        assert d.args == {"path": "README.md"}
        assert d.raw == '[TOOL: read_file] {"path": "README.md"}'

    def test_nested_args_unwrapped(self, extractor):
        [d] = extractor.extract('[TOOL: run_command] {"args": {"command": "pwd"}}')
        assert d.args == {"command": "pwd"}

    def test_unknown_tool_is_mcp(self, extractor):
        [d] = extractor.extract('[TOOL: weather] {"city": "Oslo"}')
        assert d.kind == OperationKind.MCP_TOOL_CALL
        assert d.args == {"name": "weather", "arguments": {"city": "Oslo"}}

    def test_todo_alias(self, extractor):
        [d] = extractor.extract('[TOOL: todo] {"action": "remove", "index": 1}')
        assert d.kind == OperationKind.TODO
        assert d.args == {"action": "remove", "index": 1}

    def test_missing_json(self, extractor):
        [d] = extractor.extract("[TOOL: weather] please")
        assert "missing its JSON arguments" in d.validation_error

    def test_invalid_json(self, extractor):
        [d] = extractor.extract("[TOOL: weather] {city: Oslo}")
        assert "Invalid JSON" in d.validation_error

    def test_json_with_brackets_not_rescanned(self, extractor):
        ops = extractor.extract('[TOOL: write_file] {"path": "a.md", "content": "[RUN_COMMAND ls]"}')
        assert len(ops) == 1
        assert ops[0].kind == OperationKind.WRITE_FILE


class TestFileReferences:
    def test_rewrite(self):
        assert rewrite_file_references("Look at @src/main.py please") == "Look at [READ_FILE src/main.py] please"

    def test_trailing_full_stop(self):
        assert rewrite_file_references("see @notes.md.") == "see [READ_FILE notes.md]."

    def test_hidden_file(self):
        assert rewrite_file_references("@.env") == "[READ_FILE .env]"

    @pytest.mark.parametrize("text", ["mail me@example.com", "@/etc/passwd", "@!cmd", "@mcp:server/res", "a @ b"])
    def test_left_alone(self, text):
        assert rewrite_file_references(text) == text

    def test_not_rewritten_inside_brackets(self):
        text = "[RUN_COMMAND echo @foo]"
        assert rewrite_file_references(text) == text

    def test_not_rewritten_inside_tool_json(self):
        text = '[TOOL: write_file] {"path": "a.md", "content": "ping @team"} and @b.txt'
        assert rewrite_file_references(text) == (
            '[TOOL: write_file] {"path": "a.md", "content": "ping @team"} and [READ_FILE b.txt]'
        )

    def test_extract_sees_rewritten_reference(self, extractor):
        [d] = extractor.extract("what is in @config.toml?")
        assert d.kind == OperationKind.READ_FILE
        assert d.args == {"path": "config.toml"}


class TestQuotedArgs:
    def test_split(self):
        assert parse_quoted_args('a "b c" d') == ["a", "b c", "d"]

    def test_empty_quoted(self):
        assert parse_quoted_args('x ""') == ["x", ""]

    def test_unclosed_quote(self):
        with pytest.raises(ValidationFailureError):
            parse_quoted_args('"open')


class TestSlashCommands:
    def test_not_a_command(self):
        assert parse_slash_command("hello") is None

    def test_audit_args(self):
        cmd = parse_slash_command("/audit 5 failed")
        assert cmd.name == SlashCommandName.AUDIT
        assert cmd.args == ["5", "failed"]

    def test_alias(self):
        assert parse_slash_command("/quit").name == SlashCommandName.EXIT
        assert parse_slash_command("/?").name == SlashCommandName.HELP

    def test_unknown(self):
        cmd = parse_slash_command("/frobnicate now")
        assert cmd.name == SlashCommandName.UNKNOWN
        assert cmd.raw_name == "frobnicate"


class TestPathCompletion:
    @pytest.fixture
    def tree(self, tmp_path):
        (tmp_path / "main.py").write_text("")
        (tmp_path / "models.py").write_text("")
        (tmp_path / ".env").write_text("")
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("")
        return tmp_path

    def test_prefix(self, tree):
        assert complete_path("m", tree) == ["main.py", "models.py"]

    def test_hidden_entries_skipped(self, tree):
        assert complete_path("", tree) == ["main.py", "models.py", "src/"]

    def test_dot_prefix_shows_hidden(self, tree):
        assert complete_path(".e", tree) == [".env"]

    def test_subdirectory(self, tree):
        assert complete_path("src/", tree) == ["src/app.py"]

    @pytest.mark.parametrize("fragment", ["../", "src/../..", "/etc"])
    def test_escape_attempts(self, tree, fragment):
        assert complete_path(fragment, tree) == []

    def test_cycle(self, tree):
        completer = PathCompleter(tree)
        completer.complete("m")
        assert [completer.next(), completer.next(), completer.next()] == ["main.py", "models.py", "main.py"]

    def test_next_without_candidates(self, tree):
        assert PathCompleter(tree).next() is None
