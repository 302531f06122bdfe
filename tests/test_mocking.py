"""Tests for the mock registry (no shell is spawned)."""
from __future__ import annotations

import pytest

from shellsync.errors import MockPatternError, MockSyntaxError
from shellsync.mocking import MockRegistry, mock_function_source, validate_pattern
from shellsync.types import MockCommand, Mock, escape_case_pattern


class TestValidatePattern:
    """Tests for mock pattern validation."""

    @pytest.mark.parametrize("pattern", [
        "git",
        "git status",
        "git s*",
        "git *",
        "command -v curl",
        "[ -e *",
        "pwd mocked *",
    ])
    def test_valid_patterns(self, pattern):
        validate_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["echo .*", "echo $HOME", "a;b", "a && b", "echo 'x'", "x > y"])
    def test_illegal_sequences(self, pattern):
        with pytest.raises(MockPatternError, match="Unsupported character sequence"):
            validate_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["* echo *", "gi? status", "g*"])
    def test_glob_in_first_word(self, pattern):
        with pytest.raises(MockPatternError, match="first word"):
            validate_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["/bin/ls", "./script.sh"])
    def test_path_patterns(self, pattern):
        with pytest.raises(MockPatternError, match="command /bin/ls"):
            validate_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["exit 1", "builtin echo", "unset"])
    def test_reserved_patterns(self, pattern):
        with pytest.raises(MockPatternError, match="Pattern not supported"):
            validate_pattern(pattern)

    def test_empty_pattern(self):
        with pytest.raises(MockPatternError, match="Empty"):
            validate_pattern("  ")

    def test_leading_whitespace(self):
        with pytest.raises(MockPatternError, match="start with a command name"):
            validate_pattern(" git")

    def test_pattern_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_pattern("exit")


class TestMockCommand:
    """Tests for derived mock entry fields."""

    def test_specificity_ignores_trailing_glob(self):
        entry = MockCommand(name="git", pattern="git *", command="", mock=Mock("git *"))
        assert entry.pattern_length == len("git ")

    def test_escaped_pattern(self):
        assert escape_case_pattern("git foo *") == "git\\ foo\\ *"

    def test_function_source(self):
        assert mock_function_source("git", "echo hi") == "git() {\necho hi\n:\n}"


class TestMockRegistry:
    """Tests for registration, ordering and removal."""

    def test_register_returns_handle(self):
        registry = MockRegistry()
        mock = registry.register("git", "echo fake-git")
        assert mock.called == 0
        assert mock.pattern == "git"
        assert registry.match_order()[0].name == "git"

    def test_orders_by_specificity(self):
        registry = MockRegistry()
        for pattern in ["foo", "foo *", "foo bar", "git *", "git ls"]:
            registry.register(pattern)
        patterns = [m.pattern for m in registry.match_order()]
        assert patterns.index("foo bar") < patterns.index("foo *") < patterns.index("foo")
        assert patterns.index("git ls") < patterns.index("git *")

    def test_equal_specificity_later_registration_first(self):
        registry = MockRegistry()
        registry.register("ab *")
        registry.register("cd *")
        assert [m.pattern for m in registry.match_order()] == ["cd *", "ab *"]

    def test_replaces_identical_pattern(self):
        registry = MockRegistry()
        first = registry.register("hello", "echo 1")
        second = registry.register("hello", "echo 2")
        assert len(registry) == 1
        registry.process_mock_stream("\0hello\0")
        assert first.called == 0
        assert second.called == 1

    def test_invalid_pattern_not_registered(self):
        registry = MockRegistry()
        with pytest.raises(MockPatternError):
            registry.register("echo .*")
        assert len(registry) == 0

    def test_syntax_check_failure(self):
        registry = MockRegistry()
        sources = []

        def check(source):
            sources.append(source)
            return "line 2: unexpected EOF"

        with pytest.raises(MockSyntaxError, match="Error in mock: echo '\nline 2: unexpected EOF") as exc:
            registry.register("json", "echo '", check_syntax=check)
        assert exc.value.stderr == "line 2: unexpected EOF"
        assert sources == ["json() {\necho '\n:\n}"]
        assert len(registry) == 0

    def test_syntax_check_success(self):
        registry = MockRegistry()
        registry.register("json", "echo {}", check_syntax=lambda source: None)
        assert len(registry) == 1

    def test_unmock_glob(self):
        registry = MockRegistry()
        registry.register("echo hello")
        registry.register("echo *")
        registry.register("git")
        registry.unmock("echo *")
        assert [m.pattern for m in registry.match_order()] == ["git"]

    def test_unmock_exact(self):
        registry = MockRegistry()
        registry.register("echo hello")
        registry.register("echo bye")
        registry.unmock("echo hello")
        assert [m.pattern for m in registry.match_order()] == ["echo bye"]

    def test_unmock_rejects_odd_patterns(self):
        registry = MockRegistry()
        with pytest.raises(MockPatternError, match="Unsupported unmock pattern"):
            registry.unmock("*")

    def test_unmock_in_strict_mode_allows_real_command(self):
        registry = MockRegistry()
        registry.mock_all_commands_enabled = True
        registry.register("echo *", "echo mocked")
        registry.unmock("echo *")
        (entry,) = registry.match_order()
        assert entry.pattern == "echo *"
        assert entry.command == 'echo "$@"'

    def test_clear(self):
        registry = MockRegistry()
        registry.mock_all_commands_enabled = True
        registry.register("git")
        registry.clear()
        assert len(registry) == 0
        assert not registry.mock_all_commands_enabled

    def test_is_mocked(self):
        registry = MockRegistry()
        registry.register("echo *")
        assert registry.is_mocked("echo")
        assert not registry.is_mocked("printf")

    def test_process_mock_stream_counts_calls(self):
        registry = MockRegistry()
        hello = registry.register("hello")
        bye = registry.register("bye")
        registry.process_mock_stream("\0hello\0\0bye\0\0hello\0")
        assert hello.called == 2
        assert bye.called == 1

    def test_process_empty_stream(self):
        registry = MockRegistry()
        hello = registry.register("hello")
        registry.process_mock_stream("")
        assert hello.called == 0
