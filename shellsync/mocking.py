"""Registry of mocked commands.

Patterns consist of one or more words and support globbing from the second
word on, e.g. ``git``, ``git status``, ``git s*``. When several patterns
match an invocation, the most specific one (longest pattern, ignoring a
trailing ``*``) wins; among equally specific patterns the most recently
registered one wins.

The registry only stores and orders entries. The generated shell script
(see ``script.py``) does the actual matching at runtime and reports every
matched pattern back so ``record_invocation`` can update call counts.
"""
from __future__ import annotations

import fnmatch
import itertools
import logging
import re
from typing import Callable, Iterable, List, Optional

from .errors import MockPatternError, MockSyntaxError
from .types import Mock, MockCommand

logger = logging.getLogger(__name__)

# Returns the shell's diagnostic for a script that fails to parse, else None
SyntaxChecker = Callable[[str], Optional[str]]

PATH_PATTERN = re.compile(r"^[./]")
ILLEGAL_SEQUENCE = re.compile(r"""([\\"')(\n\r$!`&<>;]|\.\*)""")
FIRST_WORD_GLOB = re.compile(r"^\S*[*?]")
RESERVED_PATTERN = re.compile(r"^(builtin|unset|exit)\b")
UNMOCK_PATTERN = re.compile(r"^[\w\[-]")


def validate_pattern(pattern: str) -> None:
    """Check that a mock pattern can be used in the generated script.

    Raises:
        MockPatternError: If the pattern is path-like, contains shell
            metacharacters, globs in its first word, or names a
            reserved command
    """
    if not pattern or not pattern.strip():
        raise MockPatternError("Empty mock pattern")
    if PATH_PATTERN.match(pattern):
        raise MockPatternError(
            "Unsupported mock pattern. To mock an external command like /bin/ls, "
            "call the command using 'command /bin/ls' and create a mock for 'command /bin/ls'"
        )
    match = ILLEGAL_SEQUENCE.search(pattern)
    if match:
        raise MockPatternError(f"Unsupported character sequence in pattern: {match.group(1)!r}")
    if pattern[0].isspace():
        raise MockPatternError(f"Pattern must start with a command name: {pattern!r}")
    if FIRST_WORD_GLOB.match(pattern):
        raise MockPatternError(f"Pattern matching in first word is not supported: {pattern}")
    if RESERVED_PATTERN.match(pattern):
        raise MockPatternError(f"Pattern not supported: {pattern}")


def mock_function_source(name: str, command: str) -> str:
    """Throwaway function definition used to syntax-check a mock body."""
    return f"{name}() {{\n{command}\n:\n}}"


class MockRegistry:
    """Ordered collection of mocks, shared by every shell cloned from one another."""

    def __init__(self) -> None:
        self.mocks: List[MockCommand] = []
        self.mock_all_commands_enabled = False
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self.mocks)

    def register(
        self,
        pattern: str,
        command: str = "",
        check_syntax: Optional[SyntaxChecker] = None,
    ) -> Mock:
        """Register (or replace) the mock for ``pattern``.

        Args:
            pattern: Pattern matched against the invoked command line
            command: Script to run instead of the matched command
            check_syntax: Parse-only dry run of the mock body

        Returns:
            Mock handle whose ``called`` attribute counts invocations

        Raises:
            MockPatternError: If the pattern is not supported
            MockSyntaxError: If the mock body does not parse
        """
        validate_pattern(pattern)
        command = command or ""
        entry = MockCommand(
            name=pattern.split()[0],
            pattern=pattern,
            command=command,
            mock=Mock(pattern=pattern),
            sequence=next(self._sequence),
        )
        if check_syntax is not None:
            diagnostic = check_syntax(mock_function_source(entry.name, command))
            if diagnostic is not None:
                raise MockSyntaxError(f"Error in mock: {command}\n{diagnostic}", stderr=diagnostic)

        self.remove(pattern, match_with_glob=False)
        self.mocks.append(entry)
        self.mocks.sort(key=lambda m: (-m.pattern_length, -m.sequence))
        logger.debug("Registered mock %r (%d active)", pattern, len(self.mocks))
        return entry.mock

    def unmock(self, pattern: str, check_syntax: Optional[SyntaxChecker] = None) -> None:
        """Remove every mock whose pattern matches the glob ``pattern``.

        With strict mode enabled, ``pattern`` is re-registered as a
        pass-through mock so the real command is allowed to run.
        """
        if not UNMOCK_PATTERN.match(pattern):
            raise MockPatternError(f"Unsupported unmock pattern: {pattern}")
        self.remove(pattern, match_with_glob=True)
        if self.mock_all_commands_enabled:
            name = pattern.split()[0]
            self.register(pattern, f'{name} "$@"', check_syntax)

    def remove(self, pattern: str, match_with_glob: bool) -> None:
        """Drop mocks equal to ``pattern``, or matching it as a glob."""
        before = len(self.mocks)
        if match_with_glob:
            self.mocks = [m for m in self.mocks if not fnmatch.fnmatchcase(m.pattern, pattern)]
        else:
            self.mocks = [m for m in self.mocks if m.pattern != pattern]
        if len(self.mocks) != before:
            logger.debug("Removed %d mock(s) for %r", before - len(self.mocks), pattern)

    def clear(self) -> None:
        """Remove all mocks and disable strict mode."""
        self.mocks = []
        self.mock_all_commands_enabled = False
        logger.debug("Cleared all mocks")

    def match_order(self) -> List[MockCommand]:
        """Entries in the order the generated script tries them."""
        return list(self.mocks)

    def is_mocked(self, name: str) -> bool:
        return any(m.name == name for m in self.mocks)

    def record_invocation(self, pattern: str) -> None:
        for entry in self.mocks:
            if entry.pattern == pattern:
                entry.mock.called += 1

    def process_mock_stream(self, output: str) -> None:
        """Count the NUL-delimited patterns reported by the mock-activity stream."""
        for pattern in _split_markers(output):
            self.record_invocation(pattern)


def _split_markers(output: str) -> Iterable[str]:
    return (part for part in output.split("\0") if part)


__all__ = [
    "MockRegistry",
    "SyntaxChecker",
    "mock_function_source",
    "validate_pattern",
]
