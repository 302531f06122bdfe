"""Exception types raised by shellsync.

All errors derive from ShellError so callers can catch the whole family
with one clause. Errors raised before a subprocess is spawned (template,
pattern and subshell errors) are usage errors; the rest describe what
happened inside the child.
"""
from __future__ import annotations

from typing import Optional, Union

# Error code carried by MockViolationError (non-numeric on purpose)
MOCK_VIOLATION_CODE = "EMOCK"


class ShellError(Exception):
    """Base error for shellsync failures."""
    pass


class TemplateError(ShellError, ValueError):
    """Raised when an interpolation site has no matching value."""
    pass


class SubshellError(ShellError):
    """Raised when strict mock mode meets a command that uses a subshell."""
    pass


class MockPatternError(ShellError, ValueError):
    """Raised when a mock pattern is malformed or unsupported."""
    pass


class MockSyntaxError(ShellError):
    """Raised when a mock body fails the shell's parse-only dry run."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class ShellExecutionError(ShellError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, message: str, code: int, stderr: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.stderr = stderr


class MockViolationError(ShellError):
    """Raised when strict mode catches a command without a mock."""

    code: Union[int, str] = MOCK_VIOLATION_CODE


class OutputLimitError(ShellError):
    """Raised when captured output grows past ``max_buffer`` bytes."""

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.limit = limit


class ShellEnvironmentError(ShellError, OSError):
    """Raised when the shell cannot be spawned for an environmental reason."""
    pass


__all__ = [
    "MOCK_VIOLATION_CODE",
    "MockPatternError",
    "MockSyntaxError",
    "MockViolationError",
    "OutputLimitError",
    "ShellEnvironmentError",
    "ShellError",
    "ShellExecutionError",
    "SubshellError",
    "TemplateError",
]
