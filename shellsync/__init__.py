"""shellsync: synchronous shell commands with safe quoting and mocks.

Main entry points:
- sh: Run a command template, returning stdout; stderr is printed
- shh: Same, but stderr is captured too
- quote / unquoted: Build command strings without running them
- Shell.mock / Shell.mock_all_commands: Replace commands in tests

Example:
    >>> from shellsync import sh
    >>> sh("echo {}", "it's quoted")
    "it's quoted"
"""
from __future__ import annotations

from typing import Any, Optional

from .errors import (
    MOCK_VIOLATION_CODE,
    MockPatternError,
    MockSyntaxError,
    MockViolationError,
    OutputLimitError,
    ShellEnvironmentError,
    ShellError,
    ShellExecutionError,
    SubshellError,
    TemplateError,
)
from .mocking import MockRegistry
from .quoting import Raw, quote, unquoted
from .shell import Shell
from .signals import SignalInterceptor
from .types import HandleSignalsOptions, Mock, ShellOptions, Stdio


def create_shell(options: Optional[ShellOptions] = None, **overrides: Any) -> Shell:
    """Create an independent shell with its own mocks and signal state."""
    if options is not None:
        overrides = {**options.model_dump(), **overrides}
    return Shell(ShellOptions.model_validate(overrides))


sh = Shell()
shh = sh.clone(stdio=Stdio.HUSHED)

__all__ = [
    # Handles
    "Shell",
    "create_shell",
    "sh",
    "shh",
    # Quoting
    "Raw",
    "quote",
    "unquoted",
    # Options and mocks
    "HandleSignalsOptions",
    "Mock",
    "MockRegistry",
    "ShellOptions",
    "SignalInterceptor",
    "Stdio",
    # Errors
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
    # Version
    "__version__",
]

__version__ = "0.1.0"
