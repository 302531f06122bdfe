"""Shell-related type definitions.

This module contains the data models shared across shellsync:
- ShellOptions: Spawn configuration for a shell handle
- Stdio: Standard stream routing modes
- ShellResult: Raw outcome of one spawned script
- HandleSignalsOptions: Settings for signal interception
- Mock: Call-count handle returned by ``mock()``
- MockCommand: A registered mock entry
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Default ceiling for captured stdout/stderr (10MB)
DEFAULT_MAX_BUFFER = 10 * 1024 * 1024

DEFAULT_SHELL = "/bin/bash"


class Stdio(str, Enum):
    """How the child's standard output and error are routed."""

    DEFAULT = "default"  # capture stdout, inherit stderr
    HUSHED = "hushed"  # capture stdout and stderr
    INHERIT = "inherit"  # inherit stdout and stderr


class ShellOptions(BaseModel):
    """Spawn configuration for a shell handle."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    shell: str = Field(default=DEFAULT_SHELL, description="Shell binary used to run commands")
    cwd: Optional[str] = Field(
        default=None,
        description="Working directory; updated after every call",
    )
    env: Optional[Dict[str, str]] = Field(
        default=None,
        description="Environment for the child (defaults to the current environment)",
    )
    debug: bool = Field(default=False, description="Trace executed commands with set -x")
    mock_all_commands: bool = Field(
        default=False,
        description="Enable strict mode on the shared mock registry when the handle is created",
    )
    max_buffer: int = Field(
        default=DEFAULT_MAX_BUFFER,
        gt=0,
        description="Largest amount of captured stdout or stderr in bytes",
    )
    input: Optional[str] = Field(default=None, description="Text fed to the child's stdin")
    field_separator: str = Field(default="\n", description="Delimiter used by array()")
    prefer_local: bool = Field(
        default=True,
        description="Prepend local executable directories to PATH",
    )
    stdio: Stdio = Field(default=Stdio.DEFAULT, description="Standard stream routing")
    encoding: str = Field(default="utf-8", description="Encoding of child output")

    @field_validator("cwd", "shell", mode="before")
    @classmethod
    def _path_to_str(cls, value: Any) -> Any:
        if isinstance(value, os.PathLike):
            return os.fspath(value)
        return value


class ShellResult(BaseModel):
    """Raw outcome of one spawned wrapper script."""

    stdout: str = ""
    stderr: Optional[str] = None
    exit_code: int
    meta: str = ""  # contents of the metadata stream
    mock_activity: str = ""  # contents of the mock-activity stream


class HandleSignalsOptions(BaseModel):
    """Settings for ``handle_signals()``."""

    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait after a signal before killing the child (None = no timeout)",
    )


@dataclass
class Mock:
    """Handle for a registered mock; ``called`` counts matching invocations."""

    pattern: str
    called: int = 0


@dataclass
class MockCommand:
    """A registered interception of a command pattern."""

    name: str
    pattern: str
    command: str
    mock: Mock
    sequence: int = 0
    pattern_escaped: str = field(init=False)
    pattern_length: int = field(init=False)

    def __post_init__(self) -> None:
        self.pattern_escaped = escape_case_pattern(self.pattern)
        self.pattern_length = len(self.pattern[:-1] if self.pattern.endswith("*") else self.pattern)


def escape_case_pattern(pattern: str) -> str:
    """Escape whitespace so a pattern can be used as one ``case`` label."""
    return "".join("\\" + char if char.isspace() else char for char in pattern)


__all__ = [
    "DEFAULT_MAX_BUFFER",
    "DEFAULT_SHELL",
    "HandleSignalsOptions",
    "Mock",
    "MockCommand",
    "ShellOptions",
    "ShellResult",
    "Stdio",
]
