"""Synchronous execution of quoted shell commands.

A ``Shell`` is a callable handle. Each call quotes the template, wraps it
with the mock machinery, runs it as one ``<shell> -c <script>`` subprocess
and decodes the auxiliary streams the wrapper leaves behind:

- the working directory reported at the end of the script becomes the
  handle's ``cwd`` for the next call
- mock invocation markers update the ``called`` counters
- a strict-mode violation is raised as ``MockViolationError``

Handles created from one another share the same ``MockRegistry`` and
``SignalInterceptor``.
"""
from __future__ import annotations

import errno
import json
import logging
import os
import subprocess
import sys
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import (
    MockViolationError,
    OutputLimitError,
    ShellEnvironmentError,
    ShellExecutionError,
    SubshellError,
)
from .mocking import MockRegistry
from .quoting import quote, quote_template
from .script import open_streams, wrap_shell_command
from .signals import SignalInterceptor
from .types import HandleSignalsOptions, Mock, ShellOptions, ShellResult, Stdio

logger = logging.getLogger(__name__)

# Exit status bash uses for syntax errors and builtin misuse
SYNTAX_ERROR_CODE = 2

META_FILENAME = "meta"
MOCK_FILENAME = "mock"


def clean_shell_output(output: Optional[str]) -> Optional[str]:
    """Strip exactly one trailing newline."""
    if output and output.endswith("\n"):
        return output[:-1]
    return output


def check_syntax(script: str, shell: str) -> Optional[str]:
    """Parse ``script`` without running it.

    Returns:
        The shell's diagnostic if the script does not parse, else None
    """
    result = subprocess.run(
        [shell, "-n", "-c", script],
        stdin=subprocess.DEVNULL,
        capture_output=True,
    )
    if result.returncode == 0:
        return None
    diagnostic = result.stderr.decode("utf-8", errors="replace").strip()
    return diagnostic or f"{shell} -n exited with code {result.returncode}"


def _stdio_pipes(stdio: Stdio) -> Tuple[Optional[int], Optional[int]]:
    if stdio is Stdio.HUSHED:
        return subprocess.PIPE, subprocess.PIPE
    if stdio is Stdio.INHERIT:
        return None, None
    return subprocess.PIPE, None


class Shell:
    """Callable shell handle.

    Example:
        >>> sh = Shell()
        >>> sh("echo {}", "hello world")
        'hello world'
        >>> sh.mock("git *", "echo git-$1")
        >>> sh("git status")
        'git-status'
    """

    def __init__(
        self,
        options: Optional[ShellOptions] = None,
        mocks: Optional[MockRegistry] = None,
        signals: Optional[SignalInterceptor] = None,
    ) -> None:
        self.options = options if options is not None else ShellOptions()
        self.mocks = mocks if mocks is not None else MockRegistry()
        self.signals = signals if signals is not None else SignalInterceptor()
        if self.options.mock_all_commands:
            self.mocks.mock_all_commands_enabled = True

    @classmethod
    def from_config(cls, base_dir: Optional[Path] = None) -> "Shell":
        """Create a handle seeded from ``shellsync.toml`` in ``base_dir``."""
        from .config import load_config

        config = load_config(base_dir or Path.cwd())
        return cls(config.shell_options())

    def __repr__(self) -> str:
        return f"Shell(shell={self.options.shell!r}, cwd={self.options.cwd!r}, mocks={len(self.mocks)})"

    def __call__(self, template: Any = None, /, *args: Any, **kwargs: Any) -> Any:
        """Run ``template``, or create a new handle when given options.

        ``sh()``, ``sh(ShellOptions(...))``, ``sh({"input": "x"})`` and
        ``sh(input="x")`` return a clone with the overrides applied.
        """
        if template is None:
            return self.clone(**kwargs)
        if isinstance(template, ShellOptions):
            return self.clone(**template.model_dump(exclude_unset=True), **kwargs)
        if isinstance(template, Mapping):
            return self.clone(**{**template, **kwargs})
        return self._exec(None, template, args, kwargs)

    def clone(self, **overrides: Any) -> "Shell":
        """New handle with ``overrides`` applied, sharing mocks and signal state.

        Strict mode lives on the shared registry, so a clone only changes it
        when ``mock_all_commands=True`` is passed explicitly.
        """
        current = self.options.model_dump(exclude={"mock_all_commands"})
        options = ShellOptions.model_validate({**current, **overrides})
        return Shell(options, self.mocks, self.signals)

    # Invocation variants

    def out(self, template: str, /, *args: Any, **kwargs: Any) -> None:
        """Run a command with stdout and stderr going straight to the terminal."""
        self._exec(Stdio.INHERIT, template, args, kwargs)

    def test(self, template: str, /, *args: Any, **kwargs: Any) -> bool:
        """Return whether the command exits successfully.

        Output is captured and discarded. A strict-mode violation still raises.
        """
        try:
            self._exec(Stdio.HUSHED, template, args, kwargs)
        except ShellExecutionError:
            return False
        return True

    def array(self, template: str, /, *args: Any, **kwargs: Any) -> List[str]:
        """Run a command and split its output on ``options.field_separator``."""
        return self._exec(None, template, args, kwargs).split(self.options.field_separator)

    def json(self, template: str, /, *args: Any, **kwargs: Any) -> Any:
        """Run a command and parse its output as JSON (empty output is None)."""
        output = self._exec(None, template, args, kwargs)
        if not output.strip():
            return None
        return json.loads(output)

    def echo(self, template: str, /, *args: Any, **kwargs: Any) -> None:
        """Print a formatted line, through the shell if ``echo`` is mocked."""
        value = quote(template, *args, **kwargs)
        if self.mocks.is_mocked("echo"):
            self.out("echo {}", value)
            return
        print(value)

    # Mocking

    def mock(self, pattern: str, command: str = "") -> Mock:
        """Replace commands matching ``pattern`` with ``command``.

        Returns:
            Mock handle whose ``called`` attribute counts invocations
        """
        return self.mocks.register(pattern, command, check_syntax=self._check_syntax)

    def unmock(self, pattern: str) -> None:
        """Remove mocks matching ``pattern`` (a glob such as ``git *``)."""
        self.mocks.unmock(pattern, check_syntax=self._check_syntax)

    def mock_all_commands(self) -> None:
        """Fail every command that has no matching mock (bash only).

        Applies to every handle sharing this handle's mocks.
        """
        self.mocks.mock_all_commands_enabled = True
        logger.debug("Strict mock mode enabled")

    def unmock_all_commands(self) -> None:
        """Remove all mocks and leave strict mode, for every handle sharing them."""
        self.mocks.clear()
        self.options.mock_all_commands = False
        logger.debug("Strict mock mode disabled")

    # Signals

    def handle_signals(self, timeout: Optional[float] = None) -> None:
        """Defer SIGINT/SIGQUIT/SIGTERM until running commands complete."""
        self.signals.start(HandleSignalsOptions(timeout=timeout))

    def handle_signals_end(self) -> None:
        """Stop deferring signals and deliver any that arrived meanwhile."""
        self.signals.end()

    # Execution

    @property
    def strict(self) -> bool:
        return self.mocks.mock_all_commands_enabled

    def _check_syntax(self, script: str) -> Optional[str]:
        return check_syntax(script, self.options.shell)

    def _exec(
        self,
        stdio: Optional[Stdio],
        template: str,
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> str:
        quoted = quote_template(template, *args, **kwargs)
        strict = self.strict
        if strict and quoted.has_subshell:
            raise SubshellError(
                "Command appears to have a subshell; "
                f"mock_all_commands() does not support subshells: {quoted.command}"
            )

        script = wrap_shell_command(
            quoted.command,
            self.mocks.match_order(),
            debug=self.options.debug,
            mock_all_commands=strict,
        )
        if self.signals.active:
            script = self.signals.wrap(script, self.options.shell)

        logger.debug(f"Executing shell command: {quoted.command}")
        result = self._spawn(script, stdio or self.options.stdio)
        output = self._finish(result, quoted.command)
        return output or ""

    def _environment(self) -> Dict[str, str]:
        env = dict(self.options.env if self.options.env is not None else os.environ)
        if not self.options.prefer_local:
            return env
        local_dirs = [str(Path(sys.executable).parent)]
        cwd = Path(self.options.cwd or os.getcwd())
        venv_bin = cwd / ".venv" / "bin"
        if venv_bin.is_dir():
            local_dirs.insert(0, str(venv_bin))
        path = env.get("PATH", os.defpath)
        env["PATH"] = os.pathsep.join(local_dirs + [path])
        return env

    def _spawn(self, script: str, stdio: Stdio) -> ShellResult:
        stdout_pipe, stderr_pipe = _stdio_pipes(stdio)
        cwd = self.options.cwd
        encoding = self.options.encoding
        input_bytes = None
        if self.options.input is not None:
            input_bytes = self.options.input.encode(encoding)

        with tempfile.TemporaryDirectory(prefix="shellsync-") as tmp:
            meta_path = Path(tmp) / META_FILENAME
            mock_path = Path(tmp) / MOCK_FILENAME
            command = open_streams(meta_path, mock_path) + "\n" + script
            try:
                completed = subprocess.run(
                    [self.options.shell, "-c", command],
                    cwd=cwd,
                    env=self._environment(),
                    input=input_bytes,
                    stdout=stdout_pipe,
                    stderr=stderr_pipe,
                )
            except FileNotFoundError as e:
                if cwd and not os.path.isdir(cwd):
                    raise ShellEnvironmentError(errno.ENOENT, f"cwd does not exist: {cwd}") from e
                raise
            meta = meta_path.read_bytes() if meta_path.exists() else b""
            mock_activity = mock_path.read_bytes() if mock_path.exists() else b""

        limit = self.options.max_buffer
        for name, data in (("stdout", completed.stdout), ("stderr", completed.stderr)):
            if data is not None and len(data) > limit:
                raise OutputLimitError(f"{name} exceeded max_buffer of {limit} bytes", limit)

        def decode(data: Optional[bytes]) -> Optional[str]:
            return data.decode(encoding, errors="replace") if data is not None else None

        return ShellResult(
            stdout=decode(completed.stdout) or "",
            stderr=decode(completed.stderr),
            exit_code=completed.returncode,
            meta=decode(meta) or "",
            mock_activity=decode(mock_activity) or "",
        )

    def _finish(self, result: ShellResult, command: str) -> Optional[str]:
        # Metadata first, then mock activity, both before raising on the exit
        # status, so a failing command still applies its cwd change.
        violation = None
        if result.meta.startswith("\0\0"):
            violation = result.meta[2:]
        else:
            cwd = self.signals.parse_emitted_signals(result.meta)
            if cwd:
                self.options.cwd = cwd

        if self.options.debug and result.stderr:
            print(clean_shell_output(result.stderr), file=sys.stderr)

        self.mocks.process_mock_stream(result.mock_activity)

        if violation is not None:
            raise MockViolationError(violation.rstrip("\n"))

        if result.exit_code:
            message = (result.stderr + "\n" if result.stderr else "") + (
                f"Error: Process exited with error code {result.exit_code}"
            )
            if result.exit_code == SYNTAX_ERROR_CODE:
                diagnostic = self._check_syntax(command)
                if diagnostic:
                    message += "\n" + diagnostic
            logger.debug(f"Command failed with exit code {result.exit_code}: {command}")
            raise ShellExecutionError(message, code=result.exit_code, stderr=result.stderr)

        return clean_shell_output(result.stdout)


__all__ = [
    "SYNTAX_ERROR_CODE",
    "Shell",
    "check_syntax",
    "clean_shell_output",
]
