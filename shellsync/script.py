"""Generation of the wrapper script that runs a quoted command.

The wrapper:
1. Defines a function per mocked command name that dispatches to
   ``__execMock``, which tries every pattern (most specific first) with
   ``case`` and runs the matching mock body in a subshell, or falls through
   to the real command.
2. In strict mode, installs a DEBUG trap that aborts on any command not
   covered by a mock (bash only, it relies on ``BASH_COMMAND``).
3. Runs the command between optional ``set -x``/``set +x`` markers.
4. Captures the exit status, removes the trap and reports ``$PWD``.

Communication with the engine goes over two extra descriptors:

- fd 3, metadata: ``\\0\\0<message>`` for a strict-mode violation,
  ``\\0<SIGNAL>`` for an intercepted signal, otherwise the final cwd
- fd 4, mock activity: ``\\0<pattern>\\0`` for every mock invocation

Descriptors 5-9 are reserved for future streams.

Everything here is plain string building so it can be tested without
spawning a process.
"""
from __future__ import annotations

import shlex
from pathlib import Path
from typing import Sequence, Tuple

from .types import MockCommand

META_STREAM = 3
MOCK_STREAM = 4

# Statements the strict-mode trap lets through: bookkeeping emitted by the
# wrapper itself rather than by the user's command.
STRICT_MODE_ALLOWED = r"^(builtin|return|exit|unset|export|__RET=\$\?|:$|set [-+]x$)"

# Resolves to "builtin" in shells that have it (bash, zsh) and to nothing
# elsewhere, so "$__builtin command x" bypasses a function named "command".
DETECT_BUILTIN = "if ( builtin : ) 2>/dev/null; then __builtin=builtin; else __builtin=; fi"


def debug_trace(debug: bool) -> Tuple[str, str]:
    """Return statements that start and stop execution tracing."""
    if debug:
        return "{ set -x; } 2>/dev/null", "{ set +x; } 2>/dev/null"
    return ":", ":"


def open_streams(meta_path: Path, mock_path: Path) -> str:
    """Statement that opens the metadata and mock-activity descriptors."""
    return (
        f"exec {META_STREAM}>>{shlex.quote(str(meta_path))} "
        f"{MOCK_STREAM}>>{shlex.quote(str(mock_path))}"
    )


def mock_functions(mocks: Sequence[MockCommand], start_trace: str, stop_trace: str) -> str:
    """Define ``__execMock`` and one intercepting function per mocked name."""
    branches = "".join(
        f"""
    {m.pattern_escaped})
        shift
        (   {m.name}() {{ $__builtin command {m.name} "$@"; }}
            $__builtin command printf '\\000%s\\000' '{m.pattern}' >&{MOCK_STREAM}
            {start_trace}
            : mock for {m.name} :
{m.command}
        ) ;;"""
        for m in mocks
    )
    names = []
    for m in mocks:
        if m.name not in names:
            names.append(m.name)
    interceptors = "\n".join(
        f'{name}() {{ {stop_trace}; __execMock {name} "$@"; }}' for name in names
    )
    return f"""# Mock definitions
__execMock() {{
    case "$*" in{branches}
    *) $__builtin command "$@" ;;
    esac
}}

# Functions to intercept mocked commands
{interceptors}
"""


def strict_mode(mocks: Sequence[MockCommand], start_trace: str, stop_trace: str) -> Tuple[str, str]:
    """Return the strict-mode setup and teardown statements.

    The setup defines ``__mockAllCommands`` and installs it as a DEBUG
    trap; the teardown removes the trap again.
    """
    allowed = "".join(f"\n    {m.pattern_escaped}) ;;" for m in mocks)
    meta = META_STREAM
    setup = f"""__mockAllCommands() {{
    local COMMAND=$BASH_COMMAND
    local ALLOWED='{STRICT_MODE_ALLOWED}'
    if [[ $COMMAND =~ $ALLOWED ]]; then
        return
    fi
    case "$COMMAND" in{allowed}
    [./]*)
        builtin printf '\\000\\000' >&{meta}
        builtin echo "No mock for external command. To mock this command, use 'command $COMMAND' and create a mock that matches 'command $COMMAND'." >&{meta}
        if [[ ${{COMMAND%% *}} != "$COMMAND" ]]; then
            builtin echo "You can also use sh.unmock('${{COMMAND%% *}} *') to remove the mock for this command." >&{meta}
        else
            builtin echo "You can also use sh.unmock('$COMMAND') to remove the mock for this command." >&{meta}
        fi
        builtin exit 1 ;;
    *)
        builtin printf '\\000\\000' >&{meta}
        if [[ ${{COMMAND%% *}} != "$COMMAND" ]]; then
            builtin echo "No mock for command. To mock this command, add a mock for '$COMMAND' or a pattern like '${{COMMAND%% *}} *'." >&{meta}
            builtin echo "You can also use sh.unmock('${{COMMAND%% *}} *') to remove the mock for this command." >&{meta}
        else
            builtin echo "No mock for command. To mock this command, add a mock for '$COMMAND'." >&{meta}
            builtin echo "You can also use sh.unmock('$COMMAND') to remove the mock for this command." >&{meta}
        fi
        builtin exit 1 ;;
    esac
}}
builtin trap "{stop_trace}; __mockAllCommands; {start_trace}" DEBUG
"""
    teardown = "{ builtin trap - DEBUG; } 2>/dev/null"
    return setup, teardown


def wrap_shell_command(
    command: str,
    mocks: Sequence[MockCommand],
    debug: bool = False,
    mock_all_commands: bool = False,
) -> str:
    """Wrap a quoted command with mock dispatch, tracing and cwd reporting.

    The caller must reject commands with subshells before enabling
    ``mock_all_commands``: the DEBUG trap cannot see inside them.
    """
    start_trace, stop_trace = debug_trace(debug)
    setup, teardown = "", ""
    if mock_all_commands:
        setup, teardown = strict_mode(mocks, start_trace, stop_trace)
    return "\n".join([
        ":",
        DETECT_BUILTIN,
        mock_functions(mocks, start_trace, stop_trace),
        setup,
        start_trace,
        command,
        "{ __RET=$?; } 2>/dev/null",
        teardown,
        stop_trace,
        "",
        "# Capture current directory",
        f"$__builtin command printf '%s' \"$PWD\" >&{META_STREAM}",
        "exit $__RET",
        "",
    ])


__all__ = [
    "DETECT_BUILTIN",
    "META_STREAM",
    "MOCK_STREAM",
    "STRICT_MODE_ALLOWED",
    "debug_trace",
    "mock_functions",
    "open_streams",
    "strict_mode",
    "wrap_shell_command",
]
