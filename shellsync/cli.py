"""Command-line entry point for shellsync.

Runs a command template with its arguments interpolated and safely quoted:

    shellsync 'ls -l {}' "my dir"
    shellsync --mock 'git *=echo fake-$1' 'git status'
    shellsync --quote 'grep {} {}' "it's" file.txt

Options from shellsync.toml in the working directory seed the shell.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.json import JSON
from rich.text import Text

from .config import load_config
from .errors import MockViolationError, ShellError, ShellExecutionError
from .quoting import quote
from .shell import Shell

logger = logging.getLogger(__name__)


def render_output(output: Any, fmt: str) -> JSON | str:
    """Render command output for the chosen ``--format``.

    JSON output becomes a Rich renderable. Text and array output stay plain
    strings so tabs and long lines reach stdout untouched.
    """
    if fmt == "json":
        return JSON.from_data(output)
    if fmt == "array":
        return "\n".join(output)
    return output


def parse_mock_definition(definition: str) -> Tuple[str, str]:
    """Split a ``PATTERN=SCRIPT`` mock definition."""
    pattern, sep, script = definition.partition("=")
    if not sep or not pattern.strip():
        raise argparse.ArgumentTypeError(f"Expected PATTERN=SCRIPT, got {definition!r}")
    return pattern.strip(), script


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellsync",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("template", help="Command template, e.g. 'ls {}'")
    parser.add_argument("args", nargs="*", help="Values interpolated into the template")
    parser.add_argument("--shell", help="Shell binary (default: /bin/bash)")
    parser.add_argument("--cwd", help="Working directory for the command")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Trace executed commands with set -x",
    )
    parser.add_argument(
        "--mock",
        action="append",
        dest="mocks",
        default=[],
        type=parse_mock_definition,
        metavar="PATTERN=SCRIPT",
        help="Replace commands matching PATTERN with SCRIPT (repeatable)",
    )
    parser.add_argument(
        "--mock-all",
        action="store_true",
        help="Fail any command that has no matching mock",
    )
    parser.add_argument(
        "--format",
        choices=("text", "array", "json"),
        default="text",
        help="How to interpret the command's output",
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Print nothing; exit 0 if the command succeeds, 1 otherwise",
    )
    parser.add_argument(
        "--quote",
        action="store_true",
        help="Print the quoted command instead of running it",
    )
    parser.add_argument(
        "--handle-signals",
        nargs="?",
        type=float,
        const=0.0,
        default=None,
        metavar="SECONDS",
        help="Defer SIGINT/SIGTERM/SIGQUIT until the command completes",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _create_shell(args: argparse.Namespace) -> Shell:
    overrides = {}
    if args.shell:
        overrides["shell"] = args.shell
    if args.cwd:
        overrides["cwd"] = args.cwd
    if args.debug:
        overrides["debug"] = True
    config = load_config(Path.cwd())
    if config.path is not None:
        logger.debug(f"Loaded config from {config.path}")
    sh = Shell(config.shell_options(**overrides))
    signal_options = config.signal_options()
    if args.handle_signals is None and signal_options.timeout is not None:
        args.handle_signals = signal_options.timeout
    return sh


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the shellsync CLI.

    Returns:
        Exit code: 0 for success, otherwise the failing command's code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    err_console = Console(stderr=True)
    out_console = Console()
    values: List[str] = list(args.args)

    try:
        if args.quote:
            print(quote(args.template, *values))
            return 0

        sh = _create_shell(args)
        for pattern, script in args.mocks:
            sh.mock(pattern, script)
        if args.mock_all:
            sh.mock_all_commands()
        if args.handle_signals is not None:
            sh.handle_signals(timeout=args.handle_signals or None)

        try:
            if args.test:
                return 0 if sh.test(args.template, *values) else 1
            if args.format == "array":
                output: Any = sh.array(args.template, *values)
            elif args.format == "json":
                output = sh.json(args.template, *values)
            else:
                output = sh(args.template, *values)
        finally:
            if args.handle_signals is not None:
                sh.handle_signals_end()

        rendered = render_output(output, args.format)
        if isinstance(rendered, str):
            print(rendered)
        else:
            out_console.print(rendered)
        return 0

    except ShellExecutionError as e:
        err_console.print(Text(str(e), style="red"))
        return e.code if isinstance(e.code, int) and e.code > 0 else 1
    except MockViolationError as e:
        err_console.print(Text(f"Mock violation: {e}", style="red"))
        return 1
    except ShellError as e:
        err_console.print(Text(f"Error: {e}", style="red"))
        return 1
    except ValueError as e:
        err_console.print(Text(f"Error: {e}", style="red"))
        return 1
    except KeyboardInterrupt:
        print("\nAborted by user", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
