"""Shared test fixtures for the shellsync test suite.

Tests that spawn a shell are marked ``bash`` or ``dash`` and skipped when
that shell is not installed.
"""
import shutil

import pytest

from shellsync import sh
from shellsync.shell import Shell
from shellsync.types import ShellOptions, Stdio


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "bash: tests that spawn /bin/bash",
    )
    config.addinivalue_line(
        "markers",
        "dash: tests that spawn dash",
    )


def pytest_collection_modifyitems(config, items):
    skip_bash = pytest.mark.skip(reason="bash is not installed")
    skip_dash = pytest.mark.skip(reason="dash is not installed")
    has_bash = shutil.which("bash") is not None
    has_dash = shutil.which("dash") is not None
    for item in items:
        if "bash" in item.keywords and not has_bash:
            item.add_marker(skip_bash)
        if "dash" in item.keywords and not has_dash:
            item.add_marker(skip_dash)


@pytest.fixture
def shell(tmp_path):
    """A fresh bash shell with its own mocks, running in a temp directory."""
    return Shell(ShellOptions(shell=shutil.which("bash") or "/bin/bash", cwd=str(tmp_path)))


@pytest.fixture
def hushed(shell):
    """Clone of ``shell`` that captures stderr; shares its mocks."""
    return shell.clone(stdio=Stdio.HUSHED)


@pytest.fixture
def dash_shell(tmp_path):
    return Shell(ShellOptions(shell=shutil.which("dash") or "dash", cwd=str(tmp_path)))


@pytest.fixture(autouse=True)
def reset_default_shells():
    """Undo mocks and signal handling on the module-level shells."""
    yield
    sh.unmock_all_commands()
    sh.handle_signals_end()
