import textwrap

import pytest

from shellsync.config import load_config
from shellsync.shell import Shell
from shellsync.types import DEFAULT_SHELL, Stdio


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("SHELLSYNC_SHELL", raising=False)
    monkeypatch.delenv("SHELLSYNC_DEBUG", raising=False)


# TRIVIAL: mirrors dataclass defaults; kept for documentation.
def test_load_config_defaults_when_missing(tmp_path):
    config = load_config(tmp_path)

    assert config.path is None
    assert config.shell == {}
    assert config.signals.timeout is None
    assert config.shell_options().shell == DEFAULT_SHELL


def test_load_config_reads_fields(tmp_path):
    config_file = tmp_path / "shellsync.toml"
    config_file.write_text(
        textwrap.dedent(
            """
            [shell]
            shell = "/bin/dash"
            debug = true
            max_buffer = 1024
            field_separator = ","
            stdio = "hushed"

            [signals]
            timeout = 2
            """
        ).strip()
    )

    config = load_config(tmp_path)
    options = config.shell_options()

    assert config.path == config_file
    assert options.shell == "/bin/dash"
    assert options.debug is True
    assert options.max_buffer == 1024
    assert options.field_separator == ","
    assert options.stdio is Stdio.HUSHED
    assert config.signal_options().timeout == 2.0


def test_unknown_shell_option(tmp_path):
    (tmp_path / "shellsync.toml").write_text('[shell]\nbogus = 1\n')

    with pytest.raises(ValueError, match="bogus"):
        load_config(tmp_path)


def test_invalid_value_rejected(tmp_path):
    (tmp_path / "shellsync.toml").write_text('[shell]\nmax_buffer = -1\n')

    with pytest.raises(ValueError):
        load_config(tmp_path).shell_options()


def test_env_overrides_file(tmp_path, monkeypatch):
    (tmp_path / "shellsync.toml").write_text('[shell]\nshell = "/bin/dash"\ndebug = true\n')
    monkeypatch.setenv("SHELLSYNC_SHELL", "/usr/bin/zsh")
    monkeypatch.setenv("SHELLSYNC_DEBUG", "0")

    options = load_config(tmp_path).shell_options()

    assert options.shell == "/usr/bin/zsh"
    assert options.debug is False


def test_env_overrides_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("SHELLSYNC_DEBUG", "yes")

    assert load_config(tmp_path).shell_options().debug is True


def test_overrides_win(tmp_path):
    (tmp_path / "shellsync.toml").write_text('[shell]\ndebug = true\n')

    assert load_config(tmp_path).shell_options(debug=False).debug is False


def test_shell_from_config(tmp_path):
    (tmp_path / "shellsync.toml").write_text(f'[shell]\ncwd = "{tmp_path}"\nprefer_local = false\n')

    shell = Shell.from_config(tmp_path)

    assert shell.options.cwd == str(tmp_path)
    assert shell.options.prefer_local is False
