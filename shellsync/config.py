"""Configuration loading for shellsync.

Reads an optional ``shellsync.toml`` from the working directory to seed
the options of a shell handle and of signal interception. Environment
variables override the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib

from .types import HandleSignalsOptions, ShellOptions


CONFIG_FILENAMES = ("shellsync.toml",)

SHELL_ENV = "SHELLSYNC_SHELL"
DEBUG_ENV = "SHELLSYNC_DEBUG"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class SignalSettings:
    timeout: Optional[float] = None


@dataclass
class ShellsyncConfig:
    shell: Dict[str, Any] = field(default_factory=dict)
    signals: SignalSettings = field(default_factory=SignalSettings)
    path: Optional[Path] = None

    def shell_options(self, **overrides: Any) -> ShellOptions:
        """Build validated ``ShellOptions`` from the ``[shell]`` table."""
        return ShellOptions.model_validate({**self.shell, **overrides})

    def signal_options(self) -> HandleSignalsOptions:
        return HandleSignalsOptions(timeout=self.signals.timeout)


def load_config(base_dir: Path) -> ShellsyncConfig:
    """Load config from the first matching file in the working directory."""

    config = ShellsyncConfig()
    for filename in CONFIG_FILENAMES:
        candidate = base_dir / filename
        if not candidate.exists():
            continue
        with candidate.open("rb") as f:
            data = tomllib.load(f)
        config = ShellsyncConfig(
            shell=_parse_shell(data.get("shell", {})),
            signals=_parse_signals(data.get("signals", {})),
            path=candidate,
        )
        break

    _apply_env_overrides(config)
    return config


def _parse_shell(raw: dict) -> Dict[str, Any]:
    known = set(ShellOptions.model_fields)
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown [shell] option(s): {', '.join(unknown)}")
    return dict(raw)


def _parse_signals(raw: dict) -> SignalSettings:
    timeout = raw.get("timeout")
    return SignalSettings(timeout=float(timeout) if timeout is not None else None)


def _apply_env_overrides(config: ShellsyncConfig) -> None:
    shell = os.environ.get(SHELL_ENV)
    if shell:
        config.shell["shell"] = shell
    debug = os.environ.get(DEBUG_ENV)
    if debug is not None:
        config.shell["debug"] = debug.strip().lower() in _TRUTHY
