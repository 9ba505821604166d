"""Fleet configuration: defaults, config file, environment, CLI overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_AUX_FILES = ("CLAUDE.md", "AGENTS.md")
DEFAULT_TOOL_NAME = "flotilla"

_KNOWN_KEYS = {"root", "exclude", "aux_files", "tool_name", "terminal_command"}


@dataclass(frozen=True)
class FleetConfig:
    """Settings shared by every operation of one invocation."""

    root: Path = field(default_factory=Path.cwd)
    exclude: frozenset[str] = frozenset()
    aux_files: tuple[str, ...] = DEFAULT_AUX_FILES
    tool_name: str = DEFAULT_TOOL_NAME
    terminal_command: str | None = None

    def with_overrides(
        self,
        *,
        root: Path | None = None,
        exclude: list[str] | None = None,
        no_terminal: bool = False,
    ) -> FleetConfig:
        """Apply CLI options; excluded names are added, not replaced."""
        config = self
        if root is not None:
            config = replace(config, root=root.expanduser())
        if exclude:
            config = replace(config, exclude=config.exclude | frozenset(exclude))
        if no_terminal:
            config = replace(config, terminal_command=None)
        return config


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_config_file(config_file: Path) -> dict[str, str]:
    """Read ``key = value`` lines.

    Supports:
    - Comments starting with #
    - Environment variables: $HOME, ${HOME}, etc.
    - Tilde expansion: ~/path
    """
    values: dict[str, str] = {}
    try:
        with open(config_file.expanduser()) as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    logger.warning("%s:%d: expected 'key = value'", config_file, number)
                    continue
                key, value = (part.strip() for part in line.split("=", 1))
                if key not in _KNOWN_KEYS:
                    logger.warning("%s:%d: unknown key %r", config_file, number, key)
                    continue
                values[key] = os.path.expanduser(os.path.expandvars(value))
    except FileNotFoundError:
        pass
    return values


def resolve_config_file() -> Path | None:
    """Auto-resolve config file from environment and standard locations.

    Priority order:
    1. $GIT_FLOTILLA_CONFIG environment variable
    2. ~/.config/git-flotilla/config (XDG-compliant)
    3. ~/.git-flotilla (legacy fallback)
    """
    env_config = os.environ.get("GIT_FLOTILLA_CONFIG")
    if env_config:
        env_path = Path(env_config).expanduser()
        if env_path.is_file():
            return env_path

    xdg_path = Path.home() / ".config" / "git-flotilla" / "config"
    if xdg_path.is_file():
        return xdg_path

    legacy_path = Path.home() / ".git-flotilla"
    if legacy_path.is_file():
        return legacy_path

    return None


def _environment_values() -> dict[str, str]:
    values = {}
    for key, env_name in (
        ("root", "GIT_FLOTILLA_ROOT"),
        ("exclude", "GIT_FLOTILLA_EXCLUDE"),
        ("terminal_command", "GIT_FLOTILLA_TERMINAL"),
    ):
        value = os.environ.get(env_name)
        if value:
            values[key] = value
    return values


def load_config(config_file: Path | None = None) -> FleetConfig:
    """Build the configuration from defaults, config file and environment."""
    path = config_file or resolve_config_file()
    values = parse_config_file(path) if path else {}
    values.update(_environment_values())

    kwargs: dict = {}
    for key, value in values.items():
        if key == "root":
            kwargs["root"] = Path(value).expanduser()
        elif key == "exclude":
            kwargs["exclude"] = frozenset(_split_list(value))
        elif key == "aux_files":
            kwargs["aux_files"] = tuple(_split_list(value))
        elif key == "terminal_command":
            kwargs[key] = value or None
        else:
            kwargs[key] = value

    return FleetConfig(**kwargs)
