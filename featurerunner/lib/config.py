"""
Runner configuration.

Resolution order for every setting: command-line flag, then
<parent>/runner.env, then the built-in default.
"""

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from featurerunner.lib import envparse
from featurerunner.lib.constants import (
    DEFAULT_MAX_TURNS,
    DEFAULT_MODEL,
    DEFAULT_PARENT_DIR,
    DEFAULT_PORT_OFFSET,
    DEFAULT_TAB_MODE,
    MANIFEST_FILENAME,
    RUNNER_ENV_FILENAME,
    TAB_MODES,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration is invalid."""
    pass


@dataclass
class RunnerConfig:
    """Settings shared by the coordinator and every worker it spawns."""
    parent_dir: Path
    model: str = DEFAULT_MODEL
    max_turns: int = DEFAULT_MAX_TURNS
    base_branch: str | None = None  # None: current branch of the repo
    port_offset: int = DEFAULT_PORT_OFFSET
    port_rewrite: bool = True
    tab_mode: str = DEFAULT_TAB_MODE
    cleanup: bool = False
    env_copy: bool = True
    teams: bool = True
    repo: str | None = None  # owner/repo for gh

    @property
    def manifest_path(self) -> Path:
        return self.parent_dir / MANIFEST_FILENAME


def load_runner_defaults(parent_dir: Path) -> dict[str, str]:
    """Load runner.env from the parent directory, if present."""
    try:
        return envparse.load_env(parent_dir / RUNNER_ENV_FILENAME)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Invalid {RUNNER_ENV_FILENAME}: {e}") from None


def _int_setting(env: dict[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{RUNNER_ENV_FILENAME}: {key} must be an integer, got '{raw}'") from None


def build_config(args: argparse.Namespace) -> RunnerConfig:
    """Build RunnerConfig from parsed CLI args layered over runner.env."""
    parent_dir = Path(os.path.expanduser(args.dir or DEFAULT_PARENT_DIR)).resolve()
    env = load_runner_defaults(parent_dir)

    tab_mode = args.tabs or env.get("TAB_MODE") or DEFAULT_TAB_MODE
    if tab_mode not in TAB_MODES:
        raise ConfigError(f"Unknown terminal mode '{tab_mode}' (expected one of: {', '.join(TAB_MODES)})")

    max_turns = args.max_turns if args.max_turns is not None else _int_setting(env, "MAX_TURNS", DEFAULT_MAX_TURNS)
    port_offset = (
        args.port_offset if args.port_offset is not None
        else _int_setting(env, "PORT_OFFSET", DEFAULT_PORT_OFFSET)
    )

    return RunnerConfig(
        parent_dir=parent_dir,
        model=args.model or env.get("MODEL") or DEFAULT_MODEL,
        max_turns=max_turns,
        base_branch=args.base_branch or env.get("BASE_BRANCH") or None,
        port_offset=port_offset,
        port_rewrite=not args.no_port_rewrite,
        tab_mode=tab_mode,
        cleanup=args.cleanup,
        env_copy=not args.no_env_copy,
        teams=not args.no_teams,
        repo=args.repo,
    )


def use_color() -> bool:
    """Colors are on for a TTY unless NO_COLOR or RUNNER_NO_COLOR is set."""
    if os.environ.get("RUNNER_NO_COLOR") == "1" or os.environ.get("NO_COLOR") == "1":
        return False
    return os.isatty(1)
