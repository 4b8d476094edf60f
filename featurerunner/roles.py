"""
Process roles.

One program is both coordinator and worker. The coordinator re-invokes
itself once per feature with the hidden --_single flag plus the feature's
parameters; the role is decided once, from the parsed arguments, and each
role has its own top-level routine.
"""

import argparse
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path

from featurerunner.lib.config import RunnerConfig
from featurerunner.lib.constants import SLUG_PATTERN, SOURCE_FEATURES, SOURCE_ISSUE
from featurerunner.lib.features import Feature


class RoleError(Exception):
    """Worker flags are incomplete or inconsistent."""
    pass


@dataclass(frozen=True)
class WorkerParams:
    """Everything a worker needs to know about its feature."""
    index: int
    description: str
    slug: str
    source: str = SOURCE_FEATURES
    issue_number: int | None = None
    issue_json: Path | None = None


@dataclass(frozen=True)
class Coordinator:
    pass


@dataclass(frozen=True)
class Worker:
    params: WorkerParams


Role = Coordinator | Worker


def resolve_role(args: argparse.Namespace) -> Role:
    """
    Decide the role from parsed arguments.

    Raises:
        RoleError: if --_single is given without the feature parameters, or
            with a slug that is not a valid branch component
    """
    if not args._single:
        return Coordinator()

    missing = [
        flag for flag, value in (
            ("--_feature-index", args._feature_index),
            ("--_feature-desc", args._feature_desc),
            ("--_feature-slug", args._feature_slug),
        )
        if value is None
    ]
    if missing:
        raise RoleError(f"Worker mode requires {', '.join(missing)}")
    if args._feature_index < 0:
        raise RoleError("--_feature-index must not be negative")
    if not SLUG_PATTERN.match(args._feature_slug):
        raise RoleError(f"Invalid feature slug '{args._feature_slug}'")

    source = args._source
    if source is None:
        source = SOURCE_ISSUE if args._issue_number is not None else SOURCE_FEATURES

    return Worker(WorkerParams(
        index=args._feature_index,
        description=args._feature_desc,
        slug=args._feature_slug,
        source=source,
        issue_number=args._issue_number,
        issue_json=Path(args._issue_json) if args._issue_json else None,
    ))


def self_command() -> list[str]:
    """argv prefix that re-runs this program."""
    return [sys.executable, "-m", "featurerunner"]


def build_worker_argv(
    feature: Feature,
    config: RunnerConfig,
    base_branch: str,
    issue_json: Path | None = None,
) -> list[str]:
    """Full argv for one worker. Every setting is passed explicitly."""
    argv = self_command() + [
        "--_single",
        "--_feature-index", str(feature.index),
        "--_feature-desc", feature.description,
        "--_feature-slug", feature.slug,
        "--_source", feature.origin,
        "-d", str(config.parent_dir),
        "-m", config.model,
        "--max-turns", str(config.max_turns),
        "--base-branch", base_branch,
        "--port-offset", str(config.port_offset),
    ]
    if not config.port_rewrite:
        argv.append("--no-port-rewrite")
    if config.cleanup:
        argv.append("--cleanup")
    if not config.env_copy:
        argv.append("--no-env-copy")
    if not config.teams:
        argv.append("--no-teams")
    if config.repo:
        argv += ["--repo", config.repo]
    if feature.issue_number is not None:
        argv += ["--_issue-number", str(feature.issue_number)]
    if issue_json is not None:
        argv += ["--_issue-json", str(issue_json)]
    return argv


def to_shell(argv: list[str]) -> str:
    """Join argv into one shell-safe string, for dispatchers that need one."""
    return shlex.join(argv)
