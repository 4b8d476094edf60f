"""
Coordinator: resolve features, seed the manifest, dispatch one worker each.

Everything up to dispatch is a pre-flight: any error aborts the whole batch
before a lock, worktree or manifest entry exists.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from featurerunner.commands.dispatch import (
    DispatchError,
    detect_terminal,
    spawn_background,
    spawn_iterm,
    spawn_tmux,
)
from featurerunner.commands.monitor import Succeeded, watch_background
from featurerunner.commands.show import show_manifest
from featurerunner.git import branch_exists, get_current_branch, resolve_repo_root
from featurerunner.lib.agents_config import check_binary_available, get_agent_binary, load_agents_config
from featurerunner.lib.config import RunnerConfig
from featurerunner.lib.console import error, info, ok, section, step
from featurerunner.lib.constants import LOGS_DIRNAME
from featurerunner.lib.features import Feature, FeatureInputError, read_features_from_file, resolve_features
from featurerunner.lib.github import IssueFetchError, check_gh_cli, fetch_issue, write_issue_side_file
from featurerunner.lib.manifest import ManifestStore, new_entry
from featurerunner.lib.slug import DuplicateSlug, EmptySlug, validate_unique
from featurerunner.roles import build_worker_argv

logger = logging.getLogger(__name__)


class PreflightError(Exception):
    """The batch cannot start."""
    pass


@dataclass
class FeatureInputs:
    """Raw feature sources from the command line."""
    texts: list[str] = field(default_factory=list)
    from_file: Path | None = None
    issues: list[int] = field(default_factory=list)


def validate_prerequisites(config: RunnerConfig, need_gh: bool) -> None:
    """
    Raises:
        PreflightError: listing every missing tool
    """
    agent_binary = get_agent_binary(load_agents_config(config.parent_dir))
    tools = ["git", agent_binary] + (["gh"] if need_gh else [])
    missing = [t for t in tools if t and not check_binary_available(t)]
    if missing:
        raise PreflightError(f"Missing required tools: {' '.join(missing)}")


def resolve_base_branch(repo_root: Path, requested: str | None) -> str:
    """An explicit base must exist; otherwise use the current branch."""
    if requested:
        if not branch_exists(repo_root, requested):
            raise PreflightError(f"Base branch '{requested}' does not exist")
        return requested
    current = get_current_branch(repo_root)
    if not current:
        raise PreflightError("Cannot determine current branch")
    return current


def gather_features(inputs: FeatureInputs, repo: str | None, console: Console) -> list[Feature]:
    """Read all sources and return slugged, uniqueness-checked features."""
    file_lines: list[str] = []
    if inputs.from_file is not None:
        step(console, f"Reading from file: {escape(str(inputs.from_file))}")
        file_lines = read_features_from_file(inputs.from_file)
        ok(console, f"Loaded {len(file_lines)} feature(s) from file")

    issues = []
    if inputs.issues:
        if not check_gh_cli():
            raise PreflightError("'gh' CLI required for --issue mode. Install: https://cli.github.com")
        step(console, f"Fetching {len(inputs.issues)} issue(s) from GitHub...")
        for number in inputs.issues:
            issue = fetch_issue(number, repo)
            ok(console, f"Issue #{number}: {escape(issue.title)}")
            if issue.labels:
                info(console, f"  Labels: {escape(', '.join(issue.labels))}")
            issues.append(issue)

    features = resolve_features(inputs.texts, file_lines, issues)
    validate_unique([f.slug for f in features])
    return features


def print_plan(features: list[Feature], console: Console) -> None:
    section(console, "Feature Plan")
    for feature in features:
        console.print(
            f"  [bold]{feature.index + 1}[/bold]  {escape(feature.description):<40} [dim]→ {feature.branch}[/dim]"
        )


def seed_manifest(
    features: list[Feature],
    config: RunnerConfig,
    base_branch: str,
) -> list[list[str]]:
    """Initialize the manifest, add a running entry per feature, build worker argvs."""
    config.parent_dir.mkdir(parents=True, exist_ok=True)
    store = ManifestStore(config.manifest_path)
    store.init()

    argvs = []
    for feature in features:
        issue_json = None
        if feature.issue is not None:
            issue_json = write_issue_side_file(config.parent_dir, feature.slug, feature.issue)
        argvs.append(build_worker_argv(feature, config, base_branch, issue_json))
        store.append(new_entry(feature, config.parent_dir, config.port_offset, pid=os.getpid()))
    return argvs


def dispatch(features: list[Feature], argvs: list[list[str]], config: RunnerConfig, console: Console) -> int:
    section(console, "Launching")
    mode = detect_terminal(config.tab_mode)
    info(console, f"Terminal mode: [bold]{mode}[/bold]")
    slugs = [f.slug for f in features]

    if mode == "iterm":
        return spawn_iterm(slugs, argvs, console)
    if mode == "tmux":
        return spawn_tmux(slugs, argvs, console)

    log_dir = config.parent_dir / LOGS_DIRNAME
    jobs = spawn_background(slugs, argvs, log_dir, console)
    section(console, "Live Dashboard")
    states = watch_background(jobs, log_dir, console)
    if states is None:
        return 0
    show_manifest(ManifestStore(config.manifest_path), console)
    return 0 if all(isinstance(s, Succeeded) for s in states.values()) else 1


def run_coordinator(inputs: FeatureInputs, config: RunnerConfig, console: Console) -> int:
    """Coordinator entrypoint. Returns the process exit code."""
    console.print("[bold]Parallel Feature Runner[/bold]")

    try:
        section(console, "Prerequisites")
        validate_prerequisites(config, need_gh=bool(inputs.issues))
        ok(console, "All tools available")

        repo_root = resolve_repo_root(Path.cwd())
        if repo_root is None:
            raise PreflightError("Not inside a git repository")
        base_branch = resolve_base_branch(repo_root, config.base_branch)
        info(console, f"Base branch: {base_branch}")

        section(console, "Resolving Features")
        features = gather_features(inputs, config.repo, console)
    except (PreflightError, FeatureInputError, IssueFetchError, DuplicateSlug, EmptySlug) as e:
        error(console, str(e))
        return 2

    console.print()
    console.print(f"  [bold white on blue] {len(features)} FEATURE(S) [/bold white on blue]  ready to implement")

    section(console, "Configuration")
    console.print(f"  [dim]Model[/dim]        {config.model}")
    console.print(f"  [dim]Max turns[/dim]    {config.max_turns}")
    console.print(f"  [dim]Base branch[/dim]  {base_branch}")
    console.print(f"  [dim]Port offset[/dim]  {config.port_offset}")
    console.print(f"  [dim]Worktree dir[/dim] {config.parent_dir}")
    console.print(f"  [dim]Issue agents[/dim] {'agent teams' if config.teams else 'subagents'}")

    print_plan(features, console)
    argvs = seed_manifest(features, config, base_branch)

    try:
        return dispatch(features, argvs, config, console)
    except (DispatchError, OSError) as e:
        error(console, str(e))
        return 1
