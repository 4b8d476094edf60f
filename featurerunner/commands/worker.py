"""
Worker: run one feature end to end.

Order is fixed: lock, workspace, env copy, port rewrite, issue context,
agent, manifest status. The lock is always released. The workspace is torn
down when --cleanup was given or the run failed.
"""

import logging
import time
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from featurerunner.agents.claude import ClaudeAgent
from featurerunner.git import get_commit_count, get_current_branch, get_log_oneline, resolve_repo_root
from featurerunner.lib.agents_config import load_agents_config
from featurerunner.lib.config import RunnerConfig
from featurerunner.lib.console import error, format_elapsed, info, ok, section, step
from featurerunner.lib.constants import (
    CONTEXT_DIRNAME,
    ISSUE_CONTEXT_FILENAME,
    SOURCE_ISSUE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    WORKER_SETUP_FAILED,
)
from featurerunner.lib.features import Feature
from featurerunner.lib.github import load_issue_side_file, render_issue_context
from featurerunner.lib.manifest import ManifestStore, new_entry
from featurerunner.lib.prompts import build_issue_prompt
from featurerunner.roles import WorkerParams
from featurerunner.runner.envfiles import copy_env_files
from featurerunner.runner.locking import AlreadyRunning, feature_lock
from featurerunner.runner.ports import rewrite_ports
from featurerunner.runner.workspace import (
    Workspace,
    WorkspaceError,
    WorkspaceLifecycle,
    create_workspace,
    teardown_workspace,
)

logger = logging.getLogger(__name__)


def ensure_manifest_entry(store: ManifestStore, feature: Feature, config: RunnerConfig) -> None:
    """Add an entry for a worker started without a coordinator."""
    if store.find(feature.slug) is not None:
        return
    try:
        store.init()
    except OSError as e:
        logger.warning(f"Failed to initialize manifest {store.path}: {e}")
        return
    store.append(new_entry(feature, config.parent_dir, config.port_offset))


def prepare_environment(
    workspace: Workspace,
    params: WorkerParams,
    config: RunnerConfig,
    created: bool,
    console: Console,
) -> None:
    """Copy env files, then shift ports once on the fresh copies."""
    copied = None
    if config.env_copy:
        step(console, "Copying .env files")
        copied = copy_env_files(workspace.repo_root, workspace.path, config.parent_dir)
        if copied:
            ok(console, f"Copied {len(copied)} .env file(s)")
        else:
            info(console, "No .env files found to copy")

    if not config.port_rewrite or params.index == 0:
        return
    if copied is None and not created:
        logger.warning(
            f"Skipping port rewrite for '{params.slug}': reused worktree without a fresh env copy "
            "already has shifted ports"
        )
        return

    total = params.index * config.port_offset
    step(console, f"Rewriting ports (+{total} for feature index {params.index})")
    changes = rewrite_ports(workspace.path, params.index, config.port_offset, files=copied)
    if changes:
        ok(console, f"Rewrote {len(changes)} port(s) - log: {CONTEXT_DIRNAME}/env-ports-modified.log")
    else:
        info(console, "No port variables found to rewrite")


def write_issue_context(workspace: Workspace, params: WorkerParams, console: Console) -> bool:
    """Render ISSUE.md from the coordinator's side file, then remove the side file."""
    if params.issue_json is None:
        return False
    issue = load_issue_side_file(params.issue_json)
    if issue is None:
        return False
    context_dir = workspace.path / CONTEXT_DIRNAME
    context_dir.mkdir(parents=True, exist_ok=True)
    (context_dir / ISSUE_CONTEXT_FILENAME).write_text(render_issue_context(issue))
    params.issue_json.unlink(missing_ok=True)
    ok(console, f"Issue context written to {CONTEXT_DIRNAME}/{ISSUE_CONTEXT_FILENAME}")
    return True


def run_agent(workspace: Workspace, params: WorkerParams, config: RunnerConfig, has_issue_context: bool, console: Console) -> int:
    use_agents = params.source == SOURCE_ISSUE
    prompt = None
    if use_agents:
        prompt = build_issue_prompt(params.description, params.slug, params.issue_number, has_issue_context)

    agent = ClaudeAgent(load_agents_config(config.parent_dir), config.model, config.max_turns)
    run = agent.prepare(prompt, use_agents=use_agents, teams=config.teams)

    step(console, "Launching coding agent")
    console.print(f"    [dim]Model[/dim]       {config.model}")
    console.print(f"    [dim]Turns[/dim]       {config.max_turns} max")
    console.print(f"    [dim]Agent mode[/dim]  {run.mode}")
    console.print(f"    [dim]Worktree[/dim]    {workspace.path}")
    console.print()
    return agent.run(workspace.path, run)


def show_session_summary(workspace: Workspace, console: Console) -> None:
    """Branch, commits and artifacts left behind by the session."""
    section(console, f"Feature session complete: {workspace.slug}")
    console.print(f"  [dim]Branch[/dim]     {workspace.branch}")
    console.print(f"  [dim]Worktree[/dim]   {workspace.path}")
    console.print(f"  [dim]Base[/dim]       {workspace.base_revision}")
    console.print()

    ref_range = f"{workspace.base_revision}..HEAD"
    commits = get_commit_count(workspace.path, ref_range)
    if commits > 0:
        console.print(f"  [bold]{commits} commit(s) on branch:[/bold]")
        for line in get_log_oneline(workspace.path, ref_range).splitlines():
            console.print(f"    {escape(line)}")
    else:
        info(console, "No commits on branch yet")

    context_dir = workspace.path / CONTEXT_DIRNAME
    artifacts = sorted(context_dir.glob("*.md")) if context_dir.is_dir() else []
    if artifacts:
        console.print()
        console.print("  [bold]Artifacts:[/bold]")
        for artifact in artifacts:
            console.print(f"    [green]✓[/green] {artifact.name}")

    console.print()
    console.print("  [dim]Next steps:[/dim]")
    console.print(f"    cd {workspace.path}")
    console.print(f"    git -C {workspace.path} diff {workspace.base_revision}")


def finish_workspace(lifecycle: WorkspaceLifecycle, teardown: bool, console: Console) -> None:
    """Tear down or keep the workspace; never raises."""
    workspace = lifecycle.workspace
    if not teardown:
        if lifecycle.can("preserve"):
            lifecycle.preserve()
        return
    try:
        step(console, f"Removing worktree: {workspace.path}")
        result = teardown_workspace(workspace)
    except OSError as e:
        logger.warning(f"Cleanup of '{workspace.slug}' failed: {e}")
        return
    if result.commits_ahead and lifecycle.can("preserve"):
        lifecycle.preserve()
    elif lifecycle.can("tear_down"):
        lifecycle.tear_down()


def run_worker(params: WorkerParams, config: RunnerConfig, console: Console) -> int:
    """Worker entrypoint. Returns the process exit code."""
    started = time.monotonic()

    repo_root = resolve_repo_root(Path.cwd())
    if repo_root is None:
        error(console, "Not inside a git repository")
        return 2
    base = config.base_branch or get_current_branch(repo_root)
    if not base:
        error(console, "Cannot determine base branch")
        return 2

    feature = Feature(
        description=params.description,
        slug=params.slug,
        index=params.index,
        origin=params.source,
        issue_number=params.issue_number,
    )
    workspace = Workspace(slug=params.slug, repo_root=repo_root, parent_dir=config.parent_dir, base_revision=base)
    lifecycle = WorkspaceLifecycle(workspace)
    store = ManifestStore(config.manifest_path)

    console.print(f"[bold]Feature Runner - Worker[/bold]  [dim]{workspace.branch}[/dim]")
    console.print(f"  [dim]Feature[/dim]  {escape(params.description)}")
    console.print(f"  [dim]Branch[/dim]   {workspace.branch}")
    console.print(f"  [dim]Index[/dim]    {params.index}")
    if params.issue_number is not None:
        console.print(f"  [dim]Issue[/dim]    #{params.issue_number}")

    section(console, "Setup")
    step(console, "Acquiring lock...")
    try:
        with feature_lock(config.parent_dir, params.slug):
            lifecycle.lock()
            ok(console, "Lock acquired")
            ensure_manifest_entry(store, feature, config)

            exit_code = WORKER_SETUP_FAILED
            try:
                step(console, "Creating worktree...")
                created = create_workspace(workspace)
                lifecycle.create()
                if created:
                    ok(console, f"Worktree created: {workspace.path}")
                else:
                    info(console, f"Reusing existing worktree: {workspace.path}")

                section(console, "Environment")
                prepare_environment(workspace, params, config, created, console)
                has_issue_context = write_issue_context(workspace, params, console)

                section(console, "Coding Agent")
                lifecycle.activate()
                exit_code = run_agent(workspace, params, config, has_issue_context, console)
            except (WorkspaceError, OSError) as e:
                error(console, str(e))
            finally:
                failed = exit_code != 0
                store.update_status(params.slug, STATUS_FAILED if failed else STATUS_COMPLETED, exit_code)
                if failed:
                    logger.warning(f"Worker for '{params.slug}' failed (exit {exit_code}) - cleaning up worktree")
                finish_workspace(lifecycle, teardown=config.cleanup or failed, console=console)
    except AlreadyRunning as e:
        error(console, str(e))
        return 1

    elapsed = format_elapsed(time.monotonic() - started)
    section(console, "Results")
    if exit_code == 0:
        console.print(f"  [white on green] COMPLETED [/white on green]  {escape(params.description)}  [dim]({elapsed})[/dim]")
    else:
        console.print(
            f"  [white on red] FAILED [/white on red]  {escape(params.description)}  [dim](exit {exit_code}, {elapsed})[/dim]"
        )

    if workspace.path.exists():
        show_session_summary(workspace, console)
    return 0 if exit_code == 0 else (exit_code if exit_code > 0 else 1)
