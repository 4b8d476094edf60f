"""
Workspace lifecycle: one git worktree and branch per feature.

States, driven by the worker in this order:

    absent -> locked -> created -> active -> torn_down | preserved

A workspace is reused if its directory already exists. Teardown removes the
worktree but only deletes the branch when it has no commits beyond the base
revision, so committed work is never thrown away by failure cleanup.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from transitions import Machine

from featurerunner.git import (
    add_worktree_existing_branch,
    add_worktree_new_branch,
    branch_exists,
    delete_branch,
    get_commit_count,
    get_exclude_file,
    remove_worktree,
    run_git,
)
from featurerunner.lib.constants import BRANCH_PREFIX, WORKTREE_PREFIX

logger = logging.getLogger(__name__)


STATES = ["absent", "locked", "created", "active", "torn_down", "preserved"]

TRANSITIONS = [
    {"trigger": "lock", "source": "absent", "dest": "locked"},
    {"trigger": "create", "source": "locked", "dest": "created"},
    {"trigger": "activate", "source": "created", "dest": "active"},
    {"trigger": "tear_down", "source": ["locked", "created", "active"], "dest": "torn_down"},
    {"trigger": "preserve", "source": ["created", "active"], "dest": "preserved"},
]


class WorkspaceError(Exception):
    """Creating a workspace failed."""
    pass


@dataclass
class Workspace:
    """Where a feature's worktree lives and what it was forked from."""
    slug: str
    repo_root: Path
    parent_dir: Path
    base_revision: str

    @property
    def branch(self) -> str:
        return f"{BRANCH_PREFIX}{self.slug}"

    @property
    def path(self) -> Path:
        return self.parent_dir / f"{WORKTREE_PREFIX}{self.slug}"


@dataclass
class TeardownResult:
    worktree_removed: bool
    branch_deleted: bool
    commits_ahead: int = 0


class WorkspaceLifecycle:
    """State machine tracking one workspace through a worker run."""

    def __init__(self, workspace: Workspace, on_transition: Callable[[str, str, str], None] | None = None):
        self.workspace = workspace
        self.on_transition = on_transition
        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="absent",
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name
        logger.debug(f"[workspace] {self.workspace.slug}: {from_state} -> {to_state} ({trigger})")
        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        return trigger in self.machine.get_triggers(self.state)


def register_exclude(repo_root: Path, parent_dir: Path) -> bool:
    """
    Add parent_dir to .git/info/exclude when it sits inside the repo.

    Returns True if a line was appended. Existing entries are left alone.
    """
    try:
        rel_parent = parent_dir.resolve().relative_to(repo_root.resolve())
    except ValueError:
        return False
    entry = rel_parent.as_posix()
    if entry in ("", "."):
        return False

    exclude_file = get_exclude_file(repo_root)
    existing = exclude_file.read_text() if exclude_file.exists() else ""
    if entry in (line.strip() for line in existing.splitlines()):
        return False

    exclude_file.parent.mkdir(parents=True, exist_ok=True)
    with open(exclude_file, "a") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(entry + "\n")
    logger.info(f"Added {entry} to {exclude_file}")
    return True


def create_workspace(workspace: Workspace) -> bool:
    """
    Create (or reuse) the feature's worktree.

    Returns:
        True if a worktree was created, False if an existing one was reused

    Raises:
        WorkspaceError: if git could not create the worktree
    """
    register_exclude(workspace.repo_root, workspace.parent_dir)

    if workspace.path.exists():
        logger.info(f"Reusing existing worktree: {workspace.path}")
        return False

    workspace.parent_dir.mkdir(parents=True, exist_ok=True)
    if branch_exists(workspace.repo_root, workspace.branch):
        result = add_worktree_existing_branch(workspace.repo_root, workspace.path, workspace.branch)
        what = f"existing branch '{workspace.branch}'"
    else:
        result = add_worktree_new_branch(
            workspace.repo_root, workspace.path, workspace.branch, workspace.base_revision
        )
        what = f"'{workspace.branch}' from '{workspace.base_revision}'"

    if not result.success:
        raise WorkspaceError(
            f"Failed to create worktree for {what} at {workspace.path}: {result.stderr.strip()}"
        )
    return True


def teardown_workspace(workspace: Workspace) -> TeardownResult:
    """
    Remove the worktree; delete the branch only if it has no new commits.
    """
    removed = False
    if workspace.path.exists():
        result = remove_worktree(workspace.repo_root, workspace.path)
        if not result.success:
            logger.warning(f"git worktree remove failed for {workspace.path}, deleting directory: {result.stderr.strip()}")
            shutil.rmtree(workspace.path, ignore_errors=True)
            run_git(["worktree", "prune"], workspace.repo_root)
        removed = True

    if not branch_exists(workspace.repo_root, workspace.branch):
        return TeardownResult(worktree_removed=removed, branch_deleted=False)

    ahead = get_commit_count(workspace.repo_root, f"{workspace.base_revision}..{workspace.branch}")
    if ahead > 0:
        logger.warning(f"Keeping branch {workspace.branch} ({ahead} commits ahead)")
        return TeardownResult(worktree_removed=removed, branch_deleted=False, commits_ahead=ahead)

    deleted = delete_branch(workspace.repo_root, workspace.branch)
    if deleted:
        logger.info(f"Removed empty branch: {workspace.branch}")
    else:
        logger.warning(f"Could not delete branch {workspace.branch}")
    return TeardownResult(worktree_removed=removed, branch_deleted=deleted)
