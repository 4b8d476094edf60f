"""Git operations for the feature runner.

Return type conventions:
- Functions returning GitResult: Caller must check .success before using output.
  Examples: add_worktree_new_branch(), remove_worktree()
- Functions returning bool: True on success/condition met, False otherwise.
  Examples: branch_exists(), is_tracked(), delete_branch()
- Functions returning parsed values (str, int, Path): Return None/zero on failure.
  Examples: resolve_repo_root() -> None, get_commit_count() -> 0
"""

from featurerunner.git.runner import GitResult, run_git
from featurerunner.git.branch import (
    resolve_repo_root,
    get_current_branch,
    branch_exists,
    get_commit_count,
    get_log_oneline,
    delete_branch,
)
from featurerunner.git.worktree import (
    add_worktree_new_branch,
    add_worktree_existing_branch,
    remove_worktree,
    is_tracked,
    get_exclude_file,
)

__all__ = [
    "GitResult",
    "run_git",
    # branch
    "resolve_repo_root",
    "get_current_branch",
    "branch_exists",
    "get_commit_count",
    "get_log_oneline",
    "delete_branch",
    # worktree
    "add_worktree_new_branch",
    "add_worktree_existing_branch",
    "remove_worktree",
    "is_tracked",
    "get_exclude_file",
]
