"""Git worktree operations."""

from pathlib import Path

from featurerunner.git.runner import WORKTREE_TIMEOUT, GitResult, run_git


def add_worktree_new_branch(repo: Path, path: Path, branch: str, base: str) -> GitResult:
    """Create branch from base and check it out at path."""
    return run_git(["worktree", "add", "-b", branch, str(path), base], repo, timeout=WORKTREE_TIMEOUT)


def add_worktree_existing_branch(repo: Path, path: Path, branch: str) -> GitResult:
    """Check out an existing branch at path."""
    return run_git(["worktree", "add", str(path), branch], repo, timeout=WORKTREE_TIMEOUT)


def remove_worktree(repo: Path, path: Path) -> GitResult:
    """Force-remove a worktree, discarding uncommitted changes."""
    return run_git(["worktree", "remove", "--force", str(path)], repo, timeout=WORKTREE_TIMEOUT)


def is_tracked(repo: Path, path: Path) -> bool:
    """Check whether a file is tracked by the repository."""
    result = run_git(["ls-files", "--error-unmatch", str(path)], repo)
    return result.success


def get_exclude_file(repo: Path) -> Path:
    """The repository-local ignore file (.git/info/exclude)."""
    result = run_git(["rev-parse", "--git-path", "info/exclude"], repo)
    if result.success and result.stdout.strip():
        exclude = Path(result.stdout.strip())
        return exclude if exclude.is_absolute() else repo / exclude
    return repo / ".git" / "info" / "exclude"
