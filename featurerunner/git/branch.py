"""Git branch operations."""

from pathlib import Path

from featurerunner.git.runner import run_git


def resolve_repo_root(cwd: Path) -> Path | None:
    """Top level of the repository containing cwd, or None if not in one."""
    result = run_git(["rev-parse", "--show-toplevel"], cwd)
    if result.success and result.stdout.strip():
        return Path(result.stdout.strip())
    return None


def get_current_branch(repo: Path) -> str | None:
    """Current branch name ("HEAD" when detached), or None on error."""
    result = run_git(["rev-parse", "--abbrev-ref", "HEAD"], repo)
    if result.success:
        return result.stdout.strip() or None
    return None


def branch_exists(repo: Path, ref: str) -> bool:
    """Check if a branch (or any revision) resolves."""
    result = run_git(["rev-parse", "--verify", "--quiet", ref], repo)
    return result.success


def get_commit_count(repo: Path, ref_range: str) -> int:
    """
    Get number of commits in a range.

    Args:
        repo: Repository path
        ref_range: Git ref range (e.g., "main..feature/x")

    Returns:
        Number of commits, or 0 on error
    """
    result = run_git(["rev-list", "--count", ref_range], repo)
    if result.success:
        try:
            return int(result.stdout.strip())
        except ValueError:
            pass
    return 0


def get_log_oneline(repo: Path, ref_range: str) -> str:
    """Get one-line log for a ref range."""
    result = run_git(["log", "--oneline", ref_range], repo, timeout=10)
    return result.stdout.strip()


def delete_branch(repo: Path, branch: str) -> bool:
    """Delete a fully merged branch (git branch -d). Returns success."""
    return run_git(["branch", "-d", branch], repo).success
