"""Shared fixtures: a throwaway git repository and a captured console."""

import io
import shutil
import subprocess

import pytest
from rich.console import Console


def git(repo, *args):
    return subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    ).stdout


@pytest.fixture
def git_repo(tmp_path):
    """Repository on branch main with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = (tmp_path / "repo").resolve()
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.email", "dev@example.com")
    git(repo, "config", "user.name", "Dev")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("hello\n")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, no_color=True, highlight=False)


def output(console) -> str:
    return console.file.getvalue()
