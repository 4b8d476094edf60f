"""
GitHub issue integration via the gh CLI.

Issues are fetched once, at coordinator start, and handed to each worker as
a JSON side file. Workers render that JSON into ISSUE.md for the agent.
"""

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

ISSUE_FIELDS = "title,body,labels,assignees,comments,state,milestone,number"


class IssueFetchError(Exception):
    """Fetching an issue from GitHub failed."""
    pass


@dataclass
class IssueComment:
    author: str
    created_at: str
    body: str


@dataclass
class Issue:
    """A GitHub issue as returned by `gh issue view --json`."""
    number: int
    title: str
    body: str = ""
    state: str = "OPEN"
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    comments: list[IssueComment] = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_closed(self) -> bool:
        return self.state.upper() == "CLOSED"

    @classmethod
    def from_json(cls, data: dict) -> "Issue":
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state") or "OPEN",
            labels=[l.get("name", "") for l in data.get("labels") or []],
            assignees=[a.get("login", "") for a in data.get("assignees") or []],
            comments=[
                IssueComment(
                    author=(c.get("author") or {}).get("login", "unknown"),
                    created_at=c.get("createdAt", ""),
                    body=c.get("body", ""),
                )
                for c in data.get("comments") or []
            ],
            raw=data,
        )


def check_gh_cli() -> bool:
    """Check if the gh CLI is installed."""
    return shutil.which("gh") is not None


def fetch_issue(issue_number: int, repo: str | None = None) -> Issue:
    """
    Fetch one issue with everything the agent needs.

    Raises:
        IssueFetchError: on gh failure, timeout or malformed output
    """
    cmd = ["gh", "issue", "view", str(issue_number), "--json", ISSUE_FIELDS]
    if repo:
        cmd += ["--repo", repo]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired:
        raise IssueFetchError(f"Timed out fetching issue #{issue_number}") from None
    except (OSError, subprocess.SubprocessError) as e:
        raise IssueFetchError(f"Failed to run gh for issue #{issue_number}: {e}") from None

    if result.returncode != 0:
        raise IssueFetchError(
            f"Failed to fetch issue #{issue_number}. Check repo and permissions.\n"
            f"  {result.stderr.strip()}"
        )

    try:
        data = json.loads(result.stdout)
        issue = Issue.from_json(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise IssueFetchError(f"Invalid JSON from gh for issue #{issue_number}: {e}") from None

    if issue.is_closed:
        logger.warning(f"Issue #{issue_number} is closed - proceeding anyway")
    return issue


def write_issue_side_file(parent_dir: Path, slug: str, issue: Issue) -> Path:
    """Write issue JSON for a worker; passed by path to avoid arg length limits."""
    path = parent_dir / f".issue-{slug}.json"
    path.write_text(json.dumps(issue.raw or {"number": issue.number, "title": issue.title}))
    return path


def load_issue_side_file(path: Path) -> Issue | None:
    """Read a worker's issue side file, or None if it's missing or unusable."""
    if not path.is_file():
        return None
    try:
        return Issue.from_json(json.loads(path.read_text()))
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable issue file {path}: {e}")
        return None


def render_issue_context(issue: Issue) -> str:
    """Render an issue as the ISSUE.md document given to the agent."""
    labels = ", ".join(issue.labels) or "none"
    assignees = ", ".join(issue.assignees) or "unassigned"

    lines = [
        f"# Issue #{issue.number}: {issue.title}",
        "",
        "## Description",
        issue.body or "No description",
        "",
        "## Metadata",
        f"- **Labels:** {labels}",
        f"- **Assignees:** {assignees}",
        f"- **Comments:** {len(issue.comments)}",
        "",
        "## Comments",
    ]
    for comment in issue.comments:
        lines.append(f"### {comment.author} ({comment.created_at})")
        lines.append(comment.body)
        lines.append("")
    return "\n".join(lines) + "\n"
