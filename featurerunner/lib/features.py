"""
Feature input resolution.

Features come from three places: --features text, --from-file lines and
--issue numbers. They are merged into one ordered list; position in that
list is the feature index (which drives the port offset).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from featurerunner.lib.constants import (
    BRANCH_PREFIX,
    SOURCE_FEATURES,
    SOURCE_FILE,
    SOURCE_ISSUE,
    WORKTREE_PREFIX,
)
from featurerunner.lib.github import Issue
from featurerunner.lib.slug import issue_slug, require_slug

logger = logging.getLogger(__name__)


class FeatureInputError(Exception):
    """Feature input could not be resolved."""
    pass


@dataclass(frozen=True)
class Feature:
    """One unit of work, identified downstream by its slug."""
    description: str
    slug: str
    index: int
    origin: str  # "features", "file" or "issue"
    issue_number: int | None = None
    issue: Issue | None = field(default=None, compare=False, repr=False)

    @property
    def branch(self) -> str:
        return f"{BRANCH_PREFIX}{self.slug}"

    def worktree_path(self, parent_dir: Path) -> Path:
        return parent_dir / f"{WORKTREE_PREFIX}{self.slug}"

    def port_offset(self, offset: int) -> int:
        return self.index * offset


def read_features_from_file(path: Path) -> list[str]:
    """
    Read one feature description per line.

    Text after '#' is a comment. Blank lines are skipped.

    Raises:
        FeatureInputError: if the file doesn't exist or can't be read
    """
    if not path.is_file():
        raise FeatureInputError(f"Features file not found: {path}")
    try:
        content = path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise FeatureInputError(f"Cannot read features file {path}: {e}") from None

    descriptions = []
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            descriptions.append(line)
    return descriptions


def resolve_features(
    texts: list[str],
    file_lines: list[str],
    issues: list[Issue],
) -> list[Feature]:
    """
    Merge all inputs into an indexed feature list and derive slugs.

    Order is: direct text, then file lines, then issues.

    Raises:
        FeatureInputError: if no features were given
        EmptySlug: if a description normalizes to nothing
    """
    pending: list[tuple[str, str, Issue | None]] = []
    pending.extend((text, SOURCE_FEATURES, None) for text in texts)
    pending.extend((line, SOURCE_FILE, None) for line in file_lines)
    pending.extend((issue.title, SOURCE_ISSUE, issue) for issue in issues)

    if not pending:
        raise FeatureInputError("No features specified. Use --features, --from-file, or --issue.")

    features = []
    for index, (description, origin, issue) in enumerate(pending):
        if issue is not None:
            slug = issue_slug(issue.number, issue.title)
            number = issue.number
        else:
            slug = require_slug(description)
            number = None
        features.append(Feature(
            description=description,
            slug=slug,
            index=index,
            origin=origin,
            issue_number=number,
            issue=issue,
        ))
    return features
