"""
Feature slug derivation.

Slugs name both the feature branch (feature/<slug>) and the worktree
directory (feature-<slug>), so they must be lowercase, hyphenated and short.
Issue-derived slugs live in their own "issue-<n>-" namespace, which plain
normalization can never produce for the same text.
"""

import re

from featurerunner.lib.constants import MAX_ISSUE_TITLE_SLUG_LEN, MAX_SLUG_LEN

_NON_ALNUM = re.compile(r'[^a-z0-9]')
_HYPHEN_RUN = re.compile(r'-{2,}')


class EmptySlug(ValueError):
    """Text normalized to an empty slug."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Feature description {text!r} produces an empty slug")


class DuplicateSlug(ValueError):
    """Two features in one batch produced the same slug."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(
            f"Duplicate feature slug: '{slug}' - feature descriptions must produce unique slugs"
        )


def _truncate(slug: str, limit: int) -> str:
    return slug[:limit].rstrip("-")


def normalize(text: str) -> str:
    """
    Turn free text into a branch/directory-safe slug.

    Returns "" for empty or all-punctuation input; callers must treat that
    as an error (see require_slug).

    >>> normalize("Add OAuth2 & JWT Auth!")
    'add-oauth2-jwt-auth'
    """
    slug = _NON_ALNUM.sub("-", text.lower())
    slug = _HYPHEN_RUN.sub("-", slug).strip("-")
    return _truncate(slug, MAX_SLUG_LEN)


def issue_slug(issue_number: int, title: str) -> str:
    """Slug for an issue-derived feature: issue-<number>-<short title>."""
    title_slug = _truncate(normalize(title), MAX_ISSUE_TITLE_SLUG_LEN)
    if not title_slug:
        return f"issue-{issue_number}"
    return f"issue-{issue_number}-{title_slug}"


def require_slug(text: str) -> str:
    """normalize() that raises EmptySlug instead of returning ""."""
    slug = normalize(text)
    if not slug:
        raise EmptySlug(text)
    return slug


def validate_unique(slugs: list[str]) -> None:
    """
    Fail on the first repeated slug, in input order.

    Pure check with no side effects; run it before any lock, worktree or
    manifest write for the batch.

    Raises:
        DuplicateSlug: naming the first slug seen twice
    """
    seen: set[str] = set()
    for slug in slugs:
        if slug in seen:
            raise DuplicateSlug(slug)
        seen.add(slug)
