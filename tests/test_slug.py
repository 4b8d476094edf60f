"""Tests for slug derivation and the uniqueness gate."""

import pytest

from featurerunner.lib.constants import SLUG_PATTERN
from featurerunner.lib.slug import (
    DuplicateSlug,
    EmptySlug,
    issue_slug,
    normalize,
    require_slug,
    validate_unique,
)


class TestNormalize:
    """Tests for normalize()."""

    def test_example(self):
        assert normalize("Add OAuth2 & JWT Auth!") == "add-oauth2-jwt-auth"

    def test_collapses_and_strips_hyphens(self):
        assert normalize("  --Build   the__API--  ") == "build-the-api"

    def test_non_ascii_becomes_separator(self):
        assert normalize("café menu") == "caf-menu"

    def test_deterministic(self):
        text = "Dark mode / Settings page"
        assert normalize(text) == normalize(text)

    @pytest.mark.parametrize("text", ["", "   ", "!!!", "---", "&*()"])
    def test_empty_for_punctuation_only(self, text):
        assert normalize(text) == ""

    def test_long_input_truncated(self):
        slug = normalize("word " * 24)
        assert len(slug) <= 50
        assert not slug.endswith("-")
        assert SLUG_PATTERN.match(slug)

    def test_truncation_does_not_leave_trailing_hyphen(self):
        slug = normalize("a" * 49 + " bcd")
        assert slug == "a" * 49

    @pytest.mark.parametrize("text", [
        "Add user auth",
        "Fix: crash on startup (#12)",
        "x" * 200,
        "Mixed CASE and 123 numbers",
    ])
    def test_output_matches_slug_pattern(self, text):
        slug = normalize(text)
        assert SLUG_PATTERN.match(slug)
        assert len(slug) <= 50


class TestIssueSlug:
    """Tests for issue_slug()."""

    def test_prefixes_issue_number(self):
        assert issue_slug(42, "Fix login bug") == "issue-42-fix-login-bug"

    def test_differs_from_plain_slug_of_same_title(self):
        assert issue_slug(42, "Add auth") != normalize("Add auth")

    def test_title_part_capped(self):
        slug = issue_slug(7, "a very long issue title " * 5)
        title_part = slug[len("issue-7-"):]
        assert len(title_part) <= 38
        assert not slug.endswith("-")

    def test_empty_title(self):
        assert issue_slug(9, "???") == "issue-9"


class TestRequireSlug:
    """Tests for require_slug()."""

    def test_returns_slug(self):
        assert require_slug("Build API") == "build-api"

    def test_raises_on_empty(self):
        with pytest.raises(EmptySlug) as exc_info:
            require_slug("!!!")
        assert exc_info.value.text == "!!!"


class TestValidateUnique:
    """Tests for validate_unique()."""

    def test_accepts_unique(self):
        validate_unique(["a", "b", "c"])

    def test_accepts_empty(self):
        validate_unique([])

    def test_names_first_duplicate(self):
        with pytest.raises(DuplicateSlug) as exc_info:
            validate_unique(["a", "b", "a", "b"])
        assert exc_info.value.slug == "a"
        assert "Duplicate feature slug: 'a'" in str(exc_info.value)

    def test_duplicate_is_value_error(self):
        with pytest.raises(ValueError):
            validate_unique(["x", "x"])
