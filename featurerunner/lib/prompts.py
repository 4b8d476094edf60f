"""
Prompt templates for the coding agent.

Templates live in featurerunner/prompts/ and use str.format() syntax.
HTML comments (<!-- ... -->) are stripped before rendering.
"""

import json
import logging
import re
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


@lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """Load a template by file name (cached), comments stripped."""
    path = PROMPTS_DIR / name
    if not path.exists():
        raise PromptError(f"Prompt template not found: {path}")
    return _HTML_COMMENT_PATTERN.sub("", path.read_text())


def render_prompt(name: str, **variables) -> str:
    """Render a template with the given variables."""
    template = load_prompt(name)
    try:
        return template.format(**variables)
    except KeyError as e:
        raise PromptError(f"Missing variable {e} for prompt '{name}'") from None


def build_issue_prompt(description: str, slug: str, issue_number: int | None, has_issue_context: bool) -> str:
    """Phased implementation prompt given to agents working an issue."""
    issue_section = ""
    if has_issue_context and issue_number is not None:
        issue_section = render_prompt("issue_context.md", issue_number=issue_number)
    return render_prompt(
        "issue_workflow.md",
        description=description,
        slug=slug,
        issue_section=issue_section,
    )


def build_subagent_config() -> str:
    """JSON subagent definitions for --agents (used with --no-teams)."""
    data = json.loads(load_prompt("subagents.json"))
    return json.dumps(data, indent=2)
