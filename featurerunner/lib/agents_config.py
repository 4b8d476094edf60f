"""
Coding-agent command configuration.

Loads <parent>/agents.yaml to decide how the agent CLI is invoked. If no file
exists, the default Claude Code invocation is used.

COMMAND TEMPLATE
================

The template is a shell-style command line with {variable} placeholders:

- {model}: Model identifier (--model flag of the runner).
- {max_turns}: Turn budget (--max-turns flag of the runner).

The task prompt is never part of the template. When a worker has a prompt
it is appended as the final positional argument, after any flags the worker
adds (--print for non-TTY runs, --agents for subagent mode).

Example agents.yaml:

    agent: "claude --model {model} --max-turns {max_turns} --dangerously-skip-permissions"
    env:
      CLAUDE_CODE_MAX_OUTPUT_TOKENS: "32000"
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from featurerunner.lib.constants import AGENTS_CONFIG_FILENAME

logger = logging.getLogger(__name__)


DEFAULT_AGENT_COMMAND = "claude --model {model} --max-turns {max_turns} --dangerously-skip-permissions"

# Environment variable that turns on Claude Code agent teams
AGENT_TEAMS_ENV = "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    command: str = DEFAULT_AGENT_COMMAND
    env: dict[str, str] = field(default_factory=dict)


def load_agents_config(parent_dir: Path | None) -> AgentsConfig:
    """Load agents.yaml and return AgentsConfig.

    If parent_dir is None, the file doesn't exist or it can't be parsed,
    returns defaults.
    """
    if parent_dir is None:
        return AgentsConfig()

    config_path = parent_dir / AGENTS_CONFIG_FILENAME
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise TypeError("top level must be a mapping")
        command = str(data.get("agent") or DEFAULT_AGENT_COMMAND)
        if not shlex.split(command):
            raise ValueError("agent command is empty")
        env = {str(k): str(v) for k, v in (data.get("env") or {}).items()}
        return AgentsConfig(command=command, env=env)
    except (yaml.YAMLError, TypeError, AttributeError, ValueError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()


def build_agent_command(
    config: AgentsConfig,
    model: str,
    max_turns: int,
    prompt: str | None = None,
    print_mode: bool = False,
    subagents_json: str | None = None,
) -> list[str]:
    """Build the agent argv for one worker.

    Example:
        >>> build_agent_command(AgentsConfig(), "opus", 75, prompt="do stuff")
        ['claude', '--model', 'opus', '--max-turns', '75', '--dangerously-skip-permissions', 'do stuff']
    """
    template = config.command.replace("{model}", shlex.quote(model))
    template = template.replace("{max_turns}", str(max_turns))

    remaining_vars = re.findall(r'\{(\w+)\}', template)
    if remaining_vars:
        logger.error(f"Agent command has unsubstituted variables: {remaining_vars}. Template: {config.command}")

    cmd = shlex.split(template)
    if print_mode:
        cmd.append("--print")
    if subagents_json:
        cmd += ["--agents", subagents_json]
    if prompt:
        cmd.append(prompt)
    return cmd


def get_agent_binary(config: AgentsConfig) -> str:
    """Get the binary name of the agent command (first word)."""
    parts = shlex.split(config.command)
    return parts[0] if parts else ""


def check_binary_available(binary: str) -> bool:
    """Check if a binary is available in PATH."""
    return shutil.which(binary) is not None
