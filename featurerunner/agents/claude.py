"""
Claude Code integration for the feature runner.

The agent runs in the foreground of the worker, inside the feature's
worktree, with no timeout. Its exit code is the only result the runner uses.
"""

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from featurerunner.lib.agents_config import (
    AGENT_TEAMS_ENV,
    AgentsConfig,
    build_agent_command,
)
from featurerunner.lib.constants import CONTEXT_DIRNAME
from featurerunner.lib.prompts import build_subagent_config

logger = logging.getLogger(__name__)

# Exit code reported when the agent binary can't be started
AGENT_NOT_FOUND = 127

MODE_STANDALONE = "standalone"
MODE_TEAMS = "agent teams"
MODE_SUBAGENTS = "subagents"


@dataclass
class AgentRun:
    """Everything needed to launch one agent session."""
    cmd: list[str]
    env: dict[str, str]
    mode: str


class ClaudeAgent:
    def __init__(self, config: AgentsConfig, model: str, max_turns: int):
        self.config = config
        self.model = model
        self.max_turns = max_turns

    def prepare(self, prompt: str | None, use_agents: bool, teams: bool, print_mode: bool | None = None) -> AgentRun:
        """
        Build command and environment.

        Agents are only used for issue features: agent teams by default, an
        explicit --agents subagent definition when teams are disabled.
        print_mode defaults to "stdout is not a TTY".
        """
        if print_mode is None:
            print_mode = not sys.stdout.isatty()

        env = dict(os.environ)
        env.update(self.config.env)
        mode = MODE_STANDALONE
        subagents_json = None
        if use_agents:
            if teams:
                mode = MODE_TEAMS
                env[AGENT_TEAMS_ENV] = "1"
            else:
                mode = MODE_SUBAGENTS
                subagents_json = build_subagent_config()

        cmd = build_agent_command(
            self.config,
            self.model,
            self.max_turns,
            prompt=prompt,
            print_mode=print_mode,
            subagents_json=subagents_json,
        )
        return AgentRun(cmd=cmd, env=env, mode=mode)

    def run(self, worktree: Path, run: AgentRun) -> int:
        """Run the agent in worktree and return its exit code."""
        (worktree / CONTEXT_DIRNAME).mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(run.cmd, cwd=str(worktree), env=run.env)
        except FileNotFoundError:
            logger.error(f"Agent binary not found: {run.cmd[0]}")
            return AGENT_NOT_FOUND
        if result.returncode != 0:
            logger.error(f"Agent exited with code {result.returncode}")
        return result.returncode
