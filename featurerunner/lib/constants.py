"""Shared constants for the feature runner."""

import re
from pathlib import Path

# Slugs
MAX_SLUG_LEN = 50
MAX_ISSUE_TITLE_SLUG_LEN = 38
SLUG_PATTERN = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')
BRANCH_PREFIX = "feature/"
WORKTREE_PREFIX = "feature-"

# Defaults (overridable by runner.env and flags)
DEFAULT_PARENT_DIR = Path.home() / ".feature_runner"
DEFAULT_MODEL = "opus"
DEFAULT_MAX_TURNS = 75
DEFAULT_PORT_OFFSET = 10
DEFAULT_TAB_MODE = "auto"
TAB_MODES = ("auto", "iterm", "tmux", "bg")

# Files under the parent directory
MANIFEST_FILENAME = "runner-manifest.json"
RUNNER_ENV_FILENAME = "runner.env"
AGENTS_CONFIG_FILENAME = "agents.yaml"
LOCK_PREFIX = ".lock-feature-"
LOGS_DIRNAME = "logs"

# Files under a workspace
CONTEXT_DIRNAME = ".feature-context"
PORTS_LOG_FILENAME = "env-ports-modified.log"
ISSUE_CONTEXT_FILENAME = "ISSUE.md"

# Env file copying
ENV_GLOB = ".env*"
ENV_MAX_DEPTH = 4
ENV_MAX_SIZE = 5 * 1024 * 1024

# Background monitor
POLL_INTERVAL_SECONDS = 2.0

# Manifest
MANIFEST_VERSION = 1
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# Feature origins, as recorded in the manifest "source" field
SOURCE_FEATURES = "features"
SOURCE_FILE = "file"
SOURCE_ISSUE = "issue"
SOURCES = (SOURCE_FEATURES, SOURCE_FILE, SOURCE_ISSUE)

# Exit code recorded when a worker fails before the agent ran
WORKER_SETUP_FAILED = -1
