"""
Per-feature advisory locks.

A lock is a file <parent>/.lock-feature-<slug> holding the owner's PID.
It is advisory: liveness of the recorded PID decides whether the lock is
held, so a process that ignores the file is not stopped. A lock whose owner
is gone is stale and gets reclaimed with a warning.

There is a window between checking an existing lock and writing the new one
in which two simultaneous acquirers can both succeed.
"""

import atexit
import logging
import os
import signal
import sys
from contextlib import contextmanager
from pathlib import Path

from featurerunner.lib.constants import LOCK_PREFIX

logger = logging.getLogger(__name__)


class AlreadyRunning(Exception):
    """Another live process holds the feature's lock."""

    def __init__(self, slug: str, pid: int, lock_file: Path):
        self.slug = slug
        self.pid = pid
        self.lock_file = lock_file
        super().__init__(
            f"Feature '{slug}' is already running (PID {pid}). Remove {lock_file} if stale."
        )


def lock_path(parent_dir: Path, slug: str) -> Path:
    return parent_dir / f"{LOCK_PREFIX}{slug}"


def pid_alive(pid: int) -> bool:
    """Check whether a process exists (signal 0)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else
        return True
    return True


def read_lock_owner(lock_file: Path) -> int | None:
    """PID recorded in a lock file, or None if missing or unparseable."""
    try:
        return int(lock_file.read_text().strip())
    except (OSError, ValueError):
        return None


def acquire_lock(parent_dir: Path, slug: str) -> Path:
    """
    Take the lock for slug on behalf of this process.

    Returns:
        Path to the lock file

    Raises:
        AlreadyRunning: if the recorded owner is alive
    """
    lock_file = lock_path(parent_dir, slug)

    if lock_file.exists():
        owner = read_lock_owner(lock_file)
        if owner is not None and pid_alive(owner):
            raise AlreadyRunning(slug, owner, lock_file)
        logger.warning(f"Removing stale lockfile for '{slug}' (PID {owner} not running)")
        lock_file.unlink(missing_ok=True)

    parent_dir.mkdir(parents=True, exist_ok=True)
    lock_file.write_text(f"{os.getpid()}\n")
    logger.debug(f"Lock acquired: {lock_file}")
    return lock_file


def release_lock(lock_file: Path) -> None:
    """Remove the lock file. Safe to call more than once."""
    try:
        lock_file.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove lockfile {lock_file}: {e}")


@contextmanager
def feature_lock(parent_dir: Path, slug: str):
    """
    Hold the feature lock for the duration of the block.

    SIGTERM and SIGINT are turned into SystemExit while held so the lock is
    released on every exit path; atexit covers interpreter shutdown.
    """
    lock_file = acquire_lock(parent_dir, slug)

    def cleanup():
        release_lock(lock_file)

    atexit.register(cleanup)
    original_sigterm = signal.signal(signal.SIGTERM, lambda *_: sys.exit(128 + signal.SIGTERM))
    original_sigint = signal.signal(signal.SIGINT, lambda *_: sys.exit(128 + signal.SIGINT))

    try:
        yield lock_file
    finally:
        atexit.unregister(cleanup)
        signal.signal(signal.SIGTERM, original_sigterm)
        signal.signal(signal.SIGINT, original_sigint)
        cleanup()
