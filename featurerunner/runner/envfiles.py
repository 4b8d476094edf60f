"""
Copy untracked .env files from the main checkout into a worktree.

Worktrees only contain tracked files, so local secrets and per-developer
settings (.env, .env.local, packages/api/.env, ...) have to be carried over.
Tracked files are already in the worktree and are skipped.
"""

import logging
import os
import shutil
from fnmatch import fnmatch
from pathlib import Path

from featurerunner.git import is_tracked
from featurerunner.lib.constants import ENV_GLOB, ENV_MAX_DEPTH, ENV_MAX_SIZE

logger = logging.getLogger(__name__)

SKIP_DIRS = {".git", "node_modules"}


def find_env_files(root: Path, max_depth: int = ENV_MAX_DEPTH, exclude: list[Path] | None = None) -> list[Path]:
    """
    Find .env* files under root, at most max_depth levels deep.

    A file directly in root is at depth 1. Directories in exclude are not
    entered.
    """
    excluded = {p.resolve() for p in exclude or []}
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts) + 1
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in SKIP_DIRS and (current / d).resolve() not in excluded
        )
        if depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            path = current / name
            if fnmatch(name, ENV_GLOB) and path.is_file():
                found.append(path)
    return found


def copy_env_files(repo_root: Path, target_dir: Path, parent_dir: Path) -> list[str]:
    """
    Copy untracked env files from repo_root into target_dir.

    Returns:
        Relative paths (posix) of the files copied, in discovery order
    """
    copied: list[str] = []
    seen: set[Path] = set()

    for src in find_env_files(repo_root, exclude=[parent_dir, target_dir]):
        real = src.resolve()
        if real in seen:
            continue
        seen.add(real)

        rel = src.relative_to(repo_root).as_posix()
        if is_tracked(repo_root, src):
            continue

        size = src.stat().st_size
        if size > ENV_MAX_SIZE:
            logger.warning(f"Skipping {rel} ({size} bytes > 5MB limit)")
            continue

        dst = target_dir / rel
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        logger.info(f"Copied: {rel}")
        copied.append(rel)

    return copied
