"""
Port isolation for parallel features.

Feature N gets every <...PORT...>=<int> line in its env files shifted by
N * offset, so N dev servers can run side by side. Feature 0 keeps the
original ports.

The rewrite is not idempotent: applying it twice shifts twice. Callers run it
once per fresh copy of the env files. Results are not checked against the
0-65535 port range.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from featurerunner.lib.atomic import atomic_write_bytes
from featurerunner.lib.constants import CONTEXT_DIRNAME, ENV_GLOB, PORTS_LOG_FILENAME

logger = logging.getLogger(__name__)

PORT_LINE = re.compile(rb'^([A-Z_]*PORT[A-Z_]*)=([0-9]+)$')


@dataclass(frozen=True)
class PortChange:
    file: str
    name: str
    old: int
    new: int

    def audit_line(self) -> str:
        return f"{self.file}: {self.name} {self.old} → {self.new}"


def shifted_port(value: int, index: int, offset: int) -> int:
    """The port a feature at index uses in place of value."""
    return value + index * offset


def rewrite_lines(content: bytes, index: int, offset: int) -> tuple[bytes, list[tuple[str, int, int]]]:
    """
    Shift port assignments in env-file content.

    Non-matching lines are returned byte-for-byte, line endings included.

    Returns:
        (new content, [(name, old, new), ...])
    """
    out = []
    changes = []
    for line in content.splitlines(keepends=True):
        body = line.rstrip(b"\r\n")
        ending = line[len(body):]
        match = PORT_LINE.match(body)
        if not match:
            out.append(line)
            continue
        name = match.group(1)
        old = int(match.group(2))
        new = shifted_port(old, index, offset)
        out.append(name + b"=" + str(new).encode() + ending)
        changes.append((name.decode(), old, new))
    return b"".join(out), changes


def ports_log_path(target_dir: Path) -> Path:
    return target_dir / CONTEXT_DIRNAME / PORTS_LOG_FILENAME


def _candidate_files(target_dir: Path) -> list[Path]:
    return sorted(
        p for p in target_dir.rglob(ENV_GLOB)
        if p.is_file() and ".git" not in p.relative_to(target_dir).parts
        and CONTEXT_DIRNAME not in p.relative_to(target_dir).parts
    )


def rewrite_ports(
    target_dir: Path,
    index: int,
    offset: int,
    files: list[str] | None = None,
) -> list[PortChange]:
    """
    Shift ports in the env files of one workspace.

    Args:
        target_dir: Workspace root
        index: Feature index; 0 leaves everything untouched
        offset: Port step between consecutive features
        files: Relative paths to rewrite (the env-copy output). None means
            every .env* file in the workspace.

    Returns:
        One PortChange per rewritten variable, also written to
        .feature-context/env-ports-modified.log (truncated first)
    """
    if index == 0:
        return []

    if files is None:
        paths = _candidate_files(target_dir)
    else:
        paths = [target_dir / rel for rel in files]

    log_file = ports_log_path(target_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text("")

    changes: list[PortChange] = []
    for path in paths:
        if not path.is_file():
            continue
        rel = path.relative_to(target_dir).as_posix()
        new_content, file_changes = rewrite_lines(path.read_bytes(), index, offset)
        if not file_changes:
            continue
        atomic_write_bytes(path, new_content)
        logger.info(f"Rewrote ports in: {rel}")
        changes.extend(PortChange(rel, name, old, new) for name, old, new in file_changes)

    if changes:
        log_file.write_text("".join(change.audit_line() + "\n" for change in changes), encoding="utf-8")
    return changes
