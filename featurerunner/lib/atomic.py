"""Write-to-temp then rename, so readers never see a half-written file."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Replace path with data in one rename.

    The temp file lives beside the target so os.replace stays on one
    filesystem. File mode of an existing target is preserved.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            os.chmod(temp_path, path.stat().st_mode & 0o7777)
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def utc_now() -> str:
    """Current time as ISO 8601 UTC, second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
