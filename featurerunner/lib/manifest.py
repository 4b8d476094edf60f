"""
Manifest store: the JSON ledger of every feature run in a parent directory.

The document is treated as a value. Every mutation reads the whole file,
transforms a copy in memory, validates it, writes it to a temp file and
renames it over the original. Mutations from different workers are not
serialized against each other: last writer wins on the whole document.
"""

import copy
import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable

from featurerunner.lib.atomic import atomic_write_text, utc_now
from featurerunner.lib.constants import (
    MANIFEST_VERSION,
    SOURCE_FEATURES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RUNNING,
)
from featurerunner.lib.validate import ValidationError, validate_before_write

logger = logging.getLogger(__name__)

SCHEMA_NAME = "manifest"
VALID_STATUSES = (STATUS_RUNNING, STATUS_COMPLETED, STATUS_FAILED)


@dataclass
class ManifestEntry:
    """One feature's record. Field names match the on-disk JSON."""
    slug: str
    description: str
    branch: str
    worktree: str
    index: int
    port_offset: int
    pid: int
    status: str = STATUS_RUNNING
    started: str = ""
    completed: str | None = None
    exit_code: int | None = None
    issue_number: int | None = None
    source: str = SOURCE_FEATURES

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestEntry":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


class ManifestStore:
    """Read and mutate one manifest file."""

    def __init__(self, path: Path):
        self.path = path

    def init(self) -> bool:
        """
        Create an empty manifest unless one already exists.

        Returns True if a new file was written. An existing file is never
        touched, so later runs add to the same ledger.
        """
        if self.path.exists():
            logger.debug(f"Manifest exists: {self.path}")
            return False
        document = {"version": MANIFEST_VERSION, "created": utc_now(), "features": []}
        validate_before_write(document, SCHEMA_NAME, self.path)
        atomic_write_text(self.path, json.dumps(document, indent=2) + "\n")
        return True

    def load(self) -> dict:
        """
        Read the whole document.

        Raises:
            FileNotFoundError: if the manifest doesn't exist
            json.JSONDecodeError: if it isn't valid JSON
        """
        return json.loads(self.path.read_text())

    def entries(self) -> list[ManifestEntry]:
        return [ManifestEntry.from_dict(f) for f in self.load().get("features", [])]

    def find(self, slug: str) -> ManifestEntry | None:
        """Latest entry for slug, or None."""
        try:
            matches = [e for e in self.entries() if e.slug == slug]
        except (OSError, json.JSONDecodeError, TypeError, AttributeError):
            return None
        return matches[-1] if matches else None

    def append(self, entry: ManifestEntry) -> bool:
        """Add an entry. Returns False (and logs) if the write was refused."""
        if not entry.started:
            entry.started = utc_now()

        def transform(document: dict) -> dict:
            document["features"].append(entry.to_dict())
            return document

        return self._mutate(transform, f"add '{entry.slug}'")

    def update_status(self, slug: str, status: str, exit_code: int | None) -> bool:
        """
        Record a terminal status for slug.

        Merges status, completed and exit_code into the entry; all other
        fields are left as appended. When a slug has been run more than once
        from this parent directory, the latest entry is the one updated.
        Returns False (and logs) if the update could not be applied.
        """
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status '{status}'")

        def transform(document: dict) -> dict:
            matches = [f for f in document["features"] if f.get("slug") == slug]
            if not matches:
                raise LookupError(f"No manifest entry for '{slug}'")
            matches[-1].update({
                "status": status,
                "completed": utc_now(),
                "exit_code": exit_code,
            })
            return document

        return self._mutate(transform, f"update '{slug}' to {status}")

    def _mutate(self, transform: Callable[[dict], dict], action: str) -> bool:
        """Read, transform a copy, validate, atomically replace."""
        try:
            current = self.load()
            updated = transform(copy.deepcopy(current))
            validate_before_write(updated, SCHEMA_NAME, self.path)
            atomic_write_text(self.path, json.dumps(updated, indent=2) + "\n")
            return True
        except (OSError, json.JSONDecodeError, ValidationError, LookupError, KeyError, TypeError) as e:
            logger.warning(f"Failed to update manifest ({action}): {e}")
            return False


def new_entry(feature, parent_dir: Path, port_offset: int, pid: int | None = None) -> ManifestEntry:
    """Build the initial running entry for a feature."""
    return ManifestEntry(
        slug=feature.slug,
        description=feature.description,
        branch=feature.branch,
        worktree=str(feature.worktree_path(parent_dir)),
        index=feature.index,
        port_offset=feature.port_offset(port_offset),
        pid=pid if pid is not None else os.getpid(),
        status=STATUS_RUNNING,
        started=utc_now(),
        issue_number=feature.issue_number,
        source=feature.origin,
    )
