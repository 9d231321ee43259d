"""State store — JSON snapshot of the sale between process runs.

The snapshot holds everything the engine owns (schedules, history,
whitelist, live rate, pool, supply counter, finalization) plus the
in-memory collaborators the CLI runs against. Writes go to a temporary
file first and are swapped in with os.replace, so a crash mid-write
leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional


SNAPSHOT_VERSION = 1


class StateStore:
    """File-backed snapshot storage."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(self, snapshot: dict[str, Any]) -> None:
        """Persist a snapshot. Raises OSError on write failure."""
        record = {"version": SNAPSHOT_VERSION, **snapshot}
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._storage_path)

    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored snapshot, or None if nothing was saved yet."""
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        version = data.pop("version", None)
        if version != SNAPSHOT_VERSION:
            raise ValueError(
                f"Unsupported state snapshot version {version!r} "
                f"(expected {SNAPSHOT_VERSION})"
            )
        return data
