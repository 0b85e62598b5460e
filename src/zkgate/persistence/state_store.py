"""JSON snapshot store for registry and inference state.

The event log is the audit trail; this store is the fast path for
restoring state on start-up. Writes go to a temporary file which then
replaces the snapshot, so a crash mid-write never leaves a torn file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStore:
    """Persists serialised component records under named sections."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path
        self._state: dict[str, Any] = {"version": STATE_VERSION}
        if storage_path.exists():
            self._state = self._load(storage_path)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def section(self, name: str) -> list[dict[str, Any]]:
        """Return the records stored under a section (empty if absent)."""
        return list(self._state.get(name, []))

    def save(self, **sections: list[dict[str, Any]]) -> None:
        """Replace the given sections and write the snapshot to disk.

        The in-memory snapshot only changes once the file is in place.
        """
        state = {**self._state, **sections, "version": STATE_VERSION}
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, sort_keys=True)
        os.replace(tmp, self._storage_path)
        self._state = state
        logger.debug("Saved state snapshot to %s", self._storage_path)

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as f:
            state = json.load(f)
        version = state.get("version")
        if version != STATE_VERSION:
            raise ValueError(
                f"Unsupported state snapshot version {version} in {path}"
            )
        return state
