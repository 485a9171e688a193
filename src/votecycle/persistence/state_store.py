"""State store — JSON snapshot of the voting aggregate.

The whole aggregate is written on every committed command. Writes go to
a sibling temp file first and are moved into place with os.replace, so a
crash mid-write leaves the previous snapshot intact.

Several processes may share one snapshot (each CLI invocation is its own
process). lock() takes an exclusive advisory lock on a sibling
``.lock`` file; the service holds it across reload, command, save and
publish so those processes see one total order of commands.
"""

from __future__ import annotations

import fcntl
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from votecycle.state import VotingState


class StateStore:
    """File-backed snapshot store for a single VotingState."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = Path(storage_path)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    @property
    def lock_path(self) -> Path:
        return self._storage_path.with_suffix(self._storage_path.suffix + ".lock")

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive inter-process lock for the duration of the block."""
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def save(self, state: VotingState) -> None:
        """Persist a snapshot. Raises OSError on write failure."""
        self.save_dict(state.to_dict())

    def save_dict(self, data: dict[str, Any]) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp_path, self._storage_path)

    def load(self) -> Optional[VotingState]:
        """Load the stored aggregate, or None if nothing has been saved.

        Raises ValueError on a malformed snapshot.
        """
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Malformed state file {self._storage_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Malformed state file {self._storage_path}: expected an object")
        try:
            return VotingState.from_dict(data)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed state file {self._storage_path}: {e}") from e
