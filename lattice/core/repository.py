"""Snapshot persistence for the engine.

The snapshot lives at ``.lattice/state/engine.json`` and is written
atomically.  :meth:`SnapshotRepository.locked` holds a lock beside the
file so that several worker processes can read-modify-write it safely.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pydantic

from lattice.core.filesystem import FileSystem, LocalFileSystem
from lattice.errors import ArtifactIOError, SnapshotNotFoundError
from lattice.models.engine import EngineSnapshot

logger = logging.getLogger(__name__)


class SnapshotRepository:
    """Loads and saves :class:`EngineSnapshot` through a FileSystem.

    Parameters
    ----------
    path:
        Snapshot file location.
    fs:
        Filesystem backing.  Defaults to the local disk.
    lock_timeout:
        Seconds to wait for the cross-process lock.
    """

    def __init__(
        self,
        path: Path,
        fs: FileSystem | None = None,
        *,
        lock_timeout: float = 10.0,
    ) -> None:
        self._path = Path(path)
        self._fs = fs or LocalFileSystem()
        self._lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._fs.kind(self._path) is not None

    def load(self) -> EngineSnapshot:
        """Read the persisted snapshot; raises ``SnapshotNotFoundError`` if absent."""
        try:
            raw = self._fs.read_bytes(self._path)
        except FileNotFoundError as exc:
            raise SnapshotNotFoundError(f"no engine snapshot at {self._path}") from exc
        except OSError as exc:
            raise ArtifactIOError(f"cannot read snapshot {self._path}: {exc}") from exc
        try:
            return EngineSnapshot.model_validate_json(raw)
        except pydantic.ValidationError as exc:
            raise ArtifactIOError(f"corrupt snapshot {self._path}: {exc}") from exc

    def save(self, snapshot: EngineSnapshot) -> None:
        """Atomically persist ``snapshot``."""
        data = json.dumps(snapshot.model_dump(mode="json"), indent=2, sort_keys=True)
        try:
            self._fs.make_dirs(self._path.parent)
            self._fs.write_bytes(self._path, (data + "\n").encode("utf-8"))
        except OSError as exc:
            raise ArtifactIOError(f"cannot write snapshot {self._path}: {exc}") from exc
        logger.debug("Persisted snapshot for run %s", snapshot.run_id)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Exclusive section for read-modify-write of the snapshot."""
        with self._fs.lock(self._path, timeout=self._lock_timeout):
            yield
