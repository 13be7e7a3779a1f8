"""Filesystem capability used by the artifact store and engine snapshot.

The workflow directory is the only durable shared state, so every read
and write goes through a :class:`FileSystem`.  ``LocalFileSystem`` binds
to disk with atomic replace-on-write and ``filelock`` for cross-process
locking; ``MemoryFileSystem`` keeps everything in a dict for tests.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from filelock import FileLock, Timeout

from lattice.errors import ConcurrencyViolation

FILE_MODE = 0o644
DIR_MODE = 0o755


class PathKind(str, Enum):
    """What kind of filesystem object lives at a path."""

    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@runtime_checkable
class FileSystem(Protocol):
    """Minimal filesystem surface the runtime depends on.

    ``kind`` returns ``None`` when nothing exists at the path and raises
    ``OSError`` for anything unexpected.
    """

    def kind(self, path: Path) -> PathKind | None: ...

    def read_bytes(self, path: Path) -> bytes: ...

    def write_bytes(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None: ...

    def make_dirs(self, path: Path, mode: int = DIR_MODE) -> None: ...

    def remove(self, path: Path) -> None: ...

    def lock(self, path: Path, timeout: float = 10.0) -> AbstractContextManager[None]: ...


# ---------------------------------------------------------------------------
# Local disk
# ---------------------------------------------------------------------------


class LocalFileSystem:
    """FileSystem bound to the local disk."""

    def kind(self, path: Path) -> PathKind | None:
        try:
            st = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        if stat.S_ISDIR(st.st_mode):
            return PathKind.DIRECTORY
        if stat.S_ISREG(st.st_mode):
            return PathKind.FILE
        return PathKind.OTHER

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None:
        """Write ``data`` atomically: temp file in the same directory, then replace."""
        path = Path(path)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def make_dirs(self, path: Path, mode: int = DIR_MODE) -> None:
        os.makedirs(path, mode=mode, exist_ok=True)

    def remove(self, path: Path) -> None:
        kind = self.kind(path)
        if kind is None:
            return
        if kind is PathKind.DIRECTORY:
            shutil.rmtree(path)
        else:
            os.unlink(path)

    @contextmanager
    def lock(self, path: Path, timeout: float = 10.0) -> Iterator[None]:
        """Hold an exclusive cross-process lock next to ``path``."""
        lock_path = Path(f"{path}.lock")
        self.make_dirs(lock_path.parent)
        file_lock = FileLock(str(lock_path), timeout=timeout)
        try:
            with file_lock:
                yield
        except Timeout as exc:
            raise ConcurrencyViolation(
                f"Timed out after {timeout}s waiting for lock {lock_path}"
            ) from exc


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


def _key(path: Path) -> str:
    return os.path.normpath(os.fspath(path))


class MemoryFileSystem:
    """Dict-backed FileSystem for tests.

    Parents must exist before a file is written, matching disk semantics.
    ``modes`` records the permission bits of every write for inspection.
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {os.sep}
        self.modes: dict[str, int] = {}
        self._mutex = threading.RLock()
        self._locks: dict[str, threading.Lock] = {}

    def kind(self, path: Path) -> PathKind | None:
        key = _key(path)
        with self._mutex:
            if key in self.dirs:
                return PathKind.DIRECTORY
            if key in self.files:
                return PathKind.FILE
            return None

    def read_bytes(self, path: Path) -> bytes:
        key = _key(path)
        with self._mutex:
            if key in self.dirs:
                raise IsADirectoryError(key)
            try:
                return self.files[key]
            except KeyError:
                raise FileNotFoundError(key) from None

    def write_bytes(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None:
        key = _key(path)
        with self._mutex:
            if os.path.dirname(key) not in self.dirs:
                raise FileNotFoundError(os.path.dirname(key))
            if key in self.dirs:
                raise IsADirectoryError(key)
            self.files[key] = bytes(data)
            self.modes[key] = mode

    def make_dirs(self, path: Path, mode: int = DIR_MODE) -> None:
        key = _key(path)
        with self._mutex:
            chain: list[str] = []
            current = key
            while current not in self.dirs:
                if current in self.files:
                    raise FileExistsError(current)
                chain.append(current)
                parent = os.path.dirname(current)
                if parent == current:
                    break
                current = parent
            for entry in reversed(chain):
                self.dirs.add(entry)
                self.modes[entry] = mode

    def remove(self, path: Path) -> None:
        key = _key(path)
        with self._mutex:
            if key in self.files:
                del self.files[key]
                return
            if key in self.dirs:
                prefix = key + os.sep
                self.dirs = {d for d in self.dirs if d != key and not d.startswith(prefix)}
                self.files = {f: b for f, b in self.files.items() if not f.startswith(prefix)}

    @contextmanager
    def lock(self, path: Path, timeout: float = 10.0) -> Iterator[None]:
        key = _key(path)
        with self._mutex:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(timeout=timeout):
            raise ConcurrencyViolation(f"Timed out after {timeout}s waiting for lock {key}")
        try:
            yield
        finally:
            lock.release()
