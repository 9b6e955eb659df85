"""Storage interface consumed by the snapshot engine, plus an in-memory store."""

from __future__ import annotations

import fnmatch
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from .errors import FormatError, StorageError
from .hashing import Hash, new_hash
from .snapshot import File, parse_file


@dataclass(frozen=True)
class PathInfo:
    """Filesystem metadata observed when a path's content was hashed."""

    size: int
    mtime_ns: int
    device: int
    inode: int
    mode: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> PathInfo:
        return cls(
            size=st.st_size,
            mtime_ns=st.st_mtime_ns,
            device=st.st_dev,
            inode=st.st_ino,
            mode=st.st_mode,
        )

    def same_file(self, other: PathInfo) -> bool:
        """Whether both records describe the same inode on the same device."""
        return self.device == other.device and self.inode == other.inode


@runtime_checkable
class Storage(Protocol):
    """Durable, content-addressed object store with a path index and metadata cache.

    Implementations must be safe to call from several threads at once.
    """

    def store_object(self, data: bytes | BinaryIO) -> Hash:
        """Persist content and return its hash. Storing the same bytes twice is a no-op."""
        ...

    def read_object(self, h: Hash) -> bytes:
        """Return the bytes stored under a hash, raising StorageError if absent."""
        ...

    def find_snapshot(self, path: Path) -> tuple[Hash, File] | None:
        """Latest recorded snapshot of a path, or None if it was never snapshotted."""
        ...

    def read_snapshot(self, h: Hash) -> File:
        """Load and parse the snapshot stored under a hash."""
        ...

    def store_snapshot(self, path: Path, f: File) -> Hash:
        """Store a snapshot object, then make it the latest snapshot of the path."""
        ...

    def cache_path_info(self, path: Path, info: PathInfo) -> None:
        """Record metadata for a path as hashed as of now."""
        ...

    def path_info_matches_cache(self, path: Path, info: PathInfo) -> bool:
        """True only if the metadata is identical to the cached record."""
        ...

    def exclude(self, path: Path) -> bool:
        """Whether a path must be skipped entirely."""
        ...


def cache_matches(cached: PathInfo | None, info: PathInfo) -> bool:
    """Strict cache rule shared by storage implementations.

    A hit needs the same inode identity and an unchanged modification time.
    Size and mode are compared as well; a difference in either proves a change.
    """
    if cached is None:
        return False
    return (
        cached.same_file(info)
        and cached.mtime_ns == info.mtime_ns
        and cached.size == info.size
        and cached.mode == info.mode
    )


def matches_exclude_pattern(path: Path, exclude_patterns: list[str]) -> bool:
    """Check if a path's name matches any exclusion pattern."""
    name = path.name
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(name, pattern):
            return True
    return False


class MemoryStorage:
    """Thread-safe in-memory storage."""

    def __init__(self, exclude_patterns: list[str] | None = None):
        self.exclude_patterns = list(exclude_patterns or [])
        self._lock = threading.Lock()
        self._objects: dict[Hash, bytes] = {}
        self._snapshots: dict[Path, Hash] = {}
        self._cache: dict[Path, PathInfo] = {}

    @property
    def object_count(self) -> int:
        with self._lock:
            return len(self._objects)

    def store_object(self, data: bytes | BinaryIO) -> Hash:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            data = data.read()
        data = bytes(data)
        h = new_hash(data)
        with self._lock:
            self._objects.setdefault(h, data)
        return h

    def read_object(self, h: Hash) -> bytes:
        with self._lock:
            data = self._objects.get(h)
        if data is None:
            raise StorageError(f"object {h} not found")
        return data

    def read_snapshot(self, h: Hash) -> File:
        data = self.read_object(h)
        try:
            return parse_file(data)
        except FormatError as e:
            raise FormatError(f"failure parsing the stored snapshot {h}: {e}") from e

    def find_snapshot(self, path: Path) -> tuple[Hash, File] | None:
        with self._lock:
            h = self._snapshots.get(path)
        if h is None:
            return None
        return h, self.read_snapshot(h)

    def store_snapshot(self, path: Path, f: File) -> Hash:
        h = self.store_object(f.serialize())
        with self._lock:
            self._snapshots[path] = h
        return h

    def cache_path_info(self, path: Path, info: PathInfo) -> None:
        with self._lock:
            self._cache[path] = info

    def path_info_matches_cache(self, path: Path, info: PathInfo) -> bool:
        with self._lock:
            cached = self._cache.get(path)
        return cache_matches(cached, info)

    def exclude(self, path: Path) -> bool:
        return matches_exclude_pattern(path, self.exclude_patterns)
