"""On-disk storage rooted at a data directory."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, TypeVar

from pydantic import BaseModel, ValidationError

from . import CACHE_DIR, OBJECTS_DIR, PATHS_DIR
from .config import RvcsConfig
from .errors import FormatError, StorageError
from .hashing import CHUNK_SIZE, HASH_FUNCTION, Hash, parse_hash
from .snapshot import File, parse_file
from .storage import PathInfo, cache_matches, matches_exclude_pattern

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class PathRecord(BaseModel):
    """Latest snapshot recorded for a path."""

    path: str
    hash: str


class CacheRecord(BaseModel):
    """Filesystem metadata of a path as of its last hash."""

    path: str
    size: int
    mtime_ns: int
    device: int
    inode: int
    mode: int

    def to_path_info(self) -> PathInfo:
        return PathInfo(
            size=self.size,
            mtime_ns=self.mtime_ns,
            device=self.device,
            inode=self.inode,
            mode=self.mode,
        )


class LocalStorage:
    """Storage backed by files under a data directory.

    Layout::

        <data_dir>/objects/sha256/ab/cdef...   object bytes
        <data_dir>/paths/ab/cdef....json       latest snapshot per path
        <data_dir>/cache/ab/cdef....json       metadata cache per path

    Index and cache files are keyed by the SHA-256 of the absolute path. Every
    file is written to a temporary name and renamed into place, so readers
    never observe a partial write.
    """

    def __init__(self, data_dir: Path, exclude_patterns: list[str] | None = None):
        self.data_dir = Path(os.path.abspath(data_dir))
        self.exclude_patterns = list(exclude_patterns or [])
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RvcsConfig) -> LocalStorage:
        return cls(config.data_dir, config.exclude_patterns)

    def object_path(self, h: Hash) -> Path:
        return self.data_dir / OBJECTS_DIR / h.function / h.digest[:2] / h.digest[2:]

    def store_object(self, data: bytes | BinaryIO) -> Hash:
        if isinstance(data, (bytes, bytearray, memoryview)):
            chunks = [bytes(data)]
        else:
            chunks = iter(lambda: data.read(CHUNK_SIZE), b"")

        tmp_dir = self.data_dir / OBJECTS_DIR / "tmp"
        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            digest = hashlib.sha256()
            tmp = tempfile.NamedTemporaryFile(dir=tmp_dir, delete=False)
            try:
                with tmp:
                    for chunk in chunks:
                        digest.update(chunk)
                        tmp.write(chunk)
                    tmp.flush()
                    os.fsync(tmp.fileno())
            except BaseException:
                os.unlink(tmp.name)
                raise
            h = Hash(HASH_FUNCTION, digest.hexdigest())
            target = self.object_path(h)
            if target.exists():
                os.unlink(tmp.name)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(tmp.name, target)
        except OSError as e:
            raise StorageError(f"failure storing object: {e}") from e
        return h

    def read_object(self, h: Hash) -> bytes:
        try:
            return self.object_path(h).read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"object {h} not found") from e
        except OSError as e:
            raise StorageError(f"failure reading object {h}: {e}") from e

    def read_snapshot(self, h: Hash) -> File:
        data = self.read_object(h)
        try:
            return parse_file(data)
        except FormatError as e:
            raise FormatError(f"failure parsing the stored snapshot {h}: {e}") from e

    def find_snapshot(self, path: Path) -> tuple[Hash, File] | None:
        record = self._read_record(self._index_path(PATHS_DIR, path), PathRecord)
        if record is None:
            return None
        h = parse_hash(record.hash)
        return h, self.read_snapshot(h)

    def store_snapshot(self, path: Path, f: File) -> Hash:
        h = self.store_object(f.serialize())
        record = PathRecord(path=_record_path(path), hash=str(h))
        self._write_record(self._index_path(PATHS_DIR, path), record)
        return h

    def cache_path_info(self, path: Path, info: PathInfo) -> None:
        record = CacheRecord(
            path=_record_path(path),
            size=info.size,
            mtime_ns=info.mtime_ns,
            device=info.device,
            inode=info.inode,
            mode=info.mode,
        )
        self._write_record(self._index_path(CACHE_DIR, path), record)

    def path_info_matches_cache(self, path: Path, info: PathInfo) -> bool:
        try:
            record = self._read_record(self._index_path(CACHE_DIR, path), CacheRecord)
        except StorageError:
            logger.warning("Ignoring unreadable cache entry for %s", path)
            return False
        if record is None or record.path != _record_path(path):
            return False
        return cache_matches(record.to_path_info(), info)

    def exclude(self, path: Path) -> bool:
        if path == self.data_dir or self.data_dir in path.parents:
            return True
        return matches_exclude_pattern(path, self.exclude_patterns)

    def _index_path(self, kind: str, path: Path) -> Path:
        key = hashlib.sha256(os.fsencode(str(path))).hexdigest()
        return self.data_dir / kind / key[:2] / f"{key[2:]}.json"

    def _read_record(self, location: Path, model: type[RecordT]) -> RecordT | None:
        try:
            with open(location) as f:
                return model.model_validate(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StorageError(f"failure reading {location}: {e}") from e

    def _write_record(self, location: Path, record: BaseModel) -> None:
        data = json.dumps(record.model_dump(mode="json"), indent=2)
        try:
            location.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                with tempfile.NamedTemporaryFile(
                    "w", dir=location.parent, suffix=".tmp", delete=False
                ) as tmp:
                    tmp.write(data)
                os.replace(tmp.name, location)
        except OSError as e:
            raise StorageError(f"failure writing {location}: {e}") from e


def _record_path(path: Path) -> str:
    """Printable form of a path for index records, valid even for non-UTF-8 names."""
    return os.fsencode(path).decode("utf-8", "backslashreplace")
