"""Snapshot builder: record the current state of a file or directory tree."""

from __future__ import annotations

import logging
import os
import stat
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ChangeCache, MetadataCache
from .cancellation import CancelToken, check
from .errors import UnsupportedFileTypeError
from .hashing import Hash
from .snapshot import File, same_content
from .storage import PathInfo, Storage

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = min(32, (os.cpu_count() or 1) + 4)


@dataclass
class BuildStats:
    """Statistics from taking a snapshot."""

    files_hashed: int = 0  # Files whose content was read and hashed
    files_cached: int = 0  # Files served from the metadata cache
    directories_processed: int = 0
    snapshots_stored: int = 0  # New snapshot nodes written
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    @property
    def total_files(self) -> int:
        return self.files_hashed + self.files_cached

    @property
    def cache_hit_rate(self) -> float:
        if self.total_files == 0:
            return 0.0
        return self.files_cached / self.total_files


def current(
    storage: Storage,
    path: Path | str,
    *,
    cache: ChangeCache | None = None,
    workers: int | None = None,
    cancel: CancelToken | None = None,
    stats: BuildStats | None = None,
) -> tuple[Hash, File] | None:
    """
    Snapshot a path and return its latest ``(Hash, File)``.

    Unchanged content reuses the previous snapshot of the path; changed
    content produces a new snapshot whose first parent is the previous one.

    Args:
        storage: Where objects, the path index and the metadata cache live
        path: File or directory to snapshot; made absolute, symlinks not followed
        cache: Change-detection policy (defaults to MetadataCache)
        workers: Maximum number of threads hashing sibling files
        cancel: Optional token checked before each path is processed
        stats: Optional counters updated while building

    Returns:
        The snapshot, or None if the path is excluded and was never snapshotted

    Raises:
        OSError: If a path cannot be statted or read
        StorageError: If the backing store fails
        OperationCancelled: If the token is cancelled or expires
    """
    path = Path(os.path.abspath(path))
    with ThreadPoolExecutor(
        max_workers=workers or DEFAULT_WORKERS, thread_name_prefix="rvcs-hash"
    ) as executor:
        builder = _Builder(
            storage=storage,
            cache=cache or MetadataCache(),
            executor=executor,
            cancel=cancel,
            stats=stats if stats is not None else BuildStats(),
        )
        return builder.snapshot(path)


@dataclass
class _Builder:
    storage: Storage
    cache: ChangeCache
    executor: ThreadPoolExecutor
    cancel: CancelToken | None
    stats: BuildStats

    def snapshot(self, path: Path) -> tuple[Hash, File] | None:
        check(self.cancel)
        if self.storage.exclude(path):
            logger.debug("Excluded %s", path)
            return self.storage.find_snapshot(path)
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode):
            return self._snapshot_directory(path, st)
        return self._snapshot_leaf(path, st)

    def _snapshot_leaf(self, path: Path, st: os.stat_result) -> tuple[Hash, File]:
        check(self.cancel)
        if stat.S_ISLNK(st.st_mode):
            kind = "symlink"
        elif stat.S_ISREG(st.st_mode):
            kind = "file"
        else:
            raise UnsupportedFileTypeError(f"unsupported file type: {path}")

        info = PathInfo.from_stat(st)
        if self.cache.is_unchanged(self.storage, path, info):
            prior = self.storage.find_snapshot(path)
            if prior is not None:
                logger.debug("Metadata unchanged, reusing %s for %s", prior[0].short, path)
                self.stats.increment("files_cached")
                return prior

        if kind == "symlink":
            contents = self.storage.store_object(os.fsencode(os.readlink(path)))
        else:
            with open(path, "rb") as f:
                contents = self.storage.store_object(f)
        self.stats.increment("files_hashed")

        result = self._link(path, File(kind=kind, mode=stat.S_IMODE(st.st_mode), contents=contents))
        self.cache.record(self.storage, path, info)
        return result

    def _snapshot_directory(self, path: Path, st: os.stat_result) -> tuple[Hash, File]:
        self.stats.increment("directories_processed")
        with os.scandir(path) as it:
            entries = sorted(it, key=lambda e: e.name)

        children: dict[str, Hash] = {}
        pending: dict[str, Future[tuple[Hash, File]]] = {}
        try:
            for entry in entries:
                check(self.cancel)
                child = Path(entry.path)
                if self.storage.exclude(child):
                    logger.debug("Excluded %s", child)
                    continue
                child_st = os.lstat(child)
                if stat.S_ISDIR(child_st.st_mode):
                    # Directories recurse on this thread; workers only hash leaves
                    children[entry.name] = self._snapshot_directory(child, child_st)[0]
                else:
                    pending[entry.name] = self.executor.submit(self._snapshot_leaf, child, child_st)
            for name, future in pending.items():
                children[name] = future.result()[0]
        except BaseException:
            for future in pending.values():
                future.cancel()
            raise

        node = File(
            kind="directory",
            mode=stat.S_IMODE(st.st_mode),
            children={name: children[name] for name in sorted(children)},
        )
        return self._link(path, node)

    def _link(self, path: Path, f: File) -> tuple[Hash, File]:
        """Reuse the prior snapshot if its content matches, else store f on top of it."""
        prior = self.storage.find_snapshot(path)
        if prior is not None:
            prior_hash, prior_file = prior
            if same_content(prior_file, f):
                return prior
            f.parents = [prior_hash]
        h = self.storage.store_snapshot(path, f)
        self.stats.increment("snapshots_stored")
        logger.debug("Stored snapshot %s for %s", h.short, path)
        return h, f
