"""Change-detection policies deciding when a path can skip rehashing.

The snapshot builder never inspects cached metadata itself; it asks a
``ChangeCache``. ``MetadataCache`` trusts the storage's metadata record,
``StrictCache`` always rehashes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from .storage import PathInfo, Storage

logger = logging.getLogger(__name__)

Clock = Callable[[], int]  # Returns nanoseconds since the epoch

ONE_SECOND_NS = 1_000_000_000


class ChangeCache(Protocol):
    def is_unchanged(self, storage: Storage, path: Path, info: PathInfo) -> bool:
        """True only if the path is provably unchanged since it was last hashed."""
        ...

    def record(self, storage: Storage, path: Path, info: PathInfo) -> None:
        """Remember the metadata of content that was just hashed."""
        ...


class MetadataCache:
    """Trust filesystem metadata that matches the storage's cache exactly.

    Metadata is only recorded once the file's modification time is older than
    the current timestamp granule. A file written within the granule in which
    it was hashed could be rewritten without its mtime changing, so such
    racily clean entries are hashed again next time.
    """

    def __init__(self, clock: Clock | None = None, granularity_ns: int = ONE_SECOND_NS):
        if granularity_ns < 1:
            raise ValueError("granularity_ns must be positive")
        self.clock = clock or time.time_ns
        self.granularity_ns = granularity_ns

    def is_unchanged(self, storage: Storage, path: Path, info: PathInfo) -> bool:
        return storage.path_info_matches_cache(path, info)

    def record(self, storage: Storage, path: Path, info: PathInfo) -> None:
        now = self.clock()
        cutoff = now - now % self.granularity_ns
        if info.mtime_ns >= cutoff:
            logger.debug("Not caching racily clean %s", path)
            return
        storage.cache_path_info(path, info)


class StrictCache:
    """Never trust metadata: every snapshot rehashes every file."""

    def is_unchanged(self, storage: Storage, path: Path, info: PathInfo) -> bool:
        return False

    def record(self, storage: Storage, path: Path, info: PathInfo) -> None:
        pass
