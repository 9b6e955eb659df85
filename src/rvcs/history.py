"""Walking snapshot history and materializing snapshots back onto disk."""

from __future__ import annotations

import itertools
import logging
import os
from collections import deque
from collections.abc import Iterator
from pathlib import Path

from .cancellation import CancelToken, check
from .hashing import Hash
from .snapshot import CONFLICT_SIDES, File
from .storage import Storage

logger = logging.getLogger(__name__)


def ancestors(
    storage: Storage, h: Hash, *, include_self: bool = True
) -> Iterator[tuple[Hash, File]]:
    """
    Lazily yield the snapshots reachable from ``h`` through parent links.

    Traversal is breadth-first, first parents before later ones, and every
    hash is yielded at most once even where merges make the history converge.
    """
    seen: set[Hash] = {h}
    queue: deque[Hash] = deque([h])
    first = True
    while queue:
        current = queue.popleft()
        f = storage.read_snapshot(current)
        if include_self or not first:
            yield current, f
        first = False
        for parent in f.parents:
            if parent not in seen:
                seen.add(parent)
                queue.append(parent)


def log_entries(
    storage: Storage, h: Hash, limit: int | None = None
) -> list[tuple[Hash, File]]:
    """The first ``limit`` entries of the history of ``h``."""
    return list(itertools.islice(ancestors(storage, h), limit))


def export(
    storage: Storage,
    h: Hash,
    destination: Path | str,
    *,
    cancel: CancelToken | None = None,
) -> None:
    """
    Write the snapshot ``h`` out as real files under ``destination``.

    A conflict node is written as one entry per side, named after the
    conflicted entry with a ``.base``, ``.ours`` or ``.theirs`` suffix.

    Raises:
        FileExistsError: If the destination, or for a conflicted snapshot any
            of its side paths, already exists
    """
    destination = Path(destination)
    f = storage.read_snapshot(h)
    targets = list(_side_paths(f, destination).values()) if f.is_conflict else [destination]
    for target in targets:
        if os.path.lexists(target):
            raise FileExistsError(f"export destination already exists: {target}")
    _export_node(storage, h, destination, cancel)


def _side_paths(f: File, destination: Path) -> dict[str, Path]:
    """Where each side present in a conflict node is written."""
    return {
        side: destination.with_name(f"{destination.name}.{side}")
        for side in CONFLICT_SIDES
        if side in f.children
    }


def _export_node(
    storage: Storage, h: Hash, destination: Path, cancel: CancelToken | None
) -> None:
    check(cancel)
    f = storage.read_snapshot(h)

    if f.kind == "file":
        data = storage.read_object(f.contents)
        with open(destination, "xb") as out:
            out.write(data)
        os.chmod(destination, f.mode)
    elif f.kind == "symlink":
        target = os.fsdecode(storage.read_object(f.contents))
        os.symlink(target, destination)
    elif f.kind == "directory":
        destination.mkdir()
        for name in sorted(f.children):
            _export_node(storage, f.children[name], destination / name, cancel)
        os.chmod(destination, f.mode)
    else:
        logger.warning("Exporting conflicted entry %s", destination)
        for side, side_path in _side_paths(f, destination).items():
            _export_node(storage, f.children[side], side_path, cancel)
