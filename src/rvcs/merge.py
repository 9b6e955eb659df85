"""Three-way merging of snapshot histories."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from .cancellation import CancelToken, check
from .errors import UnrelatedHistoriesError
from .hashing import Hash
from .history import ancestors
from .snapshot import BASE, OURS, THEIRS, File, same_content
from .storage import Storage

logger = logging.getLogger(__name__)


def find_merge_base(
    storage: Storage, a: Hash, b: Hash, *, cancel: CancelToken | None = None
) -> Hash | None:
    """
    Find the common ancestor nearest to both ``a`` and ``b``.

    Candidates are ranked by the sum of their parent-link distances from ``a``
    and ``b``; ties go to the one closer to ``a``, then to the smaller hash
    string, so the choice is deterministic.

    Returns:
        The merge base, or None if the histories are unrelated

    Raises:
        OperationCancelled: If the token is cancelled while walking history
    """
    dist_a = _distances(storage, a, cancel)
    dist_b = _distances(storage, b, cancel)
    common = dist_a.keys() & dist_b.keys()
    if not common:
        return None
    return min(common, key=lambda h: (dist_a[h] + dist_b[h], dist_a[h], str(h)))


def merge(
    storage: Storage,
    a: Hash,
    b: Hash,
    *,
    path: Path | None = None,
    cancel: CancelToken | None = None,
) -> tuple[Hash, File]:
    """
    Merge the histories ending at ``a`` and ``b``.

    If one side is an ancestor of the other, the descendant is returned as is.
    Otherwise the result is a new snapshot with ``parents == [a, b]``. Entries
    changed on both sides in incompatible ways become ``conflict`` nodes that
    keep the base, ours (``a``) and theirs (``b``) versions; conflicts are part
    of the result, not errors.

    Args:
        storage: Storage holding both histories
        a: First side; its history is the primary line of the result
        b: Second side
        path: If given, the result becomes the latest snapshot of this path
        cancel: Optional token checked while walking history and before each
            entry is merged

    Raises:
        UnrelatedHistoriesError: If ``a`` and ``b`` share no ancestor
    """
    base = find_merge_base(storage, a, b, cancel=cancel)
    if base is None:
        raise UnrelatedHistoriesError(f"{a} and {b} have no common ancestor")
    logger.debug("Merging %s and %s with base %s", a.short, b.short, base.short)

    if base == b:
        h = a
    elif base == a:
        h = b
    else:
        h = _Merger(storage, cancel).merge_entry(base, a, b)

    f = storage.read_snapshot(h)
    if base not in (a, b) and h in (a, b):
        # Both sides changed but resolved to one of them; still record both parents
        f = replace(f, parents=[a, b])
        h = storage.store_object(f.serialize())
    if path is not None:
        h = storage.store_snapshot(path, f)
    return h, f


def list_conflicts(storage: Storage, h: Hash) -> list[str]:
    """Relative paths of all conflict nodes within a snapshot, ``.`` for the root."""
    conflicts: list[str] = []
    _collect_conflicts(storage, h, "", conflicts)
    return conflicts


class _Merger:
    def __init__(self, storage: Storage, cancel: CancelToken | None):
        self.storage = storage
        self.cancel = cancel

    def merge_entry(self, base: Hash | None, a: Hash | None, b: Hash | None) -> Hash | None:
        """Merge one entry; None means the entry is absent from the result."""
        check(self.cancel)
        if a == b:
            return a

        if a is None or b is None:
            present = a if a is not None else b
            if base is None:
                return present  # Added on one side only
            if same_content(self.storage.read_snapshot(present), self.storage.read_snapshot(base)):
                return None  # Deleted on one side, untouched on the other
            return self._conflict(base, a, b)

        fa = self.storage.read_snapshot(a)
        fb = self.storage.read_snapshot(b)
        if same_content(fa, fb):
            return a

        fbase = self.storage.read_snapshot(base) if base is not None else None
        if fbase is not None:
            if fa.kind != fbase.kind or fb.kind != fbase.kind:
                # A kind change conflicts even when the other side is untouched
                return self._conflict(base, a, b)
            if same_content(fa, fbase):
                return b
            if same_content(fb, fbase):
                return a

        if fa.is_directory and fb.is_directory:
            return self._merge_directories(fbase, a, fa, b, fb)
        return self._conflict(base, a, b)

    def _merge_directories(
        self, fbase: File | None, a: Hash, fa: File, b: Hash, fb: File
    ) -> Hash:
        base_children = fbase.children if fbase is not None and fbase.is_directory else {}
        children: dict[str, Hash] = {}
        for name in sorted(fa.children.keys() | fb.children.keys()):
            child = self.merge_entry(
                base_children.get(name), fa.children.get(name), fb.children.get(name)
            )
            if child is not None:
                children[name] = child

        mode = fa.mode
        if fbase is not None and fa.mode == fbase.mode:
            mode = fb.mode
        node = File(kind="directory", mode=mode, children=children, parents=[a, b])
        return self.storage.store_object(node.serialize())

    def _conflict(self, base: Hash | None, a: Hash | None, b: Hash | None) -> Hash:
        sides: dict[str, Hash] = {}
        if base is not None:
            sides[BASE] = base
        if a is not None:
            sides[OURS] = a
        if b is not None:
            sides[THEIRS] = b
        node = File(
            kind="conflict",
            children=sides,
            parents=[h for h in (a, b) if h is not None],
        )
        h = self.storage.store_object(node.serialize())
        logger.debug("Conflict recorded as %s", h.short)
        return h


def _distances(
    storage: Storage, start: Hash, cancel: CancelToken | None
) -> dict[Hash, int]:
    """Shortest parent-link distance from ``start`` to each of its ancestors."""
    dist = {start: 0}
    # ancestors() is breadth-first, so the first link to a parent is a shortest one
    for h, f in ancestors(storage, start):
        check(cancel)
        for parent in f.parents:
            dist.setdefault(parent, dist[h] + 1)
    return dist


def _collect_conflicts(storage: Storage, h: Hash, prefix: str, out: list[str]) -> None:
    f = storage.read_snapshot(h)
    if f.is_conflict:
        out.append(prefix or ".")
    elif f.is_directory:
        for name in sorted(f.children):
            child_path = f"{prefix}/{name}" if prefix else name
            _collect_conflicts(storage, f.children[name], child_path, out)
