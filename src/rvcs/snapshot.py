"""Snapshot nodes of the Merkle DAG and their canonical serialization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, get_args

from .errors import FormatError
from .hashing import Hash, new_hash, parse_hash

Kind = Literal["file", "symlink", "directory", "conflict"]
KINDS: tuple[str, ...] = get_args(Kind)
LEAF_KINDS = ("file", "symlink")

# Side names of a conflict node
BASE = "base"
OURS = "ours"
THEIRS = "theirs"
CONFLICT_SIDES = (BASE, OURS, THEIRS)

_FIELDS = frozenset({"kind", "mode", "contents", "children", "parents"})


@dataclass
class File:
    """One immutable recorded state of a path.

    Leaves (``file`` and ``symlink``) reference their stored bytes through
    ``contents``. Directories map child names to child snapshot hashes.
    Conflict nodes, produced by merges, map side names (``base``, ``ours``,
    ``theirs``) to the snapshots that could not be reconciled.
    """

    kind: Kind
    mode: int = 0
    contents: Hash | None = None
    children: dict[str, Hash] = field(default_factory=dict)
    parents: list[Hash] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return self.kind in LEAF_KINDS

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"

    @property
    def is_conflict(self) -> bool:
        return self.kind == "conflict"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "kind": self.kind,
            "mode": self.mode,
            "contents": str(self.contents) if self.contents is not None else None,
            "children": {name: str(self.children[name]) for name in sorted(self.children)},
            "parents": [str(p) for p in self.parents],
        }

    @classmethod
    def from_dict(cls, data: Any) -> File:
        """Create a File from its dictionary form, validating every field."""
        if not isinstance(data, dict):
            raise FormatError(f"expected an object, got {type(data).__name__}")
        if set(data) != _FIELDS:
            raise FormatError(f"unexpected fields {sorted(data)}; want {sorted(_FIELDS)}")

        kind = data["kind"]
        if kind not in KINDS:
            raise FormatError(f"unknown kind {kind!r}")

        mode = data["mode"]
        if not isinstance(mode, int) or isinstance(mode, bool) or mode < 0:
            raise FormatError(f"invalid mode {mode!r}")

        contents = data["contents"]
        if contents is not None:
            contents = _parse_hash_field(contents, "contents")

        children_data = data["children"]
        if not isinstance(children_data, dict):
            raise FormatError("children must be an object")
        children = {
            name: _parse_hash_field(value, f"child {name!r}")
            for name, value in children_data.items()
        }

        parents_data = data["parents"]
        if not isinstance(parents_data, list):
            raise FormatError("parents must be a list")
        parents = [_parse_hash_field(p, "parent") for p in parents_data]

        f = cls(kind=kind, mode=mode, contents=contents, children=children, parents=parents)
        f.validate()
        return f

    def validate(self) -> None:
        """Check that the fields present agree with the kind."""
        if self.kind in LEAF_KINDS:
            if self.contents is None:
                raise FormatError(f"{self.kind} snapshot has no contents")
            if self.children:
                raise FormatError(f"{self.kind} snapshot cannot have children")
        elif self.kind == "directory":
            if self.contents is not None:
                raise FormatError("directory snapshot cannot have contents")
            for name in self.children:
                if not name or name in (".", "..") or "/" in name or "\0" in name:
                    raise FormatError(f"invalid child name {name!r}")
        elif self.kind == "conflict":
            if self.contents is not None:
                raise FormatError("conflict snapshot cannot have contents")
            unknown = set(self.children) - set(CONFLICT_SIDES)
            if unknown:
                raise FormatError(f"unknown conflict sides {sorted(unknown)}")
            if OURS not in self.children and THEIRS not in self.children:
                raise FormatError("conflict snapshot has no sides")
        else:
            raise FormatError(f"unknown kind {self.kind!r}")

    def serialize(self) -> bytes:
        """Canonical byte encoding; equal files always encode identically.

        Output is pure ASCII. Names that are not valid UTF-8 arrive from the
        filesystem as surrogate escapes and are kept as ``\\udcXX`` escapes,
        so ``os.fsencode`` recovers the original bytes after parsing.
        """
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=True
        ).encode("ascii")

    def hash(self) -> Hash:
        """Hash of the serialized form, which is this node's identity."""
        return new_hash(self.serialize())


def serialize_file(f: File) -> bytes:
    """Serialize a snapshot node."""
    return f.serialize()


def parse_file(data: bytes | str) -> File:
    """Parse a serialized snapshot node.

    Raises:
        FormatError: On malformed JSON, a wrong set of fields, an unparsable
            hash reference, an unknown kind, or fields that contradict the kind.
    """
    try:
        decoded = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FormatError(f"snapshot is not valid JSON: {e}") from e
    return File.from_dict(decoded)


def same_content(a: File, b: File) -> bool:
    """Compare two snapshots ignoring their history."""
    return (
        a.kind == b.kind
        and a.mode == b.mode
        and a.contents == b.contents
        and a.children == b.children
    )


def _parse_hash_field(value: Any, what: str) -> Hash:
    if not isinstance(value, str):
        raise FormatError(f"{what} must be a hash string, got {value!r}")
    return parse_hash(value)
