"""Content hashes used as the identity of every stored object."""

from __future__ import annotations

import hashlib
import string
from dataclasses import dataclass
from typing import BinaryIO

from .errors import FormatError

HASH_FUNCTION = "sha256"
DIGEST_LENGTH = 64  # Hex characters in a SHA-256 digest
CHUNK_SIZE = 8192

_HEX_DIGITS = frozenset(string.hexdigits.lower())


@dataclass(frozen=True, order=True)
class Hash:
    """A content digest together with the name of the function that produced it."""

    function: str
    digest: str  # Lowercase hex

    def __str__(self) -> str:
        return f"{self.function}:{self.digest}"

    @property
    def short(self) -> str:
        """Abbreviated form for display."""
        return f"{self.function}:{self.digest[:12]}"


def new_hash(data: bytes | BinaryIO) -> Hash:
    """Compute the SHA-256 hash of a byte string or a binary stream."""
    h = hashlib.sha256()
    if isinstance(data, (bytes, bytearray, memoryview)):
        h.update(data)
    else:
        for chunk in iter(lambda: data.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return Hash(HASH_FUNCTION, h.hexdigest())


def parse_hash(text: str) -> Hash:
    """Parse the canonical ``function:digest`` form of a hash.

    Raises:
        FormatError: If the text is not a well-formed hash.
    """
    function, sep, digest = text.partition(":")
    if not sep:
        raise FormatError(f"malformed hash {text!r}: missing function name")
    if function != HASH_FUNCTION:
        raise FormatError(f"unsupported hash function {function!r}")
    if len(digest) != DIGEST_LENGTH or not set(digest) <= _HEX_DIGITS:
        raise FormatError(f"malformed {function} digest {digest!r}")
    return Hash(function, digest)
