"""Exception types raised by rvcs."""


class RvcsError(Exception):
    """Base exception for rvcs errors."""


class StorageError(RvcsError):
    """The object store or one of its indexes could not be read or written."""


class FormatError(RvcsError, ValueError):
    """A hash or serialized snapshot could not be parsed."""


class ResolutionError(RvcsError):
    """A name is neither a hash nor a path with a recorded snapshot."""


class UnrelatedHistoriesError(RvcsError):
    """Two snapshots share no common ancestor."""


class OperationCancelled(RvcsError):
    """The operation was cancelled or ran past its deadline."""


class UnsupportedFileTypeError(OSError):
    """The path is not a regular file, symlink, or directory."""
