"""Shared test fixtures for rvcs."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from rvcs.cache import MetadataCache
from rvcs.storage import MemoryStorage

FAR_FUTURE_NS = 2**62  # Any file mtime is older than this


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def storage() -> MemoryStorage:
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def trusting_cache() -> MetadataCache:
    """Metadata cache whose clock is far ahead of every file's mtime.

    Every hashed file is recorded, so a second snapshot of an untouched file
    is served from the cache.
    """
    return MetadataCache(clock=lambda: FAR_FUTURE_NS)


@pytest.fixture
def tree_fixture(tmp_path: Path) -> Path:
    """
    Create a small directory tree.

    Structure:
        tree/
        ├── root_file.txt
        ├── level1/
        │   ├── file1.txt
        │   └── level2/
        │       └── file2.txt
        └── sibling/
            ├── sibling1.txt
            └── sibling2.txt
    """
    root = tmp_path / "tree"
    root.mkdir()
    (root / "root_file.txt").write_text("root level\n")

    level1 = root / "level1"
    level1.mkdir()
    (level1 / "file1.txt").write_text("level 1\n")

    level2 = level1 / "level2"
    level2.mkdir()
    (level2 / "file2.txt").write_text("level 2\n")

    sibling = root / "sibling"
    sibling.mkdir()
    (sibling / "sibling1.txt").write_text("sibling 1\n")
    (sibling / "sibling2.txt").write_text("sibling 2\n")

    return root
