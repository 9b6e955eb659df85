"""Integration tests for the command line interface."""

import re
from pathlib import Path

import pytest

from rvcs import __version__
from rvcs.cli import main, resolve_snapshot
from rvcs.errors import ResolutionError
from rvcs.local import LocalStorage
from rvcs.snapshot import File

HASH_RE = re.compile(r"sha256:[0-9a-f]{64}")


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def project(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    (project / "README.md").write_text("# Project\n")
    return project


def invoke(cli_runner, data_dir: Path, *args: str):
    return cli_runner.invoke(main, ["--data-dir", str(data_dir), *args])


class TestCLIEntry:
    """Tests for the CLI entry point."""

    def test_version_flag(self, cli_runner):
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "rvcs" in result.output
        assert __version__ in result.output

    def test_help_flag(self, cli_runner):
        result = cli_runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ["snapshot", "log", "merge", "export"]:
            assert command in result.output

    def test_unknown_command(self, cli_runner):
        result = cli_runner.invoke(main, ["frobnicate"])
        assert result.exit_code != 0

    def test_missing_argument(self, cli_runner, data_dir):
        result = invoke(cli_runner, data_dir, "log")
        assert result.exit_code != 0


class TestSnapshotCommand:
    def test_prints_hash(self, cli_runner, data_dir, project):
        result = invoke(cli_runner, data_dir, "snapshot", str(project))

        assert result.exit_code == 0
        h = HASH_RE.search(result.output).group(0)
        assert str(LocalStorage(data_dir).find_snapshot(project)[0]) == h

    def test_unchanged_snapshot_is_stable(self, cli_runner, data_dir, project):
        first = invoke(cli_runner, data_dir, "snapshot", str(project))
        second = invoke(cli_runner, data_dir, "snapshot", str(project))

        assert HASH_RE.search(first.output).group(0) == HASH_RE.search(second.output).group(0)

    def test_verbose_shows_stats(self, cli_runner, data_dir, project):
        result = invoke(cli_runner, data_dir, "-v", "snapshot", str(project))

        assert result.exit_code == 0
        assert "Files hashed" in result.output

    def test_missing_path(self, cli_runner, data_dir, tmp_path: Path):
        result = invoke(cli_runner, data_dir, "snapshot", str(tmp_path / "missing"))

        assert result.exit_code == 1
        assert "Error" in result.output


class TestLogCommand:
    def test_history_of_path(self, cli_runner, data_dir, project):
        first = invoke(cli_runner, data_dir, "snapshot", str(project))
        (project / "README.md").write_text("# Project, revised\n")
        second = invoke(cli_runner, data_dir, "snapshot", str(project))
        h1 = HASH_RE.search(first.output).group(0)
        h2 = HASH_RE.search(second.output).group(0)

        result = invoke(cli_runner, data_dir, "log", str(project))

        assert result.exit_code == 0
        assert result.output.index(h2) < result.output.index(h1)
        assert "directory" in result.output

    def test_one_line_per_entry(self, cli_runner, data_dir, project):
        """Each line carries the hash, the kind and the parents."""
        first = invoke(cli_runner, data_dir, "snapshot", str(project))
        (project / "README.md").write_text("# Project, revised\n")
        second = invoke(cli_runner, data_dir, "snapshot", str(project))
        h1 = HASH_RE.search(first.output).group(0)
        h2 = HASH_RE.search(second.output).group(0)

        result = invoke(cli_runner, data_dir, "log", h2)

        lines = [line for line in result.output.splitlines() if line.strip()]
        assert lines == [f"{h2} directory {h1}", f"{h1} directory -"]

    def test_limit(self, cli_runner, data_dir, project):
        invoke(cli_runner, data_dir, "snapshot", str(project))
        (project / "README.md").write_text("# Project, revised\n")
        second = invoke(cli_runner, data_dir, "snapshot", str(project))
        h2 = HASH_RE.search(second.output).group(0)

        result = invoke(cli_runner, data_dir, "log", "-n", "1", h2)

        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if "directory" in line]
        assert len(lines) == 1

    def test_unresolvable_name(self, cli_runner, data_dir, tmp_path: Path):
        result = invoke(cli_runner, data_dir, "log", str(tmp_path / "never-snapshotted"))

        assert result.exit_code == 1
        assert "unable to resolve" in result.output


class TestExportCommand:
    def test_export(self, cli_runner, data_dir, project, tmp_path: Path):
        invoke(cli_runner, data_dir, "snapshot", str(project))
        out = tmp_path / "out"

        result = invoke(cli_runner, data_dir, "export", str(project), str(out))

        assert result.exit_code == 0
        assert (out / "README.md").read_text() == "# Project\n"

    def test_existing_destination(self, cli_runner, data_dir, project, tmp_path: Path):
        invoke(cli_runner, data_dir, "snapshot", str(project))

        result = invoke(cli_runner, data_dir, "export", str(project), str(tmp_path))

        assert result.exit_code == 1


class TestMergeCommand:
    def _diverged(self, storage: LocalStorage, theirs_content: bytes) -> tuple[str, str]:
        """Two histories that each edit notes.txt on top of a common base."""
        base_leaf = File(kind="file", mode=0o644, contents=storage.store_object(b"base\n"))
        base_leaf_hash = storage.store_object(base_leaf.serialize())
        base = File(kind="directory", mode=0o755, children={"notes.txt": base_leaf_hash})
        base_hash = storage.store_object(base.serialize())

        def side(content: bytes, extra: dict) -> str:
            leaf = File(
                kind="file", mode=0o644, contents=storage.store_object(content), parents=[base_leaf_hash]
            )
            children = {"notes.txt": storage.store_object(leaf.serialize()), **extra}
            tree = File(kind="directory", mode=0o755, children=children, parents=[base_hash])
            return str(storage.store_object(tree.serialize()))

        other = File(kind="file", mode=0o644, contents=storage.store_object(b"other\n"))
        ours = side(b"ours\n", {"other.txt": storage.store_object(other.serialize())})
        theirs = side(theirs_content, {})
        return ours, theirs

    def test_clean_merge(self, cli_runner, data_dir):
        storage = LocalStorage(data_dir)
        ours, theirs = self._diverged(storage, b"base\n")

        result = invoke(cli_runner, data_dir, "merge", theirs, ours)

        assert result.exit_code == 0
        merged = HASH_RE.search(result.output).group(0)
        assert merged not in (ours, theirs)
        assert "conflict" not in result.output

    def test_conflicting_merge(self, cli_runner, data_dir):
        storage = LocalStorage(data_dir)
        ours, theirs = self._diverged(storage, b"theirs\n")

        result = invoke(cli_runner, data_dir, "merge", theirs, ours)

        assert result.exit_code == 0
        assert "1 conflict(s)" in result.output
        assert "notes.txt" in result.output

    def test_merge_into_path_advances_it(self, cli_runner, data_dir, project, tmp_path: Path):
        first = invoke(cli_runner, data_dir, "snapshot", str(project))
        base = HASH_RE.search(first.output).group(0)
        (project / "README.md").write_text("# Project, revised\n")
        invoke(cli_runner, data_dir, "snapshot", str(project))

        # Merging an ancestor is a fast-forward that keeps the path's snapshot
        result = invoke(cli_runner, data_dir, "merge", base, str(project))

        assert result.exit_code == 0
        merged = HASH_RE.search(result.output).group(0)
        assert str(LocalStorage(data_dir).find_snapshot(project)[0]) == merged

    def test_unrelated(self, cli_runner, data_dir):
        storage = LocalStorage(data_dir)
        a = File(kind="file", mode=0o644, contents=storage.store_object(b"a"))
        b = File(kind="file", mode=0o644, contents=storage.store_object(b"b"))
        ha = str(storage.store_object(a.serialize()))
        hb = str(storage.store_object(b.serialize()))

        result = invoke(cli_runner, data_dir, "merge", ha, hb)

        assert result.exit_code == 1
        assert "no common ancestor" in result.output


class TestResolveSnapshot:
    def test_hash_literal(self, tmp_path: Path):
        storage = LocalStorage(tmp_path / "data")
        h = storage.store_object(b"anything")

        assert resolve_snapshot(storage, str(h)) == h

    def test_unknown_path(self, tmp_path: Path):
        with pytest.raises(ResolutionError):
            resolve_snapshot(LocalStorage(tmp_path / "data"), str(tmp_path / "nothing"))
