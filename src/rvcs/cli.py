"""CLI for rvcs."""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .cache import MetadataCache
from .config import RvcsConfig, load_config
from .current import BuildStats, current
from .errors import FormatError, ResolutionError, RvcsError
from .hashing import Hash, parse_hash
from .history import export, log_entries
from .local import LocalStorage
from .logging_config import setup_logging
from .merge import list_conflicts, merge
from .storage import Storage

console = Console()
error_console = Console(stderr=True)


@dataclass
class CliState:
    """Objects shared by every subcommand."""

    config: RvcsConfig
    storage: LocalStorage
    verbose: bool = False


def resolve_snapshot(storage: Storage, name: str) -> Hash:
    """Resolve a command-line name to a snapshot hash.

    The name is either a hash literal or a path whose latest snapshot is used.

    Raises:
        ResolutionError: If neither interpretation yields a snapshot
    """
    try:
        return parse_hash(name)
    except FormatError:
        pass
    found = storage.find_snapshot(Path(os.path.abspath(name)))
    if found is None:
        raise ResolutionError(f"unable to resolve the hash corresponding to {name!r}")
    return found[0]


def fail(message: str) -> NoReturn:
    """Print an error and exit with a non-zero status."""
    error_console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="rvcs")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the object store (default: ~/.rvcs or $RVCS_DATA_DIR)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """rvcs - recursive version control for local files and directories."""
    setup_logging(verbose, console=error_console)
    try:
        config = load_config(data_dir)
    except (OSError, ValueError) as e:
        fail(f"failure loading configuration: {e}")
    ctx.obj = CliState(config=config, storage=LocalStorage.from_config(config), verbose=verbose)


@main.command()
@click.argument("path", type=click.Path(path_type=Path), default=Path("."))
@click.pass_obj
def snapshot(state: CliState, path: Path) -> None:
    """Snapshot a file or directory."""
    stats = BuildStats()
    cache = MetadataCache(granularity_ns=state.config.cache_granularity_ns)
    try:
        result = current(
            state.storage, path, cache=cache, workers=state.config.workers, stats=stats
        )
    except (RvcsError, OSError) as e:
        fail(f"failure snapshotting {path}: {e}")

    if result is None:
        error_console.print(f"[yellow]Warning:[/yellow] {path} is excluded from snapshots.")
        return

    console.print(str(result[0]), soft_wrap=True)
    if state.verbose:
        table = Table(title="Snapshot stats")
        table.add_column("Metric")
        table.add_column("Count", justify="right")
        table.add_row("Files hashed", str(stats.files_hashed))
        table.add_row("Files cached", str(stats.files_cached))
        table.add_row("Directories", str(stats.directories_processed))
        table.add_row("Snapshots stored", str(stats.snapshots_stored))
        error_console.print(table)


@main.command()
@click.argument("name")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum entries")
@click.pass_obj
def log(state: CliState, name: str, limit: int | None) -> None:
    """Show the history of a snapshot (hash or path)."""
    try:
        h = resolve_snapshot(state.storage, name)
        entries = log_entries(state.storage, h, limit)
    except RvcsError as e:
        fail(str(e))

    for entry_hash, f in entries:
        parents = " ".join(str(p) for p in f.parents) or "-"
        console.print(f"[cyan]{entry_hash}[/cyan] {f.kind} [dim]{parents}[/dim]", soft_wrap=True)


@main.command("merge")
@click.argument("source")
@click.argument("destination")
@click.pass_obj
def merge_command(state: CliState, source: str, destination: str) -> None:
    """Merge SOURCE into DESTINATION.

    When DESTINATION is a path, the merged snapshot becomes its latest snapshot.
    """
    try:
        theirs = resolve_snapshot(state.storage, source)
        ours = resolve_snapshot(state.storage, destination)
        try:
            parse_hash(destination)
            target = None
        except FormatError:
            target = Path(os.path.abspath(destination))
        h, _ = merge(state.storage, ours, theirs, path=target)
        conflicts = list_conflicts(state.storage, h)
    except RvcsError as e:
        fail(str(e))

    console.print(str(h), soft_wrap=True)
    if conflicts:
        error_console.print(f"[yellow]{len(conflicts)} conflict(s):[/yellow]")
        for conflict in conflicts:
            error_console.print(f"  {conflict}")


@main.command("export")
@click.argument("name")
@click.argument("destination", type=click.Path(path_type=Path))
@click.pass_obj
def export_command(state: CliState, name: str, destination: Path) -> None:
    """Write the snapshot NAME out to DESTINATION."""
    try:
        h = resolve_snapshot(state.storage, name)
        export(state.storage, h, destination)
    except (RvcsError, OSError) as e:
        fail(str(e))

    console.print(f"[green]Exported[/green] {h} to {destination}", soft_wrap=True)


if __name__ == "__main__":
    main()
