"""CLI interface for Heft."""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path

import click

from heft.core.engine import ScanEngine, ScanJob
from heft.core.errors import ScanCancelledError, ScanError
from heft.core.selection import Selection
from heft.models.options import ScanOptions
from heft.models.scan_report import ScanReport
from heft.settings import Settings, known_keys
from heft.storage import load_last_report, save_last_report
from heft.utils import bytes_to_human, normalize_path, parse_size, remove_entries


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _size_option(ctx: click.Context, param: click.Parameter, value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return parse_size(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
def main(verbose: int) -> None:
    """Heft — find what is taking up space under a directory."""
    _setup_logging(verbose)


# ── scan ─────────────────────────────────────────────────────────────────

@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--threshold", "-t", callback=_size_option, help="Minimum size to report, e.g. 10K or 5MB")
@click.option("--follow-symlinks/--no-follow-symlinks", default=None, help="Traverse symbolic links")
@click.option("--files-only", is_flag=True, help="Do not report directories")
@click.option("--max-depth", type=click.IntRange(min=0), default=None, help="Deepest level to list (root is 0)")
@click.option("--workers", "-j", type=click.IntRange(min=1), default=None, help="Threads for sibling subtrees")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--save/--no-save", default=True, help="Remember the report for 'heft delete'")
def scan(
    path: Path,
    threshold: int | None,
    follow_symlinks: bool | None,
    files_only: bool,
    max_depth: int | None,
    workers: int | None,
    as_json: bool,
    save: bool,
) -> None:
    """Scan PATH for large files and directories (read-only)."""
    settings = Settings.instance()
    threshold_bytes = settings.threshold_bytes if threshold is None else threshold
    options = _override_options(settings.scan_options(), follow_symlinks, files_only, max_depth, workers)

    if not as_json:
        click.echo(
            f"\n{click.style('🔍', bold=True)} Scanning {normalize_path(path)} "
            f"for items of at least {bytes_to_human(threshold_bytes)}...\n"
        )

    engine = ScanEngine(max_scans=1)
    try:
        report = _wait(engine.submit(path, threshold_bytes, options))
    except ScanCancelledError:
        click.echo("Scan cancelled.", err=True)
        sys.exit(130)
    except ScanError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(1)
    finally:
        engine.shutdown()

    if save:
        save_last_report(report)

    if as_json:
        click.echo(report.to_json(indent=2))
        return
    _print_report(report)


def _override_options(
    options: ScanOptions,
    follow_symlinks: bool | None,
    files_only: bool,
    max_depth: int | None,
    workers: int | None,
) -> ScanOptions:
    changes: dict[str, object] = {}
    if follow_symlinks is not None:
        changes["follow_symlinks"] = follow_symlinks
    if files_only:
        changes["include_directories"] = False
    if max_depth is not None:
        changes["max_depth"] = max_depth
    if workers is not None:
        changes["workers"] = workers
    return dataclasses.replace(options, **changes)


def _wait(job: ScanJob) -> ScanReport:
    """Wait for a scan, turning Ctrl-C into a cancellation."""
    while True:
        try:
            return job.result(timeout=0.1)
        except FuturesTimeoutError:
            continue
        except KeyboardInterrupt:
            click.echo("\nCancelling...", err=True)
            job.cancel()
            return job.result()


def _print_report(report: ScanReport) -> None:
    if not report.entries:
        click.echo("  No files found matching the criteria.")
    for i, entry in enumerate(report.entries, 1):
        icon = "📄" if entry.is_file else "📁"
        size = click.style(f"{entry.size_display:>10s}", fg="green", bold=True)
        click.echo(f"  {i:>4d}  {icon} {size}  {entry.path}")

    if report.errors:
        click.echo(f"\n  {click.style('Could not read:', fg='yellow')}")
        for error in report.errors:
            click.echo(f"  {click.style('✗', fg='red')} {error.path}  ({error.reason.value})")

    click.echo(f"\n{report.summary}")
    click.echo(f"Matching files total: {click.style(bytes_to_human(report.total_bytes), fg='green', bold=True)}\n")


# ── last ─────────────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def last(as_json: bool) -> None:
    """Show the most recently saved scan report."""
    report = _require_report()
    if as_json:
        click.echo(report.to_json(indent=2))
        return
    _print_report(report)


def _require_report() -> ScanReport:
    report = load_last_report()
    if report is None:
        click.echo("No saved report. Run 'heft scan PATH' first.", err=True)
        sys.exit(1)
    return report


# ── delete ───────────────────────────────────────────────────────────────

@main.command()
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted without doing it")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(paths: tuple[Path, ...], yes: bool, dry_run: bool, as_json: bool) -> None:
    """Delete entries of the last report.

    PATHS must appear in the saved report. Without PATHS, pick entries
    interactively.
    """
    report = _require_report()
    selection = Selection(report)

    if paths:
        for path in paths:
            try:
                selection.select(normalize_path(path))
            except KeyError:
                click.echo(f"'{path}' is not in the last report.", err=True)
                sys.exit(1)
    elif as_json:
        click.echo("PATHS are required with --json.", err=True)
        sys.exit(1)
    else:
        _interactive_select(selection, report)

    targets = selection.effective()
    if not targets:
        click.echo("Nothing selected.")
        return

    if not as_json:
        click.echo()
        for entry in targets:
            icon = "📄" if entry.is_file else "📁"
            click.echo(f"  {icon} {entry.size_display:>10s}  {entry.path}")
        click.echo(f"\nTotal: {click.style(bytes_to_human(selection.total_bytes), fg='green', bold=True)}\n")

    if not yes and not dry_run and not as_json:
        if not click.confirm(f"Permanently delete {len(targets)} item(s)?", default=False):
            click.echo("Aborted.")
            return

    result = remove_entries(targets, dry_run=dry_run)

    if as_json:
        data = {
            "status": "dry_run" if dry_run else "deleted",
            "freed_bytes": result.freed_bytes,
            "removed": result.removed,
            "errors": result.errors,
        }
        click.echo(json.dumps(data, indent=2))
        return

    for error in result.errors:
        click.echo(f"  {click.style('!', fg='yellow')} {error}")
    verb = "Would free" if dry_run else "Freed"
    click.echo(f"{verb} {click.style(bytes_to_human(result.freed_bytes), fg='green', bold=True)} ({result.removed} items)")
    if dry_run:
        click.echo("(dry run — nothing was deleted)")


def _interactive_select(selection: Selection, report: ScanReport) -> None:
    """Let the user pick entries by number."""
    click.echo("\nSelect entries to delete (enter numbers, comma-separated):\n")
    for i, entry in enumerate(report.entries, 1):
        icon = "📄" if entry.is_file else "📁"
        click.echo(f"  [{i}] {icon} {entry.size_display:>10s}  {entry.path}")
    click.echo()
    raw = click.prompt("Selection", default="", show_default=False)
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit():
            idx = int(part) - 1
            if 0 <= idx < len(report.entries):
                selection.select(report.entries[idx].path)


# ── config ───────────────────────────────────────────────────────────────

@main.group()
def config() -> None:
    """Show or change default settings."""


@config.command("show")
def config_show() -> None:
    """Print the effective settings."""
    settings = Settings.instance()
    click.echo(f"# {settings.path}")
    click.echo(json.dumps(settings.as_dict(), indent=2))


@config.command("set")
@click.argument("key", type=click.Choice(known_keys()))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Set KEY to VALUE (JSON literals such as true, null or 3 are decoded)."""
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        decoded = value
    Settings.instance().set(key, decoded)
    click.echo(f"{key} = {json.dumps(decoded)}")


# ── service ──────────────────────────────────────────────────────────────

@main.group()
def service() -> None:
    """D-Bus service management."""


@service.command("start")
def service_start() -> None:
    """Start the D-Bus service in foreground."""
    from heft.dbus_service import start_service

    click.echo("Starting Heft D-Bus service...")
    start_service()
