"""CLI interface for diskbloat."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from diskbloat.core.audit import AuditLogger
from diskbloat.core.engine import DiskBloatEngine
from diskbloat.core.errors import DiskBloatError
from diskbloat.models.clean_result import CleanupRequest, CleanupResult
from diskbloat.models.scan_result import ScanOptions, ScanReport
from diskbloat.settings import CoreConfig, Settings
from diskbloat.utils import bytes_to_human, format_elapsed, parse_size


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _build_engine() -> DiskBloatEngine:
    return DiskBloatEngine(CoreConfig.from_settings(Settings()))


def _fail(error: DiskBloatError, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps({"status": "rejected", "error": str(error)}))
    else:
        click.echo(f"{click.style('✗', fg='red')} {error}", err=True)
    sys.exit(1)


class _SizeType(click.ParamType):
    name = "size"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> int:
        if isinstance(value, int):
            return value
        try:
            return parse_size(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


SIZE = _SizeType()


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
def main(verbose: int) -> None:
    """diskbloat — find and safely remove build artifacts, caches, large files and duplicates."""
    _setup_logging(verbose)


# ── scan ─────────────────────────────────────────────────────────────────

@main.command()
@click.argument("root", type=click.Path(file_okay=False, path_type=Path))
@click.option("--min-size", "-s", type=SIZE, default=None, help="Report files at least this big, e.g. 100M")
@click.option("--follow-symlinks", is_flag=True, help="Descend into symlinked directories")
@click.option("--max-depth", type=click.IntRange(min=0), default=None, help="Limit traversal depth")
@click.option("--ignore", "ignore_patterns", multiple=True, help="Glob of names to skip (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def scan(
    root: Path,
    min_size: int | None,
    follow_symlinks: bool,
    max_depth: int | None,
    ignore_patterns: tuple[str, ...],
    as_json: bool,
) -> None:
    """Scan ROOT for reclaimable space (preview only, never deletes)."""
    engine = _build_engine()
    options = ScanOptions(
        root=root,
        min_size_bytes=min_size,
        follow_symlinks=follow_symlinks,
        max_depth=max_depth,
        ignore_patterns=ignore_patterns,
    )

    if not as_json:
        click.echo(f"\n{click.style('🔍', bold=True)} Scanning {root}...\n")

    try:
        report = engine.scan(options)
    except DiskBloatError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(_report_to_dict(report), indent=2))
        return

    for category in report.categories:
        tier = click.style(f" [{category.safety.value}]", fg="bright_black")
        click.echo(
            f"  {click.style('✓', fg='green')} {category.display_name:30s} — "
            f"{click.style(bytes_to_human(category.total_size_bytes), fg='green', bold=True)} "
            f"({len(category.entries):,} items){tier}"
        )

    if report.duplicates:
        savable = sum(d.total_savable_bytes for d in report.duplicates)
        click.echo(
            f"  {click.style('✓', fg='green')} {'Duplicate Files':30s} — "
            f"{click.style(bytes_to_human(savable), fg='green', bold=True)} "
            f"({len(report.duplicates):,} sets)"
        )

    if not report.categories and not report.duplicates:
        click.echo(f"  {click.style('·', fg='bright_black')} Nothing to clean")

    summary = report.summary
    click.echo(
        f"\nVisited {summary.entries_visited:,} entries ({bytes_to_human(summary.total_bytes)}) "
        f"in {format_elapsed(summary.duration_seconds)}"
    )
    if summary.permission_errors:
        click.echo(click.style(f"Skipped {summary.permission_errors} unreadable entries", fg="yellow"))
    if summary.symlink_cycles:
        click.echo(click.style(f"Skipped {summary.symlink_cycles} symlink cycles", fg="yellow"))
    click.echo()


def _report_to_dict(report: ScanReport) -> dict[str, Any]:
    return {
        "categories": [
            {
                "category_id": c.category_id,
                "display_name": c.display_name,
                "kind": c.kind.value,
                "safety": c.safety.value,
                "total_size_bytes": c.total_size_bytes,
                "entries": [{"path": str(e.path), "size_bytes": e.size_bytes, "is_dir": e.is_dir} for e in c.entries],
            }
            for c in report.categories
        ],
        "duplicates": [
            {
                "content_hash": d.content_hash,
                "size_bytes": d.size_bytes,
                "total_savable_bytes": d.total_savable_bytes,
                "paths": [str(e.path) for e in d.entries],
            }
            for d in report.duplicates
        ],
        "summary": {
            "entries_visited": report.summary.entries_visited,
            "total_bytes": report.summary.total_bytes,
            "permission_errors": report.summary.permission_errors,
            "io_errors": report.summary.io_errors,
            "broken_links": report.summary.broken_links,
            "symlink_cycles": report.summary.symlink_cycles,
            "duration_seconds": report.summary.duration_seconds,
            "cancelled": report.summary.cancelled,
        },
    }


# ── clean ────────────────────────────────────────────────────────────────

@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--dry-run", is_flag=True, help="Show what would be removed without doing it")
@click.option("--permanent", is_flag=True, help="Delete permanently instead of moving to the trash")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def clean(paths: tuple[str, ...], dry_run: bool, permanent: bool, yes: bool, as_json: bool) -> None:
    """Remove PATHS after validating every one of them."""
    try:
        request = CleanupRequest(paths=tuple(dict.fromkeys(paths)), dry_run=dry_run, use_trash=not permanent)
    except ValueError as e:
        raise click.UsageError(str(e))

    if not dry_run and not yes and not as_json:
        where = "permanently delete" if permanent else "move to the trash"
        if not click.confirm(f"About to {where} {len(request.paths)} path(s). Continue?", default=False):
            click.echo("Aborted.")
            return

    engine = _build_engine()
    try:
        result = engine.clean(request)
    except DiskBloatError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(_result_to_dict(result), indent=2))
        return

    for path in result.deleted:
        click.echo(f"  {click.style('✓', fg='green')} {path}")
    for path in result.skipped:
        click.echo(f"  {click.style('·', fg='bright_black')} {path} — no longer exists")
    for failure in result.errors:
        click.echo(f"  {click.style('!', fg='yellow')} {failure.path} — {failure.reason}")

    verb = "Would free" if result.dry_run else "Freed"
    click.echo(f"\n{verb}: {click.style(bytes_to_human(result.freed_bytes), fg='green', bold=True)}")
    if result.dry_run:
        click.echo("(dry run — no files were deleted)")
    click.echo()
    if result.errors:
        sys.exit(2)


def _result_to_dict(result: CleanupResult) -> dict[str, Any]:
    return {
        "status": "dry_run" if result.dry_run else "cleaned",
        "deleted": list(result.deleted),
        "skipped": list(result.skipped),
        "errors": [{"path": f.path, "reason": f.reason} for f in result.errors],
        "freed_bytes": result.freed_bytes,
    }


# ── history ──────────────────────────────────────────────────────────────

_STATUS_COLORS = {"deleted": "green", "skipped": "bright_black", "error": "red", "rejected": "red"}


@main.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Number of records to show")
@click.option("--stats", "show_stats", is_flag=True, help="Show totals per kind and status instead of records")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(limit: int, show_stats: bool, as_json: bool) -> None:
    """Show the most recent audit log records."""
    config = CoreConfig.from_settings(Settings())
    audit = AuditLogger(config.audit_path)
    try:
        if show_stats:
            _print_stats(audit.stats(), as_json)
            return
        records = audit.read()[-limit:]
    except DiskBloatError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        click.echo("No audit records yet.")
        return

    for record in records:
        status = click.style(f"{record.status:9s}", fg=_STATUS_COLORS.get(record.status, "cyan"))
        stamp = record.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        detail = f" ({record.detail})" if record.detail and record.kind.value != "scan" else ""
        click.echo(f"  {stamp}  {record.kind.value:6s} {status} {record.path}{detail}")


def _print_stats(stats: dict[str, Any], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(stats, indent=2))
        return

    if not stats["records"]:
        click.echo("No audit records yet.")
        return

    click.echo(f"\n{stats['records']:,} audit records\n")
    for key, bucket in sorted(stats["by_status"].items()):
        kind, _, status = key.partition(":")
        label = click.style(f"{status:9s}", fg=_STATUS_COLORS.get(status, "cyan"))
        click.echo(f"  {kind:6s} {label} {bucket['count']:>6,}  {bytes_to_human(bucket['size_bytes'])}")
    click.echo()
