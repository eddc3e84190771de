from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from timesheet_merger.errors import MergerError
from timesheet_merger.m1.logger import configure_logging
from timesheet_merger.m1.paths import (
    default_archive_path,
    default_export_path,
    default_ledger_path,
    default_matches_path,
    default_source_dir,
)
from timesheet_merger.m2.timemator import read_source_dir
from timesheet_merger.m4.export import build_export, write_export
from timesheet_merger.m5.merge import Merger, print_plan
from timesheet_merger.m5.nsp_api import NspClient
from timesheet_merger.m6.config import MatchTable, env_status, load_config_from_env, load_matches
from timesheet_merger.m6.ledger import Ledger, archive, list_applied
from timesheet_merger.m6.ledger import stats as ledger_stats

app = typer.Typer(add_completion=False, no_args_is_help=True)
ledger_app = typer.Typer(add_completion=False, no_args_is_help=True)
config_app = typer.Typer(add_completion=False, no_args_is_help=True)
app.add_typer(ledger_app, name="ledger")
app.add_typer(config_app, name="config")

_DATA_DIR_HELP = "Directory holding Timemator CSV exports"
_MATCHES_HELP = "JSON match table (folder/task -> order/subproject/phase[/line])"
_LEDGER_HELP = "Working ledger JSON (fingerprint -> remote id)"
_ARCHIVE_HELP = "Archive ledger JSON (must already exist)"


@contextmanager
def _fatal_errors() -> Iterator[None]:
    try:
        yield
    except MergerError as e:
        typer.echo(f"error: {e}")
        raise typer.Exit(code=1) from e


@app.callback()
def _root() -> None:
    """timesheet-merger: push Timemator time entries to the timesheet service."""


@app.command("tasks")
def tasks(
    data_dir: Path = typer.Option(
        default_source_dir, "--data-dir", help=_DATA_DIR_HELP, envvar="TIMESHEET_MERGER_DATA_DIR"
    ),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """List distinct source tasks (the left-hand side of the match table)."""
    log = configure_logging(verbose=verbose, quiet=not verbose)
    with _fatal_errors():
        source = read_source_dir(data_dir, log=log)
    for t in source.tasks:
        typer.echo(t)


@app.command("projects")
def projects(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """List remote projects/phases with their billing keys."""
    log = configure_logging(verbose=verbose, quiet=not verbose)
    cfg = load_config_from_env()
    with _fatal_errors():
        remote = NspClient(cfg, log=log).get_projects()
    for p in remote:
        for label, key in p.billing_keys().items():
            typer.echo(f"{key}\t{label}")


@app.command("export")
def export(
    out: Path = typer.Option(
        default_export_path, "--out", help="Where to write the export JSON"
    ),  # noqa: B008
    data_dir: Path = typer.Option(
        default_source_dir, "--data-dir", help=_DATA_DIR_HELP, envvar="TIMESHEET_MERGER_DATA_DIR"
    ),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """Write source tasks, remote projects and project/phase keys to one JSON file."""
    log = configure_logging(verbose=verbose)
    cfg = load_config_from_env()
    with _fatal_errors():
        source = read_source_dir(data_dir, log=log)
        remote = NspClient(cfg, log=log).get_projects()
    data = build_export(source.tasks, remote)
    write_export(out, data)
    typer.echo(
        f"wrote {out} ({len(data['timematorProjects'])} task(s), {len(data['hashes'])} phase(s))"
    )


@app.command("merge")
def merge(
    data_dir: Path = typer.Option(
        default_source_dir, "--data-dir", help=_DATA_DIR_HELP, envvar="TIMESHEET_MERGER_DATA_DIR"
    ),  # noqa: B008
    matches: Path = typer.Option(
        default_matches_path, "--matches", help=_MATCHES_HELP, envvar="TIMESHEET_MERGER_MATCHES"
    ),  # noqa: B008
    ledger_path: Path = typer.Option(
        default_ledger_path, "--ledger", help=_LEDGER_HELP, envvar="TIMESHEET_MERGER_LEDGER"
    ),  # noqa: B008
    archive_path: Path = typer.Option(
        default_archive_path,
        "--archive-ledger",
        help=_ARCHIVE_HELP,
        envvar="TIMESHEET_MERGER_ARCHIVE",
    ),  # noqa: B008
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail (before submitting anything) if any entry has no match",
    ),  # noqa: B008
    explain_skips: bool = typer.Option(
        False,
        "--explain-skips",
        help="Print the entries skipped as duplicates or unmatched",
    ),  # noqa: B008
    archive_after: bool = typer.Option(
        False,
        "--archive",
        help="Archive the working ledger after a successful merge",
    ),  # noqa: B008
    dry_run: bool = typer.Option(
        True,
        "--dry-run/--no-dry-run",
        help="Dry-run (prints what would be submitted; default)",
    ),  # noqa: B008
    yes: bool = typer.Option(
        False,
        "--yes",
        help="Actually submit entries (explicit approval gate)",
    ),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """Submit source entries that are not in the ledger yet.

    Refuses to submit anything unless `--yes` is provided.
    """

    if yes:
        dry_run = False

    if not dry_run and not yes:
        typer.echo("refusing: pass --yes to submit entries")
        raise typer.Exit(code=2)

    log = configure_logging(verbose=verbose)
    with _fatal_errors():
        source = read_source_dir(data_dir, log=log)
        table = load_matches(matches)
        ledger = Ledger.open(ledger_path)
        merger = Merger(source.entries, table, ledger, None, log=log, strict=strict)

        plan = merger.build_plan()
        print_plan(plan)
        if strict:
            merger.check_strict()

    if dry_run:
        typer.echo("dry-run: not submitting anything")
        return

    cfg = load_config_from_env()
    merger.client = NspClient(cfg, log=log)
    with _fatal_errors():
        result = merger.merge()

    typer.echo(f"created {len(result.created)} entr(y/ies)")
    skipped = result.duplicates + result.unmatched
    if result.duplicates:
        typer.echo(f"skipped {len(result.duplicates)} already-submitted entr(y/ies)")
    if result.unmatched:
        typer.echo(f"skipped {len(result.unmatched)} unmatched entr(y/ies)")
    if explain_skips and skipped:
        for e in skipped[:20]:
            typer.echo(f"- {e.date} | {e.match_key} | {e.duration_hours}h | ref.{e.uuid}")
        if len(skipped) > 20:
            typer.echo(f"- … ({len(skipped) - 20} more)")

    if result.halted:
        typer.echo(f"stopped after a rejected entry: {result.error}")
        raise typer.Exit(code=1)

    if archive_after:
        with _fatal_errors():
            n = archive(ledger, archive_path, log=log)
        typer.echo(f"archived {n} entr(y/ies)")


@app.command("rollback")
def rollback(
    ledger_path: Path = typer.Option(
        default_ledger_path, "--ledger", help=_LEDGER_HELP, envvar="TIMESHEET_MERGER_LEDGER"
    ),  # noqa: B008
    yes: bool = typer.Option(
        False,
        "--yes",
        help="Actually delete the remote entries (explicit approval gate)",
    ),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """Delete every entry recorded in the working ledger and empty it."""
    log = configure_logging(verbose=verbose)
    with _fatal_errors():
        ledger = Ledger.open(ledger_path)

    if not yes:
        typer.echo(f"refusing: pass --yes to delete {len(ledger)} entr(y/ies)")
        raise typer.Exit(code=2)

    cfg = load_config_from_env()
    merger = Merger([], MatchTable(matches={}), ledger, NspClient(cfg, log=log), log=log)
    with _fatal_errors():
        result = merger.rollback()

    typer.echo(f"deleted {result.deleted}/{result.attempted} entr(y/ies)")
    if result.failed:
        typer.echo(f"failed to delete {len(result.failed)}: {', '.join(result.failed)}")


@app.command("archive")
def archive_cmd(
    ledger_path: Path = typer.Option(
        default_ledger_path, "--ledger", help=_LEDGER_HELP, envvar="TIMESHEET_MERGER_LEDGER"
    ),  # noqa: B008
    archive_path: Path = typer.Option(
        default_archive_path,
        "--archive-ledger",
        help=_ARCHIVE_HELP,
        envvar="TIMESHEET_MERGER_ARCHIVE",
    ),  # noqa: B008
    yes: bool = typer.Option(False, "--yes", help="Confirm the (one-way) archive"),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),  # noqa: B008
) -> None:
    """Move the working ledger into the archive ledger and reset it."""
    if not yes:
        typer.echo("refusing: pass --yes to archive the working ledger")
        raise typer.Exit(code=2)

    log = configure_logging(verbose=verbose)
    with _fatal_errors():
        ledger = Ledger.open(ledger_path)
        n = archive(ledger, archive_path, log=log)
    typer.echo(f"archived {n} entr(y/ies) into {archive_path}")


@ledger_app.command("list")
def ledger_list(
    ledger_path: Path = typer.Option(
        default_ledger_path, "--ledger", help=_LEDGER_HELP, envvar="TIMESHEET_MERGER_LEDGER"
    ),  # noqa: B008
    limit: int = typer.Option(50, "--limit", help="Max rows to show"),  # noqa: B008
    show_fingerprint: bool = typer.Option(
        False,
        "--show-fingerprint",
        help="Include the idempotency fingerprint in output",
    ),  # noqa: B008
) -> None:
    """List submitted entries (working ledger)."""
    with _fatal_errors():
        ledger = Ledger.open(ledger_path)

    for r in list_applied(ledger, limit=limit):
        fp = f" fp={r.fingerprint}" if show_fingerprint else ""
        typer.echo(f"id={r.remote_id} | {r.description or '?'}{fp}")


@ledger_app.command("stats")
def ledger_stats_cmd(
    ledger_path: Path = typer.Option(
        default_ledger_path, "--ledger", help=_LEDGER_HELP, envvar="TIMESHEET_MERGER_LEDGER"
    ),  # noqa: B008
) -> None:
    """Show summary stats for the working ledger."""
    with _fatal_errors():
        s = ledger_stats(Ledger.open(ledger_path))

    typer.echo(f"count: {s.count}")
    typer.echo(f"unique_remote_ids: {s.unique_remote_ids}")


@config_app.command("show")
def config_show() -> None:
    """Show resolved default paths and which environment variables are set."""
    typer.echo(f"data_dir: {default_source_dir()}")
    typer.echo(f"matches: {default_matches_path()}")
    typer.echo(f"ledger: {default_ledger_path()}")
    typer.echo(f"archive_ledger: {default_archive_path()}")
    for name, present in env_status():
        typer.echo(f"{name}: {'set' if present else 'missing'}")
    missing = [n for n, present in env_status()[:2] if not present]
    for n in missing:
        typer.echo(f"hint: set {n}")


def main() -> None:
    app()
