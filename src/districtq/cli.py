"""Command line interface for districtq.

Usage::

    districtq rebuild                      # rebuild the queue index
    districtq next                         # show the next district
    districtq claim-next                   # claim it (mark in_progress)
    districtq set-status 888 blocked       # manual status change
    districtq complete 888                 # close out a pass over one district
    districtq summary                      # totals across the index
    districtq task                         # print the task brief for the next district
    districtq export-map                   # flatten partitions into one school map
    districtq check-map                    # check labels in the exported map
    districtq export-ops                   # write target set + queue snapshot
    districtq verify <district> <evidence> [master]

    districtq-verify <district> <evidence> [master]

Exit codes: 0 on success, 1 when a command fails (missing file, unknown
district, bad status, malformed input), 2 when a check ran to completion but
found problems (``verify``, ``check-map``).

Command results go to stdout; log records go to stderr.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer

from districtq.config import AppConfig, get_config
from districtq.errors import ConfigurationError, DistrictQueueError
from districtq.exports.ops_layers import export_ops_layers
from districtq.exports.school_map import check_school_map, export_school_map
from districtq.generator.tasks import TaskAnnouncer
from districtq.queue.index import QueueEntry
from districtq.queue.operations import DistrictQueue
from districtq.validation.batch import BatchVerifier

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "[district-queue]"
MAP_PREFIX = "[school-map]"
OPS_PREFIX = "[ops-layers]"
VERIFY_PREFIX = "[batch-verify]"

#: Exit code for a check that ran but found problems.
EXIT_FINDINGS = 2

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

app = typer.Typer(help="District outreach work-queue coordinator.", no_args_is_help=True)
verify_app = typer.Typer(help="Verify an evidence batch before trusting it.")


# =============================================================================
# Shared helpers
# =============================================================================


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format=_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def _config(ctx: typer.Context) -> AppConfig:
    if isinstance(ctx.obj, AppConfig):
        return ctx.obj
    config = get_config()
    _setup_logging(config.log_level)
    return config


@contextmanager
def _reported(prefix: str) -> Iterator[None]:
    """Turn any :class:`DistrictQueueError` into a message on stderr and exit 1."""
    try:
        yield
    except DistrictQueueError as exc:
        typer.echo(f"{prefix} {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _format_entry(label: str, entry: QueueEntry) -> str:
    return (
        f"{QUEUE_PREFIX} {label} {entry.district_code} {entry.district_name}"
        f" | remaining={entry.remaining_to_scrape}"
        f" | coverage={entry.coverage_pct}%"
        f" | status={entry.status.value}"
        f" | file={entry.district_file}"
    )


# =============================================================================
# Queue commands
# =============================================================================


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    work_dir: Optional[Path] = typer.Option(
        None, "--work-dir", help="Directory holding districts/ and the queue index"
    ),
) -> None:
    """District outreach work-queue coordinator."""
    config = get_config()
    if work_dir is not None:
        config.work_dir = work_dir
    _setup_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = config


@app.command("rebuild")
def rebuild(ctx: typer.Context) -> None:
    """Rebuild the queue index from the district files."""
    config = _config(ctx)
    with _reported(QUEUE_PREFIX):
        entries = DistrictQueue.from_config(config).rebuild()
    typer.echo(f"{QUEUE_PREFIX} rebuilt {len(entries)} districts -> {config.index_path}")


@app.command("next")
def next_district(ctx: typer.Context) -> None:
    """Show the next district to work on."""
    with _reported(QUEUE_PREFIX):
        entry = DistrictQueue.from_config(_config(ctx)).next()
    if entry is None:
        typer.echo(f"{QUEUE_PREFIX} all districts complete")
        return
    typer.echo(_format_entry("next:", entry))


@app.command("claim-next")
def claim_next(ctx: typer.Context) -> None:
    """Claim the next district (mark it in_progress)."""
    with _reported(QUEUE_PREFIX):
        entry = DistrictQueue.from_config(_config(ctx)).claim_next()
    if entry is None:
        typer.echo(f"{QUEUE_PREFIX} all districts complete")
        return
    typer.echo(_format_entry("claimed:", entry))


@app.command("set-status")
def set_status(
    ctx: typer.Context,
    district_code: str = typer.Argument(..., help="District code"),
    status: str = typer.Argument(..., help="pending | in_progress | blocked | done"),
) -> None:
    """Set a district's status manually."""
    with _reported(QUEUE_PREFIX):
        entry = DistrictQueue.from_config(_config(ctx)).set_status(
            district_code.strip(), status
        )
    typer.echo(_format_entry("updated:", entry))


@app.command("complete")
def complete(
    ctx: typer.Context,
    district_code: str = typer.Argument(..., help="District code"),
) -> None:
    """Recount one district from its file and mark it done or pending."""
    with _reported(QUEUE_PREFIX):
        entry = DistrictQueue.from_config(_config(ctx)).complete(district_code.strip())
    typer.echo(_format_entry("completed-pass:", entry))


@app.command("summary")
def summary(ctx: typer.Context) -> None:
    """Show totals across the queue index."""
    with _reported(QUEUE_PREFIX):
        totals = DistrictQueue.from_config(_config(ctx)).summary()
    typer.echo(
        f"{QUEUE_PREFIX} districts={totals.districts} pending={totals.pending}"
        f" in_progress={totals.in_progress} blocked={totals.blocked} done={totals.done}"
    )
    typer.echo(
        f"{QUEUE_PREFIX} schools={totals.schools}"
        f" emails_collected={totals.emails_collected} remaining={totals.remaining}"
    )


@app.command("task")
def task(ctx: typer.Context) -> None:
    """Print the task brief for the next district."""
    config = _config(ctx)
    with _reported(QUEUE_PREFIX):
        announcer = TaskAnnouncer(DistrictQueue.from_config(config), config.work_dir)
        text = announcer.announce()
    typer.echo(text)


# =============================================================================
# Export commands
# =============================================================================


@app.command("export-map")
def export_map(
    ctx: typer.Context,
    out: Optional[Path] = typer.Option(None, help="Output CSV path"),
) -> None:
    """Flatten every district file into one school -> district map."""
    config = _config(ctx)
    out_path = out if out is not None else config.exports_dir / "school_district_map.csv"
    with _reported(MAP_PREFIX):
        result = export_school_map(config.districts_dir, out_path)
    typer.echo(f"{MAP_PREFIX} files={result.files} rows={result.rows} out={result.path}")


@app.command("check-map")
def check_map(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="Map CSV to check"),
) -> None:
    """Check district labels in an exported school map."""
    config = _config(ctx)
    map_path = path if path is not None else config.exports_dir / "school_district_map.csv"
    with _reported(MAP_PREFIX):
        result = check_school_map(map_path)
    typer.echo(
        f"{MAP_PREFIX} rows={result.rows} missingCode={result.missing_code}"
        f" missingName={result.missing_name} missingLabel={result.missing_label}"
        f" badFormat={result.bad_format}"
    )
    if not result.ok:
        raise typer.Exit(code=EXIT_FINDINGS)


@app.command("export-ops")
def export_ops(
    ctx: typer.Context,
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Output directory"),
) -> None:
    """Write the ops target set and queue snapshot from the queue index."""
    config = _config(ctx)
    with _reported(OPS_PREFIX):
        queue = DistrictQueue.from_config(config)
        if not queue.store.exists():
            raise ConfigurationError(f"Missing district index: {queue.store.path}")
        result = export_ops_layers(
            queue.store.load(), out_dir if out_dir is not None else config.exports_dir
        )
    typer.echo(f"{OPS_PREFIX} targets={result.targets} queue={result.queue_rows}")
    typer.echo(f"{OPS_PREFIX} wrote {result.target_set_path}")
    typer.echo(f"{OPS_PREFIX} wrote {result.queue_path}")


# =============================================================================
# Batch verification
# =============================================================================


@verify_app.command()
def verify(
    ctx: typer.Context,
    partition_file: Path = typer.Argument(..., help="District CSV the batch belongs to"),
    evidence_file: Path = typer.Argument(..., help="Evidence batch CSV (max 25 rows)"),
    master_file: Optional[Path] = typer.Argument(None, help="Master emails CSV"),
) -> None:
    """Verify an evidence batch; exit 0 on pass, 2 on findings, 1 on bad input."""
    config = _config(ctx)
    with _reported(VERIFY_PREFIX):
        report = BatchVerifier(config.master_path).verify(
            partition_file, evidence_file, master_file
        )
    typer.echo(report.render())
    if not report.passed:
        raise typer.Exit(code=EXIT_FINDINGS)


app.command("verify")(verify)


if __name__ == "__main__":
    app()
