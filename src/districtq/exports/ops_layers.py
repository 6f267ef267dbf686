"""Ops-layer exports for districtq.

Publishes two tables derived from the queue index for the operations
dashboard:

``target_set.csv``
    One row per district with a 1-based ``priority_rank`` following the
    canonical queue order.
``district_scrape_queue.csv``
    A snapshot of the queue: status, counts, coverage, and a
    ``last_completed_at`` stamp on ``done`` districts.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel

from districtq.exports.school_map import district_label
from districtq.partitions.reader import write_table
from districtq.queue.index import QueueEntry, QueueStatus, sort_entries

logger = logging.getLogger(__name__)

TARGET_SET_FILE: str = "target_set.csv"
QUEUE_SNAPSHOT_FILE: str = "district_scrape_queue.csv"

TARGET_COLUMNS: tuple[str, ...] = (
    "target_id",
    "district_code",
    "district_name",
    "district_label",
    "nation",
    "scope_group",
    "in_scope",
    "priority_rank",
    "source",
    "updated_at",
)

QUEUE_COLUMNS: tuple[str, ...] = (
    "queue_id",
    "district_code",
    "district_name",
    "district_label",
    "district_file",
    "queue_status",
    "total_schools",
    "emails_collected",
    "remaining_to_scrape",
    "coverage_pct",
    "last_claimed_at",
    "last_completed_at",
    "notes",
    "updated_at",
)

_NATION: str = "England"
_SCOPE_GROUP: str = "outreach_phase1"
_SOURCE: str = "district_work_index"


class OpsExportResult(BaseModel):
    """Paths and row counts written by :func:`export_ops_layers`."""

    target_set_path: str
    queue_path: str
    targets: int
    queue_rows: int


def export_ops_layers(
    entries: Sequence[QueueEntry], out_dir: Path, now: datetime | None = None
) -> OpsExportResult:
    """Write the target set and queue snapshot for *entries* into *out_dir*.

    Parameters
    ----------
    entries:
        Queue index entries, in any order; they are re-sorted canonically.
    out_dir:
        Destination directory (created if needed).
    now:
        Timestamp written to ``updated_at``; current UTC time by default.
    """
    stamp = _iso(now or datetime.now(tz=timezone.utc))
    ordered = sort_entries(entries)

    targets: list[list[object]] = []
    queue_rows: list[list[object]] = []
    for rank, entry in enumerate(ordered, start=1):
        label = district_label(entry.district_code, entry.district_name)
        targets.append(
            [
                f"eng-la-{entry.district_code}",
                entry.district_code,
                entry.district_name,
                label,
                _NATION,
                _SCOPE_GROUP,
                "1",
                rank,
                _SOURCE,
                stamp,
            ]
        )
        queue_rows.append(
            [
                f"queue-{entry.district_code}",
                entry.district_code,
                entry.district_name,
                label,
                entry.district_file,
                entry.status.value,
                entry.total_schools,
                entry.emails_collected,
                entry.remaining_to_scrape,
                entry.coverage_pct,
                "",
                stamp if entry.status is QueueStatus.DONE else "",
                "",
                stamp,
            ]
        )

    target_path = out_dir / TARGET_SET_FILE
    queue_path = out_dir / QUEUE_SNAPSHOT_FILE
    write_table(target_path, TARGET_COLUMNS, targets)
    write_table(queue_path, QUEUE_COLUMNS, queue_rows)
    logger.info("Wrote %d targets to %s and %s", len(targets), target_path, queue_path)

    return OpsExportResult(
        target_set_path=str(target_path),
        queue_path=str(queue_path),
        targets=len(targets),
        queue_rows=len(queue_rows),
    )


def _iso(moment: datetime) -> str:
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
