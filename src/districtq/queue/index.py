"""Queue index model and builder for districtq.

This module owns the reconciliation rule between the two sources of truth:

* the partition files (ground truth for which districts exist and how many
  schools are still missing an email), and
* the persisted queue index (the only mutable state the coordinator owns:
  each district's ``status``).

Reconciliation is one-directional and deliberately small:

1. counts are always recomputed from the partition files;
2. ``status`` is carried over from the previous index by an explicit lookup
   on ``district_code`` (``pending`` for newly discovered districts);
3. ``status`` is forced to ``done`` whenever ``remaining_to_scrape == 0``.
   Nothing here ever moves an entry *away* from ``done``.

Entries whose partition file has disappeared are kept as they were and
reported at WARNING level; they are never pruned.

Canonical order
---------------
Descending ``remaining_to_scrape``, then ascending ``district_name``, then
ascending ``district_code``.  See :func:`sort_entries`.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, field_validator

from districtq.errors import InvalidStatusError, NotFoundError, ValidationError
from districtq.partitions.reader import (
    Partition,
    list_partition_files,
    read_partition,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Status enumeration
# ---------------------------------------------------------------------------


class QueueStatus(str, enum.Enum):
    """Lifecycle state of one district in the queue."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"

    @classmethod
    def parse(cls, value: str | QueueStatus) -> QueueStatus:
        """Return the member for *value*.

        An empty string reads as :attr:`PENDING`, matching index files whose
        status cell was never filled in.

        Raises
        ------
        InvalidStatusError
            If *value* is not one of the four recognised statuses.
        """
        if isinstance(value, QueueStatus):
            return value
        text = value.strip()
        if not text:
            return cls.PENDING
        try:
            return cls(text)
        except ValueError:
            allowed = "|".join(member.value for member in cls)
            raise InvalidStatusError(
                f"invalid status {value!r}; expected one of {allowed}"
            ) from None


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class PartitionSummary(BaseModel):
    """Coverage statistics derived from one partition file.

    Attributes
    ----------
    district_code:
        Partition identifier (unique across the index).
    district_name:
        Display label of the district.
    total_schools:
        Number of school rows in the file.
    emails_collected:
        Rows whose ``has_email_collected`` flag is truthy.
    remaining_to_scrape:
        ``max(0, total_schools - emails_collected)``.
    coverage_pct:
        ``emails_collected / total_schools * 100`` formatted with one decimal
        (``"0.0"`` for an empty partition).  Kept as a string so the persisted
        value round-trips exactly.
    district_file:
        Reference to the partition file relative to the work directory,
        e.g. ``"districts/888_lancashire.csv"``.
    """

    district_code: str
    district_name: str
    total_schools: int
    emails_collected: int
    remaining_to_scrape: int
    coverage_pct: str
    district_file: str

    @field_validator("total_schools", "emails_collected", "remaining_to_scrape")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"count must be non-negative, got {v}")
        return v


class QueueEntry(PartitionSummary):
    """One row of the persisted queue index."""

    status: QueueStatus = QueueStatus.PENDING

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: object) -> QueueStatus:
        if isinstance(v, (str, QueueStatus)):
            return QueueStatus.parse(v)
        raise InvalidStatusError(f"invalid status {v!r}")

    @property
    def is_open(self) -> bool:
        """``True`` while schools remain and the entry is not marked done."""
        return self.remaining_to_scrape > 0 and self.status is not QueueStatus.DONE


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def format_coverage(collected: int, total: int) -> str:
    """Return the coverage percentage with one decimal place.

    Exact halves round up (``1/16`` is ``"6.3"``), matching the index files
    written by the existing outreach tooling.
    """
    if total <= 0:
        return "0.0"
    q, r = divmod(collected * 1000, total)
    tenths = q + (2 * r >= total)
    return f"{tenths // 10}.{tenths % 10}"


def summarise_partition(partition: Partition) -> PartitionSummary:
    """Compute the :class:`PartitionSummary` for a loaded partition."""
    total = partition.total
    collected = partition.collected
    return PartitionSummary(
        district_code=partition.district_code,
        district_name=partition.district_name,
        total_schools=total,
        emails_collected=collected,
        remaining_to_scrape=max(0, total - collected),
        coverage_pct=format_coverage(collected, total),
        district_file=f"districts/{partition.path.name}",
    )


def reconcile(
    summary: PartitionSummary, previous: QueueStatus | None = None
) -> QueueEntry:
    """Merge a fresh summary with carried-over status.

    Data wins for ``done``: an exhausted partition is always ``done``.
    Otherwise the persisted status (or ``pending``) is kept.
    """
    status = previous if previous is not None else QueueStatus.PENDING
    if summary.remaining_to_scrape == 0:
        status = QueueStatus.DONE
    return QueueEntry(**summary.model_dump(), status=status)


def sort_key(entry: PartitionSummary) -> tuple[int, str, str]:
    return (-entry.remaining_to_scrape, entry.district_name, entry.district_code)


def sort_entries(entries: Iterable[QueueEntry]) -> list[QueueEntry]:
    """Return *entries* in canonical queue order."""
    return sorted(entries, key=sort_key)


# ---------------------------------------------------------------------------
# IndexBuilder
# ---------------------------------------------------------------------------


class IndexBuilder:
    """Scans the partition directory and builds queue entries.

    Parameters
    ----------
    districts_dir:
        Directory holding one ``*.csv`` partition file per district.
    """

    def __init__(self, districts_dir: Path) -> None:
        self._districts_dir = districts_dir

    @property
    def districts_dir(self) -> Path:
        return self._districts_dir

    def summarise_all(self) -> list[PartitionSummary]:
        """Summarise every partition file, in file-name order.

        Raises
        ------
        ConfigurationError
            If the districts directory is missing.
        ValidationError
            If a file lacks a required column or has a blank district code,
            or if two files claim the same district code.
        """
        summaries: list[PartitionSummary] = []
        seen: dict[str, Path] = {}
        for path in list_partition_files(self._districts_dir):
            summary = summarise_partition(_read_checked(path))
            if summary.district_code in seen:
                raise ValidationError(
                    f"district code {summary.district_code!r} appears in both "
                    f"{seen[summary.district_code].name} and {path.name}"
                )
            seen[summary.district_code] = path
            summaries.append(summary)
        logger.debug("Summarised %d partitions in %s", len(summaries), self._districts_dir)
        return summaries

    def summarise_one(self, district_code: str) -> PartitionSummary:
        """Summarise the single partition whose district code is *district_code*.

        Raises
        ------
        ConfigurationError
            If the districts directory is missing.
        NotFoundError
            If no partition file carries *district_code*.
        """
        for path in list_partition_files(self._districts_dir):
            partition = _read_checked(path)
            if partition.district_code == district_code:
                return summarise_partition(partition)
        raise NotFoundError(f"district not found: {district_code}")

    def build(self, previous: Sequence[QueueEntry] = ()) -> list[QueueEntry]:
        """Build the full queue index, carrying status over from *previous*.

        Parameters
        ----------
        previous:
            Entries of the currently persisted index (may be empty).

        Returns
        -------
        list[QueueEntry]
            One entry per partition file plus any stale entries from
            *previous*, in canonical order.
        """
        status_by_code: Mapping[str, QueueStatus] = {
            entry.district_code: entry.status for entry in previous
        }
        entries = [
            reconcile(summary, status_by_code.get(summary.district_code))
            for summary in self.summarise_all()
        ]

        built_codes = {entry.district_code for entry in entries}
        stale = [entry for entry in previous if entry.district_code not in built_codes]
        for entry in stale:
            logger.warning(
                "District %s (%s) has no partition file; keeping its last known entry",
                entry.district_code,
                entry.district_file,
            )

        return sort_entries([*entries, *stale])


def _read_checked(path: Path) -> Partition:
    partition = read_partition(path)
    if not partition.district_code:
        raise ValidationError(f"district file has a blank district_code: {path}")
    return partition
