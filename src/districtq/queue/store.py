"""QueueStore: CSV-backed persistence for the district queue index.

The index is a flat table with exactly these columns, in this order::

    district_code, district_name, total_schools, emails_collected,
    remaining_to_scrape, coverage_pct, status, district_file

Design notes
------------
- :meth:`QueueStore.save` always rewrites the whole file in canonical order
  (see :func:`~districtq.queue.index.sort_entries`).  Writes go through
  :func:`~districtq.partitions.reader.write_table`, which replaces the file
  atomically.
- :meth:`QueueStore.load` returns an empty list when the file does not exist
  yet.  Rows are returned in file order; no re-sorting happens on load.
- ``coverage_pct`` is stored and reloaded as the exact string, so a
  save/load round trip is field-for-field identical.
- There is no locking.  Two writers racing on the same file is unsupported;
  the last one wins.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import pydantic

from districtq.errors import ValidationError
from districtq.partitions.reader import read_table, write_table
from districtq.queue.index import QueueEntry, QueueStatus, sort_entries

logger = logging.getLogger(__name__)

#: Column order of the persisted index file.
INDEX_COLUMNS: tuple[str, ...] = (
    "district_code",
    "district_name",
    "total_schools",
    "emails_collected",
    "remaining_to_scrape",
    "coverage_pct",
    "status",
    "district_file",
)

#: Columns an existing index file must carry to be loadable.
_REQUIRED_COLUMNS: tuple[str, ...] = ("district_code", "status")


class QueueStore:
    """Load and save the queue index file.

    Parameters
    ----------
    index_path:
        Location of ``district_index.csv``.
    """

    def __init__(self, index_path: Path) -> None:
        self._index_path = index_path

    @property
    def path(self) -> Path:
        return self._index_path

    def exists(self) -> bool:
        return self._index_path.is_file()

    def load(self) -> list[QueueEntry]:
        """Return the persisted entries in file order.

        Returns
        -------
        list[QueueEntry]
            Empty when no index has been written yet.

        Raises
        ------
        ValidationError
            If the file lacks ``district_code`` or ``status``, or a count
            cell is not a non-negative integer.
        InvalidStatusError
            If a status cell holds an unrecognised value.
        """
        if not self.exists():
            return []

        table = read_table(self._index_path)
        table.require_columns(_REQUIRED_COLUMNS, label="index")

        entries: list[QueueEntry] = []
        for line_no, record in enumerate(table.rows, start=2):
            code = record.get("district_code", "")
            if not code:
                logger.warning(
                    "Index row %d has a blank district_code; dropping it (%s)",
                    line_no,
                    self._index_path,
                )
                continue
            status = QueueStatus.parse(record.get("status", ""))
            try:
                entries.append(
                    QueueEntry.model_validate(
                        {
                            "district_code": code,
                            "district_name": record.get("district_name", ""),
                            "total_schools": _count(record.get("total_schools")),
                            "emails_collected": _count(record.get("emails_collected")),
                            "remaining_to_scrape": _count(
                                record.get("remaining_to_scrape")
                            ),
                            "coverage_pct": record.get("coverage_pct", ""),
                            "status": status,
                            "district_file": record.get("district_file", ""),
                        }
                    )
                )
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    f"index row {line_no} ({code}) is malformed: "
                    f"{exc.errors()[0]['msg']}"
                ) from exc
        return entries

    def save(self, entries: Sequence[QueueEntry]) -> None:
        """Overwrite the index file with *entries* in canonical order."""
        ordered = sort_entries(entries)
        write_table(
            self._index_path,
            INDEX_COLUMNS,
            (
                (
                    e.district_code,
                    e.district_name,
                    e.total_schools,
                    e.emails_collected,
                    e.remaining_to_scrape,
                    e.coverage_pct,
                    e.status.value,
                    e.district_file,
                )
                for e in ordered
            ),
        )
        logger.debug("Wrote %d entries to %s", len(ordered), self._index_path)


def _count(value: str | None) -> int | str:
    # Blank cells read as 0; anything else is left for pydantic to coerce or reject.
    text = (value or "").strip()
    return text if text else 0
