"""Partition reader for districtq.

A *partition* is one district's CSV file under ``districts/``: one row per
school, keyed by ``urn``, with a ``has_email_collected`` flag maintained by
the external collection process.  This module is read-only with respect to
partition files.

It also hosts the flat-table helpers (:func:`read_table`,
:func:`write_table`) shared by the queue store, the batch verifier and the
exports, so that every CSV in the system is parsed and written the same way:
UTF-8 (a leading BOM is tolerated), header row first, cells trimmed,
``\\n`` line terminator, minimal quoting.
"""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from districtq.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Cell values (trimmed, lower-cased) that count as "email collected".
TRUTHY_VALUES: frozenset[str] = frozenset({"yes", "true", "1"})

#: Columns the index builder needs from every partition file.
PARTITION_COLUMNS: tuple[str, ...] = (
    "district_code",
    "district_name",
    "has_email_collected",
)

#: Column holding the per-school identifier.
ID_COLUMN: str = "urn"

#: Column holding the completion flag.
FLAG_COLUMN: str = "has_email_collected"


# ---------------------------------------------------------------------------
# Flat tables
# ---------------------------------------------------------------------------


@dataclass
class Table:
    """A parsed CSV file: header plus rows keyed by header name.

    Attributes
    ----------
    path:
        File the table was read from.
    header:
        Trimmed column names in file order.
    rows:
        One dict per data row.  Cells are trimmed; short rows are padded
        with empty strings and rows longer than the header are rejected;
        completely blank lines are skipped.
    """

    path: Path
    header: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)

    def require_columns(self, columns: Iterable[str], label: str) -> None:
        """Raise :class:`ValidationError` for the first column not in the header.

        Parameters
        ----------
        columns:
            Required column names, checked in order.
        label:
            Human name of the file used in the message (e.g. ``"evidence"``).
        """
        for column in columns:
            if column not in self.header:
                raise ValidationError(
                    f"{label} file missing column: {column} ({self.path})"
                )


def read_table(path: Path) -> Table:
    """Read a CSV file into a :class:`Table`.

    Raises
    ------
    ConfigurationError
        If *path* does not exist or is not a regular file.
    """
    if not path.is_file():
        raise ConfigurationError(f"missing file: {path}")

    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        reader = csv.reader(fh)
        try:
            raw_header = next(reader)
        except StopIteration:
            return Table(path=path, header=[])

        header = [h.strip() for h in raw_header]
        rows: list[dict[str, str]] = []
        for raw in reader:
            if not raw:
                continue
            cells = [c.strip() for c in raw]
            if len(cells) > len(header):
                raise ValidationError(
                    f"line {reader.line_num} has {len(cells)} cells but the header "
                    f"has {len(header)} ({path})"
                )
            cells.extend([""] * (len(header) - len(cells)))
            rows.append(dict(zip(header, cells)))

    return Table(path=path, header=header, rows=rows)


def write_table(
    path: Path, header: Sequence[str], rows: Iterable[Sequence[object]]
) -> None:
    """Write *header* and *rows* to *path*, replacing any previous contents.

    The file is written to a temporary sibling and moved into place with
    :func:`os.replace`, so readers never observe a half-written table.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh, lineterminator="\n")
            writer.writerow(list(header))
            for row in rows:
                writer.writerow(["" if v is None else str(v) for v in row])
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Partitions
# ---------------------------------------------------------------------------


def is_truthy(value: str | None) -> bool:
    """Return ``True`` for ``yes``/``true``/``1`` in any case, ignoring whitespace."""
    return (value or "").strip().lower() in TRUTHY_VALUES


@dataclass
class PartitionRow:
    """One school inside a partition.

    ``fields`` keeps every column of the source row (including the ones
    promoted to attributes) so exports can pass descriptive columns through.
    """

    urn: str
    school_name: str
    collected: bool
    fields: dict[str, str] = field(default_factory=dict)


@dataclass
class Partition:
    """A loaded partition file."""

    path: Path
    district_code: str
    district_name: str
    rows: list[PartitionRow] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def collected(self) -> int:
        return sum(1 for row in self.rows if row.collected)


def list_partition_files(districts_dir: Path) -> list[Path]:
    """Return every ``*.csv`` partition file in *districts_dir*, sorted by name.

    Raises
    ------
    ConfigurationError
        If *districts_dir* does not exist.
    """
    if not districts_dir.is_dir():
        raise ConfigurationError(f"Missing districts directory: {districts_dir}")
    return sorted(p for p in districts_dir.glob("*.csv") if p.is_file())


def read_partition(
    path: Path, required_columns: Sequence[str] = PARTITION_COLUMNS
) -> Partition:
    """Load one partition file.

    The district code and name are taken from the first data row.  A file
    with a header but no rows falls back to its file stem, read as
    ``<code>_<name_with_underscores>``.

    Parameters
    ----------
    path:
        Partition CSV file.
    required_columns:
        Columns that must be present in the header.

    Raises
    ------
    ConfigurationError
        If *path* does not exist.
    ValidationError
        If a required column is missing.
    """
    table = read_table(path)
    table.require_columns(required_columns, label="district")

    rows = [
        PartitionRow(
            urn=record.get(ID_COLUMN, ""),
            school_name=record.get("school_name", ""),
            collected=is_truthy(record.get(FLAG_COLUMN)),
            fields=record,
        )
        for record in table.rows
    ]

    if table.rows:
        code = table.rows[0].get("district_code", "")
        name = table.rows[0].get("district_name", "")
    else:
        code, _, rest = path.stem.partition("_")
        name = rest.replace("_", " ")
        logger.warning("Partition %s has no rows; using file name for %r", path, code)

    logger.debug("Read partition %s: %d rows", path.name, len(rows))
    return Partition(path=path, district_code=code, district_name=name, rows=rows)
