"""School → district map export for districtq.

Flattens every partition file into a single table with one row per school
and a ``district_label`` of the form ``"<code> - <name>"``, for downstream
map and filter views.  :func:`check_school_map` re-reads such a table and
counts rows whose district fields are blank or whose label is inconsistent.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel

from districtq.partitions.reader import (
    list_partition_files,
    read_partition,
    read_table,
    write_table,
)

logger = logging.getLogger(__name__)

#: Column order of the exported map.
SCHOOL_MAP_COLUMNS: tuple[str, ...] = (
    "urn",
    "school_name",
    "district_code",
    "district_name",
    "district_label",
    "website",
    "town",
    "postcode",
    "region",
    "has_email_collected",
    "source_file",
)

_LABEL_COLUMNS: tuple[str, ...] = ("district_code", "district_name", "district_label")


def district_label(code: str, name: str) -> str:
    """Return ``"<code> - <name>"``, or ``""`` if either part is blank."""
    return f"{code} - {name}" if code and name else ""


class MapExportResult(BaseModel):
    """Counts from :func:`export_school_map`."""

    path: str
    files: int
    rows: int


class MapCheckResult(BaseModel):
    """Consistency counters from :func:`check_school_map`.

    Attributes
    ----------
    rows:
        Data rows checked.
    missing_code, missing_name, missing_label:
        Rows with the corresponding cell blank.
    bad_format:
        Rows with code and name present whose label is not ``"<code> - <name>"``.
    """

    rows: int = 0
    missing_code: int = 0
    missing_name: int = 0
    missing_label: int = 0
    bad_format: int = 0

    @property
    def ok(self) -> bool:
        return not (
            self.missing_code or self.missing_name or self.missing_label or self.bad_format
        )


def export_school_map(districts_dir: Path, out_path: Path) -> MapExportResult:
    """Write one row per school across every partition file to *out_path*.

    District code and name are taken per row, not per file.

    Raises
    ------
    ConfigurationError
        If *districts_dir* does not exist.
    """
    files = list_partition_files(districts_dir)
    rows: list[list[str]] = []
    for path in files:
        partition = read_partition(path, required_columns=())
        for school in partition.rows:
            fields = school.fields
            code = fields.get("district_code", "")
            name = fields.get("district_name", "")
            rows.append(
                [
                    school.urn,
                    school.school_name,
                    code,
                    name,
                    district_label(code, name),
                    fields.get("website", ""),
                    fields.get("town", ""),
                    fields.get("postcode", ""),
                    fields.get("region", ""),
                    fields.get("has_email_collected", ""),
                    path.name,
                ]
            )

    write_table(out_path, SCHOOL_MAP_COLUMNS, rows)
    logger.info("Exported %d schools from %d files to %s", len(rows), len(files), out_path)
    return MapExportResult(path=str(out_path), files=len(files), rows=len(rows))


def check_school_map(path: Path) -> MapCheckResult:
    """Count blank and inconsistent district fields in an exported map.

    Raises
    ------
    ConfigurationError
        If *path* does not exist.
    ValidationError
        If a label column is missing from the header.
    """
    table = read_table(path)
    table.require_columns(_LABEL_COLUMNS, label="map")

    result = MapCheckResult(rows=len(table.rows))
    for row in table.rows:
        code = row.get("district_code", "")
        name = row.get("district_name", "")
        label = row.get("district_label", "")
        if not code:
            result.missing_code += 1
        if not name:
            result.missing_name += 1
        if not label:
            result.missing_label += 1
        if code and name and label != district_label(code, name):
            result.bad_format += 1
    return result
