"""Batch verifier for districtq.

Checks a just-worked evidence batch before the rows it flipped in a
partition file are trusted.

Processing order (fixed):

1. **Inputs** — partition, evidence and master files must exist and be
   readable.
2. **Columns** — partition needs ``urn`` and ``has_email_collected``;
   evidence needs all of :data:`EVIDENCE_COLUMNS`; master needs ``urn`` and
   ``all_emails``.
3. **Batch size** — between 1 and :data:`MAX_BATCH_ROWS` evidence rows.
   Larger batches are rejected outright, never truncated.
4. **Per-row checks** — for every evidence row whose school is flagged as
   collected in the partition file:

   * ``page_url_scraped`` and ``checked_at_utc`` are present;
   * ``emails_found`` holds at least one valid, non-placeholder address;
   * the master dataset holds at least one valid, non-placeholder address
     for the same ``urn``.

Steps 1–3 raise :class:`~districtq.errors.ValidationError` and stop.  Step 4
never raises: each failed rule becomes a :class:`BatchFailure`, the scan
continues, and the caller gets every failure in one :class:`BatchReport`.
Rows not flagged as collected need no evidence and are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from pydantic import BaseModel

from districtq.errors import DistrictQueueError, ValidationError
from districtq.partitions.reader import (
    FLAG_COLUMN,
    ID_COLUMN,
    Table,
    is_truthy,
    read_table,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Hard cap on evidence rows per batch; matches the "save every 25" rule.
MAX_BATCH_ROWS: int = 25

#: Columns every evidence file must carry.
EVIDENCE_COLUMNS: tuple[str, ...] = (
    "urn",
    "school_name",
    "website_url",
    "page_url_scraped",
    "emails_found",
    "checked_at_utc",
    "method",
    "notes",
)

#: Columns the partition file must carry for verification.
PARTITION_COLUMNS: tuple[str, ...] = (ID_COLUMN, FLAG_COLUMN)

#: Columns the master dataset must carry.
MASTER_COLUMNS: tuple[str, ...] = ("urn", "all_emails")

_EMAIL_PATTERN: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

#: Substrings marking a placeholder or test address.
_PLACEHOLDER_MARKERS: tuple[str, ...] = ("example@", "user@domain", "test@")

#: Domain suffix marking a placeholder address.
_PLACEHOLDER_SUFFIX: str = "@example.com"


# ---------------------------------------------------------------------------
# Email helpers
# ---------------------------------------------------------------------------


def is_valid_email(email: str) -> bool:
    """Return ``True`` for a ``local@domain.tld`` shaped address without whitespace."""
    return bool(_EMAIL_PATTERN.match(email))


def is_placeholder_email(email: str) -> bool:
    """Return ``True`` for test/placeholder addresses such as ``test@example.com``."""
    lowered = email.lower()
    return (
        any(marker in lowered for marker in _PLACEHOLDER_MARKERS)
        or lowered.endswith(_PLACEHOLDER_SUFFIX)
    )


def extract_emails(raw: str | None) -> list[str]:
    """Split an emails cell into candidate addresses.

    Two encodings are accepted:

    * a JSON array string such as ``'["a@x.org", "b@x.org"]'`` (the master
      dataset's ``all_emails`` format);
    * a ``;`` or ``,`` separated list (the evidence format).

    A value that looks like a JSON array but does not parse is treated as a
    delimited list.  Blank items are dropped.
    """
    value = (raw or "").strip()
    if not value:
        return []

    if value.startswith("[") and value.endswith("]"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if item and str(item).strip()]

    return [part.strip() for part in re.split(r"[;,]", value) if part.strip()]


def usable_emails(raw: str | None) -> list[str]:
    """Return the valid, non-placeholder addresses found in *raw*."""
    return [
        email
        for email in extract_emails(raw)
        if is_valid_email(email) and not is_placeholder_email(email)
    ]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class EvidenceRow(BaseModel):
    """One line of an evidence batch.

    Attributes
    ----------
    urn:
        School identifier.
    school_name:
        School display name as seen by the collector.
    website_url:
        School website the collector started from.
    page_url_scraped:
        Page on which the emails were found.
    emails_found:
        Raw emails cell (JSON array or delimited list).
    checked_at_utc:
        Timestamp of the check.
    method:
        Collection method tag.
    notes:
        Free text.
    """

    urn: str = ""
    school_name: str = ""
    website_url: str = ""
    page_url_scraped: str = ""
    emails_found: str = ""
    checked_at_utc: str = ""
    method: str = ""
    notes: str = ""


class BatchFailure(BaseModel):
    """A single failed rule for one evidence row.

    Attributes
    ----------
    urn:
        Identifier of the failing row (``"NO_URN"`` when the cell is blank).
    rule:
        Machine-readable rule name, e.g. ``"no_master_email"``.
    message:
        Human-readable explanation.
    """

    urn: str
    rule: str
    message: str

    def render(self) -> str:
        return f"- [{self.urn}] {self.message}"


class BatchReport(BaseModel):
    """Outcome of verifying one evidence batch.

    Attributes
    ----------
    partition_path, evidence_path, master_path:
        The three inputs.
    evidence_rows:
        Number of rows in the evidence file.
    collected_rows:
        Evidence rows whose school is flagged as collected.
    collected_with_evidence_email:
        Collected rows with a usable address in ``emails_found``.
    collected_with_master_email:
        Collected rows with a usable address in the master dataset.
    failures:
        Every failed rule, in scan order.
    """

    partition_path: str
    evidence_path: str
    master_path: str
    evidence_rows: int = 0
    collected_rows: int = 0
    collected_with_evidence_email: int = 0
    collected_with_master_email: int = 0
    failures: list[BatchFailure] = []

    @property
    def passed(self) -> bool:
        return not self.failures

    def render(self) -> str:
        """Return the human-readable report printed by the CLI."""
        lines = [
            "[batch-verify] Validation summary",
            f"- district: {self.partition_path}",
            f"- evidence: {self.evidence_path}",
            f"- master: {self.master_path}",
            f"- evidenceRows: {self.evidence_rows}",
            f"- yesRowsInBatch: {self.collected_rows}",
            f"- yesWithValidEvidenceEmail: {self.collected_with_evidence_email}",
            f"- yesWithMasterEmail: {self.collected_with_master_email}",
        ]
        if self.passed:
            lines.append("- result: PASS")
        else:
            count = len(self.failures)
            lines.append(f"- result: FAIL ({count} issue{'' if count == 1 else 's'})")
            lines.extend(failure.render() for failure in self.failures)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# BatchVerifier
# ---------------------------------------------------------------------------


class BatchVerifier:
    """Verifies evidence batches against a partition file and the master dataset.

    Parameters
    ----------
    default_master_path:
        Master dataset used when :meth:`verify` is called without one.
    max_rows:
        Batch size cap.  Defaults to :data:`MAX_BATCH_ROWS`.
    """

    def __init__(
        self, default_master_path: Path, max_rows: int = MAX_BATCH_ROWS
    ) -> None:
        self._default_master_path = default_master_path
        self._max_rows = max_rows

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify(
        self,
        partition_path: Path,
        evidence_path: Path,
        master_path: Path | None = None,
    ) -> BatchReport:
        """Verify one evidence batch.

        Parameters
        ----------
        partition_path:
            District file whose ``has_email_collected`` flags are being
            checked.
        evidence_path:
            Evidence batch file.
        master_path:
            Master dataset; the verifier's default when ``None``.

        Returns
        -------
        BatchReport
            Counters plus every failed rule.  ``report.passed`` is ``True``
            only when no rule failed.

        Raises
        ------
        ValidationError
            If an input is missing or unreadable, lacks a required column,
            or the batch is empty or larger than the cap.
        """
        master_path = master_path if master_path is not None else self._default_master_path

        for label, path in (
            ("district", partition_path),
            ("evidence", evidence_path),
            ("master", master_path),
        ):
            if not path.is_file():
                raise ValidationError(f"missing {label} file: {path}")

        partition = _load(partition_path, PARTITION_COLUMNS, "district")
        evidence = _load(evidence_path, EVIDENCE_COLUMNS, "evidence")
        master = _load(master_path, MASTER_COLUMNS, "master")

        if not evidence.rows:
            raise ValidationError("evidence file has no rows")
        if len(evidence.rows) > self._max_rows:
            raise ValidationError(
                f"batch too large: {len(evidence.rows)} rows (max {self._max_rows})"
            )

        report = BatchReport(
            partition_path=str(partition_path),
            evidence_path=str(evidence_path),
            master_path=str(master_path),
            evidence_rows=len(evidence.rows),
        )
        partition_by_urn = {row[ID_COLUMN]: row for row in partition.rows}
        master_by_urn = {row["urn"]: row for row in master.rows}

        for record in evidence.rows:
            self._check_row(
                EvidenceRow.model_validate(record), partition_by_urn, master_by_urn, report
            )

        logger.info(
            "Verified %s: %d rows, %d collected, %d failures",
            evidence_path,
            report.evidence_rows,
            report.collected_rows,
            len(report.failures),
        )
        return report

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_row(
        row: EvidenceRow,
        partition_by_urn: dict[str, dict[str, str]],
        master_by_urn: dict[str, dict[str, str]],
        report: BatchReport,
    ) -> None:
        """Apply every per-row rule to *row*, appending failures to *report*."""
        urn = row.urn

        def fail(rule: str, message: str) -> None:
            report.failures.append(
                BatchFailure(urn=urn or "NO_URN", rule=rule, message=message)
            )

        if not urn:
            fail("missing_urn", "evidence row missing urn")
            return

        partition_row = partition_by_urn.get(urn)
        if partition_row is None:
            fail("unknown_urn", "not found in district file")
            return

        if not is_truthy(partition_row.get(FLAG_COLUMN)):
            return
        report.collected_rows += 1

        if not row.page_url_scraped:
            fail("missing_page_url", "missing page_url_scraped")
        if not row.checked_at_utc:
            fail("missing_checked_at", "missing checked_at_utc")

        if usable_emails(row.emails_found):
            report.collected_with_evidence_email += 1
        else:
            fail("no_evidence_email", "no valid non-placeholder email in emails_found")

        master_row = master_by_urn.get(urn)
        if master_row is not None and usable_emails(master_row.get("all_emails")):
            report.collected_with_master_email += 1
        else:
            fail("no_master_email", "no valid non-placeholder email in master dataset")


def _load(path: Path, columns: tuple[str, ...], label: str) -> Table:
    try:
        table = read_table(path)
    except DistrictQueueError as exc:
        raise ValidationError(str(exc)) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ValidationError(f"cannot read {label} file {path}: {exc}") from exc
    table.require_columns(columns, label=label)
    return table
