"""Tests for districtq.queue.index and districtq.queue.store.

Covers:
    - QueueStatus parsing (empty reads as pending, unknown values rejected)
    - PartitionSummary counts: remaining = total - collected, coverage with
      one decimal, "0.0" for an empty partition
    - reconcile: carried-over status kept, forced to done when nothing remains
    - IndexBuilder.build: canonical order, status carry-over by district code,
      stale entries kept, duplicate codes rejected
    - QueueStore: empty load when absent, save/load round trip with the exact
      coverage string, exact column order, malformed rows rejected
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from districtq.errors import (
    ConfigurationError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from districtq.queue import (
    INDEX_COLUMNS,
    IndexBuilder,
    PartitionSummary,
    QueueEntry,
    QueueStatus,
    QueueStore,
)
from districtq.queue.index import format_coverage, reconcile, sort_entries

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_HEADER = "urn,school_name,district_code,district_name,has_email_collected\n"


def _write_partition(
    districts_dir: Path, code: str, name: str, flags: list[str], stem: str | None = None
) -> Path:
    """Write a partition file with one school per entry in *flags*."""
    districts_dir.mkdir(parents=True, exist_ok=True)
    path = districts_dir / f"{stem or code + '_' + name.lower().replace(' ', '_')}.csv"
    lines = [
        f"{code}{i:03d},School {i},{code},{name},{flag}\n" for i, flag in enumerate(flags)
    ]
    path.write_text(_HEADER + "".join(lines), encoding="utf-8")
    return path


def _make_entry(
    code: str = "888",
    name: str = "Lancashire",
    total: int = 5,
    collected: int = 2,
    status: str | QueueStatus = QueueStatus.PENDING,
) -> QueueEntry:
    """Return a QueueEntry with consistent counts."""
    return QueueEntry(
        district_code=code,
        district_name=name,
        total_schools=total,
        emails_collected=collected,
        remaining_to_scrape=total - collected,
        coverage_pct=format_coverage(collected, total),
        district_file=f"districts/{code}_{name.lower()}.csv",
        status=status,
    )


# ---------------------------------------------------------------------------
# QueueStatus
# ---------------------------------------------------------------------------


class TestQueueStatus:
    """Closed status enumeration."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("pending", QueueStatus.PENDING),
            ("in_progress", QueueStatus.IN_PROGRESS),
            (" blocked ", QueueStatus.BLOCKED),
            ("done", QueueStatus.DONE),
            ("", QueueStatus.PENDING),
        ],
    )
    def test_parse_known_values(self, raw: str, expected: QueueStatus) -> None:
        assert QueueStatus.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["finished", "DONE ", "in-progress", "Pending"])
    def test_parse_rejects_unknown_values(self, raw: str) -> None:
        """Only the four lower-case values are recognised."""
        with pytest.raises(InvalidStatusError, match="expected one of"):
            QueueStatus.parse(raw)

    def test_entry_rejects_unknown_status(self) -> None:
        """QueueEntry validation refuses an unknown status string."""
        with pytest.raises((InvalidStatusError, PydanticValidationError)):
            _make_entry(status="archived")


# ---------------------------------------------------------------------------
# Counts and reconciliation
# ---------------------------------------------------------------------------


class TestCoverage:
    """Coverage percentage formatting."""

    @pytest.mark.parametrize(
        "collected, total, expected",
        [
            (0, 0, "0.0"),
            (0, 7, "0.0"),
            (10, 10, "100.0"),
            (2, 5, "40.0"),
            (1, 3, "33.3"),
            (2, 3, "66.7"),
            (1, 16, "6.3"),
            (5, 16, "31.3"),
            (1, 1000, "0.1"),
            (1, 2000, "0.1"),
            (1, 2001, "0.0"),
        ],
    )
    def test_format_coverage(self, collected: int, total: int, expected: str) -> None:
        assert format_coverage(collected, total) == expected

    def test_exact_halves_round_up_in_saved_index(self, tmp_path: Path) -> None:
        """A 1-of-16 district is written and reloaded as "6.3"."""
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["yes"] + ["no"] * 15)
        store = QueueStore(tmp_path / "district_index.csv")
        store.save(IndexBuilder(districts).build())
        assert store.load()[0].coverage_pct == "6.3"


class TestReconcile:
    """Status merge between partition data and the persisted index."""

    def _summary(self, total: int, collected: int) -> PartitionSummary:
        return PartitionSummary(
            district_code="1",
            district_name="X",
            total_schools=total,
            emails_collected=collected,
            remaining_to_scrape=max(0, total - collected),
            coverage_pct=format_coverage(collected, total),
            district_file="districts/1_x.csv",
        )

    def test_new_district_is_pending(self) -> None:
        assert reconcile(self._summary(5, 2)).status is QueueStatus.PENDING

    def test_previous_status_is_carried(self) -> None:
        entry = reconcile(self._summary(5, 2), QueueStatus.BLOCKED)
        assert entry.status is QueueStatus.BLOCKED

    @pytest.mark.parametrize("previous", list(QueueStatus))
    def test_exhausted_district_is_always_done(self, previous: QueueStatus) -> None:
        """Data wins for done regardless of the carried status."""
        assert reconcile(self._summary(4, 4), previous).status is QueueStatus.DONE

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            _make_entry(total=1, collected=2)


# ---------------------------------------------------------------------------
# IndexBuilder
# ---------------------------------------------------------------------------


class TestIndexBuilder:
    """Building the index from partition files."""

    def test_example_order_and_done_override(self, tmp_path: Path) -> None:
        """A (10/10) and B (2/5) build as [B(remaining=3), A(remaining=0, done)]."""
        districts = tmp_path / "districts"
        _write_partition(districts, "100", "Alpha", ["yes"] * 10)
        _write_partition(districts, "200", "Bravo", ["yes", "yes", "no", "no", "no"])

        entries = IndexBuilder(districts).build()

        assert [e.district_code for e in entries] == ["200", "100"]
        b, a = entries
        assert (b.total_schools, b.emails_collected, b.remaining_to_scrape) == (5, 2, 3)
        assert b.coverage_pct == "40.0"
        assert b.status is QueueStatus.PENDING
        assert a.remaining_to_scrape == 0
        assert a.status is QueueStatus.DONE
        assert a.coverage_pct == "100.0"
        assert a.district_file == "districts/100_alpha.csv"

    def test_equal_remaining_sorted_by_name(self, tmp_path: Path) -> None:
        """Ties on remaining fall back to ascending district name."""
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "Zulu", ["no", "no"])
        _write_partition(districts, "2", "Echo", ["no", "no"])
        _write_partition(districts, "3", "Mike", ["no", "no", "no"])

        names = [e.district_name for e in IndexBuilder(districts).build()]
        assert names == ["Mike", "Echo", "Zulu"]

    def test_invariants_hold_for_every_entry(self, tmp_path: Path) -> None:
        """remaining = total - collected and remaining 0 means done."""
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["yes", "no", "true"])
        _write_partition(districts, "2", "B", ["1", "TRUE"])
        _write_partition(districts, "3", "C", [])

        entries = IndexBuilder(districts).build()
        assert len(entries) == 3
        for entry in entries:
            assert entry.remaining_to_scrape == entry.total_schools - entry.emails_collected
            if entry.remaining_to_scrape == 0:
                assert entry.status is QueueStatus.DONE
        remaining = [e.remaining_to_scrape for e in entries]
        assert remaining == sorted(remaining, reverse=True)

    def test_status_carried_over_by_code(self, tmp_path: Path) -> None:
        """Persisted status follows the district code, not the file position."""
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["no"])
        _write_partition(districts, "2", "B", ["no", "no"])

        previous = [_make_entry(code="1", name="A", total=1, collected=0, status="blocked")]
        statuses = {e.district_code: e.status for e in IndexBuilder(districts).build(previous)}
        assert statuses == {"1": QueueStatus.BLOCKED, "2": QueueStatus.PENDING}

    def test_stale_entries_are_kept_with_warning(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An index entry whose file disappeared is kept as-is."""
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["no"])
        stale = _make_entry(code="9", name="Gone", total=4, collected=1, status="in_progress")

        with caplog.at_level(logging.WARNING, logger="districtq.queue.index"):
            entries = IndexBuilder(districts).build([stale])

        assert [e.district_code for e in entries] == ["9", "1"]
        assert entries[0] == stale
        assert "no partition file" in caplog.text

    def test_duplicate_codes_rejected(self, tmp_path: Path) -> None:
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["no"], stem="1_a")
        _write_partition(districts, "1", "A", ["no"], stem="1_a_copy")
        with pytest.raises(ValidationError, match="appears in both"):
            IndexBuilder(districts).build()

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            IndexBuilder(tmp_path / "districts").build()

    def test_summarise_one_unknown_code(self, tmp_path: Path) -> None:
        districts = tmp_path / "districts"
        _write_partition(districts, "1", "A", ["no"])
        with pytest.raises(NotFoundError, match="district not found: 42"):
            IndexBuilder(districts).summarise_one("42")


# ---------------------------------------------------------------------------
# QueueStore
# ---------------------------------------------------------------------------


class TestQueueStore:
    """Index persistence."""

    def test_load_missing_index_is_empty(self, tmp_path: Path) -> None:
        assert QueueStore(tmp_path / "district_index.csv").load() == []

    def test_round_trip_is_field_for_field_equal(self, tmp_path: Path) -> None:
        """Saving then loading reproduces every field, including coverage_pct."""
        store = QueueStore(tmp_path / "district_index.csv")
        entries = sort_entries(
            [
                _make_entry(code="1", name="A", total=3, collected=1, status="in_progress"),
                _make_entry(code="2", name="B", total=7, collected=7, status="done"),
                _make_entry(code="3", name="C", total=6, collected=2, status="blocked"),
            ]
        )
        store.save(entries)
        loaded = store.load()
        assert loaded == entries
        assert {e.district_code: e.coverage_pct for e in loaded} == {
            "1": "33.3",
            "2": "100.0",
            "3": "33.3",
        }

    def test_save_writes_exact_columns_in_canonical_order(self, tmp_path: Path) -> None:
        path = tmp_path / "district_index.csv"
        QueueStore(path).save(
            [
                _make_entry(code="1", name="A", total=1, collected=0),
                _make_entry(code="2", name="B", total=9, collected=0),
            ]
        )
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == ",".join(INDEX_COLUMNS)
        assert lines[1].startswith("2,B,9,0,9,0.0,pending,")
        assert lines[2].startswith("1,A,1,0,1,0.0,pending,")

    def test_blank_status_reads_as_pending(self, tmp_path: Path) -> None:
        path = tmp_path / "district_index.csv"
        path.write_text(
            ",".join(INDEX_COLUMNS) + "\n1,A,2,0,2,0.0,,districts/1_a.csv\n",
            encoding="utf-8",
        )
        assert QueueStore(path).load()[0].status is QueueStatus.PENDING

    def test_blank_district_code_dropped_with_warning(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A row without a code is skipped and reported by its row number."""
        path = tmp_path / "district_index.csv"
        path.write_text(
            ",".join(INDEX_COLUMNS)
            + "\n1,A,2,0,2,0.0,pending,districts/1_a.csv"
            + "\n,B,3,0,3,0.0,pending,districts/2_b.csv\n",
            encoding="utf-8",
        )
        with caplog.at_level(logging.WARNING, logger="districtq.queue.store"):
            loaded = QueueStore(path).load()
        assert [e.district_code for e in loaded] == ["1"]
        assert "Index row 3 has a blank district_code" in caplog.text

    def test_unknown_status_in_file_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "district_index.csv"
        path.write_text(
            ",".join(INDEX_COLUMNS) + "\n1,A,2,0,2,0.0,paused,districts/1_a.csv\n",
            encoding="utf-8",
        )
        with pytest.raises(InvalidStatusError, match="paused"):
            QueueStore(path).load()

    def test_bad_count_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "district_index.csv"
        path.write_text(
            ",".join(INDEX_COLUMNS) + "\n1,A,lots,0,2,0.0,pending,districts/1_a.csv\n",
            encoding="utf-8",
        )
        with pytest.raises(ValidationError, match="index row 2"):
            QueueStore(path).load()

    def test_missing_status_column_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "district_index.csv"
        path.write_text("district_code,district_name\n1,A\n", encoding="utf-8")
        with pytest.raises(ValidationError, match="index file missing column: status"):
            QueueStore(path).load()
