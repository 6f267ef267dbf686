"""Queue operations for districtq.

:class:`DistrictQueue` is the single entry point the CLI (and any other
caller) uses to read and mutate the queue.  Every mutating operation follows
the same shape: load the whole index, change it in memory, save the whole
index.  Nothing is streamed or partially written.

Selection
---------
:func:`select_next` walks the index in its persisted (canonical) order and
returns the first entry of the first non-empty tier:

1. ``remaining_to_scrape > 0`` and ``status == in_progress``: resume work
   somebody already claimed;
2. ``remaining_to_scrape > 0`` and ``status == pending``;
3. ``remaining_to_scrape > 0`` and ``status != done``; this picks up
   ``blocked`` districts so nothing is stranded once everything else is
   finished.

State transitions
-----------------
``set_status`` allows any status to move to any other status.  The only
automatic transition is "no schools remaining ⇒ done", applied by
``rebuild`` and ``complete``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from pydantic import BaseModel

from districtq.config import AppConfig
from districtq.errors import ConfigurationError, InvalidStatusError, NotFoundError
from districtq.queue.index import IndexBuilder, QueueEntry, QueueStatus
from districtq.queue.store import QueueStore

logger = logging.getLogger(__name__)


class QueueSummary(BaseModel):
    """Aggregate counts across the whole index.

    Attributes
    ----------
    districts:
        Number of entries in the index.
    pending, in_progress, blocked, done:
        Number of entries in each status.
    schools:
        Sum of ``total_schools``.
    emails_collected:
        Sum of ``emails_collected``.
    remaining:
        Sum of ``remaining_to_scrape``.
    """

    districts: int = 0
    pending: int = 0
    in_progress: int = 0
    blocked: int = 0
    done: int = 0
    schools: int = 0
    emails_collected: int = 0
    remaining: int = 0


def select_next(entries: Sequence[QueueEntry]) -> QueueEntry | None:
    """Return the next eligible entry, or ``None`` when nothing is eligible."""
    tiers: tuple[Callable[[QueueEntry], bool], ...] = (
        lambda e: e.remaining_to_scrape > 0 and e.status is QueueStatus.IN_PROGRESS,
        lambda e: e.remaining_to_scrape > 0 and e.status is QueueStatus.PENDING,
        lambda e: e.is_open,
    )
    for matches in tiers:
        for entry in entries:
            if matches(entry):
                return entry
    return None


class DistrictQueue:
    """Read and mutate the persisted district queue.

    Parameters
    ----------
    store:
        Persistence for the index file.
    builder:
        Scanner for the partition files.
    """

    def __init__(self, store: QueueStore, builder: IndexBuilder) -> None:
        self._store = store
        self._builder = builder

    @classmethod
    def from_config(cls, config: AppConfig) -> DistrictQueue:
        """Build a queue over the paths named in *config*."""
        return cls(
            store=QueueStore(config.index_path),
            builder=IndexBuilder(config.districts_dir),
        )

    @property
    def store(self) -> QueueStore:
        return self._store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def rebuild(self) -> list[QueueEntry]:
        """Recompute every entry from the partition files and persist the index.

        Idempotent: with unchanged partition files a second rebuild writes
        byte-identical content.

        Raises
        ------
        ConfigurationError
            If the districts directory is missing.
        ValidationError
            If a partition file or the existing index is malformed.
        """
        entries = self._builder.build(self._store.load())
        self._store.save(entries)
        logger.info("Rebuilt %d districts into %s", len(entries), self._store.path)
        return entries

    def entries(self) -> list[QueueEntry]:
        """Return the persisted index, building it first if it does not exist."""
        if not self._store.exists():
            logger.info("No index at %s yet; rebuilding", self._store.path)
            return self.rebuild()
        return self._store.load()

    def next(self) -> QueueEntry | None:
        """Return the next district to work on.

        Nothing is claimed.  The index is built first if it does not exist.
        """
        return select_next(self.entries())

    def peek(self) -> QueueEntry | None:
        """Select like :meth:`next` but never write, not even a first rebuild.

        Raises
        ------
        ConfigurationError
            If the index has never been built.
        """
        if not self._store.exists():
            raise ConfigurationError(
                f"Missing index: {self._store.path} (run 'rebuild' first)"
            )
        return select_next(self._store.load())

    def claim_next(self) -> QueueEntry | None:
        """Select the next district and mark it ``in_progress``.

        Calling this again straight away returns the same entry and writes
        nothing, because an ``in_progress`` entry is always selected first.
        """
        entries = self.entries()
        entry = select_next(entries)
        if entry is None:
            return None
        if entry.status is not QueueStatus.IN_PROGRESS:
            entry.status = QueueStatus.IN_PROGRESS
            self._store.save(entries)
            logger.info("Claimed district %s", entry.district_code)
        return entry

    def set_status(self, district_code: str, status: str | QueueStatus) -> QueueEntry:
        """Force *district_code* to *status*.

        Raises
        ------
        InvalidStatusError
            If *status* is not a recognised value.  Nothing is written.
        NotFoundError
            If *district_code* is not in the index.
        """
        if isinstance(status, str) and not status.strip():
            raise InvalidStatusError("status must not be empty")
        new_status = QueueStatus.parse(status)
        entries = self.entries()
        entry = _find(entries, district_code)
        previous = entry.status
        entry.status = new_status
        self._store.save(entries)
        logger.info(
            "District %s status %s -> %s",
            district_code,
            previous.value,
            new_status.value,
        )
        return entry

    def complete(self, district_code: str) -> QueueEntry:
        """Close out a pass over one district.

        The district's counts are recomputed from its partition file alone;
        its status becomes ``done`` if no schools remain and ``pending``
        otherwise, whatever it was before.  Other entries are left as
        persisted.

        Raises
        ------
        NotFoundError
            If no partition file carries *district_code*.
        """
        summary = self._builder.summarise_one(district_code)
        status = (
            QueueStatus.DONE if summary.remaining_to_scrape == 0 else QueueStatus.PENDING
        )
        fresh = QueueEntry(**summary.model_dump(), status=status)

        entries = [e for e in self.entries() if e.district_code != district_code]
        entries.append(fresh)
        self._store.save(entries)
        logger.info(
            "Completed pass on %s: remaining=%d status=%s",
            district_code,
            fresh.remaining_to_scrape,
            fresh.status.value,
        )
        return fresh

    def summary(self) -> QueueSummary:
        """Aggregate counts over the index, building it first if it does not exist."""
        entries = self.entries()
        by_status = {status: 0 for status in QueueStatus}
        for entry in entries:
            by_status[entry.status] += 1
        return QueueSummary(
            districts=len(entries),
            pending=by_status[QueueStatus.PENDING],
            in_progress=by_status[QueueStatus.IN_PROGRESS],
            blocked=by_status[QueueStatus.BLOCKED],
            done=by_status[QueueStatus.DONE],
            schools=sum(e.total_schools for e in entries),
            emails_collected=sum(e.emails_collected for e in entries),
            remaining=sum(e.remaining_to_scrape for e in entries),
        )


def _find(entries: Sequence[QueueEntry], district_code: str) -> QueueEntry:
    for entry in entries:
        if entry.district_code == district_code:
            return entry
    raise NotFoundError(f"district not found: {district_code}")
