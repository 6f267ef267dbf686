"""Task brief generation for districtq.

Turns the next eligible district (see
:func:`~districtq.queue.operations.select_next`) into a plain-text brief an
operator or collection agent can act on.  Rendering is a pure formatting
step: nothing is claimed and nothing is written.

Every brief carries the same fixed rules:

- scope is limited to the schools of the one district file;
- ``has_email_collected`` is flipped to ``yes`` only for a verified, valid
  email;
- placeholder and no-reply addresses are not recorded;
- progress is saved every :data:`SAVE_EVERY_ROWS` schools (the batch
  verifier enforces the same cap on evidence batches);
- the end-of-pass report lists ``processed``, ``newly_found``,
  ``still_missing`` and ``blockers``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from districtq.queue.index import QueueEntry
from districtq.queue.operations import DistrictQueue

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Number of schools between mandatory progress saves.
SAVE_EVERY_ROWS: int = 25

#: Fields the collector must report at the end of a district pass.
REPORT_FIELDS: tuple[str, ...] = (
    "processed",
    "newly_found",
    "still_missing",
    "blockers",
)

#: Message shown when no district is eligible.
ALL_COMPLETE_MESSAGE: str = "All districts are complete."

#: Rule lines included verbatim in every brief.
TASK_RULES: tuple[str, ...] = (
    "Only scrape schools from this district file.",
    "Update has_email_collected to yes when valid email found.",
    "Keep data clean (no placeholder/no-reply junk).",
    f"Save progress every {SAVE_EVERY_ROWS} schools.",
    "When district pass is done, report: " + ", ".join(REPORT_FIELDS) + ".",
)


# ---------------------------------------------------------------------------
# TaskBrief dataclass
# ---------------------------------------------------------------------------


@dataclass
class TaskBrief:
    """A rendered unit of collection work for one district.

    Attributes
    ----------
    district_code:
        Identifier of the district to work on.
    district_name:
        Display name of the district.
    file_path:
        Path of the partition file the collector must edit.
    remaining:
        Schools still lacking an email when the brief was generated.
    rules:
        Rule lines; must include every entry of :data:`TASK_RULES`.
    """

    district_code: str
    district_name: str
    file_path: str
    remaining: int
    rules: tuple[str, ...] = TASK_RULES

    def __post_init__(self) -> None:
        """Validate fields after initialisation.

        Raises
        ------
        ValueError
            If the code or file path is empty, ``remaining`` is not positive,
            or a mandatory rule is missing.
        """
        if not self.district_code.strip():
            raise ValueError("district_code must be a non-empty string")
        if not self.file_path.strip():
            raise ValueError("file_path must be a non-empty string")
        if self.remaining <= 0:
            raise ValueError(f"remaining must be positive, got {self.remaining}")
        missing = [rule for rule in TASK_RULES if rule not in self.rules]
        if missing:
            raise ValueError(f"rules is missing mandatory lines: {missing}")

    def render(self) -> str:
        """Return the brief as newline-joined text."""
        lines = [
            "Email collection task",
            f"District: {self.district_code} {self.district_name}",
            f"File: {self.file_path}",
            "Goal: Scrape missing school emails for rows where has_email_collected = no.",
            "Rules:",
            *(f"- {rule}" for rule in self.rules),
        ]
        return "\n".join(lines)


def build_brief(entry: QueueEntry, work_dir: Path) -> TaskBrief:
    """Build the :class:`TaskBrief` for *entry*.

    ``district_file`` in the index is relative to *work_dir*.
    """
    return TaskBrief(
        district_code=entry.district_code,
        district_name=entry.district_name,
        file_path=(work_dir / entry.district_file).as_posix(),
        remaining=entry.remaining_to_scrape,
    )


class TaskAnnouncer:
    """Produces the brief for the district :func:`~districtq.queue.operations.select_next` picks.

    Parameters
    ----------
    queue:
        Queue to read the selection from.  Only :meth:`DistrictQueue.peek`
        is called, so announcing never writes the index.
    work_dir:
        Directory that ``district_file`` references are relative to.
    """

    def __init__(self, queue: DistrictQueue, work_dir: Path) -> None:
        self._queue = queue
        self._work_dir = work_dir

    def next_brief(self) -> TaskBrief | None:
        """Return the brief for the next district, or ``None`` if all are complete."""
        entry = self._queue.peek()
        if entry is None:
            return None
        return build_brief(entry, self._work_dir)

    def announce(self) -> str:
        """Return the rendered brief, or :data:`ALL_COMPLETE_MESSAGE`."""
        brief = self.next_brief()
        if brief is None:
            return ALL_COMPLETE_MESSAGE
        return brief.render()
