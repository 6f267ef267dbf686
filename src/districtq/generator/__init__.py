"""Task brief generator subpackage for districtq.

Renders the next eligible district as a self-contained, human- or
agent-actionable brief.

Public API
----------
TaskBrief
    Dataclass holding one rendered unit of collection work.
TaskAnnouncer
    Reads the queue selection and renders the brief.
TASK_RULES
    Rule lines embedded verbatim in every brief.
"""

from districtq.generator.tasks import (
    ALL_COMPLETE_MESSAGE,
    TASK_RULES,
    TaskAnnouncer,
    TaskBrief,
    build_brief,
)

__all__: list[str] = [
    "ALL_COMPLETE_MESSAGE",
    "TASK_RULES",
    "TaskAnnouncer",
    "TaskBrief",
    "build_brief",
]
