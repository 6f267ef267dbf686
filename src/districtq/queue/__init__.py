"""District queue subpackage for districtq.

Builds the queue index from the partition files, persists it as a CSV table,
and implements selection, claiming, manual status changes, per-district
completion and summary reporting.
"""

from districtq.queue.index import (
    IndexBuilder,
    PartitionSummary,
    QueueEntry,
    QueueStatus,
)
from districtq.queue.operations import DistrictQueue, QueueSummary, select_next
from districtq.queue.store import INDEX_COLUMNS, QueueStore

__all__: list[str] = [
    "INDEX_COLUMNS",
    "DistrictQueue",
    "IndexBuilder",
    "PartitionSummary",
    "QueueEntry",
    "QueueStatus",
    "QueueStore",
    "QueueSummary",
    "select_next",
]
