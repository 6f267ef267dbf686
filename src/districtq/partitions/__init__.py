"""Partition reader subpackage for districtq.

Loads per-district school files (the ground truth for which districts exist
and how many schools still lack a collected email) and provides the flat
CSV helpers used throughout the package.
"""

from districtq.partitions.reader import (
    Partition,
    PartitionRow,
    Table,
    is_truthy,
    list_partition_files,
    read_partition,
    read_table,
    write_table,
)

__all__: list[str] = [
    "Partition",
    "PartitionRow",
    "Table",
    "is_truthy",
    "list_partition_files",
    "read_partition",
    "read_table",
    "write_table",
]
