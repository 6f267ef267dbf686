"""Exports subpackage for districtq.

Derived tables for downstream consumers: the flattened school → district
map (and its consistency check) and the ops-layer target set and queue
snapshot.
"""

from districtq.exports.ops_layers import OpsExportResult, export_ops_layers
from districtq.exports.school_map import (
    MapCheckResult,
    MapExportResult,
    check_school_map,
    district_label,
    export_school_map,
)

__all__: list[str] = [
    "MapCheckResult",
    "MapExportResult",
    "OpsExportResult",
    "check_school_map",
    "district_label",
    "export_ops_layers",
    "export_school_map",
]
