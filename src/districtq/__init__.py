"""districtq — District outreach work-queue coordinator.

This package tracks "find missing contact emails for this group of schools"
work units across per-district partition files: it builds a persisted queue
index, hands out and claims districts, renders task briefs for the collector,
and verifies completed evidence batches against the master contact dataset.
"""

__version__ = "0.1.0"
__all__: list[str] = []
