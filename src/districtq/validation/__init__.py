"""Validation subpackage for districtq.

Verifies a completed evidence batch against its district file and the master
contact dataset before the batch's collected flags are trusted.
"""

from districtq.validation.batch import (
    MAX_BATCH_ROWS,
    BatchFailure,
    BatchReport,
    BatchVerifier,
    EvidenceRow,
    extract_emails,
    is_placeholder_email,
    is_valid_email,
    usable_emails,
)

__all__: list[str] = [
    "MAX_BATCH_ROWS",
    "BatchFailure",
    "BatchReport",
    "BatchVerifier",
    "EvidenceRow",
    "extract_emails",
    "is_placeholder_email",
    "is_valid_email",
    "usable_emails",
]
