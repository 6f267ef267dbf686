"""Exception taxonomy for districtq.

Library code raises these; only :mod:`districtq.cli` turns them into exit
codes.  Verification *findings* are not exceptions; see
:class:`~districtq.validation.batch.BatchReport`.
"""

from __future__ import annotations


class DistrictQueueError(RuntimeError):
    """Base class for every error raised by districtq."""


class ConfigurationError(DistrictQueueError):
    """A required file or directory is missing.  Fatal for the command."""


class NotFoundError(DistrictQueueError, LookupError):
    """A referenced district identifier is not present."""


class InvalidStatusError(DistrictQueueError, ValueError):
    """A status value outside ``pending|in_progress|blocked|done`` was supplied."""


class ValidationError(DistrictQueueError, ValueError):
    """An input file is malformed: missing column, bad row, batch too large."""
