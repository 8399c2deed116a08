"""Exceptions raised at the edges of the capture pipeline.

None of these cross the coordinator: storage and sink failures are caught,
logged and written to the session narrative, and decode anomalies are data
(``Observation.anomaly``), not exceptions.
"""


class HrcapError(Exception):
    """Base class for hrcap errors."""


class TransportUnavailable(HrcapError):
    """No device could be found or connected to."""


class StorageWriteFailure(HrcapError):
    """An artifact could not be created or appended to."""

    def __init__(self, path, cause: Exception):
        super().__init__(f"failed to write {path}: {cause}")
        self.path = path
        self.cause = cause


class SinkRejection(HrcapError):
    """The health-store sink refused a heart-rate sample."""
