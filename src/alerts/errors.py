"""Exception types raised inside the ingestion path.

The ingestor converts these into an ``IngestResult``; they never reach the
webhook caller as raw exceptions.
"""


class AlertsError(Exception):
    """Base class for ingestion and storage errors."""


class InvalidEventError(AlertsError):
    """The event is missing identity fields or does not match the schema."""


class StorageError(AlertsError):
    """The backing store failed to read or write."""
