"""Exception hierarchy for the sync core.

Only configuration-class errors fail a session outright.  Detection and
per-operation errors are collected into the session result; conflicts are
not errors at all.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync core errors."""


class ConfigurationError(SyncError, ValueError):
    """Connector or engine configuration is missing or malformed."""


class ConnectorNotFoundError(ConfigurationError):
    """No connector with the requested id exists for the org unit."""

    def __init__(self, connector_id: str, org_unit: str) -> None:
        super().__init__(
            f"Connector '{connector_id}' not found for org unit '{org_unit}'"
        )
        self.connector_id = connector_id
        self.org_unit = org_unit


class FieldMapError(ConfigurationError):
    """A connector field map cannot be used to translate records."""


class DetectionError(SyncError):
    """One side of the sync could not be read."""


class ApplyError(SyncError):
    """A single operation could not be applied to its target."""


class RemoteAPIError(ApplyError):
    """The remote API rejected a write or was unreachable.

    Attributes:
        status_code: HTTP status of the failed response, or ``None`` when
            no response was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionStateError(SyncError):
    """Illegal sync session state transition."""


class ResolutionError(SyncError):
    """A stored conflict cannot be resolved as requested."""
