"""Pydantic models for the bidirectional sync engine.

Defines the core data contracts used across all sync modules:

- ``SyncOperation``: One canonical change, independent of source schema.
- ``SyncConflict``: Competing versions of a record held for review.
- ``SyncSession``: Lifecycle and counters of one sync run.
- ``DataVersion``: Immutable audit snapshot of a processed operation.
- ``OperationOutcome`` / ``SessionResult``: What a run produced.

Operations, versions and results are frozen.  Sessions are mutated only
by ``SyncSessionManager``; conflicts only change when a person resolves
them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class OperationKind(str, Enum):
    """What an operation does to its record."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Origin(str, Enum):
    """Which side produced an operation."""

    LOCAL = "local"
    REMOTE = "remote"

    @property
    def opposite(self) -> Origin:
        """The side an operation from this origin is applied to."""
        return Origin.REMOTE if self is Origin.LOCAL else Origin.LOCAL


class SyncDirection(str, Enum):
    """Which sides a session reads candidates from."""

    LOCAL_TO_REMOTE = "local_to_remote"
    REMOTE_TO_LOCAL = "remote_to_local"
    BIDIRECTIONAL = "bidirectional"

    @property
    def reads_local(self) -> bool:
        return self in (
            SyncDirection.LOCAL_TO_REMOTE,
            SyncDirection.BIDIRECTIONAL,
        )

    @property
    def reads_remote(self) -> bool:
        return self in (
            SyncDirection.REMOTE_TO_LOCAL,
            SyncDirection.BIDIRECTIONAL,
        )


class SessionStatus(str, Enum):
    """Sync session states.  Everything except ACTIVE is terminal."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class ConflictKind(str, Enum):
    """Why an operation was held instead of applied."""

    TIMESTAMP = "timestamp_conflict"
    DELETE_UPDATE = "delete_update_conflict"


class ChangeKind(str, Enum):
    """What a data version records."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CONFLICT = "conflict"
    CONFLICT_RESOLUTION = "conflict_resolution"


class Outcome(str, Enum):
    """Final disposition of one operation in a session."""

    APPLIED = "applied"
    CONFLICT = "conflict"
    ERROR = "error"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Typed views for known collections
# ---------------------------------------------------------------------------


class ProjectRecord(BaseModel):
    """Typed view of a ``projects`` record.

    Unknown fields are kept, since both sides may carry columns this core
    knows nothing about.
    """

    id: str | None = None
    external_id: str | None = None
    title: str | None = None
    status: str | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "allow", "frozen": True}


COLLECTION_MODELS: dict[str, type[BaseModel]] = {
    "projects": ProjectRecord,
}


def typed_view(
    collection: str, payload: dict[str, Any]
) -> BaseModel | dict[str, Any]:
    """Return the typed model for *payload*, or the dict itself.

    Falls back to the opaque dict when the collection is unknown or the
    payload does not validate.
    """
    model = COLLECTION_MODELS.get(collection)
    if model is None:
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError:
        return payload


# ---------------------------------------------------------------------------
# Core records
# ---------------------------------------------------------------------------


class SyncOperation(BaseModel):
    """The atomic unit of work.

    Attributes:
        id: Opaque id generated at normalization time.
        kind: create, update or delete.
        target_collection: Logical collection name.
        record_id: Record id within the collection.
        payload: Field -> value mapping, opaque to the engine.
        origin_timestamp: Last-modified time at the data's origin.
        origin: Side that produced the operation.
        provisional: True when ``record_id`` was synthesized.
    """

    id: str = Field(default_factory=new_id)
    kind: OperationKind = OperationKind.UPDATE
    target_collection: str
    record_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    origin_timestamp: datetime
    origin: Origin
    provisional: bool = False

    model_config = {"frozen": True}

    @property
    def target_side(self) -> Origin:
        return self.origin.opposite

    @property
    def record_key(self) -> tuple[str, str]:
        return (self.target_collection, self.record_id)

    def typed_payload(self) -> BaseModel | dict[str, Any]:
        return typed_view(self.target_collection, self.payload)


class SyncConflict(BaseModel):
    """Two competing versions of one record, held for manual resolution.

    Attributes:
        source_snapshot: The operation's payload.
        target_snapshot: The counterpart record found on the target side.
        origin: Side the conflicting operation came from.
    """

    id: str = Field(default_factory=new_id)
    session_id: str
    org_unit: str
    collection: str
    record_id: str
    origin: Origin
    source_snapshot: dict[str, Any] = Field(default_factory=dict)
    target_snapshot: dict[str, Any] = Field(default_factory=dict)
    conflict_kind: ConflictKind = ConflictKind.TIMESTAMP
    detected_at: datetime = Field(default_factory=utcnow)
    resolved: bool = False
    resolved_at: datetime | None = None
    resolved_snapshot: dict[str, Any] | None = None
    resolution: str | None = None

    model_config = {"frozen": True}


class SyncSession(BaseModel):
    """One run of the reconciliation process."""

    id: str = Field(default_factory=new_id)
    connector_id: str
    org_unit: str
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    status: SessionStatus = SessionStatus.ACTIVE
    operations_processed: int = 0
    conflicts_detected: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = None

    model_config = {"validate_assignment": True}


class DataVersion(BaseModel):
    """Immutable audit snapshot of one processed operation."""

    id: str = Field(default_factory=new_id)
    collection: str
    record_id: str
    version_number: int = Field(ge=1)
    snapshot: dict[str, Any] = Field(default_factory=dict)
    change_kind: ChangeKind
    session_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class OperationOutcome(BaseModel):
    """Disposition of one operation within a session."""

    operation_id: str
    collection: str
    record_id: str
    origin: Origin
    kind: OperationKind
    outcome: Outcome
    error: str | None = None

    model_config = {"frozen": True}


class SessionResult(BaseModel):
    """Read-only aggregate result handed to whoever triggered the sync.

    Attributes:
        success: True only when the session completed without errors.
            Conflicts do not affect it.
        outcomes: One entry per normalized operation.
    """

    session_id: str
    connector_id: str
    status: SessionStatus
    success: bool
    operations_processed: int = 0
    conflicts_detected: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: datetime
    ended_at: datetime | None = None
    outcomes: list[OperationOutcome] = Field(default_factory=list)

    model_config = {"frozen": True}

    def _with(self, outcome: Outcome) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.outcome == outcome]

    @property
    def applied(self) -> list[OperationOutcome]:
        """Outcomes that were applied to their target."""
        return self._with(Outcome.APPLIED)

    @property
    def conflicts(self) -> list[OperationOutcome]:
        """Outcomes held as conflicts."""
        return self._with(Outcome.CONFLICT)

    @property
    def failed(self) -> list[OperationOutcome]:
        """Outcomes whose application failed."""
        return self._with(Outcome.ERROR)

    @property
    def cancelled(self) -> list[OperationOutcome]:
        """Outcomes never started because the session was stopped."""
        return self._with(Outcome.CANCELLED)

    def summary(self) -> str:
        """Format a short human-readable summary of the session.

        Returns:
            Multi-line summary string with counts by outcome.
        """
        lines = [
            f"Sync session {self.session_id} ({self.status.value})",
            f"  Processed: {self.operations_processed}",
            f"  Conflicts: {self.conflicts_detected}",
            f"  Errors:    {len(self.errors)}",
            f"  Cancelled: {len(self.cancelled)}",
            f"  Total:     {len(self.outcomes)}",
        ]
        return "\n".join(lines)
