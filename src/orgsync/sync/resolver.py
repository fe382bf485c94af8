"""Manual conflict resolution.

The engine never resolves conflicts on its own; it holds them for a
person.  ``ConflictResolver`` is what that person's tooling calls:

- ``list_unresolved()``: pending conflicts for an org unit.
- ``pick_snapshot()``: the "take source" / "take target" choice.
- ``field_differences()``: which fields the two snapshots disagree on.
- ``resolve()`` / ``resolve_side()``: apply the chosen snapshot to the
  local store, mark the conflict resolved and record a
  ``conflict_resolution`` version.

A snapshot taken from the remote side uses remote field names.  It goes
through the connector's field map before it reaches the local store, the
same whitelist the applier uses.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from orgsync.errors import ConfigurationError, ResolutionError
from orgsync.sync.mapper import FieldMapper
from orgsync.sync.models import ChangeKind, Origin, SyncConflict, utcnow
from orgsync.sync.registry import ConnectorRegistry
from orgsync.sync.state import AuditStore
from orgsync.sync.store import LocalStore
from orgsync.sync.versions import VersionInput, VersionRecorder

logger = logging.getLogger(__name__)

Side = Literal["source", "target"]

# Columns every store row carries; differences there are not interesting.
BOOKKEEPING_FIELDS = frozenset({"id", "external_id", "updated_at"})


class ConflictResolver:
    """Resolve held conflicts by hand.

    Args:
        audit: Store holding the conflicts, sessions and versions.
        local_store: Where the resolved snapshot is written.
        registry: Connector lookup, needed to translate snapshots that use
            remote field names.
        recorder: Version recorder; defaults to one over *audit*.
    """

    def __init__(
        self,
        audit: AuditStore,
        local_store: LocalStore,
        registry: ConnectorRegistry | None = None,
        recorder: VersionRecorder | None = None,
    ) -> None:
        self.audit = audit
        self.local_store = local_store
        self.registry = registry
        self.recorder = recorder or VersionRecorder(audit)

    def list_unresolved(self, org_unit: str | None = None) -> list[SyncConflict]:
        """Pending conflicts, most recently detected first."""
        return self.audit.list_conflicts(org_unit=org_unit, resolved=False)

    def resolve_side(self, conflict_id: str, side: Side) -> SyncConflict:
        """Keep one side of a conflict as it was captured."""
        conflict = self._require_open(conflict_id)
        return self.resolve(
            conflict_id,
            pick_snapshot(conflict, side),
            resolution=side,
            naming=snapshot_origin(conflict, side),
        )

    def resolve(
        self,
        conflict_id: str,
        resolved_snapshot: dict[str, Any],
        resolution: str = "manual",
        naming: Origin = Origin.LOCAL,
    ) -> SyncConflict:
        """Apply *resolved_snapshot* and close the conflict.

        The snapshot's fields overwrite the current local row (columns it
        does not carry are kept), keyed by the conflict's record id and
        stamped with the resolution time, so the next session pushes it
        outward like any other local change.

        Args:
            conflict_id: Conflict to resolve.
            resolved_snapshot: The record content to keep.
            resolution: Free-form label, e.g. ``"source"``, ``"target"``
                or ``"manual"``.
            naming: Which side's field names *resolved_snapshot* uses.
                ``Origin.REMOTE`` snapshots are translated through the
                connector's ``source_to_target`` map first.

        Returns:
            The updated conflict.

        Raises:
            ResolutionError: If the conflict does not exist, is already
                resolved, its connector cannot be found for translation,
                or the local write fails.
        """
        conflict = self._require_open(conflict_id)

        fields = dict(resolved_snapshot)
        if naming is Origin.REMOTE:
            fields = self._mapper_for(conflict).translate(fields, Origin.REMOTE)

        now = utcnow()
        try:
            existing = self.local_store.get(
                conflict.collection, conflict.org_unit, conflict.record_id
            )
            row = {
                **(existing or {}),
                **fields,
                "id": conflict.record_id,
                "updated_at": now.isoformat(),
            }
            self.local_store.upsert(conflict.collection, conflict.org_unit, row)
        except Exception as exc:
            raise ResolutionError(
                f"Could not write resolution for {conflict.collection}/{conflict.record_id}: {exc}"
            ) from exc

        resolved = conflict.model_copy(
            update={
                "resolved": True,
                "resolved_at": now,
                "resolved_snapshot": row,
                "resolution": resolution,
            }
        )
        self.audit.save_conflict(resolved)
        self.recorder.record_one(
            conflict.session_id,
            VersionInput(
                collection=conflict.collection,
                record_id=conflict.record_id,
                snapshot=row,
                change_kind=ChangeKind.CONFLICT_RESOLUTION,
            ),
        )
        logger.info(
            "Resolved conflict %s on %s/%s (%s)",
            conflict_id,
            conflict.collection,
            conflict.record_id,
            resolution,
        )
        return resolved

    def resolution_stats(self, org_unit: str | None = None) -> dict[str, int]:
        conflicts = self.audit.list_conflicts(org_unit=org_unit)
        resolved = sum(1 for c in conflicts if c.resolved)
        return {
            "total": len(conflicts),
            "resolved": resolved,
            "pending": len(conflicts) - resolved,
        }

    def _require_open(self, conflict_id: str) -> SyncConflict:
        conflict = self.audit.get_conflict(conflict_id)
        if conflict is None:
            raise ResolutionError(f"Conflict '{conflict_id}' not found")
        if conflict.resolved:
            raise ResolutionError(
                f"Conflict '{conflict_id}' is already resolved"
            )
        return conflict

    def _mapper_for(self, conflict: SyncConflict) -> FieldMapper:
        """Field mapper of the connector whose session held *conflict*."""
        session = self.audit.get_session(conflict.session_id)
        if self.registry is None or session is None:
            raise ResolutionError(
                f"Cannot translate remote snapshot for conflict '{conflict.id}': "
                "connector unknown"
            )
        try:
            connector = self.registry.resolve(
                session.connector_id, conflict.org_unit
            )
        except ConfigurationError as exc:
            raise ResolutionError(
                f"Cannot translate remote snapshot for conflict '{conflict.id}': {exc}"
            ) from exc
        return FieldMapper(connector.field_maps)


def pick_snapshot(conflict: SyncConflict, side: Side) -> dict[str, Any]:
    """Return a copy of one side of *conflict*.

    Raises:
        ValueError: If *side* is not ``"source"`` or ``"target"``.
    """
    if side == "source":
        return dict(conflict.source_snapshot)
    if side == "target":
        return dict(conflict.target_snapshot)
    raise ValueError(f"Unknown side '{side}': must be 'source' or 'target'")


def snapshot_origin(conflict: SyncConflict, side: Side) -> Origin:
    """Which store's field names one side of *conflict* uses."""
    if side == "source":
        return conflict.origin
    if side == "target":
        return conflict.origin.opposite
    raise ValueError(f"Unknown side '{side}': must be 'source' or 'target'")


def field_differences(
    conflict: SyncConflict,
) -> list[tuple[str, Any, Any]]:
    """Fields whose values differ between the two snapshots.

    Returns:
        ``(field, source_value, target_value)`` tuples sorted by field
        name; a field missing on one side shows ``None`` there.
        Bookkeeping columns are ignored.
    """
    source = conflict.source_snapshot
    target = conflict.target_snapshot
    fields = (set(source) | set(target)) - BOOKKEEPING_FIELDS
    return [
        (name, source.get(name), target.get(name))
        for name in sorted(fields)
        if source.get(name) != target.get(name)
    ]
