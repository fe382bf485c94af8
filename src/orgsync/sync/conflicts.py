"""Timestamp-based conflict detection.

An operation conflicts when its counterpart on the target side was
modified strictly after the operation's origin timestamp.  Equal
timestamps are *not* a conflict, so re-applying a change that already
landed never conflicts with itself.

Only enrolled collections are checked; everything else passes through
and is applied unconditionally.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from orgsync.sync.models import (
    ConflictKind,
    OperationKind,
    Origin,
    SyncConflict,
    SyncOperation,
)
from orgsync.sync.normalizer import parse_timestamp
from orgsync.sync.store import LocalStore

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Decide whether applying an operation is safe.

    Args:
        local_store: Target for remote-origin operations.
        enrolled_collections: Collections that undergo the check.
    """

    def __init__(
        self,
        local_store: LocalStore,
        enrolled_collections: frozenset[str] | set[str],
    ) -> None:
        self.local_store = local_store
        self.enrolled_collections = frozenset(enrolled_collections)

    def is_enrolled(self, collection: str) -> bool:
        return collection in self.enrolled_collections

    def counterpart(
        self,
        operation: SyncOperation,
        org_unit: str,
        remote_index: Mapping[str, dict[str, Any]],
    ) -> dict[str, Any] | None:
        """Current target-side record for the operation, if any."""
        if operation.provisional:
            # A synthesized id has never been seen on either side.
            return None
        if operation.origin is Origin.REMOTE:
            return self.local_store.get(
                operation.target_collection, org_unit, operation.record_id
            )
        return remote_index.get(operation.record_id)

    def check(
        self,
        operation: SyncOperation,
        session_id: str,
        org_unit: str,
        remote_index: Mapping[str, dict[str, Any]],
    ) -> SyncConflict | None:
        """Return a ``SyncConflict`` if *operation* must be held.

        Returns ``None`` when the collection is not enrolled, when there is
        no counterpart (a true create, or a delete of something already
        gone), when the counterpart has no usable timestamp, or when the
        counterpart is not newer than the operation.
        """
        if not self.is_enrolled(operation.target_collection):
            return None

        target = self.counterpart(operation, org_unit, remote_index)
        if target is None:
            return None

        target_ts = parse_timestamp(target.get("updated_at"))
        if target_ts is None:
            logger.debug(
                "Counterpart %s/%s has no timestamp, treating as older",
                operation.target_collection,
                operation.record_id,
            )
            return None

        if target_ts <= operation.origin_timestamp:
            return None

        kind = (
            ConflictKind.DELETE_UPDATE
            if operation.kind is OperationKind.DELETE
            else ConflictKind.TIMESTAMP
        )
        logger.info(
            "Conflict on %s/%s: %s change at %s, %s copy at %s",
            operation.target_collection,
            operation.record_id,
            operation.origin.value,
            operation.origin_timestamp.isoformat(),
            operation.target_side.value,
            target_ts.isoformat(),
        )
        return SyncConflict(
            session_id=session_id,
            org_unit=org_unit,
            collection=operation.target_collection,
            record_id=operation.record_id,
            origin=operation.origin,
            source_snapshot=dict(operation.payload),
            target_snapshot=dict(target),
            conflict_kind=kind,
        )
