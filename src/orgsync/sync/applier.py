"""Apply non-conflicting operations to the opposite side.

Each call touches exactly one record in one store, so a failure is always
attributable to a single operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from orgsync.errors import ApplyError
from orgsync.sync.detector import RemoteSource
from orgsync.sync.mapper import FieldMapper
from orgsync.sync.models import OperationKind, Origin, SyncOperation
from orgsync.sync.store import LocalStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedChange:
    """What the applier actually did.

    Attributes:
        kind: Resolved kind: ``create`` when the target had no record.
        payload: The translated payload written (empty for deletes).
        target: Side that was written.
    """

    kind: OperationKind
    payload: dict[str, Any]
    target: Origin


class OperationApplier:
    """Write operations through the field map to their target side.

    Args:
        local_store: Target for remote-origin operations.
        remote: Target for local-origin operations.
        mapper: Field translation for the session's connector.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote: RemoteSource,
        mapper: FieldMapper,
    ) -> None:
        self.local_store = local_store
        self.remote = remote
        self.mapper = mapper

    def apply(
        self,
        operation: SyncOperation,
        org_unit: str,
        remote_index: Mapping[str, dict[str, Any]] | None = None,
    ) -> AppliedChange:
        """Apply one operation.

        Args:
            operation: A non-conflicting operation.
            org_unit: Scope for local store writes.
            remote_index: Known remote records by id; decides create vs
                update for local-origin operations.

        Raises:
            ApplyError: If the local write fails.
            RemoteAPIError: If the remote API rejects the call.
        """
        if operation.origin is Origin.REMOTE:
            return self._apply_local(operation, org_unit)
        return self._apply_remote(operation, remote_index or {})

    def _apply_local(
        self, operation: SyncOperation, org_unit: str
    ) -> AppliedChange:
        collection = operation.target_collection
        record_id = operation.record_id

        try:
            if operation.kind is OperationKind.DELETE:
                removed = self.local_store.delete(
                    collection, org_unit, record_id
                )
                if not removed:
                    logger.debug(
                        "Delete of missing %s/%s is a no-op",
                        collection,
                        record_id,
                    )
                return AppliedChange(
                    OperationKind.DELETE, {}, Origin.LOCAL
                )

            mapped = self.mapper.translate(operation.payload, Origin.REMOTE)
            row = {
                **mapped,
                "id": record_id,
                "updated_at": operation.origin_timestamp.isoformat(),
            }
            existing = (
                None
                if operation.provisional
                else self.local_store.get(collection, org_unit, record_id)
            )
            if existing is None:
                self.local_store.insert(collection, org_unit, row)
                kind = OperationKind.CREATE
            else:
                # Columns outside the field map belong to the platform.
                self.local_store.upsert(
                    collection, org_unit, {**existing, **row}
                )
                kind = OperationKind.UPDATE
        except ApplyError:
            raise
        except Exception as exc:
            raise ApplyError(
                f"Local write failed for {collection}/{record_id}: {exc}"
            ) from exc

        logger.debug(
            "Applied remote %s to local %s/%s",
            kind.value,
            collection,
            record_id,
        )
        return AppliedChange(kind, row, Origin.LOCAL)

    def _apply_remote(
        self,
        operation: SyncOperation,
        remote_index: Mapping[str, dict[str, Any]],
    ) -> AppliedChange:
        if operation.kind is OperationKind.DELETE:
            self.remote.delete_record(operation.record_id)
            return AppliedChange(OperationKind.DELETE, {}, Origin.REMOTE)

        mapped = self.mapper.translate(operation.payload, Origin.LOCAL)
        if not mapped:
            raise ApplyError(
                f"Nothing to send for {operation.target_collection}/{operation.record_id}: no mapped fields"
            )
        self.remote.push_record(mapped)

        kind = (
            OperationKind.UPDATE
            if operation.record_id in remote_index
            else OperationKind.CREATE
        )
        logger.debug(
            "Pushed local %s/%s to remote",
            operation.target_collection,
            operation.record_id,
        )
        return AppliedChange(kind, mapped, Origin.REMOTE)
