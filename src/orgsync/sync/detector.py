"""Change detection for both sides of a connector.

Reads candidate records modified at-or-after the checkpoint.  A side that
cannot be read yields no candidates and an error message instead of
aborting the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from orgsync.config_schema import ConnectorConfig
from orgsync.errors import DetectionError
from orgsync.sync.models import SyncDirection
from orgsync.sync.normalizer import parse_timestamp, resolve_record_id
from orgsync.sync.store import LocalStore

logger = logging.getLogger(__name__)


class RemoteSource(Protocol):
    """The parts of ``RemoteClient`` the sync core uses."""

    def fetch_records(
        self, since: datetime | None = None
    ) -> list[dict[str, Any]]: ...

    def push_record(self, payload: dict[str, Any]) -> None: ...

    def delete_record(self, record_id: str) -> None: ...


@dataclass
class CandidateChanges:
    """Raw candidates from both sides.

    Attributes:
        local: Local rows changed since the checkpoint.
        remote: Remote records changed since the checkpoint.
        remote_index: Every fetched remote record by id, including ones
            older than the checkpoint; used to find counterparts of
            local-origin operations.
        errors: Non-fatal detection failures.
    """

    local: list[dict[str, Any]] = field(default_factory=list)
    remote: list[dict[str, Any]] = field(default_factory=list)
    remote_index: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.local) + len(self.remote)


class ChangeDetector:
    """Pull candidate changes from the local store and the remote API.

    Args:
        local_store: Platform store, read through its scoped interface.
    """

    def __init__(self, local_store: LocalStore) -> None:
        self.local_store = local_store

    def detect(
        self,
        connector: ConnectorConfig,
        org_unit: str,
        since: datetime,
        direction: SyncDirection,
        remote: RemoteSource,
    ) -> CandidateChanges:
        """Collect candidates for one session.  Never raises."""
        changes = CandidateChanges()

        if direction.reads_local:
            changes.local = self._detect_local(
                connector, org_unit, since, changes.errors
            )

        # Local-origin operations always need the remote index for
        # conflict lookups, so the remote side is read in every direction.
        records = self._fetch_remote(remote, since, changes.errors)
        for record in records:
            record_id = resolve_record_id(record)
            if record_id is not None:
                changes.remote_index[record_id] = record
        if direction.reads_remote:
            changes.remote = [r for r in records if _changed_since(r, since)]

        logger.info(
            "Detected %d local and %d remote candidate(s) for %s since %s",
            len(changes.local),
            len(changes.remote),
            connector.id,
            since.isoformat(),
        )
        return changes

    def _detect_local(
        self,
        connector: ConnectorConfig,
        org_unit: str,
        since: datetime,
        errors: list[str],
    ) -> list[dict[str, Any]]:
        try:
            return self.local_store.list(
                connector.collection, org_unit, since=since
            )
        except Exception as exc:
            message = f"Local change detection failed: {exc}"
            logger.warning(message)
            errors.append(message)
            return []

    def _fetch_remote(
        self,
        remote: RemoteSource,
        since: datetime,
        errors: list[str],
    ) -> list[dict[str, Any]]:
        try:
            return remote.fetch_records(since)
        except DetectionError as exc:
            message = f"Remote change detection failed: {exc}"
        except Exception as exc:
            message = f"Remote change detection failed: {exc!r}"
        logger.warning(message)
        errors.append(message)
        return []


def _changed_since(record: dict[str, Any], since: datetime) -> bool:
    """True unless the record has a timestamp older than *since*."""
    ts = parse_timestamp(record.get("updated_at"))
    return ts is None or ts >= since
