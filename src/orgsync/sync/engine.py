"""Sync engine that orchestrates one bidirectional sync session.

The ``SyncEngine`` ties together registry, detector, normalizer, conflict
detector, applier, version recorder and session manager.  It:

1. Resolves the connector and opens a session.
2. Picks the checkpoint (explicit, last completed session, or lookback).
3. Detects candidate changes on the sides the direction reads.
4. Normalizes candidates into ``SyncOperation`` objects.
5. Groups operations by record and processes each group in timestamp
   order: conflict check, then apply or hold.
6. Records one ``DataVersion`` per applied or held operation.
7. Finalizes the session and returns its ``SessionResult``.

Error handling is per-operation: a single record failure does not abort
the run.  Configuration errors fail the session before any data is read.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from orgsync.config import Settings, load_settings
from orgsync.config_loader import load_hierarchical_config
from orgsync.config_schema import ConnectorConfig, UnifiedConfig, build_config
from orgsync.core.async_utils import (
    gather_limited,
    make_semaphore,
    run_sync,
    run_sync_limited,
)
from orgsync.core.client import RemoteClient
from orgsync.errors import ConfigurationError
from orgsync.sync.applier import OperationApplier
from orgsync.sync.conflicts import ConflictDetector
from orgsync.sync.detector import ChangeDetector, RemoteSource
from orgsync.sync.mapper import FieldMapper
from orgsync.sync.models import (
    ChangeKind,
    OperationKind,
    Origin,
    Outcome,
    OperationOutcome,
    SessionResult,
    SyncDirection,
    SyncOperation,
    SyncSession,
    utcnow,
)
from orgsync.sync.normalizer import normalize_all, parse_timestamp
from orgsync.sync.registry import ConnectorRegistry
from orgsync.sync.session import SyncSessionManager
from orgsync.sync.state import AuditStore, JsonAuditStore
from orgsync.sync.store import LocalStore
from orgsync.sync.versions import VersionInput, VersionRecorder

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectorConfig], RemoteSource]


@dataclass
class _RunContext:
    """Everything one session's operations share."""

    session_id: str
    org_unit: str
    conflicts: ConflictDetector
    applier: OperationApplier
    remote_index: dict[str, dict[str, Any]]
    cancel: threading.Event
    deadline: float | None = None

    def cancelled(self) -> bool:
        if self.cancel.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline


_Processed = tuple[OperationOutcome, VersionInput | None]


class SyncEngine:
    """Run sync sessions for the connectors in a registry.

    Args:
        registry: Connector lookup.
        local_store: The platform's collection-scoped store.
        audit: Where sessions, conflicts and versions are kept.
        client_factory: Builds the remote client for a connector.
        max_parallel_operations: Record groups processed concurrently.
        default_lookback_hours: Checkpoint window for a connector's first
            session when the connector sets none.
    """

    def __init__(
        self,
        registry: ConnectorRegistry,
        local_store: LocalStore,
        audit: AuditStore,
        client_factory: ClientFactory = RemoteClient,
        max_parallel_operations: int = 4,
        default_lookback_hours: float = 24.0,
    ) -> None:
        self.registry = registry
        self.local_store = local_store
        self.audit = audit
        self.client_factory = client_factory
        self.max_parallel_operations = max_parallel_operations
        self.default_lookback_hours = default_lookback_hours

        self.sessions = SyncSessionManager(audit)
        self.detector = ChangeDetector(local_store)
        self.recorder = VersionRecorder(audit)

    @classmethod
    def from_config(
        cls,
        local_store: LocalStore,
        config: UnifiedConfig | None = None,
        settings: Settings | None = None,
        client_factory: ClientFactory = RemoteClient,
    ) -> SyncEngine:
        """Build an engine from YAML config and runtime settings.

        Missing arguments are loaded: *config* from the discovered config
        files, *settings* from env vars with the config's ``engine``
        section as fallback.  The audit trail goes to
        ``<state_dir>/audit.json``.
        """
        if config is None:
            config = build_config(load_hierarchical_config())
        if settings is None:
            settings = load_settings(yaml_fallbacks=config.engine.model_dump())

        return cls(
            registry=ConnectorRegistry.from_config(config),
            local_store=local_store,
            audit=JsonAuditStore(Path(settings.state_dir)),
            client_factory=client_factory,
            max_parallel_operations=settings.max_parallel_operations,
            default_lookback_hours=settings.default_lookback_hours,
        )

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def run(
        self,
        connector_id: str,
        org_unit: str,
        direction: SyncDirection | str | None = None,
        since: datetime | str | None = None,
        timeout: float | None = None,
    ) -> SessionResult:
        """Blocking wrapper around ``run_async``."""
        return asyncio.run(
            self.run_async(connector_id, org_unit, direction, since, timeout)
        )

    async def run_async(
        self,
        connector_id: str,
        org_unit: str,
        direction: SyncDirection | str | None = None,
        since: datetime | str | None = None,
        timeout: float | None = None,
    ) -> SessionResult:
        """Execute one sync session.

        Args:
            connector_id: Connector to sync.
            org_unit: Organizational unit that owns the connector.
            direction: Overrides the connector's configured direction.
            since: Explicit checkpoint; defaults to the end of the last
                completed session.
            timeout: Seconds after which operations not yet started are
                cancelled and the session ends ``stopped``.

        Returns:
            The session's ``SessionResult``.  This method does not raise
            for configuration, detection or per-operation failures.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            connector = self.registry.resolve(connector_id, org_unit)
            run_direction = _coerce_direction(direction or connector.direction)
            checkpoint = self._checkpoint(connector, org_unit, since)
            remote = self.client_factory(connector)
        except ConfigurationError as exc:
            logger.error(
                "Cannot sync connector %s for %s: %s",
                connector_id,
                org_unit,
                exc,
            )
            session = self.sessions.start(
                connector_id, org_unit, _fallback_direction(direction)
            )
            failed = self.sessions.fail(
                session.id, f"Configuration error: {exc}"
            )
            return self.sessions.result(failed)

        session = self.sessions.start(connector.id, org_unit, run_direction)
        cancel = self.sessions.cancel_event(session.id)

        try:
            outcomes = await self._run_session(
                session,
                connector,
                remote,
                checkpoint,
                cancel,
                deadline,
            )
        except Exception as exc:
            logger.exception("Sync session %s aborted", session.id)
            failed = self.sessions.fail(session.id, f"Unexpected error: {exc}")
            return self.sessions.result(failed)

        if cancel.is_set() or any(
            o.outcome is Outcome.CANCELLED for o in outcomes
        ):
            finished = self.sessions.mark_stopped(session.id)
        else:
            finished = self.sessions.complete(session.id)
        return self.sessions.result(finished, outcomes)

    def stop(self, session_id: str) -> bool:
        """Request cancellation of a running session."""
        return self.sessions.stop(session_id)

    def list_active(self, org_unit: str | None = None) -> list[SyncSession]:
        return self.sessions.list_active(org_unit)

    # ------------------------------------------------------------------
    # Session body
    # ------------------------------------------------------------------

    async def _run_session(
        self,
        session: SyncSession,
        connector: ConnectorConfig,
        remote: RemoteSource,
        checkpoint: datetime,
        cancel: threading.Event,
        deadline: float | None,
    ) -> list[OperationOutcome]:
        # Step a: Detect
        changes = await run_sync(
            self.detector.detect,
            connector,
            session.org_unit,
            checkpoint,
            session.direction,
            remote,
        )
        for message in changes.errors:
            self.sessions.record_error(session.id, message)

        # Step b: Normalize
        detected_at = utcnow()
        operations = normalize_all(
            changes.local, Origin.LOCAL, connector.collection, detected_at
        ) + normalize_all(
            changes.remote, Origin.REMOTE, connector.collection, detected_at
        )
        if not operations:
            logger.info("Nothing to sync for session %s", session.id)
            return []

        ctx = _RunContext(
            session_id=session.id,
            org_unit=session.org_unit,
            conflicts=ConflictDetector(
                self.local_store, connector.conflict_tracked
            ),
            applier=OperationApplier(
                self.local_store, remote, FieldMapper(connector.field_maps)
            ),
            remote_index=changes.remote_index,
            cancel=cancel,
            deadline=deadline,
        )

        # Step c: Process record groups concurrently, each group in order
        groups: dict[tuple[str, str], list[SyncOperation]] = defaultdict(list)
        for operation in operations:
            groups[operation.record_key].append(operation)

        semaphore = make_semaphore(self.max_parallel_operations)
        group_results = await gather_limited(
            [
                self._process_group(ctx, group, semaphore)
                for group in groups.values()
            ]
        )

        outcomes: list[OperationOutcome] = []
        inputs: list[VersionInput] = []
        for group in group_results:
            for outcome, version_input in group:
                outcomes.append(outcome)
                if version_input is not None:
                    inputs.append(version_input)

        # Step d: Version everything applied or held
        try:
            await run_sync(self.recorder.record, session.id, inputs)
        except Exception as exc:
            logger.error(
                "Failed to record versions for session %s: %s",
                session.id,
                exc,
            )
            self.sessions.record_error(
                session.id, f"Version recording failed: {exc}"
            )

        return outcomes

    def _checkpoint(
        self,
        connector: ConnectorConfig,
        org_unit: str,
        since: datetime | str | None,
    ) -> datetime:
        if since is not None:
            explicit = parse_timestamp(since)
            if explicit is None:
                raise ConfigurationError(f"Invalid checkpoint: {since!r}")
            return explicit

        last = self.sessions.last_checkpoint(connector.id, org_unit)
        if last is not None:
            return last

        hours = connector.lookback_hours or self.default_lookback_hours
        logger.debug(
            "No completed session for %s, looking back %s hour(s)",
            connector.id,
            hours,
        )
        return utcnow() - timedelta(hours=hours)

    async def _process_group(
        self,
        ctx: _RunContext,
        group: list[SyncOperation],
        semaphore: asyncio.Semaphore,
    ) -> list[_Processed]:
        results: list[_Processed] = []
        for operation in sorted(group, key=lambda op: op.origin_timestamp):
            results.append(
                await run_sync_limited(
                    semaphore, self._process_operation, ctx, operation
                )
            )
        return results

    # ------------------------------------------------------------------
    # Per-operation processing (runs in a worker thread)
    # ------------------------------------------------------------------

    def _process_operation(
        self, ctx: _RunContext, operation: SyncOperation
    ) -> _Processed:
        if ctx.cancelled():
            return _outcome(operation, Outcome.CANCELLED), None

        try:
            conflict = ctx.conflicts.check(
                operation, ctx.session_id, ctx.org_unit, ctx.remote_index
            )
            if conflict is not None:
                self.audit.save_conflict(conflict)
                self.sessions.record_conflict(ctx.session_id)
                return _outcome(operation, Outcome.CONFLICT), VersionInput(
                    collection=operation.target_collection,
                    record_id=operation.record_id,
                    snapshot=dict(operation.payload),
                    change_kind=ChangeKind.CONFLICT,
                )

            applied = ctx.applier.apply(
                operation, ctx.org_unit, ctx.remote_index
            )
        except Exception as exc:
            message = (
                f"{operation.origin.value} {operation.kind.value} "
                f"{operation.target_collection}/{operation.record_id}: {exc}"
            )
            logger.warning("Operation failed: %s", message)
            self.sessions.record_error(ctx.session_id, message)
            return _outcome(operation, Outcome.ERROR, error=str(exc)), None

        self.sessions.record_processed(ctx.session_id)
        return _outcome(
            operation, Outcome.APPLIED, kind=applied.kind
        ), VersionInput(
            collection=operation.target_collection,
            record_id=operation.record_id,
            snapshot=applied.payload or dict(operation.payload),
            change_kind=ChangeKind(applied.kind.value),
        )


def _outcome(
    operation: SyncOperation,
    outcome: Outcome,
    kind: OperationKind | None = None,
    error: str | None = None,
) -> OperationOutcome:
    return OperationOutcome(
        operation_id=operation.id,
        collection=operation.target_collection,
        record_id=operation.record_id,
        origin=operation.origin,
        kind=kind or operation.kind,
        outcome=outcome,
        error=error,
    )


def _coerce_direction(value: SyncDirection | str) -> SyncDirection:
    try:
        return SyncDirection(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid direction '{value}': must be one of "
            + ", ".join(d.value for d in SyncDirection)
        ) from None


def _fallback_direction(value: SyncDirection | str | None) -> SyncDirection:
    try:
        return SyncDirection(value) if value else SyncDirection.BIDIRECTIONAL
    except ValueError:
        return SyncDirection.BIDIRECTIONAL
