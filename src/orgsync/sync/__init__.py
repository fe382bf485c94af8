"""Bidirectional record sync engine.

Public API for reconciling records in the platform's local store with an
external API described by a connector.

Architecture
------------
Every run is a **sync session**.  Candidate changes since the checkpoint
(the end of the last completed session) are read from both sides,
normalized into ``SyncOperation`` objects and processed per record in
timestamp order.  An operation whose counterpart on the target side is
strictly newer is held as a ``SyncConflict``; everything else is applied
through the connector's field map whitelist.  Each applied or held
operation gets an immutable, numbered ``DataVersion``.

Modules:

- ``engine``     -- ``SyncEngine``: orchestrates one sync session.
- ``registry``   -- ``ConnectorRegistry``: connector lookup and checks.
- ``detector``   -- ``ChangeDetector``: candidates from both sides.
- ``normalizer`` -- raw record -> ``SyncOperation``.
- ``conflicts``  -- ``ConflictDetector``: strictly-newer counterpart check.
- ``applier``    -- ``OperationApplier``: one write per operation.
- ``mapper``     -- ``FieldMapper``: config-driven field translation.
- ``versions``   -- ``VersionRecorder``: computed version numbers.
- ``session``    -- ``SyncSessionManager``: state machine and counters.
- ``resolver``   -- ``ConflictResolver``: manual conflict resolution.
- ``state``      -- audit store (sessions, conflicts, versions).
- ``store``      -- ``LocalStore`` contract and bundled stores.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from orgsync.config_schema import build_config
    from orgsync.sync import (
        ConnectorRegistry,
        InMemoryAuditStore,
        InMemoryLocalStore,
        SyncEngine,
        format_session_report,
    )

    config = build_config({
        "connectors": [{
            "id": "grants-api",
            "org_unit": "agency-7",
            "endpoint": "https://grants.example.org/api/projects",
            "auth": {"method": "bearer", "token": grants_token},
            "field_maps": {
                "source_to_target": {"name": "title", "state": "status"},
                "target_to_source": {"title": "name", "status": "state"},
            },
        }],
    })

    engine = SyncEngine(
        registry=ConnectorRegistry.from_config(config),
        local_store=InMemoryLocalStore(),
        audit=InMemoryAuditStore(),
    )
    result = engine.run("grants-api", "agency-7")
    print(format_session_report(result))
"""

from .engine import SyncEngine
from .mapper import FieldMapper
from .models import (
    DataVersion,
    OperationOutcome,
    SessionResult,
    SyncConflict,
    SyncDirection,
    SyncOperation,
    SyncSession,
)
from .registry import ConnectorRegistry
from .reporter import (
    format_conflict,
    format_session_report,
    report_to_json,
    result_to_json,
)
from .resolver import ConflictResolver
from .session import SyncSessionManager
from .state import InMemoryAuditStore, JsonAuditStore
from .store import InMemoryLocalStore, JsonLocalStore, LocalStore

__all__ = [
    "ConflictResolver",
    "ConnectorRegistry",
    "DataVersion",
    "FieldMapper",
    "InMemoryAuditStore",
    "InMemoryLocalStore",
    "JsonAuditStore",
    "JsonLocalStore",
    "LocalStore",
    "OperationOutcome",
    "SessionResult",
    "SyncConflict",
    "SyncDirection",
    "SyncEngine",
    "SyncOperation",
    "SyncSession",
    "SyncSessionManager",
    "format_conflict",
    "format_session_report",
    "report_to_json",
    "result_to_json",
]
