"""Shared pytest fixtures for orgsync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from orgsync.config_schema import ConnectorConfig
from orgsync.errors import DetectionError, RemoteAPIError
from orgsync.sync.registry import ConnectorRegistry
from orgsync.sync.state import InMemoryAuditStore
from orgsync.sync.store import InMemoryLocalStore

ORG = "agency-7"
# Recent enough to be newer than any default lookback, older than "now".
T0 = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(days=2)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)
T3 = T0 + timedelta(hours=3)
SINCE = T0 - timedelta(hours=1)


def make_connector(**overrides: Any) -> ConnectorConfig:
    """Build a minimal ConnectorConfig for testing."""
    defaults: dict[str, Any] = {
        "id": "grants",
        "name": "Grants API",
        "org_unit": ORG,
        "endpoint": "https://grants.example.org/api/projects",
        "collection": "projects",
        "field_maps": {
            "source_to_target": {"name": "title", "state": "status"},
            "target_to_source": {
                "id": "external_id",
                "title": "name",
                "status": "state",
            },
        },
    }
    defaults.update(overrides)
    return ConnectorConfig(**defaults)


class FakeRemoteClient:
    """Minimal RemoteClient replacement for testing.

    Simulates the remote API with an in-memory list of records.
    """

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        fetch_error: Exception | None = None,
        fail_push_ids: set[str] | None = None,
    ) -> None:
        self.records: list[dict[str, Any]] = records or []
        self.fetch_error = fetch_error
        self.fail_push_ids = fail_push_ids or set()
        self.fetch_calls: list[datetime | None] = []
        self.pushed: list[dict[str, Any]] = []
        self.deleted: list[str] = []

    def fetch_records(
        self, since: datetime | None = None
    ) -> list[dict[str, Any]]:
        self.fetch_calls.append(since)
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(r) for r in self.records]

    def push_record(self, payload: dict[str, Any]) -> None:
        if payload.get("external_id") in self.fail_push_ids:
            raise RemoteAPIError("Remote API error: 422", status_code=422)
        self.pushed.append(dict(payload))

    def delete_record(self, record_id: str) -> None:
        self.deleted.append(record_id)


@pytest.fixture
def connector() -> ConnectorConfig:
    return make_connector()


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def audit() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def registry(connector: ConnectorConfig) -> ConnectorRegistry:
    return ConnectorRegistry([connector])


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def unreachable_remote() -> FakeRemoteClient:
    return FakeRemoteClient(
        fetch_error=DetectionError("Remote API unreachable: timed out")
    )
