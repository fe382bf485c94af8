"""Tests for orgsync.sync.applier -- one write per operation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import ORG, T1, T2, FakeRemoteClient, make_connector

from orgsync.errors import ApplyError, RemoteAPIError
from orgsync.sync.applier import OperationApplier
from orgsync.sync.mapper import FieldMapper
from orgsync.sync.models import OperationKind, Origin, SyncOperation
from orgsync.sync.store import InMemoryLocalStore


def _op(origin, payload, kind=OperationKind.UPDATE, record_id="r1", ts=T2):
    return SyncOperation(
        kind=kind,
        target_collection="projects",
        record_id=record_id,
        payload=payload,
        origin_timestamp=ts,
        origin=origin,
    )


def _applier(store=None, remote=None) -> OperationApplier:
    return OperationApplier(
        store or InMemoryLocalStore(),
        remote or FakeRemoteClient(),
        FieldMapper(make_connector().field_maps),
    )


class TestApplyLocal:
    """Remote-origin operations land in the local store."""

    def test_insert_when_missing(self):
        store = InMemoryLocalStore()
        change = _applier(store).apply(
            _op(Origin.REMOTE, {"id": "r1", "name": "N", "junk": 1}), ORG
        )

        assert change.kind is OperationKind.CREATE
        assert change.target is Origin.LOCAL
        assert store.get("projects", ORG, "r1") == {
            "title": "N",
            "id": "r1",
            "updated_at": T2.isoformat(),
        }

    def test_upsert_when_present(self):
        store = InMemoryLocalStore(
            {("projects", ORG): [{"id": "r1", "title": "old", "updated_at": T1.isoformat()}]}
        )
        change = _applier(store).apply(
            _op(Origin.REMOTE, {"id": "r1", "name": "new"}), ORG
        )

        assert change.kind is OperationKind.UPDATE
        assert store.get("projects", ORG, "r1")["title"] == "new"

    def test_update_keeps_unmapped_columns(self):
        store = InMemoryLocalStore(
            {
                ("projects", ORG): [
                    {
                        "id": "r1",
                        "title": "old",
                        "status": "approved",
                        "budget": 1200,
                        "updated_at": T1.isoformat(),
                    }
                ]
            }
        )
        change = _applier(store).apply(
            _op(Origin.REMOTE, {"id": "r1", "name": "new"}), ORG
        )

        assert store.get("projects", ORG, "r1") == {
            "id": "r1",
            "title": "new",
            "status": "approved",
            "budget": 1200,
            "updated_at": T2.isoformat(),
        }
        # only what crossed the field map is reported
        assert change.payload == {
            "title": "new",
            "id": "r1",
            "updated_at": T2.isoformat(),
        }

    def test_provisional_id_always_creates(self):
        store = MagicMock()
        op = _op(Origin.REMOTE, {"name": "N"}, record_id="temp_0_ab12cd34")
        change = _applier(store).apply(
            op.model_copy(update={"provisional": True}), ORG
        )

        assert change.kind is OperationKind.CREATE
        store.get.assert_not_called()
        store.insert.assert_called_once_with(
            "projects",
            ORG,
            {"title": "N", "id": "temp_0_ab12cd34", "updated_at": T2.isoformat()},
        )

    def test_delete(self):
        store = InMemoryLocalStore({("projects", ORG): [{"id": "r1"}]})
        change = _applier(store).apply(
            _op(Origin.REMOTE, {"id": "r1"}, OperationKind.DELETE), ORG
        )

        assert change.kind is OperationKind.DELETE
        assert store.get("projects", ORG, "r1") is None

    def test_delete_missing_is_noop(self):
        change = _applier().apply(
            _op(Origin.REMOTE, {"id": "r1"}, OperationKind.DELETE), ORG
        )
        assert change.kind is OperationKind.DELETE

    def test_store_failure_wrapped(self):
        store = MagicMock()
        store.get.return_value = None
        store.insert.side_effect = OSError("disk full")

        with pytest.raises(ApplyError, match="disk full"):
            _applier(store).apply(_op(Origin.REMOTE, {"id": "r1"}), ORG)


class TestApplyRemote:
    """Local-origin operations are pushed to the remote API."""

    def test_push_translated_payload(self):
        remote = FakeRemoteClient()
        change = _applier(remote=remote).apply(
            _op(Origin.LOCAL, {"id": "r1", "title": "T", "secret": "s"}),
            ORG,
        )

        assert remote.pushed == [{"external_id": "r1", "name": "T"}]
        assert change.kind is OperationKind.CREATE
        assert change.target is Origin.REMOTE

    def test_update_when_known_remotely(self):
        change = _applier().apply(
            _op(Origin.LOCAL, {"id": "r1", "title": "T"}),
            ORG,
            remote_index={"r1": {"external_id": "r1"}},
        )
        assert change.kind is OperationKind.UPDATE

    def test_delete_calls_remote_delete(self):
        remote = FakeRemoteClient()
        _applier(remote=remote).apply(
            _op(Origin.LOCAL, {"id": "r1"}, OperationKind.DELETE), ORG
        )
        assert remote.deleted == ["r1"]

    def test_nothing_mapped_raises(self):
        with pytest.raises(ApplyError, match="no mapped fields"):
            _applier().apply(_op(Origin.LOCAL, {"unmapped": 1}), ORG)

    def test_remote_error_propagates(self):
        remote = FakeRemoteClient(fail_push_ids={"r1"})
        with pytest.raises(RemoteAPIError) as exc_info:
            _applier(remote=remote).apply(
                _op(Origin.LOCAL, {"id": "r1", "title": "T"}), ORG
            )
        assert exc_info.value.status_code == 422
