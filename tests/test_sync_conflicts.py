"""Tests for orgsync.sync.conflicts -- strictly-newer counterpart check."""

from __future__ import annotations

from conftest import ORG, T1, T2, T3

from orgsync.sync.conflicts import ConflictDetector
from orgsync.sync.models import (
    ConflictKind,
    OperationKind,
    Origin,
    SyncOperation,
)
from orgsync.sync.store import InMemoryLocalStore


def _op(origin: Origin, ts, kind=OperationKind.UPDATE, record_id="r1"):
    return SyncOperation(
        kind=kind,
        target_collection="projects",
        record_id=record_id,
        payload={"id": record_id, "title": "incoming"},
        origin_timestamp=ts,
        origin=origin,
    )


def _detector(rows=None, enrolled=("projects",)) -> ConflictDetector:
    store = InMemoryLocalStore({("projects", ORG): rows or []})
    return ConflictDetector(store, set(enrolled))


class TestRemoteOrigin:
    """Remote-origin operations are compared against the local store."""

    def test_newer_local_conflicts(self):
        detector = _detector([{"id": "r1", "updated_at": T3.isoformat()}])
        conflict = detector.check(_op(Origin.REMOTE, T2), "s1", ORG, {})

        assert conflict is not None
        assert conflict.session_id == "s1"
        assert conflict.org_unit == ORG
        assert conflict.origin is Origin.REMOTE
        assert conflict.target_snapshot["updated_at"] == T3.isoformat()
        assert conflict.source_snapshot["title"] == "incoming"

    def test_older_local_does_not_conflict(self):
        detector = _detector([{"id": "r1", "updated_at": T1.isoformat()}])
        assert detector.check(_op(Origin.REMOTE, T2), "s1", ORG, {}) is None

    def test_equal_timestamps_do_not_conflict(self):
        detector = _detector([{"id": "r1", "updated_at": T2.isoformat()}])
        assert detector.check(_op(Origin.REMOTE, T2), "s1", ORG, {}) is None

    def test_no_counterpart_does_not_conflict(self):
        assert _detector().check(_op(Origin.REMOTE, T2), "s1", ORG, {}) is None

    def test_counterpart_without_timestamp_is_older(self):
        detector = _detector([{"id": "r1"}])
        assert detector.check(_op(Origin.REMOTE, T2), "s1", ORG, {}) is None

    def test_provisional_id_has_no_counterpart(self):
        detector = _detector([{"id": "temp_0_ab12cd34", "updated_at": T3.isoformat()}])
        op = _op(Origin.REMOTE, T1, record_id="temp_0_ab12cd34").model_copy(
            update={"provisional": True}
        )
        assert detector.counterpart(op, ORG, {}) is None
        assert detector.check(op, "s1", ORG, {}) is None


class TestLocalOrigin:
    """Local-origin operations are compared against the fetched remote index."""

    def test_newer_remote_conflicts(self):
        index = {"r1": {"external_id": "r1", "updated_at": T2.isoformat()}}
        conflict = _detector().check(_op(Origin.LOCAL, T1), "s1", ORG, index)

        assert conflict is not None
        assert conflict.conflict_kind is ConflictKind.TIMESTAMP
        assert conflict.target_snapshot == index["r1"]

    def test_remote_missing_from_index(self):
        assert _detector().check(_op(Origin.LOCAL, T1), "s1", ORG, {}) is None


class TestKindsAndEnrollment:
    def test_delete_against_newer_is_delete_update(self):
        detector = _detector([{"id": "r1", "updated_at": T3.isoformat()}])
        conflict = detector.check(
            _op(Origin.REMOTE, T1, OperationKind.DELETE), "s1", ORG, {}
        )
        assert conflict.conflict_kind is ConflictKind.DELETE_UPDATE

    def test_delete_with_no_counterpart_is_not_a_conflict(self):
        conflict = _detector().check(
            _op(Origin.REMOTE, T1, OperationKind.DELETE), "s1", ORG, {}
        )
        assert conflict is None

    def test_unenrolled_collection_never_conflicts(self):
        detector = _detector(
            [{"id": "r1", "updated_at": T3.isoformat()}], enrolled=()
        )
        assert not detector.is_enrolled("projects")
        assert detector.check(_op(Origin.REMOTE, T1), "s1", ORG, {}) is None
