"""Tests for sync data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from orgsync.sync.models import (
    ChangeKind,
    DataVersion,
    OperationKind,
    OperationOutcome,
    Origin,
    ProjectRecord,
    SessionResult,
    SessionStatus,
    SyncDirection,
    SyncOperation,
    typed_view,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _outcome(outcome, record_id="r1"):
    return OperationOutcome(
        operation_id=f"op-{record_id}",
        collection="projects",
        record_id=record_id,
        origin=Origin.REMOTE,
        kind=OperationKind.UPDATE,
        outcome=outcome,
    )


class TestEnums:
    def test_origin_opposite(self):
        assert Origin.LOCAL.opposite is Origin.REMOTE
        assert Origin.REMOTE.opposite is Origin.LOCAL

    @pytest.mark.parametrize(
        "direction,local,remote",
        [
            (SyncDirection.BIDIRECTIONAL, True, True),
            (SyncDirection.LOCAL_TO_REMOTE, True, False),
            (SyncDirection.REMOTE_TO_LOCAL, False, True),
        ],
    )
    def test_direction_reads(self, direction, local, remote):
        assert direction.reads_local is local
        assert direction.reads_remote is remote

    def test_only_active_is_non_terminal(self):
        assert not SessionStatus.ACTIVE.is_terminal
        assert all(
            s.is_terminal for s in SessionStatus if s is not SessionStatus.ACTIVE
        )


class TestSyncOperation:
    def test_target_side_and_key(self):
        op = SyncOperation(
            target_collection="projects",
            record_id="r1",
            origin_timestamp=NOW,
            origin=Origin.LOCAL,
        )
        assert op.target_side is Origin.REMOTE
        assert op.record_key == ("projects", "r1")
        assert op.kind is OperationKind.UPDATE
        assert op.id

    def test_frozen(self):
        op = SyncOperation(
            target_collection="projects",
            record_id="r1",
            origin_timestamp=NOW,
            origin=Origin.LOCAL,
        )
        with pytest.raises(ValidationError):
            op.record_id = "r2"


class TestTypedView:
    def test_known_collection(self):
        view = typed_view("projects", {"title": "Canal", "budget": 10})
        assert isinstance(view, ProjectRecord)
        assert view.title == "Canal"
        # unknown columns survive
        assert view.model_extra == {"budget": 10}

    def test_unknown_collection_passthrough(self):
        payload = {"x": 1}
        assert typed_view("invoices", payload) is payload

    def test_invalid_payload_passthrough(self):
        payload = {"updated_at": "not a date"}
        assert typed_view("projects", payload) is payload


def test_version_number_starts_at_one():
    with pytest.raises(ValidationError):
        DataVersion(
            collection="projects",
            record_id="r1",
            version_number=0,
            change_kind=ChangeKind.UPDATE,
        )


class TestSessionResult:
    def _result(self):
        return SessionResult(
            session_id="s1",
            connector_id="grants",
            status=SessionStatus.COMPLETED,
            success=False,
            operations_processed=1,
            conflicts_detected=1,
            errors=["boom"],
            started_at=NOW,
            outcomes=[
                _outcome(outcome, str(i))
                for i, outcome in enumerate(
                    ["applied", "conflict", "error", "cancelled"]
                )
            ],
        )

    def test_partitions(self):
        result = self._result()
        assert [o.record_id for o in result.applied] == ["0"]
        assert [o.record_id for o in result.conflicts] == ["1"]
        assert [o.record_id for o in result.failed] == ["2"]
        assert [o.record_id for o in result.cancelled] == ["3"]

    def test_summary(self):
        summary = self._result().summary()
        assert summary.splitlines()[0] == "Sync session s1 (completed)"
        assert "Errors:    1" in summary
        assert "Total:     4" in summary
