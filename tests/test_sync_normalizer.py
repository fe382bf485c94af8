"""Tests for orgsync.sync.normalizer -- raw record -> SyncOperation."""

from datetime import datetime, timezone

import pytest

from orgsync.sync.models import OperationKind, Origin
from orgsync.sync.normalizer import (
    PROVISIONAL_PREFIX,
    normalize,
    normalize_all,
    parse_timestamp,
    provisional_id,
    resolve_record_id,
)

DETECTED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# -------------------------------------------------------------------------
# parse_timestamp()
# -------------------------------------------------------------------------


class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2026-02-01T10:00:00Z") == datetime(
            2026, 2, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_iso_with_offset_converted_to_utc(self):
        assert parse_timestamp("2026-02-01T12:00:00+02:00") == datetime(
            2026, 2, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self):
        parsed = parse_timestamp("2026-02-01T10:00:00")
        assert parsed.tzinfo is timezone.utc

    def test_datetime_passthrough(self):
        value = datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert parse_timestamp(value) == value

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, [1], {}])
    def test_unparseable_returns_none(self, value):
        assert parse_timestamp(value) is None


# -------------------------------------------------------------------------
# Record ids
# -------------------------------------------------------------------------


class TestRecordIds:
    def test_id_preferred_over_external_id(self):
        assert resolve_record_id({"id": "a", "external_id": "b"}) == "a"

    def test_external_id_fallback(self):
        assert resolve_record_id({"external_id": "b"}) == "b"

    def test_numeric_id_stringified(self):
        assert resolve_record_id({"id": 42}) == "42"

    def test_blank_id_ignored(self):
        assert resolve_record_id({"id": "  ", "external_id": "x"}) == "x"

    def test_missing_id(self):
        assert resolve_record_id({"name": "n"}) is None

    def test_provisional_ids_are_unique(self):
        first, second = provisional_id(), provisional_id()
        assert first != second
        assert first.startswith(PROVISIONAL_PREFIX)


# -------------------------------------------------------------------------
# normalize()
# -------------------------------------------------------------------------


class TestNormalize:
    def test_basic_record(self):
        op = normalize(
            {"id": "p1", "title": "T", "updated_at": "2026-02-01T10:00:00Z"},
            Origin.LOCAL,
            "projects",
            DETECTED,
        )
        assert op.kind is OperationKind.UPDATE
        assert op.record_id == "p1"
        assert op.target_collection == "projects"
        assert op.origin is Origin.LOCAL
        assert op.target_side is Origin.REMOTE
        assert op.origin_timestamp == datetime(
            2026, 2, 1, 10, 0, tzinfo=timezone.utc
        )
        assert op.payload["title"] == "T"
        assert op.provisional is False

    def test_missing_timestamp_uses_detection_time(self):
        op = normalize({"id": "p1"}, Origin.REMOTE, "projects", DETECTED)
        assert op.origin_timestamp == DETECTED

    def test_bad_timestamp_uses_detection_time_and_warns(self, caplog):
        with caplog.at_level("WARNING"):
            op = normalize(
                {"id": "p1", "updated_at": "not a date"},
                Origin.REMOTE,
                "projects",
                DETECTED,
            )
        assert op.origin_timestamp == DETECTED
        assert "Unparseable" in caplog.text

    def test_missing_id_is_provisional(self):
        op = normalize({"title": "x"}, Origin.REMOTE, "projects", DETECTED)
        assert op.provisional is True
        assert op.record_id.startswith(PROVISIONAL_PREFIX)

    @pytest.mark.parametrize("flag", ["deleted", "_deleted"])
    def test_delete_flag(self, flag):
        op = normalize({"id": "p1", flag: True}, Origin.REMOTE, "projects")
        assert op.kind is OperationKind.DELETE

    def test_truthy_non_bool_flag_is_not_delete(self):
        op = normalize({"id": "p1", "deleted": "yes"}, Origin.REMOTE, "projects")
        assert op.kind is OperationKind.UPDATE

    def test_non_dict_record_never_raises(self):
        op = normalize("garbage", Origin.REMOTE, "projects", DETECTED)
        assert op.payload == {}
        assert op.provisional is True

    def test_payload_is_a_copy(self):
        record = {"id": "p1", "title": "a"}
        op = normalize(record, Origin.LOCAL, "projects")
        record["title"] = "b"
        assert op.payload["title"] == "a"

    def test_typed_payload_for_projects(self):
        op = normalize(
            {"id": "p1", "title": "Bridge", "extra": 1},
            Origin.LOCAL,
            "projects",
        )
        typed = op.typed_payload()
        assert typed.title == "Bridge"
        assert typed.extra == 1

    def test_normalize_all_shares_detection_time(self):
        ops = normalize_all(
            [{"id": "a"}, {"id": "b"}], Origin.REMOTE, "projects", DETECTED
        )
        assert [o.record_id for o in ops] == ["a", "b"]
        assert {o.origin_timestamp for o in ops} == {DETECTED}
        assert ops[0].id != ops[1].id
