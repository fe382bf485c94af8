"""Convert raw records into canonical ``SyncOperation`` objects.

Normalization is total: malformed input never raises.  A record with no
usable timestamp is stamped with the detection time, which makes it look
*newer* rather than dropping it, so the worst case is an extra conflict
for a human to review.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from .models import OperationKind, Origin, SyncOperation, utcnow

logger = logging.getLogger(__name__)

ID_FIELDS = ("id", "external_id")
TIMESTAMP_FIELD = "updated_at"
DELETE_FLAGS = ("deleted", "_deleted")
PROVISIONAL_PREFIX = "temp_"

_provisional_counter = itertools.count()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ``updated_at``-like value into an aware UTC datetime.

    Accepts ``datetime`` objects, ISO 8601 strings (including a trailing
    ``Z``) and epoch seconds.  Naive values are taken as UTC.

    Returns:
        The parsed datetime, or ``None`` if *value* is missing or
        unparseable.
    """
    match value:
        case None | "":
            return None
        case bool():
            return None
        case datetime() as dt:
            parsed = dt
        case int() | float() as ts:
            try:
                return datetime.fromtimestamp(ts, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
        case str() as text:
            text = text.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
        case _:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_record_id(record: dict[str, Any]) -> str | None:
    """Return the record's id from ``id`` then ``external_id``, if any."""
    for field in ID_FIELDS:
        value = record.get(field)
        if value is not None and str(value).strip():
            return str(value)
    return None


def provisional_id() -> str:
    """Synthesize a clearly provisional record id."""
    return f"{PROVISIONAL_PREFIX}{next(_provisional_counter)}_{uuid.uuid4().hex[:8]}"


def normalize(
    record: Any,
    origin: Origin,
    collection: str,
    detected_at: datetime | None = None,
) -> SyncOperation:
    """Convert one raw record into a ``SyncOperation``.

    Args:
        record: A local row or remote API object.  Non-dict input yields an
            operation with an empty payload.
        origin: Side the record was read from.
        collection: Logical collection the record belongs to.
        detected_at: Fallback timestamp; defaults to now.

    Returns:
        The canonical operation.  ``kind`` is ``update`` unless the record
        carries a truthy delete flag; create vs update is decided when the
        operation is applied.
    """
    if not isinstance(record, dict):
        logger.warning(
            "Non-object %s record in %s: %r",
            origin.value,
            collection,
            record,
        )
        record = {}

    record_id = resolve_record_id(record)
    provisional = record_id is None
    if record_id is None:
        record_id = provisional_id()

    fallback = detected_at or utcnow()
    raw_ts = record.get(TIMESTAMP_FIELD)
    origin_timestamp = parse_timestamp(raw_ts)
    if origin_timestamp is None:
        if raw_ts not in (None, ""):
            logger.warning(
                "Unparseable %s %r on %s/%s, using detection time",
                TIMESTAMP_FIELD,
                raw_ts,
                collection,
                record_id,
            )
        origin_timestamp = fallback

    kind = OperationKind.UPDATE
    if any(record.get(flag) is True for flag in DELETE_FLAGS):
        kind = OperationKind.DELETE

    return SyncOperation(
        kind=kind,
        target_collection=collection,
        record_id=record_id,
        payload=dict(record),
        origin_timestamp=origin_timestamp,
        origin=origin,
        provisional=provisional,
    )


def normalize_all(
    records: list[Any],
    origin: Origin,
    collection: str,
    detected_at: datetime | None = None,
) -> list[SyncOperation]:
    """Normalize a batch of records sharing one detection time."""
    stamp = detected_at or utcnow()
    return [normalize(r, origin, collection, stamp) for r in records]
