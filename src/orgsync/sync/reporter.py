"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync sessions:

- ``format_session_report`` -- full post-sync summary.
- ``format_conflict`` -- one held conflict, field by field.
- ``result_to_json`` -- the session result as a plain dict.
- ``report_to_json`` -- the result plus per-operation outcomes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SessionResult, SyncConflict

from .models import Origin, typed_view
from .resolver import field_differences

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_session_report(result: SessionResult) -> str:
    """Format a session result as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        result: The finished session's result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(
        f"Sync session {result.session_id} for '{result.connector_id}': "
        f"{result.status.value}"
    )
    lines.append(f"Started: {result.started_at.isoformat()}")
    if result.ended_at:
        lines.append(f"Ended: {result.ended_at.isoformat()}")
    lines.append("")

    lines.append(
        f"{result.operations_processed} applied, "
        f"{result.conflicts_detected} conflicts, "
        f"{len(result.errors)} errors"
    )
    lines.append("")

    pushed = [o for o in result.applied if o.origin is Origin.LOCAL]
    pulled = [o for o in result.applied if o.origin is Origin.REMOTE]

    if pushed:
        lines.append("Pushed to remote:")
        for o in pushed:
            lines.append(f"  [{o.kind.value}] {o.collection}/{o.record_id}")
        lines.append("")

    if pulled:
        lines.append("Pulled to local:")
        for o in pulled:
            lines.append(f"  [{o.kind.value}] {o.collection}/{o.record_id}")
        lines.append("")

    if result.conflicts:
        lines.append("Conflicts (held for review):")
        for o in result.conflicts:
            lines.append(
                f"  {o.collection}/{o.record_id} ({o.origin.value} change)"
            )
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for message in result.errors:
            lines.append(f"  {message}")
        lines.append("")

    if result.cancelled:
        lines.append(f"Cancelled: {len(result.cancelled)} operations")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflict(conflict: SyncConflict) -> str:
    """Format a single conflict for review.

    Args:
        conflict: The held conflict.

    Returns:
        Multi-line string listing the differing fields.
    """
    lines: list[str] = []
    title = _title(conflict.collection, conflict.source_snapshot)
    heading = f"Conflict {conflict.id}: {conflict.collection}/{conflict.record_id}"
    if title:
        heading += f" ({title})"
    lines.append(heading)
    lines.append(
        f"Kind: {conflict.conflict_kind.value}, "
        f"{conflict.origin.value} change vs {conflict.origin.opposite.value} copy"
    )
    lines.append(f"Detected: {conflict.detected_at.isoformat()}")
    if conflict.resolved:
        lines.append(f"Resolved: {conflict.resolution}")
    lines.append("")

    diffs = field_differences(conflict)
    if not diffs:
        lines.append("(no field differences)")
    for name, source_value, target_value in diffs:
        lines.append(f"  {name}:")
        lines.append(f"    {conflict.origin.value}: {source_value!r}")
        lines.append(
            f"    {conflict.origin.opposite.value}: {target_value!r}"
        )

    return "\n".join(lines).rstrip()


def _title(collection: str, payload: dict) -> str | None:
    view = typed_view(collection, payload)
    return getattr(view, "title", None)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SessionResult) -> dict:
    """Convert a session result to the caller-facing dict.

    Args:
        result: The session result.

    Returns:
        Dict with ``success``, counters, errors, session id, status and
        timestamps.
    """
    return {
        "success": result.success,
        "operations_processed": result.operations_processed,
        "conflicts_detected": result.conflicts_detected,
        "errors": list(result.errors),
        "session_id": result.session_id,
        "connector_id": result.connector_id,
        "status": result.status.value,
        "started_at": result.started_at.isoformat(),
        "ended_at": result.ended_at.isoformat() if result.ended_at else None,
    }


def report_to_json(result: SessionResult) -> dict:
    """``result_to_json`` plus counts and per-operation outcomes.

    Args:
        result: The session result.

    Returns:
        Dict suitable for JSON serialisation.
    """
    outcomes = []
    for o in result.outcomes:
        entry: dict = {
            "operation_id": o.operation_id,
            "collection": o.collection,
            "record_id": o.record_id,
            "origin": o.origin.value,
            "kind": o.kind.value,
            "outcome": o.outcome.value,
        }
        if o.error:
            entry["error"] = o.error
        outcomes.append(entry)

    data = result_to_json(result)
    data["counts"] = {
        "total": len(result.outcomes),
        "applied": len(result.applied),
        "conflicts": len(result.conflicts),
        "failed": len(result.failed),
        "cancelled": len(result.cancelled),
    }
    data["outcomes"] = outcomes
    return data
