"""Version recorder: one immutable ``DataVersion`` per processed operation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from orgsync.sync.models import ChangeKind, DataVersion
from orgsync.sync.state import AuditStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionInput:
    """A processed operation waiting to be versioned."""

    collection: str
    record_id: str
    snapshot: dict[str, Any]
    change_kind: ChangeKind


class VersionRecorder:
    """Compute version numbers and append versions in one batch.

    Args:
        audit: Store holding existing versions.
    """

    def __init__(self, audit: AuditStore) -> None:
        self.audit = audit

    def record(
        self, session_id: str | None, inputs: Iterable[VersionInput]
    ) -> list[DataVersion]:
        """Append a version for every input.

        Each record's number continues from the highest stored version for
        that ``(collection, record_id)``; several inputs for the same
        record in one batch get consecutive numbers in input order.

        Returns:
            The appended versions, in input order.
        """
        next_numbers: dict[tuple[str, str], int] = {}
        versions: list[DataVersion] = []

        for item in inputs:
            key = (item.collection, item.record_id)
            if key not in next_numbers:
                next_numbers[key] = (
                    self.audit.latest_version(item.collection, item.record_id)
                    + 1
                )
            versions.append(
                DataVersion(
                    collection=item.collection,
                    record_id=item.record_id,
                    version_number=next_numbers[key],
                    snapshot=dict(item.snapshot),
                    change_kind=item.change_kind,
                    session_id=session_id,
                )
            )
            next_numbers[key] += 1

        self.audit.append_versions(versions)
        if versions:
            logger.info(
                "Recorded %d data version(s) for session %s",
                len(versions),
                session_id,
            )
        return versions

    def record_one(
        self, session_id: str | None, item: VersionInput
    ) -> DataVersion:
        return self.record(session_id, [item])[0]
