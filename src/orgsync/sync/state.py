"""Audit persistence layer: sessions, conflicts and data versions.

Key design choices:

* **Atomic writes** -- ``atomic_write_json()`` writes to a temp file then
  calls ``os.replace()`` so readers never see partial data.
* **Append-only versions** -- the store exposes no way to update or delete
  a ``DataVersion`` once appended.
* **Computed version numbers** -- ``latest_version()`` is what the version
  recorder increments from; it is never hardcoded.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from .models import DataVersion, SessionStatus, SyncConflict, SyncSession


def atomic_write_json(path: Path, data: Any) -> None:
    """Persist *data* as JSON to *path* atomically.

    Writes to a temporary file in the same directory then atomically
    replaces the target.  Creates the parent directory if needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class AuditStore(Protocol):
    """Storage for session records, held conflicts and data versions."""

    def save_session(self, session: SyncSession) -> None: ...

    def get_session(self, session_id: str) -> SyncSession | None: ...

    def list_sessions(
        self,
        connector_id: str | None = None,
        org_unit: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[SyncSession]: ...

    def save_conflict(self, conflict: SyncConflict) -> None: ...

    def get_conflict(self, conflict_id: str) -> SyncConflict | None: ...

    def list_conflicts(
        self,
        org_unit: str | None = None,
        resolved: bool | None = None,
    ) -> list[SyncConflict]: ...

    def latest_version(self, collection: str, record_id: str) -> int: ...

    def append_versions(self, versions: Iterable[DataVersion]) -> None: ...

    def list_versions(
        self, collection: str, record_id: str
    ) -> list[DataVersion]: ...


class InMemoryAuditStore:
    """Thread-safe in-process ``AuditStore``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, SyncSession] = {}
        self._conflicts: dict[str, SyncConflict] = {}
        self._versions: list[DataVersion] = []

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def save_session(self, session: SyncSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
            self._changed()

    def get_session(self, session_id: str) -> SyncSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def list_sessions(
        self,
        connector_id: str | None = None,
        org_unit: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[SyncSession]:
        """Matching sessions, most recently started first."""
        with self._lock:
            sessions = [
                s.model_copy(deep=True)
                for s in self._sessions.values()
                if (connector_id is None or s.connector_id == connector_id)
                and (org_unit is None or s.org_unit == org_unit)
                and (status is None or s.status == status)
            ]
        return sorted(sessions, key=lambda s: s.started_at, reverse=True)

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def save_conflict(self, conflict: SyncConflict) -> None:
        with self._lock:
            self._conflicts[conflict.id] = conflict
            self._changed()

    def get_conflict(self, conflict_id: str) -> SyncConflict | None:
        with self._lock:
            return self._conflicts.get(conflict_id)

    def list_conflicts(
        self,
        org_unit: str | None = None,
        resolved: bool | None = None,
    ) -> list[SyncConflict]:
        """Matching conflicts, most recently detected first."""
        with self._lock:
            conflicts = [
                c
                for c in self._conflicts.values()
                if (org_unit is None or c.org_unit == org_unit)
                and (resolved is None or c.resolved == resolved)
            ]
        return sorted(conflicts, key=lambda c: c.detected_at, reverse=True)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def latest_version(self, collection: str, record_id: str) -> int:
        """Highest version number for the record, 0 if none exists."""
        with self._lock:
            return max(
                (
                    v.version_number
                    for v in self._versions
                    if v.collection == collection
                    and v.record_id == record_id
                ),
                default=0,
            )

    def append_versions(self, versions: Iterable[DataVersion]) -> None:
        batch = list(versions)
        if not batch:
            return
        with self._lock:
            self._versions.extend(batch)
            self._changed()

    def list_versions(
        self, collection: str, record_id: str
    ) -> list[DataVersion]:
        """Versions of one record in ascending version order."""
        with self._lock:
            versions = [
                v
                for v in self._versions
                if v.collection == collection and v.record_id == record_id
            ]
        return sorted(versions, key=lambda v: v.version_number)

    def _changed(self) -> None:
        """Hook called under the lock after every successful write."""


class JsonAuditStore(InMemoryAuditStore):
    """``InMemoryAuditStore`` persisted to ``<state_dir>/audit.json``.

    Args:
        state_dir: Directory where the audit file is stored (typically
            ``.orgsync/``).
    """

    FILENAME = "audit.json"

    def __init__(self, state_dir: Path) -> None:
        super().__init__()
        self._path = state_dir / self.FILENAME
        if not self._path.exists():
            return
        with open(self._path, encoding="utf-8") as fh:
            data = json.load(fh)
        for raw in data.get("sessions", []):
            session = SyncSession.model_validate(raw)
            self._sessions[session.id] = session
        for raw in data.get("conflicts", []):
            conflict = SyncConflict.model_validate(raw)
            self._conflicts[conflict.id] = conflict
        self._versions = [
            DataVersion.model_validate(raw)
            for raw in data.get("versions", [])
        ]

    @property
    def path(self) -> Path:
        return self._path

    def _changed(self) -> None:
        atomic_write_json(
            self._path,
            {
                "version": 1,
                "sessions": [
                    s.model_dump(mode="json")
                    for s in self._sessions.values()
                ],
                "conflicts": [
                    c.model_dump(mode="json")
                    for c in self._conflicts.values()
                ],
                "versions": [
                    v.model_dump(mode="json") for v in self._versions
                ],
            },
        )
