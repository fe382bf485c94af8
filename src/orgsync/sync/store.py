"""Local store contract and the bundled implementations.

The sync core only talks to the platform's data through ``LocalStore``:
a collection-scoped, org-unit-scoped CRUD interface.  It never reaches
around it, so the platform's authorization scoping still applies.

- ``InMemoryLocalStore``: dict-backed, thread-safe; used by tests and
  embedded callers.
- ``JsonLocalStore``: the same, persisted to one JSON file after every
  write using ``atomic_write_json``.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from .normalizer import parse_timestamp
from .state import atomic_write_json


class LocalStore(Protocol):
    """Collection-scoped CRUD interface the sync core depends on."""

    def list(
        self,
        collection: str,
        org_unit: str,
        since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Rows of *collection* owned by *org_unit*.

        With *since*, only rows whose ``updated_at`` is at-or-after it.
        """
        ...  # pragma: no cover

    def get(
        self, collection: str, org_unit: str, record_id: str
    ) -> dict[str, Any] | None:
        """The row with ``id == record_id``, or ``None``."""
        ...  # pragma: no cover

    def insert(
        self, collection: str, org_unit: str, record: dict[str, Any]
    ) -> dict[str, Any]:
        """Insert a new row.  Raises ``ValueError`` if the id exists."""
        ...  # pragma: no cover

    def upsert(
        self, collection: str, org_unit: str, record: dict[str, Any]
    ) -> dict[str, Any]:
        """Insert or fully replace the row with ``record["id"]``."""
        ...  # pragma: no cover

    def delete(
        self, collection: str, org_unit: str, record_id: str
    ) -> bool:
        """Delete a row; returns ``False`` if it did not exist."""
        ...  # pragma: no cover


class InMemoryLocalStore:
    """Thread-safe dict-backed ``LocalStore``.

    Args:
        rows: Optional seed data as
            ``{(collection, org_unit): [row, ...]}``.
    """

    def __init__(
        self,
        rows: dict[tuple[str, str], list[dict[str, Any]]] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._tables: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        for (collection, org_unit), seed in (rows or {}).items():
            for row in seed:
                self._table(collection, org_unit)[str(row["id"])] = dict(row)

    def _table(
        self, collection: str, org_unit: str
    ) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault((collection, org_unit), {})

    def list(
        self,
        collection: str,
        org_unit: str,
        since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [dict(r) for r in self._table(collection, org_unit).values()]
        if since is None:
            return rows
        result = []
        for row in rows:
            ts = parse_timestamp(row.get("updated_at"))
            if ts is not None and ts >= since:
                result.append(row)
        return result

    def get(
        self, collection: str, org_unit: str, record_id: str
    ) -> dict[str, Any] | None:
        with self._lock:
            row = self._table(collection, org_unit).get(record_id)
            return dict(row) if row is not None else None

    def insert(
        self, collection: str, org_unit: str, record: dict[str, Any]
    ) -> dict[str, Any]:
        record_id = _require_id(record)
        with self._lock:
            table = self._table(collection, org_unit)
            if record_id in table:
                raise ValueError(
                    f"Record '{record_id}' already exists in {collection}"
                )
            table[record_id] = dict(record)
            self._changed()
        return dict(record)

    def upsert(
        self, collection: str, org_unit: str, record: dict[str, Any]
    ) -> dict[str, Any]:
        record_id = _require_id(record)
        with self._lock:
            self._table(collection, org_unit)[record_id] = dict(record)
            self._changed()
        return dict(record)

    def delete(
        self, collection: str, org_unit: str, record_id: str
    ) -> bool:
        with self._lock:
            removed = (
                self._table(collection, org_unit).pop(record_id, None)
                is not None
            )
            if removed:
                self._changed()
        return removed

    def _changed(self) -> None:
        """Hook called under the lock after every successful write."""


class JsonLocalStore(InMemoryLocalStore):
    """``InMemoryLocalStore`` persisted to a single JSON file.

    File layout: ``{"<collection>": {"<org_unit>": {"<id>": row}}}``.
    Row values must be JSON-serialisable.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        if path.exists():
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
            for collection, units in data.items():
                for org_unit, rows in units.items():
                    self._tables[(collection, org_unit)] = rows

    def _changed(self) -> None:
        data: dict[str, dict[str, Any]] = {}
        for (collection, org_unit), rows in self._tables.items():
            data.setdefault(collection, {})[org_unit] = rows
        atomic_write_json(self._path, data)


def _require_id(record: dict[str, Any]) -> str:
    record_id = record.get("id")
    if record_id is None or not str(record_id).strip():
        raise ValueError("Record has no 'id'")
    return str(record_id)
