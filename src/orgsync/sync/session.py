"""Sync session lifecycle.

``SyncSessionManager`` is the only writer of ``SyncSession`` objects.  It
enforces the one-way state machine::

    active -> completed | failed | stopped

and owns the per-session cancellation event that ``stop()`` sets.
Counters are updated under a lock because operations report in from
worker threads.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from orgsync.errors import SessionStateError
from orgsync.sync.models import (
    OperationOutcome,
    SessionResult,
    SessionStatus,
    SyncDirection,
    SyncSession,
    utcnow,
)
from orgsync.sync.state import AuditStore

logger = logging.getLogger(__name__)


class SyncSessionManager:
    """Create, update and finalize sync sessions.

    Args:
        audit: Store sessions are persisted to.
    """

    def __init__(self, audit: AuditStore) -> None:
        self.audit = audit
        self._lock = threading.RLock()
        self._live: dict[str, SyncSession] = {}
        self._cancel: dict[str, threading.Event] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        connector_id: str,
        org_unit: str,
        direction: SyncDirection,
    ) -> SyncSession:
        """Create and persist a new active session."""
        session = SyncSession(
            connector_id=connector_id,
            org_unit=org_unit,
            direction=direction,
        )
        with self._lock:
            self._live[session.id] = session
            self._cancel[session.id] = threading.Event()
            self.audit.save_session(session)
        logger.info(
            "Started sync session %s (connector=%s, org_unit=%s, direction=%s)",
            session.id,
            connector_id,
            org_unit,
            direction.value,
        )
        return session.model_copy(deep=True)

    def complete(self, session_id: str) -> SyncSession:
        return self._finish(session_id, SessionStatus.COMPLETED)

    def fail(self, session_id: str, error: str) -> SyncSession:
        return self._finish(session_id, SessionStatus.FAILED, error)

    def mark_stopped(self, session_id: str) -> SyncSession:
        return self._finish(session_id, SessionStatus.STOPPED)

    def stop(self, session_id: str) -> bool:
        """Request cancellation of a session.

        A running session stops before its next operation.  A session that
        is active in the store but not running here (for example after a
        crash) is marked stopped directly.

        Returns:
            ``True`` if the session was active.
        """
        with self._lock:
            event = self._cancel.get(session_id)
            if event is not None:
                event.set()
                logger.info("Stop requested for session %s", session_id)
                return True

            stored = self.audit.get_session(session_id)
            if stored is None or stored.status.is_terminal:
                return False
            stored.status = SessionStatus.STOPPED
            stored.ended_at = utcnow()
            self.audit.save_session(stored)
        logger.info("Marked orphaned session %s stopped", session_id)
        return True

    def cancel_event(self, session_id: str) -> threading.Event:
        """The event ``stop()`` sets for a running session."""
        with self._lock:
            return self._cancel[session_id]

    def _finish(
        self,
        session_id: str,
        status: SessionStatus,
        error: str | None = None,
    ) -> SyncSession:
        with self._lock:
            session = self._require_live(session_id)
            if error:
                session.errors.append(error)
            session.status = status
            session.ended_at = utcnow()
            self.audit.save_session(session)
            del self._live[session_id]
            del self._cancel[session_id]

        log = logger.warning if status is not SessionStatus.COMPLETED else logger.info
        log(
            "Sync session %s %s: %d processed, %d conflict(s), %d error(s)",
            session_id,
            status.value,
            session.operations_processed,
            session.conflicts_detected,
            len(session.errors),
        )
        return session.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def record_processed(self, session_id: str) -> None:
        with self._lock:
            self._require_live(session_id).operations_processed += 1

    def record_conflict(self, session_id: str) -> None:
        with self._lock:
            self._require_live(session_id).conflicts_detected += 1

    def record_error(self, session_id: str, message: str) -> None:
        with self._lock:
            self._require_live(session_id).errors.append(message)

    def _require_live(self, session_id: str) -> SyncSession:
        session = self._live.get(session_id)
        if session is None:
            raise SessionStateError(
                f"Session '{session_id}' is not active"
            )
        return session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> SyncSession | None:
        """Read-only copy of a live or stored session."""
        with self._lock:
            live = self._live.get(session_id)
            if live is not None:
                return live.model_copy(deep=True)
        return self.audit.get_session(session_id)

    def list_active(self, org_unit: str | None = None) -> list[SyncSession]:
        return self.audit.list_sessions(
            org_unit=org_unit, status=SessionStatus.ACTIVE
        )

    def last_checkpoint(
        self, connector_id: str, org_unit: str
    ) -> datetime | None:
        """``ended_at`` of the latest completed session, if any."""
        completed = [
            s.ended_at
            for s in self.audit.list_sessions(
                connector_id=connector_id,
                org_unit=org_unit,
                status=SessionStatus.COMPLETED,
            )
            if s.ended_at is not None
        ]
        return max(completed, default=None)

    def result(
        self,
        session: SyncSession,
        outcomes: list[OperationOutcome] | None = None,
    ) -> SessionResult:
        """Aggregate result for a finished session."""
        return SessionResult(
            session_id=session.id,
            connector_id=session.connector_id,
            status=session.status,
            success=(
                session.status is SessionStatus.COMPLETED
                and not session.errors
            ),
            operations_processed=session.operations_processed,
            conflicts_detected=session.conflicts_detected,
            errors=list(session.errors),
            started_at=session.started_at,
            ended_at=session.ended_at,
            outcomes=outcomes or [],
        )
