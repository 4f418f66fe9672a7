"""
Sync Session Tracker
Counts, status and errors of one batch run
"""

import logging
import threading
from datetime import datetime, UTC, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update

from empsync.core.exceptions import ErrorContext, SessionNotRunningError
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.worker.db import SyncDatabase

logger = logging.getLogger(__name__)

# Keep session rows bounded on very bad runs
MAX_RECORDED_ERRORS = 500


class SyncSessionTracker:
    """
    Owns employes_sync_sessions.

    Lifecycle: running -> completed | completed_with_errors | failed | cancelled.
    Counters only move while the session is running and are incremented in
    SQL, so concurrent workers never lose an update.
    """

    def __init__(self, database: SyncDatabase):
        self.database = database
        self._lock = threading.Lock()

    def begin(self, source_label: str, total_records: int = 0, details: Optional[dict] = None) -> SyncSession:
        session = SyncSession(
            source_label=source_label,
            status=SyncStatus.RUNNING,
            started_at=datetime.now(UTC),
            total_records=total_records,
            successful_records=0,
            failed_records=0,
            sync_details={"errors": [], **(details or {})},
        )
        with self.database.transaction() as db:
            db.add(session)
        logger.info(f"Sync session {session.id} started ({source_label}, {total_records} records)")
        return session

    def set_total(self, session_id: UUID, total_records: int) -> None:
        """Total becomes known after discovery when syncing all employees"""
        with self._lock, self.database.transaction() as db:
            result = db.execute(
                update(SyncSession)
                .where(SyncSession.id == session_id, SyncSession.status == SyncStatus.RUNNING)
                .values(total_records=total_records)
            )
            if result.rowcount == 0:
                raise self._not_running(session_id)

    def record_result(
        self,
        session_id: UUID,
        success: bool,
        employee_id: Optional[str] = None,
        error: Optional[dict] = None,
    ) -> None:
        """
        Count one processed record.

        Raises:
            SessionNotRunningError: session already reached a terminal state
        """
        counter = SyncSession.successful_records if success else SyncSession.failed_records

        with self._lock, self.database.transaction() as db:
            session = db.execute(
                select(SyncSession).where(SyncSession.id == session_id).with_for_update()
            ).scalar_one_or_none()
            if session is None or session.status != SyncStatus.RUNNING:
                raise self._not_running(session_id)

            db.execute(
                update(SyncSession)
                .where(SyncSession.id == session_id)
                .values({counter.key: counter + 1})
                .execution_options(synchronize_session=False)
            )

            if not success:
                details = dict(session.sync_details or {})
                errors = list(details.get("errors", []))
                if len(errors) < MAX_RECORDED_ERRORS:
                    errors.append({
                        "employee_id": employee_id,
                        "at": datetime.now(UTC).isoformat(),
                        **(error or {}),
                    })
                details["errors"] = errors
                session.sync_details = details

    def complete(self, session_id: UUID) -> SyncSession:
        """completed when nothing failed, completed_with_errors otherwise"""
        def status_for(session: SyncSession) -> SyncStatus:
            if session.failed_records:
                return SyncStatus.COMPLETED_WITH_ERRORS
            return SyncStatus.COMPLETED

        return self._finish(session_id, status_for)

    def fail(self, session_id: UUID, error: Optional[dict] = None) -> SyncSession:
        """A systemic error aborted the batch"""
        return self._finish(session_id, lambda _: SyncStatus.FAILED, {"failure": error or {}})

    def cancel(self, session_id: UUID) -> SyncSession:
        return self._finish(session_id, lambda _: SyncStatus.CANCELLED, {"cancelled": True})

    def get(self, session_id: UUID) -> Optional[SyncSession]:
        with self.database.session() as db:
            return db.get(SyncSession, session_id)

    def expire_stale(self, older_than: timedelta) -> list[UUID]:
        """Fail running sessions whose worker died without closing them"""
        cutoff = datetime.now(UTC) - older_than
        with self.database.session() as db:
            stale = db.execute(
                select(SyncSession.id).where(
                    SyncSession.status == SyncStatus.RUNNING,
                    SyncSession.started_at < cutoff,
                )
            ).scalars().all()

        expired = []
        for session_id in stale:
            try:
                self.fail(session_id, {"error": "StaleSession", "message": f"Still running after {older_than}"})
            except SessionNotRunningError:
                # finished between the scan and the update
                continue
            expired.append(session_id)
        return expired

    def _finish(self, session_id: UUID, status_for, extra_details: Optional[dict] = None) -> SyncSession:
        with self._lock, self.database.transaction() as db:
            session = db.execute(
                select(SyncSession).where(SyncSession.id == session_id).with_for_update()
            ).scalar_one_or_none()
            if session is None or session.status != SyncStatus.RUNNING:
                raise self._not_running(session_id)

            session.status = status_for(session)
            session.completed_at = datetime.now(UTC)
            if extra_details:
                session.sync_details = {**(session.sync_details or {}), **extra_details}
            db.flush()
            db.refresh(session)

        logger.info(
            f"Sync session {session_id} {session.status.value}: "
            f"{session.successful_records} ok, {session.failed_records} failed "
            f"of {session.total_records}"
        )
        return session

    @staticmethod
    def _not_running(session_id: UUID) -> SessionNotRunningError:
        return SessionNotRunningError(
            f"Sync session {session_id} is not running",
            context=ErrorContext(session_id=str(session_id)),
        )
