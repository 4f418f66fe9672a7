"""
Unit tests for the Sync Session Tracker
"""

from datetime import datetime, timedelta, UTC

import pytest
from sqlalchemy import update

from empsync.core.exceptions import SessionNotRunningError
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.worker.pipelines.sync_session import SyncSessionTracker


class TestSyncSessionTracker:
    @pytest.fixture(autouse=True)
    def setup_tracker(self, database):
        self.database = database
        self.tracker = SyncSessionTracker(database)

    def _age(self, session_id, hours):
        with self.database.transaction() as db:
            db.execute(
                update(SyncSession)
                .where(SyncSession.id == session_id)
                .values(started_at=datetime.now(UTC) - timedelta(hours=hours))
            )

    def test_begin_creates_running_session(self):
        session = self.tracker.begin("manual", total_records=3)

        stored = self.tracker.get(session.id)
        assert stored.status == SyncStatus.RUNNING
        assert stored.total_records == 3
        assert stored.successful_records == stored.failed_records == 0
        assert stored.sync_details["errors"] == []

    def test_counts_and_errors(self):
        session = self.tracker.begin("manual")
        self.tracker.set_total(session.id, 3)

        self.tracker.record_result(session.id, True, employee_id="1")
        self.tracker.record_result(session.id, True, employee_id="2")
        self.tracker.record_result(
            session.id, False, employee_id="3", error={"error": "MalformedPayloadError", "message": "bad"}
        )

        stored = self.tracker.get(session.id)
        assert (stored.total_records, stored.successful_records, stored.failed_records) == (3, 2, 1)
        (error,) = stored.sync_details["errors"]
        assert error["employee_id"] == "3"
        assert error["error"] == "MalformedPayloadError"

    def test_complete_without_failures(self):
        session = self.tracker.begin("manual", total_records=1)
        self.tracker.record_result(session.id, True, employee_id="1")

        finished = self.tracker.complete(session.id)

        assert finished.status == SyncStatus.COMPLETED
        assert finished.completed_at is not None

    def test_complete_with_failures(self):
        session = self.tracker.begin("manual", total_records=2)
        self.tracker.record_result(session.id, True, employee_id="1")
        self.tracker.record_result(session.id, False, employee_id="2")

        assert self.tracker.complete(session.id).status == SyncStatus.COMPLETED_WITH_ERRORS

    def test_terminal_session_rejects_updates(self):
        session = self.tracker.begin("manual", total_records=1)
        self.tracker.complete(session.id)

        with pytest.raises(SessionNotRunningError):
            self.tracker.record_result(session.id, True, employee_id="1")
        with pytest.raises(SessionNotRunningError):
            self.tracker.set_total(session.id, 10)
        with pytest.raises(SessionNotRunningError):
            self.tracker.cancel(session.id)

        assert self.tracker.get(session.id).status == SyncStatus.COMPLETED

    def test_fail_records_failure(self):
        session = self.tracker.begin("scheduled")

        failed = self.tracker.fail(session.id, {"error": "StorageUnavailableError", "message": "db down"})

        assert failed.status == SyncStatus.FAILED
        assert failed.sync_details["failure"]["error"] == "StorageUnavailableError"

    def test_cancel(self):
        session = self.tracker.begin("manual")

        cancelled = self.tracker.cancel(session.id)

        assert cancelled.status == SyncStatus.CANCELLED
        assert cancelled.sync_details["cancelled"] is True

    def test_expire_stale_only_touches_old_running_sessions(self):
        stale = self.tracker.begin("scheduled")
        fresh = self.tracker.begin("manual")
        finished = self.tracker.begin("manual")
        self.tracker.complete(finished.id)
        self._age(stale.id, 24)
        self._age(finished.id, 24)

        expired = self.tracker.expire_stale(timedelta(hours=12))

        assert expired == [stale.id]
        assert self.tracker.get(stale.id).status == SyncStatus.FAILED
        assert self.tracker.get(stale.id).sync_details["failure"]["error"] == "StaleSession"
        assert self.tracker.get(fresh.id).status == SyncStatus.RUNNING
        assert self.tracker.get(finished.id).status == SyncStatus.COMPLETED
