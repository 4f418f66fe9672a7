"""
Sync Runner tests

Batch runs against a fake provider and the in-memory database
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from empsync.core.exceptions import (
    ConcurrentLatestConflict,
    ProviderRequestError,
    StorageUnavailableError,
    TransientNetworkError,
)
from empsync.models.change import ChangeRecord
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.models.timeline import TimelineEventType, TimelineSource
from empsync.schemas.payloads import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from empsync.worker.pipelines.snapshot import SnapshotStore
from empsync.worker.pipelines.sync_runner import ALL_EMPLOYEES, SyncRunner
from empsync.worker.pipelines.sync_session import SyncSessionTracker
from empsync.worker.pipelines.timeline import TimelineBuilder
from empsync.worker.tracing import TracingContext

from factories import employee_payload, employments_payload, salary

ENDPOINTS = [ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS]


class FakeEmployesClient:
    """In-memory provider; a stored exception is raised instead of returned"""

    def __init__(self, employees: dict, list_error: Exception = None):
        self.employees = employees
        self.list_error = list_error
        self.fetched = []
        self.on_fetch = None

    def list_employee_ids(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.employees)

    def fetch(self, employee_id, endpoint):
        self.fetched.append((employee_id, endpoint))
        if self.on_fetch is not None:
            self.on_fetch(employee_id, endpoint)
        value = self.employees[employee_id]
        if isinstance(value, Exception):
            raise value
        if endpoint == ENDPOINT_EMPLOYEE:
            return value["employee"]
        return value["employments"]


def provider_record(employee_id, **employments_overrides):
    return {
        "employee": employee_payload(employee_id),
        "employments": employments_payload(employee_id, **employments_overrides),
    }


class FlakyStore(SnapshotStore):
    """Loses the latest-pointer race once"""

    def __init__(self, database):
        super().__init__(database)
        self.conflicts = 0

    def ingest(self, employee_id, endpoint, payload, collected_at=None, sync_session_id=None):
        if self.conflicts == 0:
            self.conflicts += 1
            raise ConcurrentLatestConflict("lost the race")
        return super().ingest(employee_id, endpoint, payload, collected_at, sync_session_id)


class UnreachableStore(SnapshotStore):
    """Database connection gone for every write"""

    def ingest(self, employee_id, endpoint, payload, collected_at=None, sync_session_id=None):
        raise OperationalError("INSERT INTO employes_raw_snapshots", {}, Exception("server closed the connection"))


class TestSyncRunner:
    @pytest.fixture(autouse=True)
    def setup_runner(self, database):
        self.database = database
        self.tracker = SyncSessionTracker(database)

    def _runner(self, client, **kwargs):
        return SyncRunner(self.database, client, endpoints=ENDPOINTS, tracker=self.tracker, **kwargs)

    # =========================================================================
    # Batch outcome
    # =========================================================================

    def test_malformed_employee_does_not_stop_the_batch(self):
        employees = {str(i): provider_record(str(i)) for i in range(1, 11)}
        employees["5"]["employee"] = {"first_name": "no id"}
        client = FakeEmployesClient(employees)

        summary = self._runner(client).run(list(employees))

        assert summary.status == SyncStatus.COMPLETED_WITH_ERRORS.value
        assert (summary.total_records, summary.successful_records, summary.failed_records) == (10, 9, 1)
        (error,) = summary.errors
        assert error["employee_id"] == "5"
        assert error["error"] == "MalformedPayloadError"
        assert SnapshotStore(self.database).latest("5", ENDPOINT_EMPLOYEE) is None
        assert SnapshotStore(self.database).latest("6", ENDPOINT_EMPLOYEE) is not None

    def test_all_employees_uses_provider_list(self):
        client = FakeEmployesClient({"1001": provider_record("1001"), "1002": provider_record("1002")})

        summary = self._runner(client).run(ALL_EMPLOYEES, source_label="scheduled")

        assert summary.status == SyncStatus.COMPLETED.value
        assert summary.total_records == 2
        assert summary.source_label == "scheduled"
        assert {employee_id for employee_id, _ in client.fetched} == {"1001", "1002"}

    def test_duplicate_ids_are_synced_once(self):
        client = FakeEmployesClient({"1001": provider_record("1001")})

        summary = self._runner(client).run(["1001", "1001"])

        assert summary.total_records == 1
        assert len(client.fetched) == len(ENDPOINTS)

    def test_provider_rejection_is_recorded_per_employee(self):
        client = FakeEmployesClient({
            "1001": provider_record("1001"),
            "1002": ProviderRequestError("HTTP 404", status_code=404),
        })

        summary = self._runner(client).run(["1001", "1002"])

        assert summary.status == SyncStatus.COMPLETED_WITH_ERRORS.value
        assert summary.errors[0]["error"] == "ProviderRequestError"

    def test_worker_pool_records_partial_failure(self, threaded_database):
        employees = {str(i): provider_record(str(i)) for i in range(1, 11)}
        employees["5"]["employee"] = {"first_name": "no id"}
        client = FakeEmployesClient(employees)
        runner = SyncRunner(threaded_database, client, endpoints=ENDPOINTS, max_workers=4)

        summary = runner.run(list(employees))

        assert summary.status == SyncStatus.COMPLETED_WITH_ERRORS.value
        assert (summary.total_records, summary.successful_records, summary.failed_records) == (10, 9, 1)
        assert [error["employee_id"] for error in summary.errors] == ["5"]
        store = SnapshotStore(threaded_database)
        assert store.latest("5", ENDPOINT_EMPLOYEE) is None
        assert store.known_employee_ids() == sorted(str(i) for i in range(1, 11) if i != 5)

    def test_worker_pool_threads_share_the_run_trace(self, threaded_database):
        client = FakeEmployesClient({str(i): provider_record(str(i)) for i in range(1, 7)})
        traces = []
        client.on_fetch = lambda employee_id, endpoint: traces.append(TracingContext.get_trace_id())
        runner = SyncRunner(threaded_database, client, endpoints=ENDPOINTS, max_workers=3)

        runner.run([str(i) for i in range(1, 7)])

        assert len(traces) == 12
        assert len(set(traces)) == 1
        assert traces[0] != "no-trace"

    def test_storage_outage_fails_the_session(self):
        client = FakeEmployesClient({"1001": provider_record("1001"), "1002": provider_record("1002")})
        runner = self._runner(client, store=UnreachableStore(self.database))

        with pytest.raises(StorageUnavailableError):
            runner.run(["1001", "1002"])

        (session,) = self._sessions()
        assert session.status == SyncStatus.FAILED
        assert session.sync_details["failure"]["error"] == "StorageUnavailableError"
        assert session.failed_records == 0
        assert {employee_id for employee_id, _ in client.fetched} == {"1001"}

    def test_employee_list_failure_fails_the_session(self):
        client = FakeEmployesClient({}, list_error=TransientNetworkError("HTTP 503", status_code=503))
        runner = self._runner(client)

        with pytest.raises(TransientNetworkError):
            runner.run(ALL_EMPLOYEES)

        (session,) = self._sessions()
        assert session.status == SyncStatus.FAILED
        assert session.sync_details["failure"]["error"] == "TransientNetworkError"

    # =========================================================================
    # Pipeline
    # =========================================================================

    def test_second_run_records_salary_change_on_timeline(self):
        client = FakeEmployesClient({"1001": provider_record("1001")})
        runner = self._runner(client)
        runner.run(["1001"])

        client.employees["1001"] = provider_record("1001", salaries=[
            salary("2024-01-01", hour_wage=20.0, scale="6", trede=3),
            salary("2025-01-01", hour_wage=22.0, scale="6", trede=4),
        ])
        summary = runner.run(["1001"])

        assert summary.status == SyncStatus.COMPLETED.value
        timeline = TimelineBuilder(self.database).stored("1001")
        raises = [
            e for e in timeline
            if e.event_type == TimelineEventType.SALARY_CHANGE and e.field_name == "hourly_wage"
        ]
        assert len(raises) == 1
        assert raises[0].source == TimelineSource.CHANGE_RECORD
        assert raises[0].change_percentage == 10.0

    def test_malformed_endpoint_stores_nothing_and_change_survives_to_next_run(self):
        client = FakeEmployesClient({"1001": provider_record("1001")})
        runner = self._runner(client)
        runner.run(["1001"])

        moved = employee_payload("1001", department="Groep Maan")
        client.employees["1001"] = {"employee": moved, "employments": {"contracts": []}}
        second = runner.run(["1001"])

        assert second.status == SyncStatus.COMPLETED_WITH_ERRORS.value
        assert second.errors[0]["error"] == "MalformedPayloadError"
        assert len(SnapshotStore(self.database).history("1001", ENDPOINT_EMPLOYEE)) == 1

        client.employees["1001"] = {"employee": moved, "employments": employments_payload("1001")}
        third = runner.run(["1001"])

        assert third.status == SyncStatus.COMPLETED.value
        with self.database.session() as db:
            changes = db.execute(
                select(ChangeRecord).where(
                    ChangeRecord.employee_id == "1001",
                    ChangeRecord.field_name == "department",
                )
            ).scalars().all()
        assert [(c.old_value, c.new_value, c.is_duplicate) for c in changes] == [
            ("Groep Zon", "Groep Maan", False)
        ]

    def test_latest_conflict_is_retried_once(self):
        client = FakeEmployesClient({"1001": provider_record("1001")})
        store = FlakyStore(self.database)

        summary = self._runner(client, store=store).run(["1001"])

        assert store.conflicts == 1
        assert summary.successful_records == 1
        assert store.latest("1001", ENDPOINT_EMPLOYEE) is not None

    # =========================================================================
    # Cancellation
    # =========================================================================

    def test_cancel_before_run(self):
        client = FakeEmployesClient({"1001": provider_record("1001")})
        runner = self._runner(client)
        runner.cancel()

        summary = runner.run(["1001"])

        assert summary.status == SyncStatus.CANCELLED.value
        assert summary.successful_records == 0
        assert client.fetched == []

    def test_session_cancelled_elsewhere_stops_the_run(self):
        client = FakeEmployesClient({str(i): provider_record(str(i)) for i in range(1, 5)})
        session = self.tracker.begin("api", total_records=4)

        def cancel_on_second(employee_id, endpoint):
            if employee_id == "2" and endpoint == ENDPOINT_EMPLOYEE:
                self.tracker.cancel(session.id)

        client.on_fetch = cancel_on_second
        runner = self._runner(client)

        summary = runner.run(["1", "2", "3", "4"], session_id=session.id)

        assert runner.cancelled
        assert summary.status == SyncStatus.CANCELLED.value
        assert summary.successful_records == 1
        assert "3" not in {employee_id for employee_id, _ in client.fetched}

    def _sessions(self):
        with self.database.session() as db:
            return list(db.execute(select(SyncSession)).scalars().all())
