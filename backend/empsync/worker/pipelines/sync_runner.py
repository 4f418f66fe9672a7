"""
Sync Runner
One batch run: provider -> snapshots -> changes -> timeline, per employee

Per employee the stages run strictly in order so change detection always
compares against the snapshot just committed. Employees are independent:
a failure is recorded on the session and the batch moves on. Only systemic
failures (storage unreachable, employee list unavailable) abort the run.
"""

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict, field
from datetime import datetime, UTC
from typing import Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from empsync.core.config import Settings
from empsync.core.exceptions import (
    ConcurrentLatestConflict,
    ErrorContext,
    SessionNotRunningError,
    StorageUnavailableError,
    SyncError,
)
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.schemas.payloads import parse_payload
from empsync.services.employes_api import EmployesClient
from empsync.worker.db import SyncDatabase
from empsync.worker.pipelines.change_detection import ChangeDetector, DetectedChange, non_duplicate
from empsync.worker.pipelines.snapshot import SnapshotStore
from empsync.worker.pipelines.sync_session import SyncSessionTracker
from empsync.worker.pipelines.timeline import TimelineBuilder
from empsync.worker.tracing import LogEvents, TracingContext, get_logger

events = get_logger("SyncRunner")

ALL_EMPLOYEES = "all"

# Storage errors that mean the database itself is gone
SYSTEMIC_DB_ERRORS = (OperationalError, InterfaceError)

SyncTarget = Union[str, Sequence[str]]


@dataclass
class SyncRunSummary:
    session_id: str
    status: str
    source_label: str
    total_records: int
    successful_records: int
    failed_records: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_session(cls, session: SyncSession) -> "SyncRunSummary":
        details = session.sync_details or {}
        return cls(
            session_id=str(session.id),
            status=SyncStatus(session.status).value,
            source_label=session.source_label,
            total_records=session.total_records,
            successful_records=session.successful_records,
            failed_records=session.failed_records,
            started_at=session.started_at,
            completed_at=session.completed_at,
            errors=list(details.get("errors", [])),
        )


class SyncRunner:
    """
    Usage:
        runner = SyncRunner(database, client, endpoints=["/employee", "/employments"])
        summary = runner.run(["1001", "1002"])
        summary = runner.run(ALL_EMPLOYEES)
    """

    def __init__(
        self,
        database: SyncDatabase,
        client: EmployesClient,
        endpoints: Sequence[str],
        max_workers: int = 1,
        store: Optional[SnapshotStore] = None,
        detector: Optional[ChangeDetector] = None,
        timeline: Optional[TimelineBuilder] = None,
        tracker: Optional[SyncSessionTracker] = None,
    ):
        self.client = client
        self.endpoints = list(endpoints)
        self.max_workers = max(1, max_workers)
        self.store = store or SnapshotStore(database)
        self.detector = detector or ChangeDetector(database)
        self.timeline = timeline or TimelineBuilder(database)
        self.tracker = tracker or SyncSessionTracker(database)
        self._cancel = threading.Event()

    @classmethod
    def from_settings(cls, settings: Settings, database: SyncDatabase, client: EmployesClient) -> "SyncRunner":
        return cls(
            database,
            client,
            endpoints=settings.sync_endpoints,
            max_workers=settings.SYNC_MAX_WORKERS,
        )

    # =========================================================================
    # Control
    # =========================================================================

    def cancel(self) -> None:
        """Stop before the next employee; the current one finishes"""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(
        self,
        target: SyncTarget = ALL_EMPLOYEES,
        session_id: Optional[UUID] = None,
        source_label: str = "manual",
    ) -> SyncRunSummary:
        """
        Process every target employee and close the session.

        Raises:
            StorageUnavailableError, TransientNetworkError, ProviderRequestError:
                systemic failure; the session is marked failed first
        """
        TracingContext.new_trace()
        if session_id is None:
            explicit = [] if target == ALL_EMPLOYEES else list(target)
            session_id = self.tracker.begin(source_label, total_records=len(explicit)).id
        TracingContext.set_sync_context(str(session_id))
        events.info(LogEvents.SYNC_RUN_START, target=target if target == ALL_EMPLOYEES else len(target))

        try:
            employee_ids = self._resolve_targets(target)
            self.tracker.set_total(session_id, len(employee_ids))
            self._process_all(session_id, employee_ids)
        except SessionNotRunningError:
            self._cancel.set()
        except SYSTEMIC_DB_ERRORS as e:
            error = StorageUnavailableError(
                f"Storage unavailable: {e}",
                context=ErrorContext(session_id=str(session_id)),
            )
            self._fail(session_id, error)
            raise error from e
        except SyncError as e:
            self._fail(session_id, e)
            raise
        except Exception as e:
            self._fail(session_id, SyncError(f"{type(e).__name__}: {e}", ErrorContext(session_id=str(session_id))))
            raise

        return self._finish(session_id)

    # =========================================================================
    # Batch
    # =========================================================================

    def _resolve_targets(self, target: SyncTarget) -> list[str]:
        if target == ALL_EMPLOYEES:
            return self.client.list_employee_ids()
        seen = dict.fromkeys(str(e) for e in target)
        return list(seen)

    def _process_all(self, session_id: UUID, employee_ids: list[str]) -> None:
        if self.max_workers == 1:
            for employee_id in employee_ids:
                if self.cancelled:
                    break
                self._process_one(session_id, employee_id)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="empsync-sync") as pool:
            futures = [
                pool.submit(contextvars.copy_context().run, self._process_one_if_active, session_id, employee_id)
                for employee_id in employee_ids
            ]
            first_error: Optional[BaseException] = None
            for future in futures:
                try:
                    future.result()
                except BaseException as e:
                    if first_error is None:
                        first_error = e
                        # stop the remaining employees, then surface the error
                        self._cancel.set()
            if first_error is not None:
                raise first_error

    def _process_one_if_active(self, session_id: UUID, employee_id: str) -> None:
        if self.cancelled:
            return
        self._process_one(session_id, employee_id)

    def _process_one(self, session_id: UUID, employee_id: str) -> None:
        TracingContext.set_sync_context(str(session_id), employee_id)
        events.debug(LogEvents.EMPLOYEE_SYNC_START, employee_id=employee_id)
        try:
            changes = self.sync_employee(employee_id, session_id)
        except SYSTEMIC_DB_ERRORS:
            raise
        except SyncError as e:
            events.warning(LogEvents.EMPLOYEE_SYNC_FAILED, employee_id=employee_id, **e.to_dict())
            self.tracker.record_result(session_id, False, employee_id=employee_id, error=e.to_dict())
        except SQLAlchemyError as e:
            events.error(LogEvents.EMPLOYEE_SYNC_FAILED, exc_info=True, employee_id=employee_id, error=str(e))
            self.tracker.record_result(
                session_id, False, employee_id=employee_id,
                error={"error": type(e).__name__, "message": str(e)},
            )
        else:
            events.info(
                LogEvents.EMPLOYEE_SYNC_SUCCESS,
                employee_id=employee_id,
                changes=len(non_duplicate(changes)),
            )
            self.tracker.record_result(session_id, True, employee_id=employee_id)
        finally:
            TracingContext.set_employee(None)

    # =========================================================================
    # One employee
    # =========================================================================

    def sync_employee(self, employee_id: str, session_id: Optional[UUID] = None) -> list[DetectedChange]:
        """
        fetch -> validate -> ingest + detect -> timeline, strictly in that order.

        Every payload is validated before anything is stored, so a malformed
        endpoint leaves no snapshot of this run behind. Each stored snapshot
        is compared right away; it never becomes the baseline of a later run
        without its own changes recorded.
        """
        payloads = {endpoint: self.client.fetch(employee_id, endpoint) for endpoint in self.endpoints}
        for endpoint, payload in payloads.items():
            parse_payload(endpoint, payload, employee_id=employee_id)

        collected_at = datetime.now(UTC)
        changes = []
        for endpoint, payload in payloads.items():
            self._ingest(employee_id, endpoint, payload, collected_at, session_id)
            changes.extend(self.detector.detect_changes(employee_id, endpoint))

        self.timeline.apply_incremental(employee_id, non_duplicate(changes))
        return changes

    def _ingest(self, employee_id, endpoint, payload, collected_at, session_id) -> None:
        try:
            self.store.ingest(employee_id, endpoint, payload, collected_at, sync_session_id=session_id)
        except ConcurrentLatestConflict:
            events.warning(LogEvents.LATEST_CONFLICT_RETRY, employee_id=employee_id, endpoint=endpoint)
            self.store.ingest(employee_id, endpoint, payload, datetime.now(UTC), sync_session_id=session_id)

    # =========================================================================
    # Session end
    # =========================================================================

    def _finish(self, session_id: UUID) -> SyncRunSummary:
        try:
            if self.cancelled:
                session = self.tracker.cancel(session_id)
                events.info(LogEvents.SYNC_RUN_CANCELLED)
            else:
                session = self.tracker.complete(session_id)
        except SessionNotRunningError:
            # closed from outside (e.g. cancelled through the API)
            session = self.tracker.get(session_id)

        summary = SyncRunSummary.from_session(session)
        events.info(
            LogEvents.SYNC_RUN_COMPLETE,
            status=summary.status,
            successful=summary.successful_records,
            failed=summary.failed_records,
            total=summary.total_records,
        )
        return summary

    def _fail(self, session_id: UUID, error: SyncError) -> None:
        events.error(LogEvents.SYNC_RUN_FAILED, **error.to_dict())
        try:
            self.tracker.fail(session_id, error.to_dict())
        except (SQLAlchemyError, SessionNotRunningError) as e:
            events.error(LogEvents.SYNC_RUN_FAILED, reason="could not mark session failed", error=str(e))
