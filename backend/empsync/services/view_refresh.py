"""
Derived Read View Refresh
Explicit, idempotent refresh of the employment overview

- PostgreSQL: REFRESH MATERIALIZED VIEW CONCURRENTLY (readers never block)
- Other databases: cache table rebuilt inside one transaction
- Concurrent callers in one process share the in-flight refresh and its result
- Fails closed: any error rolls back and surfaces as ViewRefreshError
"""

import re
import threading
import time
from concurrent.futures import Future
from functools import lru_cache
from dataclasses import dataclass, asdict
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from empsync.core.config import get_settings
from empsync.core.exceptions import ViewRefreshError
from empsync.models.overview import OVERVIEW_SELECT
from empsync.worker.db import SyncDatabase, get_sync_database
from empsync.worker.tracing import LogEvents, get_logger

events = get_logger("ViewRefresh")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

OVERVIEW_COLUMNS = "employee_id, last_collected_at, endpoints_collected, change_count, last_change_at"


@dataclass
class RefreshResult:
    view_name: str
    method: str  # "materialized_view" / "table_rebuild"
    row_count: int
    refreshed_at: datetime
    elapsed_ms: int
    coalesced: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class DerivedViewRefresher:
    """
    Usage:
        refresher = DerivedViewRefresher(database)
        result = refresher.refresh()
    """

    def __init__(self, database: SyncDatabase, view_name: str = "employment_overview"):
        if not _IDENTIFIER.match(view_name):
            raise ValueError(f"Invalid view name: {view_name}")
        self.database = database
        self.view_name = view_name
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    def refresh(self) -> RefreshResult:
        """
        Refresh the view, or wait for the refresh already running.

        Raises:
            ViewRefreshError: refresh failed; the previous view contents remain
        """
        with self._lock:
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future

        if not leader:
            events.info(LogEvents.VIEW_REFRESH_COALESCED, view=self.view_name)
            result = future.result()
            return RefreshResult(**{**result.to_dict(), "coalesced": True})

        try:
            result = self._refresh()
        except SQLAlchemyError as e:
            error = ViewRefreshError(f"Refresh of {self.view_name} failed: {e}")
            events.error(LogEvents.VIEW_REFRESH_FAILED, view=self.view_name, error=str(e))
            future.set_exception(error)
            raise error from e
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight = None

    def _refresh(self) -> RefreshResult:
        started = time.monotonic()
        events.info(LogEvents.VIEW_REFRESH_START, view=self.view_name, dialect=self.database.dialect_name)

        with self.database.transaction() as db:
            if self.database.dialect_name == "postgresql":
                method = "materialized_view"
                db.execute(text(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {self.view_name}"))
            else:
                method = "table_rebuild"
                db.execute(text(f"DELETE FROM {self.view_name}"))
                db.execute(text(f"INSERT INTO {self.view_name} ({OVERVIEW_COLUMNS}) {OVERVIEW_SELECT}"))
            row_count = db.execute(text(f"SELECT COUNT(*) FROM {self.view_name}")).scalar_one()

        result = RefreshResult(
            view_name=self.view_name,
            method=method,
            row_count=int(row_count),
            refreshed_at=datetime.now(UTC),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        events.info(LogEvents.VIEW_REFRESH_COMPLETE, **result.to_dict())
        return result


@lru_cache()
def get_view_refresher() -> DerivedViewRefresher:
    """One refresher per process so concurrent callers share the in-flight refresh"""
    settings = get_settings()
    return DerivedViewRefresher(get_sync_database(), settings.DERIVED_VIEW_NAME)
