"""
Change Detection Pipeline
Field-level comparison of the two most recent snapshots per (employee, endpoint)

compare_snapshots() is a pure function of the two snapshots: running it twice
on the same pair yields identical records. ChangeDetector persists the
result once per snapshot pair.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select

from empsync.core.dates import as_utc
from empsync.models.change import BusinessImpact, ChangeRecord, ChangeType
from empsync.models.snapshot import RawSnapshot
from empsync.schemas.payloads import (
    ENDPOINT_EMPLOYEE,
    EmployeePayload,
    EmploymentsPayload,
    parse_payload,
)
from empsync.worker.db import SyncDatabase
from empsync.worker.pipelines.snapshot import latest_snapshot, previous_snapshot
from empsync.worker.tracing import LogEvents, get_logger

logger = logging.getLogger(__name__)
events = get_logger("ChangeDetector")

# Numeric values closer than this are considered equal (cents)
NUMERIC_TOLERANCE = 0.01

EMPLOYEE_FIELDS = (
    "first_name", "surname", "email", "status", "department", "position",
    "location", "start_date", "end_date", "hours_per_week",
)

FIELD_IMPACT = {
    "hourly_wage": BusinessImpact.SALARY,
    "monthly_wage": BusinessImpact.SALARY,
    "yearly_wage": BusinessImpact.SALARY,
    "scale": BusinessImpact.SALARY,
    "trede": BusinessImpact.SALARY,
    "hours_per_week": BusinessImpact.HOURS,
    "days_per_week": BusinessImpact.HOURS,
    "contract_type": BusinessImpact.CONTRACT,
    "contract_start_date": BusinessImpact.CONTRACT,
    "end_date": BusinessImpact.CONTRACT,
    "start_date": BusinessImpact.CONTRACT,
}


@dataclass(frozen=True)
class TrackedValue:
    value: Any
    effective_date: Optional[date] = None


@dataclass(frozen=True)
class DetectedChange:
    """One field comparison between two snapshots"""
    employee_id: str
    endpoint: str
    field_name: str
    change_type: Optional[ChangeType]
    old_value: Any
    new_value: Any
    effective_date: date
    detected_at: datetime
    is_duplicate: bool
    business_impact: Optional[BusinessImpact]
    prev_snapshot_id: Optional[UUID]
    curr_snapshot_id: UUID

    def to_dict(self) -> dict:
        return asdict(self)

    def to_model(self) -> ChangeRecord:
        return ChangeRecord(**self.to_dict())


# =============================================================================
# Field projection
# =============================================================================

def _json_value(value):
    if isinstance(value, date):
        return value.isoformat()
    return value


def project_fields(endpoint: str, payload: dict) -> dict[str, TrackedValue]:
    """Tracked field values of one payload; absent fields are None"""
    parsed = parse_payload(endpoint, payload)

    if endpoint == ENDPOINT_EMPLOYEE:
        return _project_employee(parsed)
    return _project_employments(parsed)


def _project_employee(parsed: EmployeePayload) -> dict[str, TrackedValue]:
    return {name: TrackedValue(_json_value(getattr(parsed, name))) for name in EMPLOYEE_FIELDS}


def _project_employments(parsed: EmploymentsPayload) -> dict[str, TrackedValue]:
    contract = parsed.current_contract()
    salary = parsed.current_salary()
    hours = parsed.current_hours()

    def from_entry(entry, attr):
        if entry is None:
            return TrackedValue(None)
        return TrackedValue(_json_value(getattr(entry, attr)), entry.start_date)

    return {
        "contract_type": from_entry(contract, "contract_duration"),
        "contract_start_date": from_entry(contract, "start_date"),
        "end_date": from_entry(contract, "end_date"),
        "hourly_wage": from_entry(salary, "hour_wage"),
        "monthly_wage": from_entry(salary, "month_wage"),
        "yearly_wage": from_entry(salary, "yearly_wage"),
        "scale": from_entry(salary, "scale"),
        "trede": from_entry(salary, "trede"),
        "hours_per_week": from_entry(hours, "hours_per_week"),
        "days_per_week": from_entry(hours, "days_per_week"),
    }


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(old, new) -> bool:
    if old is None or new is None:
        return old is None and new is None
    if _is_number(old) and _is_number(new):
        return abs(float(old) - float(new)) < NUMERIC_TOLERANCE
    return old == new


def classify_change(old, new) -> ChangeType:
    if old is None:
        return ChangeType.CREATE
    if new is None:
        return ChangeType.REMOVE
    return ChangeType.UPDATE


# =============================================================================
# Comparison
# =============================================================================

def compare_snapshots(prev: RawSnapshot, curr: RawSnapshot) -> list[DetectedChange]:
    """
    Compare every tracked field of two snapshots of the same pair.

    Equal hashes short-circuit: all fields are reported as duplicates
    without per-field diffing.
    """
    detected_at = as_utc(curr.collected_at)
    fallback_date = detected_at.date()
    curr_fields = project_fields(curr.endpoint, curr.payload)

    def record(name, old, new, is_duplicate, effective_date):
        return DetectedChange(
            employee_id=curr.employee_id,
            endpoint=curr.endpoint,
            field_name=name,
            change_type=None if is_duplicate else classify_change(old, new),
            old_value=old,
            new_value=new,
            effective_date=effective_date or fallback_date,
            detected_at=detected_at,
            is_duplicate=is_duplicate,
            business_impact=FIELD_IMPACT.get(name, BusinessImpact.PERSONAL),
            prev_snapshot_id=prev.id,
            curr_snapshot_id=curr.id,
        )

    if prev.content_hash == curr.content_hash:
        return [
            record(name, tracked.value, tracked.value, True, tracked.effective_date)
            for name, tracked in sorted(curr_fields.items())
        ]

    prev_fields = project_fields(prev.endpoint, prev.payload)
    changes = []
    for name in sorted(curr_fields):
        old = prev_fields[name]
        new = curr_fields[name]
        if values_equal(old.value, new.value):
            changes.append(record(name, new.value, new.value, True, new.effective_date))
        else:
            changes.append(record(name, old.value, new.value, False, new.effective_date))
    return changes


class ChangeDetector:
    """
    Owns employes_changes.

    The first snapshot of a pair is a baseline: there is nothing to compare
    it with, so it produces no records.
    """

    def __init__(self, database: SyncDatabase):
        self.database = database

    def detect_changes(self, employee_id: str, endpoint: str) -> list[DetectedChange]:
        """
        Compare the latest snapshot with the one collected just before it and
        store the result. Re-running on the same pair stores nothing new and
        returns the same records.
        """
        employee_id = str(employee_id)

        with self.database.transaction() as db:
            curr = latest_snapshot(db, employee_id, endpoint)
            if curr is None:
                return []
            prev = previous_snapshot(db, curr)
            if prev is None:
                logger.debug(f"Baseline snapshot for {employee_id}{endpoint}, nothing to compare")
                return []

            changes = compare_snapshots(prev, curr)

            already_stored = db.execute(
                select(ChangeRecord.id).where(ChangeRecord.curr_snapshot_id == curr.id).limit(1)
            ).first()
            if already_stored is None:
                db.add_all([change.to_model() for change in changes])

        real = [c for c in changes if not c.is_duplicate]
        events.info(
            LogEvents.CHANGES_DETECTED,
            employee_id=employee_id,
            endpoint=endpoint,
            changes=len(real),
            duplicates=len(changes) - len(real),
        )
        return changes

    def detect_all(self, employee_id: str, endpoints: list[str]) -> list[DetectedChange]:
        changes = []
        for endpoint in endpoints:
            changes.extend(self.detect_changes(employee_id, endpoint))
        return changes


def non_duplicate(changes: list[DetectedChange]) -> list[DetectedChange]:
    return [c for c in changes if not c.is_duplicate]

