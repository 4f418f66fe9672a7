"""
Timeline Builder
Folds change records and snapshot history into ordered employment events

Events are keyed by (employee_id, event_type, event_date, field_name). When
two sources produce the same key, a change-record event beats a
snapshot-history event, and a later detection beats an earlier one. The
same precedence is used by full rebuilds and incremental merges, so both
end up with the same set.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Iterable, Iterator, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from empsync.core.dates import as_utc
from empsync.models.change import ChangeRecord
from empsync.models.timeline import (
    ContractMilestoneType,
    TimelineEvent,
    TimelineEventType,
    TimelineSource,
)
from empsync.schemas.payloads import ENDPOINT_EMPLOYMENTS, parse_payload
from empsync.worker.db import SyncDatabase
from empsync.worker.pipelines.change_detection import DetectedChange
from empsync.worker.pipelines.snapshot import latest_snapshot
from empsync.worker.tracing import LogEvents, get_logger

events = get_logger("TimelineBuilder")

CONTRACT_FIELDS = {"contract_type", "contract_start_date", "end_date"}
SALARY_FIELDS = {"hourly_wage", "monthly_wage", "yearly_wage", "scale", "trede"}
HOURS_FIELDS = {"hours_per_week", "days_per_week"}

FIELD_EVENT_TYPES = {
    "position": TimelineEventType.POSITION_CHANGE,
    "department": TimelineEventType.DEPARTMENT_CHANGE,
    "location": TimelineEventType.DEPARTMENT_CHANGE,
    "status": TimelineEventType.STATUS_CHANGE,
}

FIELD_LABELS = {
    "hourly_wage": "Hourly wage",
    "monthly_wage": "Monthly wage",
    "yearly_wage": "Yearly wage",
    "hours_per_week": "Hours per week",
    "days_per_week": "Days per week",
    "contract_type": "Contract type",
    "contract_start_date": "Contract start",
    "end_date": "Contract end",
}

_SOURCE_RANK = {
    TimelineSource.SNAPSHOT_HISTORY: 0,
    TimelineSource.CHANGE_RECORD: 1,
}


@dataclass(frozen=True)
class TimelineEntry:
    """Derived timeline event (value object; persisted as TimelineEvent)"""
    employee_id: str
    event_type: TimelineEventType
    event_date: date
    field_name: str
    description: str
    detected_at: datetime
    source: TimelineSource
    change_amount: Optional[float] = None
    change_percentage: Optional[float] = None
    contract_milestone_type: Optional[ContractMilestoneType] = None

    @property
    def key(self) -> tuple:
        return (self.employee_id, self.event_type, self.event_date, self.field_name)

    @property
    def sort_key(self) -> tuple:
        return (self.event_date, self.detected_at, self.event_type.value, self.field_name)

    @property
    def precedence(self) -> tuple:
        return (_SOURCE_RANK[self.source], self.detected_at)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_model(self) -> TimelineEvent:
        return TimelineEvent(**self.to_dict())

    @classmethod
    def from_model(cls, event: TimelineEvent) -> "TimelineEntry":
        return cls(
            employee_id=event.employee_id,
            event_type=TimelineEventType(event.event_type),
            event_date=event.event_date,
            field_name=event.field_name,
            description=event.description,
            detected_at=as_utc(event.detected_at),
            source=TimelineSource(event.source),
            change_amount=event.change_amount,
            change_percentage=event.change_percentage,
            contract_milestone_type=(
                ContractMilestoneType(event.contract_milestone_type)
                if event.contract_milestone_type else None
            ),
        )


def merge_entries(entries: Iterable[TimelineEntry]) -> list[TimelineEntry]:
    """Keep one entry per key (highest precedence wins), ordered for display"""
    winners: dict[tuple, TimelineEntry] = {}
    for entry in entries:
        current = winners.get(entry.key)
        if current is None or entry.precedence > current.precedence:
            winners[entry.key] = entry
    return sorted(winners.values(), key=lambda e: e.sort_key)


# =============================================================================
# Classification
# =============================================================================

def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compute_delta(old, new) -> tuple[Optional[float], Optional[float]]:
    """(change_amount, change_percentage); percentage omitted when old is 0"""
    if not (_is_number(old) and _is_number(new)):
        return None, None
    amount = round(float(new) - float(old), 2)
    if old == 0:
        return amount, None
    return amount, round((float(new) - float(old)) / float(old) * 100, 2)


def milestone_for(old, new) -> ContractMilestoneType:
    if old is None:
        return ContractMilestoneType.STARTED
    if new is None:
        return ContractMilestoneType.ENDED
    return ContractMilestoneType.RENEWED


def event_type_for(field_name: str) -> TimelineEventType:
    if field_name in CONTRACT_FIELDS:
        return TimelineEventType.CONTRACT_MILESTONE
    if field_name in SALARY_FIELDS:
        return TimelineEventType.SALARY_CHANGE
    if field_name in HOURS_FIELDS:
        return TimelineEventType.HOURS_CHANGE
    return FIELD_EVENT_TYPES.get(field_name, TimelineEventType.PERSONAL_DATA_CHANGE)


def _label(field_name: str) -> str:
    return FIELD_LABELS.get(field_name, field_name.replace("_", " ").capitalize())


def _describe_change(field_name, old, new, percentage) -> str:
    label = _label(field_name)
    if old is None:
        return f"{label} set to {new}"
    if new is None:
        return f"{label} removed (was {old})"
    text = f"{label} changed from {old} to {new}"
    if percentage is not None:
        text += f" ({percentage:+.1f}%)"
    return text


def entry_from_change(change: DetectedChange) -> Optional[TimelineEntry]:
    """Timeline entry for one non-duplicate change, None for duplicates"""
    if change.is_duplicate:
        return None

    event_type = event_type_for(change.field_name)
    old, new = change.old_value, change.new_value
    amount, percentage = None, None
    milestone = None

    if event_type == TimelineEventType.CONTRACT_MILESTONE:
        milestone = milestone_for(old, new)
        description = f"Contract {milestone.value}: {_describe_change(change.field_name, old, new, None)}"
    else:
        if event_type in (TimelineEventType.SALARY_CHANGE, TimelineEventType.HOURS_CHANGE):
            amount, percentage = compute_delta(old, new)
        description = _describe_change(change.field_name, old, new, percentage)

    return TimelineEntry(
        employee_id=change.employee_id,
        event_type=event_type,
        event_date=change.effective_date,
        field_name=change.field_name,
        description=description,
        detected_at=as_utc(change.detected_at),
        source=TimelineSource.CHANGE_RECORD,
        change_amount=amount,
        change_percentage=percentage,
        contract_milestone_type=milestone,
    )


def entries_from_employments(employee_id: str, payload: dict, collected_at: datetime) -> list[TimelineEntry]:
    """History events carried inside one /employments payload"""
    parsed = parse_payload(ENDPOINT_EMPLOYMENTS, payload)
    detected_at = as_utc(collected_at)
    as_of = detected_at.date()
    entries = []

    def entry(event_type, event_date, field_name, description, **extra):
        return TimelineEntry(
            employee_id=employee_id,
            event_type=event_type,
            event_date=event_date,
            field_name=field_name,
            description=description,
            detected_at=detected_at,
            source=TimelineSource.SNAPSHOT_HISTORY,
            **extra,
        )

    contracts = sorted(parsed.contracts, key=lambda c: c.start_date)
    for index, contract in enumerate(contracts):
        kind = contract.contract_duration or "unspecified"
        milestone = ContractMilestoneType.STARTED if index == 0 else ContractMilestoneType.RENEWED
        entries.append(entry(
            TimelineEventType.CONTRACT_MILESTONE, contract.start_date, "contract_type",
            f"Contract {milestone.value} ({kind})",
            contract_milestone_type=milestone,
        ))
        if contract.end_date is not None and contract.end_date <= as_of:
            entries.append(entry(
                TimelineEventType.CONTRACT_MILESTONE, contract.end_date, "end_date",
                f"Contract ended ({kind})",
                contract_milestone_type=ContractMilestoneType.ENDED,
            ))

    salaries = sorted(parsed.salary, key=lambda s: s.start_date)
    for previous, current in zip(salaries, salaries[1:]):
        for attr, field_name in (("hour_wage", "hourly_wage"), ("month_wage", "monthly_wage")):
            old, new = getattr(previous, attr), getattr(current, attr)
            if new is None:
                continue
            amount, percentage = compute_delta(old, new)
            entries.append(entry(
                TimelineEventType.SALARY_CHANGE, current.start_date, field_name,
                _describe_change(field_name, old, new, percentage),
                change_amount=amount, change_percentage=percentage,
            ))
            break

    hours = sorted(parsed.hours, key=lambda h: h.start_date)
    for previous, current in zip(hours, hours[1:]):
        if current.hours_per_week is None:
            continue
        amount, percentage = compute_delta(previous.hours_per_week, current.hours_per_week)
        entries.append(entry(
            TimelineEventType.HOURS_CHANGE, current.start_date, "hours_per_week",
            _describe_change("hours_per_week", previous.hours_per_week, current.hours_per_week, percentage),
            change_amount=amount, change_percentage=percentage,
        ))

    return entries


def _change_from_model(record: ChangeRecord) -> DetectedChange:
    return DetectedChange(
        employee_id=record.employee_id,
        endpoint=record.endpoint,
        field_name=record.field_name,
        change_type=record.change_type,
        old_value=record.old_value,
        new_value=record.new_value,
        effective_date=record.effective_date,
        detected_at=as_utc(record.detected_at),
        is_duplicate=record.is_duplicate,
        business_impact=record.business_impact,
        prev_snapshot_id=record.prev_snapshot_id,
        curr_snapshot_id=record.curr_snapshot_id,
    )


# =============================================================================
# Builder
# =============================================================================

class TimelineView:
    """
    Lazy, restartable view of an employee's derived timeline.

    Nothing is read until iteration; every iteration derives the events
    again from the current change records and snapshots.
    """

    def __init__(self, builder: "TimelineBuilder", employee_id: str):
        self._builder = builder
        self.employee_id = employee_id

    def __iter__(self) -> Iterator[TimelineEntry]:
        return iter(self._builder.derive(self.employee_id))


class TimelineBuilder:
    """Owns employes_timeline_events"""

    def __init__(self, database: SyncDatabase):
        self.database = database

    def build_timeline(self, employee_id: str) -> TimelineView:
        return TimelineView(self, str(employee_id))

    def derive(self, employee_id: str) -> list[TimelineEntry]:
        """Full ordered event set from every stored change plus the latest snapshot"""
        with self.database.session() as db:
            records = db.execute(
                select(ChangeRecord).where(
                    ChangeRecord.employee_id == employee_id,
                    ChangeRecord.is_duplicate.is_(False),
                )
            ).scalars().all()
            changes = [_change_from_model(r) for r in records]
            history = self._snapshot_entries(db, employee_id)

        from_changes = [entry_from_change(c) for c in changes]
        return merge_entries([e for e in from_changes if e is not None] + history)

    def rebuild(self, employee_id: str) -> list[TimelineEntry]:
        """Regenerate and replace every stored event for the employee"""
        employee_id = str(employee_id)

        with events.timed_operation("timeline_rebuild"):
            entries = self.derive(employee_id)
            with self.database.transaction() as db:
                db.execute(delete(TimelineEvent).where(TimelineEvent.employee_id == employee_id))
                db.add_all([entry.to_model() for entry in entries])

        return entries

    def apply_incremental(self, employee_id: str, changes: Iterable[DetectedChange]) -> list[TimelineEntry]:
        """
        Merge events for newly detected changes into the stored timeline.

        Snapshot-history events are re-derived from the latest snapshot so
        the result matches a full rebuild.
        """
        employee_id = str(employee_id)
        new_entries = [entry_from_change(c) for c in changes if c.employee_id == employee_id]
        new_entries = [e for e in new_entries if e is not None]

        with self.database.transaction() as db:
            stored = db.execute(
                select(TimelineEvent).where(TimelineEvent.employee_id == employee_id)
            ).scalars().all()
            kept_changes = [
                TimelineEntry.from_model(e) for e in stored
                if TimelineSource(e.source) == TimelineSource.CHANGE_RECORD
            ]
            history = self._snapshot_entries(db, employee_id)
            merged = merge_entries(kept_changes + new_entries + history)

            stored_by_key = {TimelineEntry.from_model(e).key: e for e in stored}
            merged_keys = {entry.key for entry in merged}

            for key, event in stored_by_key.items():
                if key not in merged_keys:
                    db.delete(event)
            for entry in merged:
                event = stored_by_key.get(entry.key)
                if event is None:
                    db.add(entry.to_model())
                elif TimelineEntry.from_model(event) != entry:
                    for name, value in entry.to_dict().items():
                        setattr(event, name, value)

        events.info(
            LogEvents.TIMELINE_MERGED,
            employee_id=employee_id,
            new_change_events=len(new_entries),
            total_events=len(merged),
        )
        return merged

    def stored(self, employee_id: str) -> list[TimelineEntry]:
        with self.database.session() as db:
            return load_timeline(db, str(employee_id))

    def _snapshot_entries(self, db: Session, employee_id: str) -> list[TimelineEntry]:
        snapshot = latest_snapshot(db, employee_id, ENDPOINT_EMPLOYMENTS)
        if snapshot is None:
            return []
        return entries_from_employments(employee_id, snapshot.payload, snapshot.collected_at)


def load_timeline(db: Session, employee_id: str) -> list[TimelineEntry]:
    """Stored events for one employee in timeline order"""
    rows = db.execute(
        select(TimelineEvent).where(TimelineEvent.employee_id == employee_id)
    ).scalars().all()
    return sorted((TimelineEntry.from_model(e) for e in rows), key=lambda e: e.sort_key)
