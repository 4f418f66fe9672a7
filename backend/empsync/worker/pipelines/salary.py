"""
Salary Progression Reconstruction
Complete wage history from sparse snapshots plus the CAO salary grid
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from empsync.core.exceptions import MissingSalaryTableEntry
from empsync.models.cao import CaoSalaryScale
from empsync.schemas.payloads import ENDPOINT_EMPLOYMENTS, EmploymentsPayload, parse_payload
from empsync.worker.db import SyncDatabase
from empsync.worker.pipelines.contracts import DEFAULT_HOURS_PER_WEEK
from empsync.worker.pipelines.snapshot import snapshot_history
from empsync.worker.tracing import LogEvents, get_logger

logger = logging.getLogger(__name__)
events = get_logger("SalaryProgression")

# Kinderopvang CAO, monthly gross for a 36-hour week, used when the dated
# table has nothing for a scale
LEGACY_MONTHLY_36H: dict[str, dict[int, float]] = {
    "6": {
        1: 2500.0, 2: 2600.0, 3: 2700.0, 4: 2800.0, 5: 2900.0, 6: 3000.0,
        7: 3100.0, 8: 3200.0, 9: 3300.0, 10: 3400.0, 11: 3500.0, 12: 3600.0,
    },
}
LEGACY_TABLE_HOURS = 36
WEEKS_PER_YEAR = 52
MONTHS_PER_YEAR = 12


def monthly_from_hourly(hourly_wage: float, hours_per_week: float) -> float:
    return round(hourly_wage * hours_per_week * WEEKS_PER_YEAR / MONTHS_PER_YEAR, 2)


def hourly_from_legacy_monthly(monthly_36h: float) -> float:
    return round(monthly_36h * MONTHS_PER_YEAR / (LEGACY_TABLE_HOURS * WEEKS_PER_YEAR), 2)


@dataclass
class WageResolution:
    hourly_wage: float
    source: str  # "dated_table", "legacy_table", "unresolved"

    @property
    def is_resolved(self) -> bool:
        return self.source != "unresolved"


class CaoSalaryTable:
    """
    Scale/trede lookup.

    Dated rows come from cao_salary_scales (latest effective_date on or
    before the requested date); legacy rows are the static grid above.
    """

    def __init__(self, rows: list[CaoSalaryScale], legacy: Optional[dict] = None):
        self._rows: dict[tuple[str, int], list[tuple[date, float]]] = {}
        for row in rows:
            self._rows.setdefault((str(row.scale), int(row.trede)), []).append(
                (row.effective_date, float(row.hourly_wage))
            )
        for entries in self._rows.values():
            entries.sort()
        self._legacy = LEGACY_MONTHLY_36H if legacy is None else legacy

    @classmethod
    def load(cls, db: Session) -> "CaoSalaryTable":
        return cls(list(db.execute(select(CaoSalaryScale)).scalars().all()))

    def resolve(self, scale: str, trede: int, effective_date: date) -> WageResolution:
        """
        Raises:
            MissingSalaryTableEntry: neither table knows the scale/trede
        """
        scale = str(scale)
        dated = [wage for since, wage in self._rows.get((scale, int(trede)), []) if since <= effective_date]
        if dated:
            return WageResolution(dated[-1], "dated_table")

        monthly = self._legacy.get(scale, {}).get(int(trede))
        if monthly is not None:
            return WageResolution(hourly_from_legacy_monthly(monthly), "legacy_table")

        raise MissingSalaryTableEntry(scale, trede, effective_date)


@dataclass
class SalaryPeriod:
    employee_id: str
    start_date: date
    end_date: Optional[date]
    hourly_wage: float
    monthly_wage: float
    hours_per_week: float
    increase_percent: Optional[float]
    scale: Optional[str] = None
    trede: Optional[int] = None
    wage_source: str = "snapshot"
    is_resolved: bool = True
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Observation:
    start_date: date
    hour_wage: Optional[float]
    scale: Optional[str]
    trede: Optional[int]
    hours_per_week: Optional[float]


class SalaryProgressionReconstructor:
    """Rebuilds SalaryPeriods (newest first) for one employee"""

    def __init__(self, database: SyncDatabase, default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK):
        self.database = database
        self.default_hours_per_week = default_hours_per_week

    def reconstruct(self, employee_id: str) -> list[SalaryPeriod]:
        with self.database.session() as db:
            return reconstruct_salary_history(db, str(employee_id), self.default_hours_per_week)


def collect_observations(payloads: list[EmploymentsPayload]) -> list[_Observation]:
    """Salary entries across snapshots keyed by start_date; later snapshots win"""
    observations: dict[date, _Observation] = {}
    for parsed in payloads:
        for entry in parsed.salary:
            hours = parsed.hours_on(entry.start_date)
            observations[entry.start_date] = _Observation(
                start_date=entry.start_date,
                hour_wage=entry.hour_wage,
                scale=entry.scale,
                trede=entry.trede,
                hours_per_week=hours.hours_per_week if hours is not None else None,
            )
    return sorted(observations.values(), key=lambda o: o.start_date)


def build_periods(
    employee_id: str,
    observations: list[_Observation],
    table: CaoSalaryTable,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
) -> list[SalaryPeriod]:
    """Oldest-first growth math, returned newest first"""
    periods: list[SalaryPeriod] = []
    previous_resolved: Optional[float] = None

    for index, obs in enumerate(observations):
        notes = []
        if obs.hour_wage is not None:
            hourly, source, resolved = float(obs.hour_wage), "snapshot", True
        elif obs.scale is not None and obs.trede is not None:
            try:
                resolution = table.resolve(obs.scale, obs.trede, obs.start_date)
                hourly, source, resolved = resolution.hourly_wage, resolution.source, True
            except MissingSalaryTableEntry as e:
                events.warning(
                    LogEvents.SALARY_TABLE_MISS,
                    employee_id=employee_id,
                    scale=obs.scale,
                    trede=obs.trede,
                    effective_date=obs.start_date.isoformat(),
                )
                hourly, source, resolved = 0.0, "unresolved", False
                notes.append(e.message)
        else:
            hourly, source, resolved = 0.0, "unresolved", False
            notes.append("Salary entry has neither hour_wage nor scale/trede")

        hours = obs.hours_per_week or default_hours_per_week

        if not resolved:
            increase = None
        elif previous_resolved is None:
            increase = 0.0
        elif previous_resolved == 0:
            increase = None
        else:
            increase = round((hourly - previous_resolved) / previous_resolved * 100, 2)

        if resolved:
            previous_resolved = hourly

        next_start = observations[index + 1].start_date if index + 1 < len(observations) else None
        periods.append(SalaryPeriod(
            employee_id=employee_id,
            start_date=obs.start_date,
            end_date=next_start - timedelta(days=1) if next_start else None,
            hourly_wage=hourly,
            monthly_wage=monthly_from_hourly(hourly, hours),
            hours_per_week=hours,
            increase_percent=increase,
            scale=obs.scale,
            trede=obs.trede,
            wage_source=source,
            is_resolved=resolved,
            notes=notes,
        ))

    periods.reverse()
    return periods


def reconstruct_salary_history(
    db: Session,
    employee_id: str,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
) -> list[SalaryPeriod]:
    snapshots = snapshot_history(db, employee_id, ENDPOINT_EMPLOYMENTS)
    payloads = [parse_payload(ENDPOINT_EMPLOYMENTS, s.payload) for s in snapshots]
    observations = collect_observations(payloads)
    if not observations:
        return []

    table = CaoSalaryTable.load(db)
    periods = build_periods(employee_id, observations, table, default_hours_per_week)
    unresolved = sum(1 for p in periods if not p.is_resolved)
    suffix = f", {unresolved} unresolved" if unresolved else ""
    logger.debug(f"Salary history for {employee_id}: {len(periods)} periods{suffix}")
    return periods
