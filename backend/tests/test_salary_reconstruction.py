"""
Unit tests for Salary Progression Reconstruction
"""

from datetime import date

import pytest

from empsync.core.exceptions import MissingSalaryTableEntry
from empsync.models.cao import CaoSalaryScale
from empsync.schemas.payloads import ENDPOINT_EMPLOYMENTS, parse_payload
from empsync.worker.pipelines.salary import (
    CaoSalaryTable,
    SalaryProgressionReconstructor,
    build_periods,
    collect_observations,
    monthly_from_hourly,
)
from empsync.worker.pipelines.snapshot import SnapshotStore

from factories import at, employments_payload, hours, salary


def _periods(*payloads, table=None):
    parsed = [parse_payload(ENDPOINT_EMPLOYMENTS, p) for p in payloads]
    return build_periods("1001", collect_observations(parsed), table or CaoSalaryTable([]))


class TestWageMath:
    def test_monthly_from_hourly(self):
        assert monthly_from_hourly(20.0, 36) == 3120.0
        assert monthly_from_hourly(0.0, 36) == 0.0


class TestCaoSalaryTable:
    def test_dated_row_in_force(self):
        table = CaoSalaryTable([
            CaoSalaryScale(scale="7", trede=2, effective_date=date(2024, 1, 1), hourly_wage=18.5),
            CaoSalaryScale(scale="7", trede=2, effective_date=date(2025, 1, 1), hourly_wage=19.25),
        ])

        assert table.resolve("7", 2, date(2024, 6, 1)).hourly_wage == 18.5
        assert table.resolve("7", 2, date(2025, 3, 1)).hourly_wage == 19.25
        assert table.resolve("7", 2, date(2025, 3, 1)).source == "dated_table"

    def test_legacy_grid_fallback(self):
        resolution = CaoSalaryTable([]).resolve("6", 1, date(2024, 1, 1))

        # 2500 * 12 / (36 * 52)
        assert resolution.hourly_wage == 16.03
        assert resolution.source == "legacy_table"

    def test_unknown_scale_raises(self):
        with pytest.raises(MissingSalaryTableEntry) as exc_info:
            CaoSalaryTable([]).resolve("99", 1, date(2024, 1, 1))

        assert "scale=99" in exc_info.value.message


class TestBuildPeriods:
    """Growth math over collected observations"""

    def test_raise_is_percent_of_previous_wage(self):
        payload = employments_payload(
            salaries=[salary("2024-01-01", hour_wage=20.0), salary("2025-01-01", hour_wage=22.0)],
            hours_entries=[hours("2024-01-01", 36)],
        )

        periods = _periods(payload)

        assert [p.start_date for p in periods] == [date(2025, 1, 1), date(2024, 1, 1)]
        newest, oldest = periods
        assert newest.increase_percent == 10.0
        assert oldest.increase_percent == 0.0
        assert oldest.end_date == date(2024, 12, 31)
        assert newest.end_date is None
        assert oldest.monthly_wage == 3120.0

    def test_scale_only_entry_uses_table(self):
        payload = employments_payload(salaries=[salary("2024-01-01", scale="6", trede=1)])

        (period,) = _periods(payload)

        assert period.hourly_wage == 16.03
        assert period.wage_source == "legacy_table"
        assert period.is_resolved

    def test_missing_table_entry_is_flagged_not_raised(self):
        payload = employments_payload(salaries=[
            salary("2024-01-01", hour_wage=20.0),
            salary("2025-01-01", scale="99", trede=4),
            salary("2026-01-01", hour_wage=21.0),
        ])

        newest, missing, oldest = _periods(payload)

        assert missing.hourly_wage == 0.0
        assert missing.monthly_wage == 0.0
        assert missing.is_resolved is False
        assert missing.wage_source == "unresolved"
        assert missing.increase_percent is None
        assert missing.notes
        # growth skips the unresolved period
        assert newest.increase_percent == 5.0
        assert oldest.is_resolved

    def test_later_snapshot_wins_for_same_start_date(self):
        first = employments_payload(salaries=[salary("2025-01-01", hour_wage=21.0)])
        corrected = employments_payload(salaries=[salary("2025-01-01", hour_wage=21.5)])

        (period,) = _periods(first, corrected)

        assert period.hourly_wage == 21.5

    def test_entries_from_older_snapshots_are_kept(self):
        old = employments_payload(salaries=[salary("2023-01-01", hour_wage=18.0)])
        new = employments_payload(salaries=[salary("2024-01-01", hour_wage=20.0)])

        periods = _periods(old, new)

        assert [p.hourly_wage for p in periods] == [20.0, 18.0]

    def test_default_hours_when_no_hours_history(self):
        payload = employments_payload(salaries=[salary("2024-01-01", hour_wage=20.0)], hours_entries=[])

        (period,) = _periods(payload)

        assert period.hours_per_week == 36.0


class TestSalaryProgressionReconstructor:
    @pytest.fixture(autouse=True)
    def setup_reconstructor(self, database):
        self.database = database
        self.store = SnapshotStore(database)
        self.reconstructor = SalaryProgressionReconstructor(database)

    def test_no_snapshots_no_periods(self):
        assert self.reconstructor.reconstruct("1001") == []

    def test_reconstructs_across_snapshots_with_dated_table(self):
        with self.database.transaction() as db:
            db.add(CaoSalaryScale(scale="8", trede=3, effective_date=date(2025, 1, 1), hourly_wage=23.0))

        self.store.ingest(
            "1001", ENDPOINT_EMPLOYMENTS,
            employments_payload(salaries=[salary("2024-01-01", hour_wage=20.0)]),
            collected_at=at(1),
        )
        self.store.ingest(
            "1001", ENDPOINT_EMPLOYMENTS,
            employments_payload(salaries=[salary("2025-01-01", scale="8", trede=3)]),
            collected_at=at(2),
        )

        periods = self.reconstructor.reconstruct("1001")

        assert [p.start_date for p in periods] == [date(2025, 1, 1), date(2024, 1, 1)]
        assert periods[0].hourly_wage == 23.0
        assert periods[0].wage_source == "dated_table"
        assert periods[0].increase_percent == 15.0
