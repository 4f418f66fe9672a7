"""
Unit tests for the Timeline Builder

Event derivation, precedence, incremental vs full rebuild
"""

from datetime import date, datetime, UTC

import pytest

from empsync.models.timeline import ContractMilestoneType, TimelineEventType, TimelineSource
from empsync.schemas.payloads import ENDPOINT_EMPLOYMENTS
from empsync.worker.pipelines.change_detection import ChangeDetector, non_duplicate
from empsync.worker.pipelines.snapshot import SnapshotStore
from empsync.worker.pipelines.timeline import (
    TimelineBuilder,
    TimelineEntry,
    compute_delta,
    entries_from_employments,
    merge_entries,
    milestone_for,
)

from factories import at, contract, employments_payload, hours, salary


def _entry(source, detected_day, description="x"):
    return TimelineEntry(
        employee_id="1001",
        event_type=TimelineEventType.SALARY_CHANGE,
        event_date=date(2025, 1, 1),
        field_name="hourly_wage",
        description=description,
        detected_at=at(detected_day),
        source=source,
    )


class TestTimelineHelpers:
    """Pure derivation helpers"""

    def test_compute_delta(self):
        assert compute_delta(20.0, 22.0) == (2.0, 10.0)
        assert compute_delta(0, 5) == (5.0, None)
        assert compute_delta("a", "b") == (None, None)

    def test_milestone_for(self):
        assert milestone_for(None, "2025-01-01") == ContractMilestoneType.STARTED
        assert milestone_for("2025-01-01", None) == ContractMilestoneType.ENDED
        assert milestone_for("2024-01-01", "2025-01-01") == ContractMilestoneType.RENEWED

    def test_change_record_beats_snapshot_history(self):
        history = _entry(TimelineSource.SNAPSHOT_HISTORY, 5, "from history")
        change = _entry(TimelineSource.CHANGE_RECORD, 1, "from change")

        assert merge_entries([history, change]) == [change]
        assert merge_entries([change, history]) == [change]

    def test_later_detection_wins_within_source(self):
        early = _entry(TimelineSource.CHANGE_RECORD, 1, "early")
        late = _entry(TimelineSource.CHANGE_RECORD, 2, "late")

        assert merge_entries([late, early]) == [late]

    def test_entries_from_employments(self):
        payload = employments_payload(
            contracts=[
                contract("2024-01-01", "2024-12-31"),
                contract("2025-01-01", "2026-12-31"),
            ],
            salaries=[salary("2024-01-01", hour_wage=20.0), salary("2025-01-01", hour_wage=21.0)],
            hours_entries=[hours("2024-01-01", 32), hours("2025-06-01", 24)],
        )

        entries = entries_from_employments("1001", payload, datetime(2026, 1, 15, tzinfo=UTC))
        by_key = {(e.event_type, e.event_date, e.field_name): e for e in entries}

        started = by_key[(TimelineEventType.CONTRACT_MILESTONE, date(2024, 1, 1), "contract_type")]
        assert started.contract_milestone_type == ContractMilestoneType.STARTED
        renewed = by_key[(TimelineEventType.CONTRACT_MILESTONE, date(2025, 1, 1), "contract_type")]
        assert renewed.contract_milestone_type == ContractMilestoneType.RENEWED
        assert (TimelineEventType.CONTRACT_MILESTONE, date(2024, 12, 31), "end_date") in by_key
        # end date still in the future at collection time
        assert (TimelineEventType.CONTRACT_MILESTONE, date(2026, 12, 31), "end_date") not in by_key

        raise_event = by_key[(TimelineEventType.SALARY_CHANGE, date(2025, 1, 1), "hourly_wage")]
        assert raise_event.change_amount == 1.0
        assert raise_event.change_percentage == 5.0

        cut = by_key[(TimelineEventType.HOURS_CHANGE, date(2025, 6, 1), "hours_per_week")]
        assert cut.change_amount == -8.0
        assert cut.change_percentage == -25.0
        assert all(e.source == TimelineSource.SNAPSHOT_HISTORY for e in entries)


class TestTimelineBuilder:
    """Stored timeline maintenance"""

    @pytest.fixture(autouse=True)
    def setup_builder(self, database):
        self.store = SnapshotStore(database)
        self.detector = ChangeDetector(database)
        self.builder = TimelineBuilder(database)

    def _sync(self, payload, day):
        self.store.ingest("1001", ENDPOINT_EMPLOYMENTS, payload, collected_at=at(day))
        changes = self.detector.detect_changes("1001", ENDPOINT_EMPLOYMENTS)
        return self.builder.apply_incremental("1001", non_duplicate(changes))

    @staticmethod
    def _signature(entries):
        return {(e.key, e.source, e.description, e.change_amount) for e in entries}

    def _first_year(self):
        return employments_payload(
            contracts=[contract("2024-01-01", "2024-12-31")],
            salaries=[salary("2024-01-01", hour_wage=20.0)],
        )

    def _second_year(self):
        return employments_payload(
            contracts=[contract("2024-01-01", "2024-12-31"), contract("2025-01-01", "2025-12-31")],
            salaries=[salary("2024-01-01", hour_wage=20.0), salary("2025-01-01", hour_wage=22.0)],
        )

    # =========================================================================
    # Incremental merge
    # =========================================================================

    def test_baseline_snapshot_seeds_history_events(self):
        merged = self._sync(self._first_year(), 1)

        assert {e.contract_milestone_type for e in merged} == {
            ContractMilestoneType.STARTED,
            ContractMilestoneType.ENDED,
        }
        assert self._signature(self.builder.stored("1001")) == self._signature(merged)

    def test_change_event_replaces_history_event_with_same_key(self):
        self._sync(self._first_year(), 1)
        self._sync(self._second_year(), 2)

        stored = self.builder.stored("1001")
        salary_events = [e for e in stored if e.event_type == TimelineEventType.SALARY_CHANGE]

        assert len(salary_events) == 1
        assert salary_events[0].source == TimelineSource.CHANGE_RECORD
        assert salary_events[0].change_percentage == 10.0

    def test_incremental_matches_full_rebuild(self):
        self._sync(self._first_year(), 1)
        self._sync(self._second_year(), 2)
        incremental = self.builder.stored("1001")

        rebuilt = self.builder.rebuild("1001")

        assert self._signature(incremental) == self._signature(rebuilt)
        assert self._signature(self.builder.stored("1001")) == self._signature(rebuilt)

    def test_repeated_identical_sync_keeps_timeline_stable(self):
        self._sync(self._second_year(), 1)
        before = self._signature(self.builder.stored("1001"))

        self._sync(self._second_year(), 2)

        assert self._signature(self.builder.stored("1001")) == before

    def test_stored_timeline_is_ordered(self):
        self._sync(self._first_year(), 1)
        self._sync(self._second_year(), 2)

        stored = self.builder.stored("1001")
        assert stored == sorted(stored, key=lambda e: e.sort_key)

    # =========================================================================
    # Lazy view
    # =========================================================================

    def test_timeline_view_is_lazy_and_restartable(self):
        view = self.builder.build_timeline("1001")
        assert list(view) == []

        self._sync(self._first_year(), 1)

        first_pass = list(view)
        assert first_pass
        assert list(view) == first_pass
