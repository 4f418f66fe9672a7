"""
Unit tests for the Snapshot Store

Append-only ingest, single latest pointer, payload validation
"""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from empsync.core.exceptions import ConcurrentLatestConflict, MalformedPayloadError
from empsync.models.snapshot import RawSnapshot
from empsync.schemas.payloads import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from empsync.worker.pipelines.snapshot import SnapshotStore, canonical_json, compute_content_hash

from factories import at, employee_payload, employments_payload


class TestContentHash:
    """Canonical JSON hashing"""

    def test_key_order_does_not_change_hash(self):
        a = {"id": "1", "first_name": "Sanne", "nested": {"b": 1, "a": 2}}
        b = {"nested": {"a": 2, "b": 1}, "first_name": "Sanne", "id": "1"}

        assert canonical_json(a) == canonical_json(b)
        assert compute_content_hash(a) == compute_content_hash(b)

    def test_value_change_changes_hash(self):
        assert compute_content_hash({"id": "1", "x": 1}) != compute_content_hash({"id": "1", "x": 2})

    def test_hash_is_sha256_hex(self):
        digest = compute_content_hash({"id": "1"})
        assert len(digest) == 64
        int(digest, 16)


class TestSnapshotStore:
    """SnapshotStore ingest and queries"""

    @pytest.fixture(autouse=True)
    def setup_store(self, database):
        self.database = database
        self.store = SnapshotStore(database)

    def _count(self, **filters) -> int:
        with self.database.session() as db:
            query = select(func.count(RawSnapshot.id))
            for name, value in filters.items():
                query = query.where(getattr(RawSnapshot, name) == value)
            return db.execute(query).scalar_one()

    # =========================================================================
    # Ingest
    # =========================================================================

    def test_first_ingest_is_latest(self):
        snapshot = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))

        assert snapshot.is_latest is True
        assert snapshot.content_hash == compute_content_hash(employee_payload())
        assert self.store.latest("1001", ENDPOINT_EMPLOYEE).id == snapshot.id

    def test_second_ingest_moves_latest_pointer(self):
        first = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))
        second = self.store.ingest(
            "1001", ENDPOINT_EMPLOYEE, employee_payload(position="Teamleider"), collected_at=at(2)
        )

        assert self._count(employee_id="1001", endpoint=ENDPOINT_EMPLOYEE) == 2
        assert self._count(employee_id="1001", endpoint=ENDPOINT_EMPLOYEE, is_latest=True) == 1
        assert self.store.latest("1001", ENDPOINT_EMPLOYEE).id == second.id

        history = self.store.history("1001", ENDPOINT_EMPLOYEE)
        assert [s.id for s in history] == [first.id, second.id]
        assert history[0].is_latest is False

    def test_identical_payload_is_still_appended(self):
        first = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))
        second = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(2))

        assert first.id != second.id
        assert first.content_hash == second.content_hash
        assert self._count(employee_id="1001") == 2

    def test_superseded_row_keeps_its_verification_time(self):
        self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))
        self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(2))

        first, second = self.store.history("1001", ENDPOINT_EMPLOYEE)
        assert first.is_latest is False
        assert first.last_verified_at.replace(tzinfo=None) == at(1).replace(tzinfo=None)
        assert second.last_verified_at.replace(tzinfo=None) == at(2).replace(tzinfo=None)

    def test_latest_pointer_is_per_endpoint(self):
        self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))
        self.store.ingest("1001", ENDPOINT_EMPLOYMENTS, employments_payload(), collected_at=at(1))
        self.store.ingest("1002", ENDPOINT_EMPLOYEE, employee_payload("1002"), collected_at=at(1))

        latest = self.store.latest_per_endpoint("1001")
        assert set(latest) == {ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS}
        assert self._count(is_latest=True) == 3
        assert self.store.known_employee_ids() == ["1001", "1002"]

    def test_recent_pair(self):
        assert self.store.recent_pair("1001", ENDPOINT_EMPLOYEE) == (None, None)

        first = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))
        prev, curr = self.store.recent_pair("1001", ENDPOINT_EMPLOYEE)
        assert prev is None
        assert curr.id == first.id

        second = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(email="s@x.nl"), collected_at=at(2))
        prev, curr = self.store.recent_pair("1001", ENDPOINT_EMPLOYEE)
        assert (prev.id, curr.id) == (first.id, second.id)

    # =========================================================================
    # Rejections
    # =========================================================================

    def test_missing_id_is_rejected(self):
        payload = employee_payload()
        del payload["id"]

        with pytest.raises(MalformedPayloadError) as exc_info:
            self.store.ingest("1001", ENDPOINT_EMPLOYEE, payload, collected_at=at(1))

        assert exc_info.value.errors
        assert self._count() == 0

    def test_id_mismatch_is_rejected(self):
        with pytest.raises(MalformedPayloadError):
            self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload("9999"), collected_at=at(1))
        assert self._count() == 0

    def test_unknown_contract_duration_is_rejected(self):
        payload = employments_payload(contracts=[{"start_date": "2024-01-01", "contract_duration": "weekly"}])

        with pytest.raises(MalformedPayloadError):
            self.store.ingest("1001", ENDPOINT_EMPLOYMENTS, payload, collected_at=at(1))

    def test_non_object_payload_is_rejected(self):
        with pytest.raises(MalformedPayloadError):
            self.store.ingest("1001", ENDPOINT_EMPLOYEE, ["not", "an", "object"], collected_at=at(1))

    def test_unknown_endpoint_is_rejected(self):
        with pytest.raises(MalformedPayloadError):
            self.store.ingest("1001", "/payslips", employee_payload(), collected_at=at(1))

    def test_rejected_payload_keeps_previous_latest(self):
        first = self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))

        with pytest.raises(MalformedPayloadError):
            self.store.ingest("1001", ENDPOINT_EMPLOYEE, {"first_name": "no id"}, collected_at=at(2))

        assert self.store.latest("1001", ENDPOINT_EMPLOYEE).id == first.id

    def test_integrity_error_becomes_latest_conflict(self):
        error = IntegrityError("INSERT", {}, Exception("uq_raw_snapshot_latest"))

        with patch.object(self.database, "transaction", side_effect=error):
            with pytest.raises(ConcurrentLatestConflict) as exc_info:
                self.store.ingest("1001", ENDPOINT_EMPLOYEE, employee_payload(), collected_at=at(1))

        assert exc_info.value.context.employee_id == "1001"
        assert exc_info.value.retryable is True
