"""
Snapshot Store
Append-only storage of provider payloads with a single latest pointer
"""

import hashlib
import json
import logging
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from empsync.core.exceptions import ConcurrentLatestConflict, ErrorContext
from empsync.models.snapshot import RawSnapshot
from empsync.schemas.payloads import parse_payload
from empsync.worker.db import SyncDatabase

logger = logging.getLogger(__name__)


def canonical_json(payload) -> str:
    """Key-sorted compact JSON; equal documents give equal strings"""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_content_hash(payload) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


# =============================================================================
# Queries (shared with read feeds)
# =============================================================================

def latest_snapshot(db: Session, employee_id: str, endpoint: str) -> Optional[RawSnapshot]:
    return db.execute(
        select(RawSnapshot).where(
            RawSnapshot.employee_id == employee_id,
            RawSnapshot.endpoint == endpoint,
            RawSnapshot.is_latest.is_(True),
        )
    ).scalar_one_or_none()


def previous_snapshot(db: Session, current: RawSnapshot) -> Optional[RawSnapshot]:
    """Snapshot collected immediately before `current` for the same pair"""
    return db.execute(
        select(RawSnapshot)
        .where(
            RawSnapshot.employee_id == current.employee_id,
            RawSnapshot.endpoint == current.endpoint,
            RawSnapshot.id != current.id,
            RawSnapshot.collected_at <= current.collected_at,
        )
        .order_by(RawSnapshot.collected_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def latest_snapshots_for_employee(db: Session, employee_id: str) -> dict[str, RawSnapshot]:
    rows = db.execute(
        select(RawSnapshot).where(
            RawSnapshot.employee_id == employee_id,
            RawSnapshot.is_latest.is_(True),
        )
    ).scalars().all()
    return {row.endpoint: row for row in rows}


def snapshot_history(db: Session, employee_id: str, endpoint: str) -> list[RawSnapshot]:
    """All snapshots for the pair, oldest first"""
    return list(db.execute(
        select(RawSnapshot)
        .where(RawSnapshot.employee_id == employee_id, RawSnapshot.endpoint == endpoint)
        .order_by(RawSnapshot.collected_at.asc())
    ).scalars().all())


# =============================================================================
# Store
# =============================================================================

class SnapshotStore:
    """
    Owns employes_raw_snapshots.

    Every ingest appends a row, even when the content hash is unchanged,
    so the table doubles as a collection audit trail. The previous latest
    row is flipped off inside the insert transaction.
    """

    def __init__(self, database: SyncDatabase):
        self.database = database

    def ingest(
        self,
        employee_id: str,
        endpoint: str,
        payload: dict,
        collected_at: Optional[datetime] = None,
        sync_session_id: Optional[UUID] = None,
    ) -> RawSnapshot:
        """
        Validate and append one provider payload.

        Raises:
            MalformedPayloadError: payload rejected, nothing stored
            ConcurrentLatestConflict: another writer won the latest pointer
        """
        employee_id = str(employee_id)
        parse_payload(endpoint, payload, employee_id=employee_id)

        content_hash = compute_content_hash(payload)
        collected_at = collected_at or datetime.now(UTC)

        try:
            with self.database.transaction() as db:
                current = db.execute(
                    select(RawSnapshot)
                    .where(
                        RawSnapshot.employee_id == employee_id,
                        RawSnapshot.endpoint == endpoint,
                        RawSnapshot.is_latest.is_(True),
                    )
                    .with_for_update()
                ).scalar_one_or_none()

                if current is not None:
                    current.is_latest = False
                    db.flush()

                snapshot = RawSnapshot(
                    employee_id=employee_id,
                    endpoint=endpoint,
                    payload=payload,
                    content_hash=content_hash,
                    collected_at=collected_at,
                    is_latest=True,
                    sync_session_id=sync_session_id,
                    last_verified_at=collected_at,
                )
                db.add(snapshot)
                db.flush()
        except IntegrityError as e:
            raise ConcurrentLatestConflict(
                f"Latest snapshot for {employee_id}{endpoint} changed during ingest",
                context=ErrorContext(employee_id=employee_id, endpoint=endpoint),
            ) from e

        unchanged = current is not None and current.content_hash == content_hash
        logger.debug(
            f"Ingested snapshot {employee_id}{endpoint} hash={content_hash[:12]}"
            f"{' (unchanged)' if unchanged else ''}"
        )
        return snapshot

    def latest(self, employee_id: str, endpoint: str) -> Optional[RawSnapshot]:
        with self.database.session() as db:
            return latest_snapshot(db, str(employee_id), endpoint)

    def latest_per_endpoint(self, employee_id: str) -> dict[str, RawSnapshot]:
        with self.database.session() as db:
            return latest_snapshots_for_employee(db, str(employee_id))

    def recent_pair(self, employee_id: str, endpoint: str) -> tuple[Optional[RawSnapshot], Optional[RawSnapshot]]:
        """(previous, latest) for the pair; either may be None"""
        with self.database.session() as db:
            current = latest_snapshot(db, str(employee_id), endpoint)
            if current is None:
                return None, None
            return previous_snapshot(db, current), current

    def history(self, employee_id: str, endpoint: str) -> list[RawSnapshot]:
        with self.database.session() as db:
            return snapshot_history(db, str(employee_id), endpoint)

    def known_employee_ids(self) -> list[str]:
        with self.database.session() as db:
            return list(db.execute(
                select(RawSnapshot.employee_id).distinct().order_by(RawSnapshot.employee_id)
            ).scalars().all())
