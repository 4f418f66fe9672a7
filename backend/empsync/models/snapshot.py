"""
Raw Snapshot Model
Append-only captures of provider responses per (employee, endpoint)
"""

from sqlalchemy import Column, String, Boolean, DateTime, Index, Uuid, text
from sqlalchemy.sql import func
import uuid

from empsync.core.database import Base, JSONDocument


class RawSnapshot(Base):
    """One immutable provider response (employes_raw_snapshots)"""
    __tablename__ = "employes_raw_snapshots"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String(64), nullable=False)
    endpoint = Column(String(32), nullable=False)  # "/employee", "/employments"
    payload = Column(JSONDocument, nullable=False)
    content_hash = Column(String(64), nullable=False)  # sha256 of canonical JSON
    collected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_latest = Column(Boolean, nullable=False, default=False)
    sync_session_id = Column(Uuid(as_uuid=True), nullable=True)
    last_verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one latest row per (employee, endpoint)
        Index(
            "uq_raw_snapshot_latest",
            "employee_id",
            "endpoint",
            unique=True,
            postgresql_where=text("is_latest"),
            sqlite_where=text("is_latest"),
        ),
        Index("ix_raw_snapshot_history", "employee_id", "endpoint", "collected_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RawSnapshot {self.employee_id}{self.endpoint} "
            f"hash={self.content_hash[:8] if self.content_hash else None} latest={self.is_latest}>"
        )
