"""
Sync Session Model
Bookkeeping for one batch run
"""

from sqlalchemy import Column, String, Integer, DateTime, Uuid, Enum as SQLEnum
from sqlalchemy.sql import func
import enum
import uuid

from empsync.core.database import Base, JSONDocument, enum_values


class SyncStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    SyncStatus.COMPLETED,
    SyncStatus.COMPLETED_WITH_ERRORS,
    SyncStatus.FAILED,
    SyncStatus.CANCELLED,
})


class SyncSession(Base):
    """Sync run (employes_sync_sessions)"""

    __tablename__ = "employes_sync_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_label = Column(String(64), nullable=False, default="manual")
    status = Column(
        SQLEnum(SyncStatus, name="sync_status_enum", native_enum=False,
                values_callable=enum_values),
        nullable=False,
        default=SyncStatus.RUNNING,
    )
    started_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    total_records = Column(Integer, nullable=False, default=0)
    successful_records = Column(Integer, nullable=False, default=0)
    failed_records = Column(Integer, nullable=False, default=0)
    sync_details = Column(JSONDocument, nullable=False, default=dict)
