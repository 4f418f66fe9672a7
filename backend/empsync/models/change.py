"""
Change Record Model
Field-level differences between consecutive snapshots
"""

from sqlalchemy import (
    Column, String, Boolean, Date, DateTime, Index, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
import enum
import uuid

from empsync.core.database import Base, JSONDocument, enum_values


class ChangeType(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    REMOVE = "remove"


class BusinessImpact(str, enum.Enum):
    SALARY = "salary"
    HOURS = "hours"
    CONTRACT = "contract"
    PERSONAL = "personal"


class ChangeRecord(Base):
    """Detected field change (employes_changes)"""

    __tablename__ = "employes_changes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String(64), nullable=False)
    endpoint = Column(String(32), nullable=False)
    field_name = Column(String(64), nullable=False)
    change_type = Column(
        SQLEnum(ChangeType, name="change_type_enum", native_enum=False, values_callable=enum_values),
        nullable=True,  # None on duplicates
    )
    old_value = Column(JSONDocument, nullable=True)
    new_value = Column(JSONDocument, nullable=True)
    effective_date = Column(Date, nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=False)
    is_duplicate = Column(Boolean, nullable=False, default=False)
    business_impact = Column(
        SQLEnum(BusinessImpact, name="business_impact_enum", native_enum=False, values_callable=enum_values),
        nullable=True,
    )
    prev_snapshot_id = Column(Uuid(as_uuid=True), nullable=True)
    curr_snapshot_id = Column(Uuid(as_uuid=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("curr_snapshot_id", "field_name", name="uq_change_snapshot_field"),
        Index("ix_change_feed", "employee_id", "is_duplicate", "detected_at"),
    )
