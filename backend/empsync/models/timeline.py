"""
Timeline Event Model
Derived, rebuildable employment history per employee
"""

from sqlalchemy import (
    Column, String, Text, Float, Date, DateTime, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
import enum
import uuid

from empsync.core.database import Base, enum_values


class TimelineEventType(str, enum.Enum):
    CONTRACT_MILESTONE = "contract_milestone"
    SALARY_CHANGE = "salary_change"
    HOURS_CHANGE = "hours_change"
    POSITION_CHANGE = "position_change"
    DEPARTMENT_CHANGE = "department_change"
    STATUS_CHANGE = "status_change"
    PERSONAL_DATA_CHANGE = "personal_data_change"


class ContractMilestoneType(str, enum.Enum):
    STARTED = "started"
    RENEWED = "renewed"
    ENDED = "ended"


class TimelineSource(str, enum.Enum):
    CHANGE_RECORD = "change_record"
    SNAPSHOT_HISTORY = "snapshot_history"


class TimelineEvent(Base):
    """Timeline event (employes_timeline_events)"""

    __tablename__ = "employes_timeline_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(String(64), nullable=False)
    event_type = Column(
        SQLEnum(TimelineEventType, name="timeline_event_type_enum", native_enum=False,
                values_callable=enum_values),
        nullable=False,
    )
    event_date = Column(Date, nullable=False)
    field_name = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    change_amount = Column(Float, nullable=True)
    change_percentage = Column(Float, nullable=True)
    contract_milestone_type = Column(
        SQLEnum(ContractMilestoneType, name="contract_milestone_enum", native_enum=False,
                values_callable=enum_values),
        nullable=True,
    )
    detected_at = Column(DateTime(timezone=True), nullable=False)
    source = Column(
        SQLEnum(TimelineSource, name="timeline_source_enum", native_enum=False,
                values_callable=enum_values),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "event_type", "event_date", "field_name",
            name="uq_timeline_event_key",
        ),
    )
