# SQLAlchemy Models

from empsync.models.snapshot import RawSnapshot
from empsync.models.change import ChangeRecord, ChangeType, BusinessImpact
from empsync.models.timeline import (
    TimelineEvent,
    TimelineEventType,
    ContractMilestoneType,
    TimelineSource,
)
from empsync.models.sync_session import SyncSession, SyncStatus, TERMINAL_STATUSES
from empsync.models.cao import CaoSalaryScale
from empsync.models.overview import EmploymentOverview, OVERVIEW_SELECT

__all__ = [
    # Snapshots
    "RawSnapshot",
    # Changes
    "ChangeRecord",
    "ChangeType",
    "BusinessImpact",
    # Timeline
    "TimelineEvent",
    "TimelineEventType",
    "ContractMilestoneType",
    "TimelineSource",
    # Sessions
    "SyncSession",
    "SyncStatus",
    "TERMINAL_STATUSES",
    # Reference data
    "CaoSalaryScale",
    # Read view
    "EmploymentOverview",
    "OVERVIEW_SELECT",
]
