"""
Snapshot & Change Schemas
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from empsync.models.change import BusinessImpact, ChangeType


class RawSnapshotResponse(BaseModel):
    id: UUID
    employee_id: str
    endpoint: str
    payload: Any
    content_hash: str
    collected_at: datetime
    is_latest: bool
    sync_session_id: Optional[UUID] = None
    last_verified_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LatestSnapshotsResponse(BaseModel):
    employee_id: str
    items: list[RawSnapshotResponse]


class ChangeRecordResponse(BaseModel):
    id: UUID
    employee_id: str
    endpoint: str
    field_name: str
    change_type: Optional[ChangeType] = None
    old_value: Any = None
    new_value: Any = None
    effective_date: Optional[date] = None
    detected_at: datetime
    business_impact: Optional[BusinessImpact] = None

    class Config:
        from_attributes = True


class ChangeFeedResponse(BaseModel):
    total: int
    items: list[ChangeRecordResponse]
