"""
Sync Session Schemas
Trigger request, session summaries and health
"""

from datetime import datetime
from typing import Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from empsync.models.sync_session import SyncStatus


# Request Schemas
class SyncRunRequest(BaseModel):
    """Sync trigger: explicit employee ids or "all" """

    employee_ids: Union[Literal["all"], list[str]] = Field(
        "all", description='Employee ids to sync, or "all" for the whole company'
    )
    source_label: str = Field("api", max_length=64, description="Free label stored on the session")

    @field_validator("employee_ids")
    @classmethod
    def validate_ids(cls, v):
        if v == "all":
            return v
        ids = list(dict.fromkeys(str(e).strip() for e in v if str(e).strip()))
        if not ids:
            raise ValueError('employee_ids must not be empty; use "all" for every employee')
        return ids


# Response Schemas
class SyncSessionSummary(BaseModel):
    """Sync session with explicit counts"""

    id: UUID
    source_label: str
    status: SyncStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_records: int
    successful_records: int
    failed_records: int
    errors: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @classmethod
    def from_session(cls, session) -> "SyncSessionSummary":
        details = session.sync_details or {}
        return cls(
            id=session.id,
            source_label=session.source_label,
            status=session.status,
            started_at=session.started_at,
            completed_at=session.completed_at,
            total_records=session.total_records or 0,
            successful_records=session.successful_records or 0,
            failed_records=session.failed_records or 0,
            errors=details.get("errors", []),
        )


class SyncRunResponse(BaseModel):
    """Sync trigger response"""

    session: SyncSessionSummary
    task_id: Optional[str] = None
    message: str


class SyncSessionListResponse(BaseModel):
    total: int
    items: list[SyncSessionSummary]


class SyncHealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    checked_at: datetime
    freshness_hours: int
    employees_known: int
    employees_complete: int
    employees_fresh: int
    fresh_percent: float
    last_collected_at: Optional[datetime] = None
    change_count: int
    last_session: Optional[SyncSessionSummary] = None
    recent_session_counts: dict[str, int]
