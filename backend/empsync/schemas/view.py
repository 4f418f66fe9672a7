"""
Derived View Schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ViewRefreshResponse(BaseModel):
    view_name: str
    method: str
    row_count: int
    refreshed_at: datetime
    elapsed_ms: int
    coalesced: bool = False

    class Config:
        from_attributes = True


class EmploymentOverviewRow(BaseModel):
    employee_id: str
    last_collected_at: Optional[datetime] = None
    endpoints_collected: int
    change_count: int
    last_change_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmploymentOverviewResponse(BaseModel):
    total: int
    items: list[EmploymentOverviewRow]
