"""
Employee Feed Schemas
Timeline, compliance status and salary history
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from empsync.models.timeline import ContractMilestoneType, TimelineEventType, TimelineSource
from empsync.worker.pipelines.compliance import ChainWarningLevel, NoticeStatus


# Timeline
class TimelineEventResponse(BaseModel):
    event_type: TimelineEventType
    event_date: date
    field_name: str
    description: str
    detected_at: datetime
    source: TimelineSource
    change_amount: Optional[float] = None
    change_percentage: Optional[float] = None
    contract_milestone_type: Optional[ContractMilestoneType] = None

    class Config:
        from_attributes = True


class TimelineResponse(BaseModel):
    employee_id: str
    total: int
    items: list[TimelineEventResponse]


# Compliance
class ChainRuleStatusResponse(BaseModel):
    warning_level: ChainWarningLevel
    message: str
    contracts_used: int
    total_chained_months: float
    chain_start_date: Optional[date] = None
    requires_permanent: bool = False

    class Config:
        from_attributes = True


class TerminationNoticeResponse(BaseModel):
    contract_start_date: date
    contract_end_date: date
    deadline: date
    days_until_deadline: int
    notification_status: NoticeStatus
    should_notify: bool
    message: str
    notice_given_on: Optional[date] = None
    penalty_days: int = 0
    penalty_amount: Optional[float] = None

    class Config:
        from_attributes = True


class ComplianceResponse(BaseModel):
    employee_id: str
    evaluated_on: date
    chain_rule_status: ChainRuleStatusResponse
    termination_notice: Optional[TerminationNoticeResponse] = None


# Salary
class SalaryPeriodResponse(BaseModel):
    start_date: date
    end_date: Optional[date] = None
    hourly_wage: float
    monthly_wage: float
    hours_per_week: float
    increase_percent: Optional[float] = None
    scale: Optional[str] = None
    trede: Optional[int] = None
    wage_source: str
    is_resolved: bool
    notes: list[str] = []

    class Config:
        from_attributes = True


class SalaryHistoryResponse(BaseModel):
    employee_id: str
    total: int
    items: list[SalaryPeriodResponse]
