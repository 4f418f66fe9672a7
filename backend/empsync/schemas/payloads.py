"""
Provider Payload Schemas
Tagged validation of Employes.nl responses at the snapshot boundary

Every payload is validated here before it is stored; downstream code reads
payloads through these models instead of raw dicts.
"""

from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from empsync.core.dates import parse_date
from empsync.core.exceptions import ErrorContext, MalformedPayloadError

ENDPOINT_EMPLOYEE = "/employee"
ENDPOINT_EMPLOYMENTS = "/employments"

CONTRACT_FIXED = "fixed"
CONTRACT_PERMANENT = "permanent"


# =============================================================================
# Shared
# =============================================================================

class ProviderModel(BaseModel):
    """Base for provider documents; unknown keys are kept, not rejected"""

    class Config:
        extra = "allow"


class DatedEntry(ProviderModel):
    """History entry that carries its own start date"""

    start_date: date = Field(..., description="Date the entry takes effect")
    end_date: Optional[date] = Field(None, description="Last day the entry applies")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def normalise_dates(cls, v):
        return parse_date(v)


def _identifier(v) -> str:
    if v is None or isinstance(v, bool):
        raise ValueError("identifier is required")
    text = str(v).strip()
    if not text:
        raise ValueError("identifier cannot be empty")
    return text


# =============================================================================
# /employee
# =============================================================================

class EmployeePayload(ProviderModel):
    """GET /employees/{id}"""

    id: str = Field(..., description="Provider employee id")
    first_name: Optional[str] = None
    surname: Optional[str] = None
    email: Optional[str] = None
    status: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    location: Optional[str] = None
    date_of_birth: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    hours_per_week: Optional[float] = None
    salary: Optional[float] = None
    hourly_rate: Optional[float] = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v) -> str:
        return _identifier(v)

    @field_validator("date_of_birth", "start_date", "end_date", mode="before")
    @classmethod
    def normalise_dates(cls, v):
        return parse_date(v)


# =============================================================================
# /employments
# =============================================================================

class ContractEntry(DatedEntry):
    contract_duration: Optional[str] = Field(None, description="'fixed' or 'permanent'")
    notice_given_date: Optional[date] = Field(None, description="Date the aanzegging was sent")
    hours_per_week: Optional[float] = None

    @field_validator("contract_duration", mode="before")
    @classmethod
    def normalise_duration(cls, v) -> Optional[str]:
        if v is None or v == "":
            return None
        text = str(v).strip().lower()
        if text not in (CONTRACT_FIXED, CONTRACT_PERMANENT):
            raise ValueError(f"unknown contract_duration '{v}'")
        return text

    @field_validator("notice_given_date", mode="before")
    @classmethod
    def normalise_notice(cls, v):
        return parse_date(v)

    @property
    def is_fixed_term(self) -> bool:
        # Untyped contracts with an end date are treated as fixed-term
        if self.contract_duration is None:
            return self.end_date is not None
        return self.contract_duration == CONTRACT_FIXED


class SalaryEntry(DatedEntry):
    hour_wage: Optional[float] = None
    month_wage: Optional[float] = None
    yearly_wage: Optional[float] = None
    scale: Optional[str] = None
    trede: Optional[int] = None

    @field_validator("scale", mode="before")
    @classmethod
    def normalise_scale(cls, v) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v).strip()


class HoursEntry(DatedEntry):
    hours_per_week: Optional[float] = None
    days_per_week: Optional[float] = None


def _current(entries: list) -> Optional[DatedEntry]:
    return max(entries, key=lambda e: e.start_date) if entries else None


def _in_force(entries: list, on: date) -> Optional[DatedEntry]:
    """Entry with the latest start_date on or before `on`"""
    candidates = [e for e in entries if e.start_date <= on]
    return _current(candidates)


class EmploymentsPayload(ProviderModel):
    """GET /employees/{id}/employments (full history)"""

    id: str = Field(..., description="Provider employee id")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    contracts: list[ContractEntry] = Field(default_factory=list)
    salary: list[SalaryEntry] = Field(default_factory=list)
    hours: list[HoursEntry] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v) -> str:
        return _identifier(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def normalise_dates(cls, v):
        return parse_date(v)

    @field_validator("contracts", "salary", "hours", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    def current_contract(self) -> Optional[ContractEntry]:
        return _current(self.contracts)

    def current_salary(self) -> Optional[SalaryEntry]:
        return _current(self.salary)

    def current_hours(self) -> Optional[HoursEntry]:
        return _current(self.hours)

    def hours_on(self, on: date) -> Optional[HoursEntry]:
        return _in_force(self.hours, on)

    def salary_on(self, on: date) -> Optional[SalaryEntry]:
        return _in_force(self.salary, on)


ProviderPayload = Union[EmployeePayload, EmploymentsPayload]

PAYLOAD_SCHEMAS: dict[str, type[ProviderModel]] = {
    ENDPOINT_EMPLOYEE: EmployeePayload,
    ENDPOINT_EMPLOYMENTS: EmploymentsPayload,
}


def parse_payload(endpoint: str, payload, employee_id: Optional[str] = None) -> ProviderPayload:
    """
    Validate a raw provider document against its endpoint schema.

    Raises:
        MalformedPayloadError: unknown endpoint, non-object payload, schema
            violation, or an id that does not belong to `employee_id`
    """
    context = ErrorContext(employee_id=employee_id, endpoint=endpoint)

    schema = PAYLOAD_SCHEMAS.get(endpoint)
    if schema is None:
        raise MalformedPayloadError(f"Unknown endpoint: {endpoint}", context=context)

    if not isinstance(payload, dict):
        raise MalformedPayloadError(
            f"Payload for {endpoint} must be an object, got {type(payload).__name__}",
            context=context,
        )

    try:
        parsed = schema.model_validate(payload)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        raise MalformedPayloadError(
            f"Payload for {endpoint} failed validation ({len(errors)} errors)",
            errors=errors,
            context=context,
        ) from e

    if employee_id is not None and parsed.id != str(employee_id):
        raise MalformedPayloadError(
            f"Payload id {parsed.id} does not match employee {employee_id}",
            context=context,
        )

    return parsed
