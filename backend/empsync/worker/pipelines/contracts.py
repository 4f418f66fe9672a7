"""
Contract Periods
Chronological contract sequence extracted from an /employments payload
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional

from empsync.schemas.payloads import (
    CONTRACT_FIXED,
    CONTRACT_PERMANENT,
    ENDPOINT_EMPLOYMENTS,
    EmploymentsPayload,
    parse_payload,
)

DEFAULT_HOURS_PER_WEEK = 36.0


@dataclass
class ContractPeriod:
    """One contract with the hours and wage in force when it started"""
    employee_id: str
    contract_type: str  # "fixed" / "permanent"
    start_date: date
    end_date: Optional[date]
    hours_per_week: float
    hourly_wage: Optional[float]
    notice_given_date: Optional[date] = None

    @property
    def is_fixed_term(self) -> bool:
        return self.contract_type == CONTRACT_FIXED

    @property
    def is_permanent(self) -> bool:
        return self.contract_type == CONTRACT_PERMANENT

    def to_dict(self) -> dict:
        return asdict(self)


def extract_contract_periods(
    employee_id: str,
    employments: EmploymentsPayload,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
) -> list[ContractPeriod]:
    periods = []
    for contract in sorted(employments.contracts, key=lambda c: c.start_date):
        hours_entry = employments.hours_on(contract.start_date)
        salary_entry = employments.salary_on(contract.start_date)

        hours = contract.hours_per_week
        if hours is None and hours_entry is not None:
            hours = hours_entry.hours_per_week
        if hours is None:
            hours = default_hours_per_week

        periods.append(ContractPeriod(
            employee_id=str(employee_id),
            contract_type=CONTRACT_FIXED if contract.is_fixed_term else CONTRACT_PERMANENT,
            start_date=contract.start_date,
            end_date=contract.end_date,
            hours_per_week=float(hours),
            hourly_wage=salary_entry.hour_wage if salary_entry is not None else None,
            notice_given_date=contract.notice_given_date,
        ))
    return periods


def contract_periods_from_payload(
    employee_id: str,
    payload: dict,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
) -> list[ContractPeriod]:
    parsed = parse_payload(ENDPOINT_EMPLOYMENTS, payload)
    return extract_contract_periods(employee_id, parsed, default_hours_per_week)
