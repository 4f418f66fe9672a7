"""
Compliance Engine
Dutch labour-law checks over an employee's contract sequence

- Ketenregeling (chain rule): at most 3 fixed-term contracts or 36 months
  in one unbroken chain; a gap of 6 months or more starts a new chain.
- Aanzegging (termination notice): for fixed-term contracts of 6 months or
  longer the employee must hear at least 1 month before the end date
  whether the contract is renewed.

Both evaluators are pure: results are computed on read, never stored.
"""

import enum
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Optional

from empsync.core.dates import add_months, subtract_months
from empsync.worker.pipelines.contracts import ContractPeriod

# =============================================================================
# Thresholds
# =============================================================================

MAX_CHAIN_CONTRACTS = 3
MAX_CHAIN_MONTHS = 36
CHAIN_WARNING_MARGIN_MONTHS = 6
CHAIN_RESET_GAP_MONTHS = 6
DAYS_PER_MONTH = 30  # chain durations are counted in 30-day months

NOTICE_MONTHS = 1
NOTICE_MIN_CONTRACT_MONTHS = 6
NOTICE_URGENT_DAYS = 30
WORKDAYS_PER_WEEK = 5


class ChainWarningLevel(str, enum.Enum):
    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"


class NoticeStatus(str, enum.Enum):
    IDEAL = "ideal"
    URGENT = "urgent"
    CRITICAL = "critical"
    OVERDUE = "overdue"


@dataclass
class ChainRuleStatus:
    warning_level: ChainWarningLevel
    message: str
    contracts_used: int
    total_chained_months: float
    chain_start_date: Optional[date] = None
    requires_permanent: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TerminationNotice:
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

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ComplianceStatus:
    chain_rule_status: ChainRuleStatus
    termination_notice: Optional[TerminationNotice]

    def to_dict(self) -> dict:
        return {
            "chain_rule_status": self.chain_rule_status.to_dict(),
            "termination_notice": self.termination_notice.to_dict() if self.termination_notice else None,
        }


def contract_months(contract: ContractPeriod, today: date) -> float:
    """Inclusive duration in 30-day months; open contracts run until today"""
    end = contract.end_date or today
    days = (end - contract.start_date).days + 1
    return max(days, 0) / DAYS_PER_MONTH


# =============================================================================
# Ketenregeling
# =============================================================================

class ChainRuleEvaluator:
    """safe -> warning -> critical; critical is terminal for a chain"""

    def evaluate(self, contracts: list[ContractPeriod], today: date) -> ChainRuleStatus:
        fixed = sorted((c for c in contracts if c.is_fixed_term), key=lambda c: c.start_date)
        if not fixed:
            return ChainRuleStatus(
                warning_level=ChainWarningLevel.SAFE,
                message="No fixed-term contracts",
                contracts_used=0,
                total_chained_months=0.0,
            )

        chain: list[ContractPeriod] = []
        months = 0.0
        level = ChainWarningLevel.SAFE

        for contract in fixed:
            if chain and self._breaks_chain(chain[-1], contract):
                chain, months = [], 0.0
            chain.append(contract)
            months += contract_months(contract, today)
            level = self._level(len(chain), months)
            if level == ChainWarningLevel.CRITICAL:
                break

        status = ChainRuleStatus(
            warning_level=level,
            message=self._message(level, len(chain), months),
            contracts_used=len(chain),
            total_chained_months=round(months, 1),
            chain_start_date=chain[0].start_date,
            requires_permanent=level == ChainWarningLevel.CRITICAL,
        )

        permanent = self._permanent_after(contracts, chain[-1])
        if permanent is not None:
            status.warning_level = ChainWarningLevel.SAFE
            status.requires_permanent = False
            status.message = f"Permanent contract since {permanent.start_date.isoformat()}"
        return status

    @staticmethod
    def _breaks_chain(previous: ContractPeriod, following: ContractPeriod) -> bool:
        if previous.end_date is None:
            return False
        return following.start_date >= add_months(previous.end_date, CHAIN_RESET_GAP_MONTHS)

    @staticmethod
    def _level(count: int, months: float) -> ChainWarningLevel:
        if count > MAX_CHAIN_CONTRACTS or months > MAX_CHAIN_MONTHS:
            return ChainWarningLevel.CRITICAL
        if count == MAX_CHAIN_CONTRACTS or months >= MAX_CHAIN_MONTHS - CHAIN_WARNING_MARGIN_MONTHS:
            return ChainWarningLevel.WARNING
        return ChainWarningLevel.SAFE

    @staticmethod
    def _message(level: ChainWarningLevel, count: int, months: float) -> str:
        summary = f"{count} fixed-term contract(s), {months:.1f} months in chain"
        if level == ChainWarningLevel.CRITICAL:
            return f"Chain rule limit exceeded ({summary}); next contract must be permanent"
        if level == ChainWarningLevel.WARNING:
            return f"Chain rule limit approaching ({summary})"
        return summary

    @staticmethod
    def _permanent_after(contracts: list[ContractPeriod], last_fixed: ContractPeriod) -> Optional[ContractPeriod]:
        permanents = [c for c in contracts if c.is_permanent and c.start_date > last_fixed.start_date]
        return min(permanents, key=lambda c: c.start_date) if permanents else None


# =============================================================================
# Aanzegging
# =============================================================================

class TerminationNoticeEvaluator:
    """ideal -> urgent -> critical -> overdue, by days until the notice deadline"""

    def evaluate(self, contracts: list[ContractPeriod], today: date) -> Optional[TerminationNotice]:
        if not contracts:
            return None
        contract = max(contracts, key=lambda c: c.start_date)
        if not self.qualifies(contract):
            return None

        end = contract.end_date
        deadline = subtract_months(end, NOTICE_MONTHS)
        days = (deadline - today).days
        ended = end <= today

        if ended and contract.notice_given_date is not None:
            return None

        if ended:
            status = NoticeStatus.OVERDUE
        elif days > NOTICE_URGENT_DAYS:
            status = NoticeStatus.IDEAL
        elif days > 0:
            status = NoticeStatus.URGENT
        else:
            status = NoticeStatus.CRITICAL

        penalty_days, penalty_amount = self._penalty(contract, days)

        return TerminationNotice(
            contract_start_date=contract.start_date,
            contract_end_date=end,
            deadline=deadline,
            days_until_deadline=days,
            notification_status=status,
            should_notify=True,
            message=self._message(status, deadline, days),
            notice_given_on=contract.notice_given_date,
            penalty_days=penalty_days,
            penalty_amount=penalty_amount,
        )

    @staticmethod
    def qualifies(contract: ContractPeriod) -> bool:
        """Fixed-term with an end date, lasting at least 6 calendar months"""
        if not contract.is_fixed_term or contract.end_date is None:
            return False
        return add_months(contract.start_date, NOTICE_MIN_CONTRACT_MONTHS) <= contract.end_date + timedelta(days=1)

    @staticmethod
    def _penalty(contract: ContractPeriod, days: int) -> tuple[int, Optional[float]]:
        """Late notice costs one day's wage per day late, capped at one monthly wage"""
        penalty_days = max(0, -days)
        if penalty_days == 0:
            return 0, 0.0
        if not contract.hourly_wage:
            return penalty_days, None

        daily_wage = contract.hourly_wage * contract.hours_per_week / WORKDAYS_PER_WEEK
        monthly_wage = contract.hourly_wage * contract.hours_per_week * 52 / 12
        return penalty_days, round(min(penalty_days * daily_wage, monthly_wage), 2)

    @staticmethod
    def _message(status: NoticeStatus, deadline: date, days: int) -> str:
        if status == NoticeStatus.IDEAL:
            return f"Send termination notice before {deadline.isoformat()} ({days} days left)"
        if status == NoticeStatus.URGENT:
            return f"Termination notice due in {days} days ({deadline.isoformat()})"
        if status == NoticeStatus.CRITICAL:
            return f"Notice deadline passed {-days} days ago; contract still running"
        return "Contract ended without a recorded termination notice"


class ComplianceEngine:
    """Both evaluators over one contract sequence"""

    def __init__(
        self,
        chain_rule: Optional[ChainRuleEvaluator] = None,
        termination_notice: Optional[TerminationNoticeEvaluator] = None,
    ):
        self.chain_rule = chain_rule or ChainRuleEvaluator()
        self.termination_notice = termination_notice or TerminationNoticeEvaluator()

    def evaluate(self, contracts: list[ContractPeriod], today: date) -> ComplianceStatus:
        ordered = sorted(contracts, key=lambda c: c.start_date)
        return ComplianceStatus(
            chain_rule_status=self.chain_rule.evaluate(ordered, today),
            termination_notice=self.termination_notice.evaluate(ordered, today),
        )
