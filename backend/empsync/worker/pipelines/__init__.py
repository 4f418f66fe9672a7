# Sync pipelines: snapshot -> change detection -> timeline, plus read-side
# compliance and salary reconstruction
from empsync.worker.pipelines.snapshot import SnapshotStore, compute_content_hash
from empsync.worker.pipelines.change_detection import ChangeDetector, DetectedChange, compare_snapshots
from empsync.worker.pipelines.timeline import TimelineBuilder, TimelineEntry, TimelineView
from empsync.worker.pipelines.contracts import ContractPeriod, extract_contract_periods
from empsync.worker.pipelines.compliance import (
    ChainRuleEvaluator,
    TerminationNoticeEvaluator,
    ComplianceEngine,
    ComplianceStatus,
)
from empsync.worker.pipelines.salary import (
    CaoSalaryTable,
    SalaryPeriod,
    SalaryProgressionReconstructor,
)
from empsync.worker.pipelines.sync_session import SyncSessionTracker
from empsync.worker.pipelines.sync_runner import ALL_EMPLOYEES, SyncRunner, SyncRunSummary

__all__ = [
    "SnapshotStore",
    "compute_content_hash",
    "ChangeDetector",
    "DetectedChange",
    "compare_snapshots",
    "TimelineBuilder",
    "TimelineEntry",
    "TimelineView",
    "ContractPeriod",
    "extract_contract_periods",
    "ChainRuleEvaluator",
    "TerminationNoticeEvaluator",
    "ComplianceEngine",
    "ComplianceStatus",
    "CaoSalaryTable",
    "SalaryPeriod",
    "SalaryProgressionReconstructor",
    "SyncSessionTracker",
    "ALL_EMPLOYEES",
    "SyncRunner",
    "SyncRunSummary",
]
