"""
Sync Engine Exception Classes
Error taxonomy for the employment sync and compliance engine

- ErrorCategory / ErrorSeverity / ErrorCode
- Per-error retry policy (retryable flag)
- to_dict() for logging and session bookkeeping
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Optional


# ============================================================================
# Error Taxonomy
# ============================================================================


class ErrorCategory(str, Enum):
    """Error category for taxonomy"""
    NETWORK = "network"             # Provider unreachable, timeouts, 5xx
    PROVIDER = "provider"           # Provider rejected the request (4xx)
    VALIDATION = "validation"       # Payload failed schema validation
    REFERENCE_DATA = "reference"    # CAO salary table gaps
    STORAGE = "storage"             # Database issues
    LIFECYCLE = "lifecycle"         # Illegal session state transitions
    VIEW = "view"                   # Derived read view refresh


class ErrorSeverity(str, Enum):
    """Error severity level"""
    CRITICAL = "critical"   # Aborts the whole batch
    HIGH = "high"           # Record is lost for this run
    MEDIUM = "medium"       # Record retried or degraded
    LOW = "low"             # Informational, value flagged


class ErrorCode(str, Enum):
    """Standardized error codes"""
    # Network (1xxx)
    NETWORK_TRANSIENT = "SYNC1001"

    # Provider (2xxx)
    PROVIDER_REJECTED = "SYNC2001"

    # Validation (3xxx)
    MALFORMED_PAYLOAD = "SYNC3001"

    # Reference data (4xxx)
    MISSING_SALARY_TABLE_ENTRY = "SYNC4001"

    # Storage (5xxx)
    CONCURRENT_LATEST_CONFLICT = "SYNC5001"
    STORAGE_UNAVAILABLE = "SYNC5002"

    # Lifecycle (6xxx)
    SESSION_NOT_RUNNING = "SYNC6001"

    # View (7xxx)
    VIEW_REFRESH_FAILED = "SYNC7001"


@dataclass
class ErrorContext:
    """Additional context for error tracking"""
    employee_id: Optional[str] = None
    endpoint: Optional[str] = None
    session_id: Optional[str] = None
    attempt: int = 1
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    metadata: dict = field(default_factory=dict)


class SyncError(Exception):
    """Base exception for the sync engine"""

    category: ErrorCategory = ErrorCategory.STORAGE
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    code: ErrorCode = ErrorCode.STORAGE_UNAVAILABLE
    retryable: bool = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/session details"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "context": {
                "employee_id": self.context.employee_id,
                "endpoint": self.context.endpoint,
                "session_id": self.context.session_id,
                "attempt": self.context.attempt,
                "timestamp": self.context.timestamp,
            },
        }


class TransientNetworkError(SyncError):
    """
    Provider call failed in a way that may succeed later.
    Retried with exponential backoff; raised once attempts are exhausted.
    """

    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.MEDIUM
    code = ErrorCode.NETWORK_TRANSIENT
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code


class ProviderRequestError(SyncError):
    """Provider refused the request (403, 404, ...). Not retried."""

    category = ErrorCategory.PROVIDER
    severity = ErrorSeverity.HIGH
    code = ErrorCode.PROVIDER_REJECTED
    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code


class MalformedPayloadError(SyncError):
    """Payload is missing identifying fields or does not fit the endpoint schema"""

    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.HIGH
    code = ErrorCode.MALFORMED_PAYLOAD
    retryable = False

    def __init__(
        self,
        message: str,
        errors: Optional[list] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, context=context)
        self.errors = errors or []

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["errors"] = self.errors
        return result


class MissingSalaryTableEntry(SyncError):
    """
    No CAO table has a wage for the scale/trede at that date.
    Non-fatal: the wage defaults to 0 and the period is flagged unresolved.
    """

    category = ErrorCategory.REFERENCE_DATA
    severity = ErrorSeverity.LOW
    code = ErrorCode.MISSING_SALARY_TABLE_ENTRY
    retryable = False

    def __init__(self, scale: str, trede: int, effective_date, context: Optional[ErrorContext] = None):
        super().__init__(
            f"No CAO salary entry for scale={scale} trede={trede} on {effective_date}",
            context=context,
        )
        self.scale = scale
        self.trede = trede
        self.effective_date = effective_date


class ConcurrentLatestConflict(SyncError):
    """Another writer claimed the latest pointer for the same (employee, endpoint)"""

    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.MEDIUM
    code = ErrorCode.CONCURRENT_LATEST_CONFLICT
    retryable = True


class StorageUnavailableError(SyncError):
    """Database cannot be reached at all. Aborts the batch."""

    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.CRITICAL
    code = ErrorCode.STORAGE_UNAVAILABLE
    retryable = False


class SessionNotRunningError(SyncError):
    """Counters may only move while a session is running"""

    category = ErrorCategory.LIFECYCLE
    severity = ErrorSeverity.HIGH
    code = ErrorCode.SESSION_NOT_RUNNING
    retryable = False


class ViewRefreshError(SyncError):
    """Derived read view could not be refreshed; nothing was applied"""

    category = ErrorCategory.VIEW
    severity = ErrorSeverity.HIGH
    code = ErrorCode.VIEW_REFRESH_FAILED
    retryable = True
