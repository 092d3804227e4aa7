"""
Centralized Error Tracking and Reporting for the Sync Module.

Both engines prefer partial progress to all-or-nothing: a failure on one post
is recorded here and the pass moves on. The tracker keeps those failures so a
pass can report them at the end, with a severity that separates naturally
retryable failures (a remote upsert or delete that will be attempted again on
the next pass) from failures that may lose reconciliation progress (a state
file that could not be written).

Key Features:
- Custom Exception Classes: transient vs permanent remote failures,
  persistence failures, configuration and item boundary errors.
- ErrorTracker: aggregates errors reported during a single pass.
- Severity Levels: WARNING for per-item failures, CRITICAL for lost progress.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any

class ErrorSeverity(Enum):
    """
    Defines the severity of an error.
    """
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

@dataclass
class SyncError:
    """
    A structured object representing a single error that occurred during a pass.
    """
    message: str
    source_id: Optional[str] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Dict[str, Any] = field(default_factory=dict)
    recovery_suggestion: Optional[str] = None

    def to_dict(self):
        return {
            "message": self.message,
            "source_id": self.source_id,
            "severity": self.severity.value,
            "details": self.details,
            "recovery_suggestion": self.recovery_suggestion
        }

# Custom Exception Classes
class SyncException(Exception):
    """Base class for all custom sync exceptions."""
    def __init__(self, message: str, source_id: Optional[str] = None, recovery_suggestion: Optional[str] = None):
        self.message = message
        self.source_id = source_id
        self.recovery_suggestion = recovery_suggestion
        super().__init__(self.message)

class ConfigurationError(SyncException):
    """Indicates an unusable plugin configuration."""
    pass

class ItemError(SyncException):
    """Indicates a post record that cannot be turned into an Item."""
    pass

class RemoteStoreError(SyncException):
    """Indicates a failed call to the remote document store."""
    def __init__(self, message: str, source_id: Optional[str] = None, status: Optional[int] = None, recovery_suggestion: Optional[str] = None):
        self.status = status
        super().__init__(message, source_id=source_id, recovery_suggestion=recovery_suggestion)

class TransientRemoteError(RemoteStoreError):
    """Remote overload, rate limiting or timeout. Safe to retry."""
    pass

class StatePersistenceError(SyncException):
    """Indicates a state or cache file that could not be written."""
    pass


class ErrorTracker:
    """
    Collects the failures of one pass, in the order they happened.

    The engines never raise per-post failures out of a pass; they report
    them here and the caller inspects the tracker afterwards.
    """
    def __init__(self):
        self.errors: List[SyncError] = []

    def report(self, message: str, source_id: Optional[str] = None, severity: ErrorSeverity = ErrorSeverity.ERROR,
               details: Optional[Dict[str, Any]] = None, recovery_suggestion: Optional[str] = None) -> SyncError:
        error = SyncError(message, source_id, severity, details or {}, recovery_suggestion)
        self.errors.append(error)
        return error

    def report_exception(self, exc: SyncException, severity: ErrorSeverity = ErrorSeverity.ERROR) -> SyncError:
        """Record a SyncException, keeping the HTTP status of remote failures."""
        status = getattr(exc, 'status', None)
        details = {"status": status} if status is not None else {}
        return self.report(exc.message, exc.source_id, severity, details, exc.recovery_suggestion)

    def has_critical_errors(self) -> bool:
        """True once progress may have been lost, e.g. an unsaved state file."""
        return any(e.severity == ErrorSeverity.CRITICAL for e in self.errors)

    def generate_report(self) -> Dict[str, Any]:
        counts = Counter(e.severity for e in self.errors)
        return {
            "total_errors": len(self.errors),
            "critical_count": counts[ErrorSeverity.CRITICAL],
            "error_count": counts[ErrorSeverity.ERROR],
            "warning_count": counts[ErrorSeverity.WARNING],
            "errors": [e.to_dict() for e in self.errors],
        }
