"""
WasteWatch AI - Error Types
Exception hierarchy for the intake and verification pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(Enum):
    """Categories of pipeline failures."""

    # Object storage
    REFERENCE_UNSUPPORTED = "REFERENCE_UNSUPPORTED"
    REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"

    # Image oracle
    ORACLE_UNAVAILABLE = "ORACLE_UNAVAILABLE"
    ORACLE_BAD_RESPONSE = "ORACLE_BAD_RESPONSE"

    # Pipeline
    CORRELATION_MISS = "CORRELATION_MISS"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    LEDGER_UPDATE_FAILED = "LEDGER_UPDATE_FAILED"

    # General
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class ErrorContext:
    """
    Context attached to every pipeline error.

    Attributes:
        error_type: Category from ErrorType
        message: Human-readable message
        recoverable: Whether redelivering the event may succeed
        details: Optional extra details for logs
        original_exception: Underlying exception, if any
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class WasteWatchError(Exception):
    """Base exception carrying an ErrorContext."""

    error_type: ErrorType = ErrorType.UNKNOWN_ERROR
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        error_type: Optional[ErrorType] = None,
    ):
        self.context = ErrorContext(
            error_type=error_type or self.error_type,
            message=message,
            recoverable=self.recoverable,
            details=details,
            original_exception=original_exception,
        )
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.context.error_type.value}: {self.context.message}"

    def to_dict(self) -> Dict[str, Any]:
        return self.context.to_dict()


class ReferenceResolutionError(WasteWatchError):
    """Image reference is malformed, unsupported or points nowhere."""

    error_type = ErrorType.REFERENCE_UNSUPPORTED
    recoverable = False


class StorageUnavailableError(WasteWatchError):
    """Object storage could not be reached."""

    error_type = ErrorType.STORAGE_UNAVAILABLE
    recoverable = True


class OracleUnavailableError(WasteWatchError):
    """Oracle call timed out or kept failing after retries."""

    error_type = ErrorType.ORACLE_UNAVAILABLE
    recoverable = True


class OracleResponseError(WasteWatchError):
    """Oracle answered with text that could not be turned into a judgement."""

    error_type = ErrorType.ORACLE_BAD_RESPONSE
    recoverable = True

    def __init__(self, message: str, raw_text: str = "", **kwargs):
        self.raw_text = raw_text
        details = kwargs.pop("details", None) or {}
        details.setdefault("raw_text", raw_text[:500])
        super().__init__(message, details=details, **kwargs)


class CorrelationMiss(WasteWatchError):
    """No report could be matched to a finalized object."""

    error_type = ErrorType.CORRELATION_MISS
    recoverable = False


class IllegalTransitionError(WasteWatchError):
    """A status change not allowed by the report state machine."""

    error_type = ErrorType.ILLEGAL_TRANSITION
    recoverable = False


class LedgerUpdateError(WasteWatchError):
    """Account points could not be incremented."""

    error_type = ErrorType.LEDGER_UPDATE_FAILED
    recoverable = True
