"""
Custom Exceptions for the Approval Gate
=======================================

Structured error handling lets entry points and the workflow react to an
error's category rather than parsing strings.

Error Codes:
- 1xxx: Client errors (malformed pipeline job events)
- 2xxx: Authorization errors (approval submission rejected)
- 3xxx: Availability errors (approval token not yet published)
- 4xxx: Execution errors (unreadable artifacts)
- 5xxx: System errors (configuration, unexpected)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes"""

    # 1xxx: Client Errors
    INVALID_JOB = 1001

    # 2xxx: Authorization Errors
    APPROVAL_REJECTED = 2001

    # 3xxx: Availability Errors
    NO_TOKEN_YET = 3001

    # 4xxx: Execution Errors
    UNREADABLE_ARTIFACT = 4001

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class GateError(Exception):
    """Base exception for all approval gate errors"""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details
        }


class InvalidJobError(GateError):
    """Raised when a pipeline job event lacks the fields needed for evaluation"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INVALID_JOB, details)


class UnreadableArtifactError(GateError):
    """Raised when an artifact cannot be fetched or parsed as an archive"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.UNREADABLE_ARTIFACT, details)


class NoTokenYetError(GateError):
    """Raised when the approval action has no consumable token (yet)"""

    retryable = True

    def __init__(self, message: str = "No token for action yet", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.NO_TOKEN_YET, details)


class ApprovalSubmissionError(GateError):
    """Raised when the pipeline refuses an approval result; never retried"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.APPROVAL_REJECTED, details)


class ConfigurationError(GateError):
    """Raised when required configuration is missing at startup"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
