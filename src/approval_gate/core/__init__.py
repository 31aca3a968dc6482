"""Core gate module: error taxonomy, boundary types and logging."""

from approval_gate.core.exceptions import (
    ApprovalSubmissionError,
    ConfigurationError,
    ErrorCode,
    GateError,
    InvalidJobError,
    NoTokenYetError,
    UnreadableArtifactError,
)
from approval_gate.core.types import (
    ApprovalAttempt,
    ApprovalOutcome,
    ApprovalTarget,
    CandidateTemplate,
    EvaluationResult,
    PipelineJob,
)

__all__ = [
    "ApprovalAttempt",
    "ApprovalOutcome",
    "ApprovalSubmissionError",
    "ApprovalTarget",
    "CandidateTemplate",
    "ConfigurationError",
    "ErrorCode",
    "EvaluationResult",
    "GateError",
    "InvalidJobError",
    "NoTokenYetError",
    "PipelineJob",
    "UnreadableArtifactError",
]
