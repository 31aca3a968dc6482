"""
Core Type Definitions
=====================

Validated request objects decoded once at the system boundary, and the
result objects passed between the evaluation, approval and workflow layers.

The pipeline delivers jobs as loosely structured JSON. ``PipelineJob``
turns that into a typed object or raises ``InvalidJobError``; callers map the
error onto the fail-safe "require human approval" decision.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from .exceptions import InvalidJobError

JOB_EVENT_KEY = "CodePipeline.job"

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# =============================================================================
# INBOUND JOB EVENT
# =============================================================================


class S3Location(BaseModel):
    """Bucket/key pair of an artifact held in the blob store"""
    bucket_name: str = Field(..., alias="bucketName")
    object_key: str = Field(..., alias="objectKey")

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class ArtifactLocation(BaseModel):
    """Where an input artifact is stored"""
    type: str = Field(..., description="Store kind, e.g. S3")
    s3_location: S3Location | None = Field(None, alias="s3Location")

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    def is_blob_store(self, kind: str) -> bool:
        return self.type == kind and self.s3_location is not None

    @property
    def uri(self) -> str:
        if self.s3_location is None:
            return f"{self.type.lower()}://unknown"
        return f"s3://{self.s3_location.bucket_name}/{self.s3_location.object_key}"


class InputArtifact(BaseModel):
    """A pipeline-produced artifact handed to this stage; read-only here"""
    name: str | None = None
    location: ArtifactLocation | None = None

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    def describe(self) -> str:
        if self.location is None:
            return self.name or "<unnamed artifact>"
        return self.location.uri


class _Configuration(BaseModel):
    user_parameters: NonEmptyStr = Field(..., alias="UserParameters")

    model_config = ConfigDict(populate_by_name=True, extra='allow')


class _ActionConfiguration(BaseModel):
    configuration: _Configuration

    model_config = ConfigDict(extra='ignore')


class _JobData(BaseModel):
    input_artifacts: list[InputArtifact] = Field(..., alias="inputArtifacts", min_length=1)
    action_configuration: _ActionConfiguration = Field(..., alias="actionConfiguration")

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class _Job(BaseModel):
    id: NonEmptyStr
    data: _JobData

    model_config = ConfigDict(extra='ignore')


class _JobEvent(BaseModel):
    job: _Job = Field(..., alias=JOB_EVENT_KEY)

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class _JobRef(BaseModel):
    id: NonEmptyStr

    model_config = ConfigDict(extra='ignore')


class _JobRefEvent(BaseModel):
    job: _JobRef = Field(..., alias=JOB_EVENT_KEY)

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


def _invalid(exc: ValidationError) -> InvalidJobError:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return InvalidJobError(
        f"Invalid pipeline job event at '{location}': {first['msg']}",
        details={"errors": [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]},
    )


@dataclass(frozen=True)
class PipelineJob:
    """
    One pipeline job, immutable for the lifetime of an evaluation.

    ``stack_name`` comes from the action's free-form configuration string
    (``UserParameters``) and names the stack the IAM template targets.
    """
    id: str
    input_artifacts: tuple[InputArtifact, ...]
    stack_name: str

    @classmethod
    def from_event(cls, event: Any) -> "PipelineJob":
        """Decode a raw pipeline event; raises InvalidJobError on any missing field."""
        if not isinstance(event, dict):
            raise InvalidJobError("Pipeline job event must be a JSON object")
        try:
            parsed = _JobEvent.model_validate(event)
        except ValidationError as e:
            raise _invalid(e) from e
        return cls(
            id=parsed.job.id,
            input_artifacts=tuple(parsed.job.data.input_artifacts),
            stack_name=parsed.job.data.action_configuration.configuration.user_parameters,
        )


def job_id_from_event(event: Any) -> str:
    """Extract only the job id; used where the rest of the job is irrelevant."""
    if not isinstance(event, dict):
        raise InvalidJobError("Pipeline job event must be a JSON object")
    try:
        return _JobRefEvent.model_validate(event).job.id
    except ValidationError as e:
        raise _invalid(e) from e


# =============================================================================
# EVALUATION RESULTS
# =============================================================================


@dataclass(frozen=True)
class CandidateTemplate:
    """Text of the IAM template extracted from one artifact"""
    path: str
    body: str
    matches: tuple[str, ...] = ()

    @property
    def ambiguous(self) -> bool:
        return len(self.matches) > 1


@dataclass(frozen=True)
class ResourceChange:
    action: str
    logical_id: str
    resource_type: str

    @classmethod
    def from_api(cls, change: dict[str, Any]) -> "ResourceChange":
        resource = change.get("ResourceChange", {})
        return cls(
            action=resource.get("Action", "Unknown"),
            logical_id=resource.get("LogicalResourceId", "Unknown"),
            resource_type=resource.get("ResourceType", "Unknown"),
        )


@dataclass
class EvaluationResult:
    """Outcome of evaluating every input artifact of one job"""
    job_id: str | None
    auto_approve: bool
    stack_name: str | None = None
    changed_artifacts: list[str] = field(default_factory=list)
    reason: str = ""


# =============================================================================
# APPROVAL RESULTS
# =============================================================================


class ApprovalOutcome(str, Enum):
    """Tagged result of one approval attempt."""

    APPROVED = "approved"
    NO_TOKEN_YET = "no_token_yet"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is ApprovalOutcome.NO_TOKEN_YET

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ApprovalTarget:
    """The (pipeline, stage, action) triple an approval token is scoped to"""
    pipeline_name: str
    stage_name: str
    action_name: str


@dataclass(frozen=True)
class ApprovalAttempt:
    outcome: ApprovalOutcome
    detail: str = ""

    @property
    def retryable(self) -> bool:
        return self.outcome.retryable


__all__ = [
    'JOB_EVENT_KEY',
    'ApprovalAttempt',
    'ApprovalOutcome',
    'ApprovalTarget',
    'ArtifactLocation',
    'CandidateTemplate',
    'EvaluationResult',
    'InputArtifact',
    'PipelineJob',
    'ResourceChange',
    'S3Location',
    'job_id_from_event',
]
