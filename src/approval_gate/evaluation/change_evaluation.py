"""Change Evaluation Service: decides whether a pipeline job may be auto-approved."""

from __future__ import annotations

import asyncio
from typing import Any

from approval_gate.core.exceptions import InvalidJobError
from approval_gate.core.structured_logger import TraceContext, get_logger
from approval_gate.core.types import EvaluationResult, InputArtifact, PipelineJob

from .artifact_extractor import ArtifactExtractor
from .diff_evaluator import DiffEvaluator

logger = get_logger("ChangeEvaluation")

AUTO_APPROVE_KEY = "autoApprove"


class ChangeEvaluationService:
    """
    Runs extraction and diff evaluation for every input artifact of a job.

    Artifacts are evaluated concurrently (bounded by *max_concurrency*) and
    all of them are evaluated, even once one has already changed. The job is
    auto-approved only when no artifact changed. Missing job fields never
    lead to auto-approval.
    """

    def __init__(
        self,
        extractor: ArtifactExtractor,
        evaluator: DiffEvaluator,
        artifact_store_type: str = "S3",
        max_concurrency: int = 4,
    ):
        self.extractor = extractor
        self.evaluator = evaluator
        self.artifact_store_type = artifact_store_type
        self.max_concurrency = max_concurrency

    async def evaluate(self, job: PipelineJob) -> bool:
        """Return True when the job may be auto-approved."""
        result = await self.evaluate_job(job)
        return result.auto_approve

    async def evaluate_job(self, job: PipelineJob) -> EvaluationResult:
        logger.info(
            "Checking for changes to stack",
            job_id=job.id,
            stack_name=job.stack_name,
            artifacts=len(job.input_artifacts),
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(artifact: InputArtifact) -> bool:
            async with semaphore:
                return await self.has_artifact_changed(job.stack_name, artifact)

        verdicts = await asyncio.gather(*(_bounded(a) for a in job.input_artifacts))
        changed = [
            artifact.describe()
            for artifact, verdict in zip(job.input_artifacts, verdicts)
            if verdict
        ]

        if changed:
            logger.info("Change detected in IAM template", location=changed[0], changed=len(changed))
            return EvaluationResult(
                job_id=job.id,
                auto_approve=False,
                stack_name=job.stack_name,
                changed_artifacts=changed,
                reason="iam_template_changed",
            )

        logger.info("No change detected in IAM template", stack_name=job.stack_name)
        return EvaluationResult(
            job_id=job.id,
            auto_approve=True,
            stack_name=job.stack_name,
            reason="no_iam_changes",
        )

    async def has_artifact_changed(self, stack_name: str, artifact: InputArtifact) -> bool:
        location = artifact.location
        if location is None or not location.is_blob_store(self.artifact_store_type):
            logger.warning(
                "Input artifact is not from the artifact store, ignoring it",
                artifact=artifact.model_dump(by_alias=True),
                expected_store=self.artifact_store_type,
            )
            return False

        template = await self.extractor.extract_from_location(location.s3_location)
        if template is None:
            return False

        logger.info("Evaluating IAM template", path=template.path, location=location.uri)
        return await self.evaluator.has_changes(stack_name, template.body)

    async def evaluate_event(self, event: Any) -> EvaluationResult:
        """Decode a raw pipeline event and evaluate it; invalid events are never approved."""
        try:
            job = PipelineJob.from_event(event)
        except InvalidJobError as e:
            logger.warning(
                "Could not evaluate pipeline job, requiring manual approval",
                error=e.message,
                details=e.details,
            )
            return EvaluationResult(job_id=None, auto_approve=False, reason="invalid_job")

        with TraceContext(job.id):
            return await self.evaluate_job(job)

    async def annotate_event(self, event: Any) -> dict[str, Any]:
        """Return a copy of *event* carrying the ``autoApprove`` decision."""
        result = await self.evaluate_event(event)
        annotated = dict(event) if isinstance(event, dict) else {"event": event}
        annotated[AUTO_APPROVE_KEY] = result.auto_approve
        return annotated
