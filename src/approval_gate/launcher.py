"""Workflow Launcher: turns a pipeline job into a workflow execution and releases the job."""

from __future__ import annotations

import asyncio
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from approval_gate.core.structured_logger import TraceContext, get_logger
from approval_gate.core.types import job_id_from_event
from approval_gate.workflow.engine import ExecutionHandle, WorkflowEngine

logger = get_logger("WorkflowLauncher")


class WorkflowLauncher:
    """
    Starts one approval workflow per pipeline job, then reports job success
    right away so the pipeline does not block on the asynchronous workflow.

    Launch failures are reported back to the pipeline as a job failure and
    re-raised.
    """

    def __init__(self, engine: WorkflowEngine, codepipeline_client, workflow_id: str):
        self.engine = engine
        self.codepipeline = codepipeline_client
        self.workflow_id = workflow_id

    async def launch(self, event: dict[str, Any]) -> ExecutionHandle:
        job_id = job_id_from_event(event)
        with TraceContext(job_id):
            try:
                handle = await self.engine.start_execution(self.workflow_id, event)
                logger.info(
                    "Started workflow execution",
                    execution_id=handle.execution_id,
                    started_at=handle.started_at,
                )
                await asyncio.to_thread(self.codepipeline.put_job_success_result, jobId=job_id)
                logger.info("Marked pipeline job as completed")
                return handle
            except Exception as e:
                logger.error("Error launching workflow", error=str(e), error_type=type(e).__name__)
                await self._report_failure(job_id, e)
                raise

    async def _report_failure(self, job_id: str, error: Exception) -> None:
        try:
            await asyncio.to_thread(
                self.codepipeline.put_job_failure_result,
                jobId=job_id,
                failureDetails={"type": "JobFailed", "message": str(error)[:5000]},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Unable to report job failure to the pipeline", error=str(e))
