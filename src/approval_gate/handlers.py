"""
Function entry points
=====================

Handlers invoked by the pipeline (``launch``) and by the deployed workflow
(``evaluate``, ``approve``). They share one process-wide container so every
external client is constructed once per process, not once per call.

``approve`` raises ``NoTokenYetError`` for the retryable outcome so an
engine that selects retries by error name can retry just that case.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from approval_gate.config.settings import load_settings
from approval_gate.core.exceptions import (
    ApprovalSubmissionError,
    ConfigurationError,
    InvalidJobError,
    NoTokenYetError,
)
from approval_gate.core.factories import GateContainer, create_container
from approval_gate.core.structured_logger import configure_logging, get_logger
from approval_gate.core.types import ApprovalOutcome, job_id_from_event
from approval_gate.workflow.engine import LocalWorkflowEngine

logger = get_logger("Handlers")

_container: GateContainer | None = None


def get_container() -> GateContainer:
    global _container
    if _container is None:
        settings = load_settings(os.getenv("GATE_CONFIG_FILE") or None)
        configure_logging(settings.logging.level, settings.logging.format)
        _container = create_container(settings)
    return _container


def set_container(container: GateContainer | None) -> None:
    """Replace the process-wide container (None forces a rebuild)."""
    global _container
    _container = container


def evaluate(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Return the event annotated with ``autoApprove``."""
    return asyncio.run(get_container().evaluation.annotate_event(event))


def approve(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    container = get_container()
    target = container.settings.approval.target()
    attempt = asyncio.run(container.executor.resolve_and_approve(target))

    if attempt.outcome is ApprovalOutcome.NO_TOKEN_YET:
        logger.info("Unable to find approval token", pipeline=target.pipeline_name)
        raise NoTokenYetError(details={"pipeline": target.pipeline_name, "stage": target.stage_name})
    if attempt.outcome is ApprovalOutcome.FATAL:
        raise ApprovalSubmissionError(attempt.detail, details={"pipeline": target.pipeline_name})
    return event


def launch(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    container = get_container()
    try:
        launcher = container.launcher
    except ConfigurationError as e:
        logger.critical("Launcher is not configured", error=e.message)
        _report_job_failure(container, event, e.message)
        raise

    async def _launch() -> dict[str, Any]:
        handle = await launcher.launch(event)
        if isinstance(launcher.engine, LocalWorkflowEngine):
            execution = await launcher.engine.get_execution(handle.execution_id)
            logger.info("Local execution finished", state=execution.state.value)
        return {"executionArn": handle.execution_id, "startDate": handle.started_at.isoformat()}

    return asyncio.run(_launch())


def _report_job_failure(container: GateContainer, event: dict[str, Any], message: str) -> None:
    try:
        job_id = job_id_from_event(event)
    except InvalidJobError:
        return
    try:
        container.clients.codepipeline.put_job_failure_result(
            jobId=job_id,
            failureDetails={"type": "ConfigurationError", "message": message},
        )
    except (ClientError, BotoCoreError) as e:
        logger.error("Unable to report job failure to the pipeline", error=str(e))
