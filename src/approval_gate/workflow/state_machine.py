"""
Approval Workflow
=================

State machine run once per pipeline job:

    EVALUATING -> DECIDING -> WAITING -> APPROVING -> APPROVED
                          `-> NO_AUTO_APPROVAL
    (any step) -> FAILED

The pipeline publishes the approval token independently of this workflow
starting, so the workflow may reach APPROVING before the token exists.
WAITING absorbs the common case; APPROVING retries on the retryable
``NO_TOKEN_YET`` outcome with exponential backoff, up to ``max_attempts``
attempts in total, then fails. Non-retryable outcomes fail immediately.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from approval_gate.approval.executor import ApprovalExecutor
from approval_gate.core.exceptions import InvalidJobError
from approval_gate.core.structured_logger import TraceContext, get_logger
from approval_gate.core.types import ApprovalOutcome, ApprovalTarget, job_id_from_event
from approval_gate.evaluation.change_evaluation import ChangeEvaluationService

logger = get_logger("ApprovalWorkflow")

Sleep = Callable[[float], Awaitable[Any]]


class WorkflowState(str, Enum):
    EVALUATING = "evaluating"
    DECIDING = "deciding"
    WAITING = "waiting"
    APPROVING = "approving"
    APPROVED = "approved"
    NO_AUTO_APPROVAL = "no_auto_approval"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (WorkflowState.APPROVED, WorkflowState.NO_AUTO_APPROVAL, WorkflowState.FAILED)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff between attempts."""

    max_attempts: int = 8
    interval_seconds: float = 1.0
    backoff_rate: float = 2.0

    def delay_before_retry(self, retry_number: int) -> float:
        """Delay before the *retry_number*-th retry (1-based)."""
        return self.interval_seconds * (self.backoff_rate ** (retry_number - 1))

    def allows_another_attempt(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts


@dataclass
class WorkflowExecution:
    """One running (or finished) instance of the approval workflow."""

    execution_id: str
    job_id: str | None = None
    state: WorkflowState = WorkflowState.EVALUATING
    auto_approve: bool | None = None
    approval_attempts: int = 0
    history: list[WorkflowState] = field(default_factory=lambda: [WorkflowState.EVALUATING])
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    finished_at: datetime | None = None

    def transition(self, state: WorkflowState) -> None:
        logger.info(
            "Workflow state transition",
            execution_id=self.execution_id,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        self.history.append(state)
        if state.terminal:
            self.finished_at = datetime.now(tz=UTC)

    def fail(self, error: str) -> None:
        self.error = error
        self.transition(WorkflowState.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            'execution_id': self.execution_id,
            'job_id': self.job_id,
            'state': self.state.value,
            'auto_approve': self.auto_approve,
            'approval_attempts': self.approval_attempts,
            'history': [s.value for s in self.history],
            'error': self.error,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }


class ApprovalWorkflow:
    """Evaluate, branch, wait, then approve with bounded retry."""

    def __init__(
        self,
        evaluation: ChangeEvaluationService,
        executor: ApprovalExecutor,
        target: ApprovalTarget,
        wait_seconds: float = 30,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.evaluation = evaluation
        self.executor = executor
        self.target = target
        self.wait_seconds = wait_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def run(self, event: Any, execution_id: str | None = None) -> WorkflowExecution:
        try:
            job_id = job_id_from_event(event)
        except InvalidJobError:
            job_id = None

        execution = WorkflowExecution(execution_id=execution_id or str(uuid.uuid4()), job_id=job_id)
        with TraceContext(job_id or execution.execution_id):
            logger.info("Workflow execution started", execution_id=execution.execution_id)
            await self._step(execution, event)
            logger.info(
                "Workflow execution finished",
                execution_id=execution.execution_id,
                state=execution.state.value,
                approval_attempts=execution.approval_attempts,
            )
        return execution

    async def _step(self, execution: WorkflowExecution, event: Any) -> None:
        while not execution.state.terminal:
            if execution.state is WorkflowState.EVALUATING:
                await self._evaluate(execution, event)
            elif execution.state is WorkflowState.DECIDING:
                self._decide(execution)
            elif execution.state is WorkflowState.WAITING:
                await self._sleep(self.wait_seconds)
                execution.transition(WorkflowState.APPROVING)
            elif execution.state is WorkflowState.APPROVING:
                await self._approve(execution)

    async def _evaluate(self, execution: WorkflowExecution, event: Any) -> None:
        try:
            result = await self.evaluation.evaluate_event(event)
        except Exception as e:
            logger.error("Evaluation failed", error=str(e), error_type=type(e).__name__)
            execution.fail(f"evaluation failed: {e}")
            return
        execution.auto_approve = result.auto_approve
        execution.transition(WorkflowState.DECIDING)

    def _decide(self, execution: WorkflowExecution) -> None:
        if execution.auto_approve is True:
            execution.transition(WorkflowState.WAITING)
        else:
            logger.info("No auto approval, waiting for a human approver")
            execution.transition(WorkflowState.NO_AUTO_APPROVAL)

    async def _approve(self, execution: WorkflowExecution) -> None:
        policy = self.retry_policy
        while True:
            execution.approval_attempts += 1
            attempt = await self.executor.resolve_and_approve(self.target)

            if attempt.outcome is ApprovalOutcome.APPROVED:
                execution.transition(WorkflowState.APPROVED)
                return

            if not attempt.retryable:
                execution.fail(attempt.detail or "approval failed")
                return

            if not policy.allows_another_attempt(execution.approval_attempts):
                logger.error(
                    "Approval retries exhausted",
                    attempts=execution.approval_attempts,
                    max_attempts=policy.max_attempts,
                )
                execution.fail(f"{attempt.detail} after {execution.approval_attempts} attempts")
                return

            delay = policy.delay_before_retry(execution.approval_attempts)
            logger.info(
                "Approval token not available, retrying",
                attempt=execution.approval_attempts,
                delay_seconds=delay,
            )
            await self._sleep(delay)
