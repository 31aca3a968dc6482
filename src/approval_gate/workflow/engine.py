"""
Workflow Engines
================

Where approval workflow executions run.

- StepFunctionsEngine: hands the job event to a deployed state machine.
- LocalWorkflowEngine: runs ``ApprovalWorkflow`` in-process, one asyncio task
  per execution. Executions share no mutable state.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from approval_gate.core.exceptions import ConfigurationError
from approval_gate.core.structured_logger import get_logger

from .state_machine import ApprovalWorkflow, WorkflowExecution

logger = get_logger("WorkflowEngine")


@dataclass(frozen=True)
class ExecutionHandle:
    execution_id: str
    started_at: datetime


class WorkflowEngine(ABC):
    """Starts workflow executions; never waits for them to finish."""

    @abstractmethod
    async def start_execution(self, workflow_id: str, payload: dict[str, Any]) -> ExecutionHandle:
        """Start an execution of *workflow_id* with *payload* as input."""
        pass


class StepFunctionsEngine(WorkflowEngine):
    def __init__(self, stepfunctions_client):
        self.stepfunctions = stepfunctions_client

    def _sync_start(self, workflow_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self.stepfunctions.start_execution(
            stateMachineArn=workflow_id,
            input=json.dumps(payload),
        )

    async def start_execution(self, workflow_id: str, payload: dict[str, Any]) -> ExecutionHandle:
        response = await asyncio.to_thread(self._sync_start, workflow_id, payload)
        return ExecutionHandle(
            execution_id=response["executionArn"],
            started_at=response.get("startDate") or datetime.now(tz=UTC),
        )


class LocalWorkflowEngine(WorkflowEngine):
    """
    In-process engine.

    Workflows are registered under an id, mirroring how a deployed state
    machine is addressed by its ARN. Starting an unknown id is a
    configuration error.
    """

    def __init__(self):
        self._workflows: dict[str, ApprovalWorkflow] = {}
        self._tasks: dict[str, asyncio.Task[WorkflowExecution]] = {}

    def register(self, workflow_id: str, workflow: ApprovalWorkflow) -> None:
        self._workflows[workflow_id] = workflow
        logger.info("Registered workflow", workflow_id=workflow_id)

    async def start_execution(self, workflow_id: str, payload: dict[str, Any]) -> ExecutionHandle:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise ConfigurationError(
                f"No workflow registered under id {workflow_id!r}",
                details={"registered": sorted(self._workflows)},
            )
        execution_id = f"{workflow_id}:{uuid.uuid4()}"
        self._tasks[execution_id] = asyncio.create_task(
            workflow.run(payload, execution_id=execution_id),
            name=execution_id,
        )
        return ExecutionHandle(execution_id=execution_id, started_at=datetime.now(tz=UTC))

    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        """Wait for one execution and return its final record."""
        return await self._tasks[execution_id]

    async def wait_all(self) -> list[WorkflowExecution]:
        """Wait for every execution started so far."""
        return list(await asyncio.gather(*self._tasks.values()))
