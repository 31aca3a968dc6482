"""Approval workflow state machine and the engines that run it."""

from .engine import ExecutionHandle, LocalWorkflowEngine, StepFunctionsEngine, WorkflowEngine
from .state_machine import ApprovalWorkflow, RetryPolicy, WorkflowExecution, WorkflowState

__all__ = [
    "ApprovalWorkflow",
    "ExecutionHandle",
    "LocalWorkflowEngine",
    "RetryPolicy",
    "StepFunctionsEngine",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowState",
]
