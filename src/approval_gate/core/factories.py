"""Dependency factories: every collaborator client is built once and shared."""

from __future__ import annotations

from dataclasses import dataclass, field

from approval_gate.approval.executor import ApprovalExecutor
from approval_gate.aws import AwsClients
from approval_gate.config.settings import Settings
from approval_gate.evaluation.artifact_extractor import ArtifactExtractor
from approval_gate.evaluation.change_evaluation import ChangeEvaluationService
from approval_gate.evaluation.diff_evaluator import DiffEvaluator
from approval_gate.launcher import WorkflowLauncher
from approval_gate.workflow.engine import LocalWorkflowEngine, StepFunctionsEngine, WorkflowEngine
from approval_gate.workflow.state_machine import ApprovalWorkflow, RetryPolicy

from .structured_logger import get_logger

logger = get_logger("Factories")


def create_evaluation_service(settings: Settings, clients: AwsClients) -> ChangeEvaluationService:
    """Return a ChangeEvaluationService wired to the blob store and stack manager."""
    cfg = settings.evaluation
    logger.info(
        "Creating ChangeEvaluationService",
        template_pattern=cfg.template_pattern,
        max_concurrency=cfg.max_concurrency,
    )
    return ChangeEvaluationService(
        extractor=ArtifactExtractor(clients.s3, cfg.template_pattern),
        evaluator=DiffEvaluator(
            clients.cloudformation,
            change_set_prefix=cfg.change_set_prefix,
            poll_delay=cfg.change_set_poll_delay,
            max_polls=cfg.change_set_max_polls,
            no_changes_pattern=cfg.no_changes_pattern,
        ),
        artifact_store_type=cfg.artifact_store_type,
        max_concurrency=cfg.max_concurrency,
    )


def create_approval_executor(settings: Settings, clients: AwsClients) -> ApprovalExecutor:
    return ApprovalExecutor(clients.codepipeline, summary=settings.approval.summary)


def create_workflow(
    settings: Settings,
    evaluation: ChangeEvaluationService,
    executor: ApprovalExecutor,
) -> ApprovalWorkflow:
    """Return an ApprovalWorkflow; requires approval.pipeline_name."""
    cfg = settings.workflow
    logger.info(
        "Creating ApprovalWorkflow",
        wait_seconds=cfg.wait_seconds,
        max_attempts=cfg.max_attempts,
    )
    return ApprovalWorkflow(
        evaluation=evaluation,
        executor=executor,
        target=settings.approval.target(),
        wait_seconds=cfg.wait_seconds,
        retry_policy=RetryPolicy(
            max_attempts=cfg.max_attempts,
            interval_seconds=cfg.retry_interval_seconds,
            backoff_rate=cfg.backoff_rate,
        ),
    )


def create_engine(settings: Settings, clients: AwsClients, container: GateContainer) -> WorkflowEngine:
    if settings.workflow.engine == "local":
        engine = LocalWorkflowEngine()
        engine.register(settings.require_workflow_id(), container.workflow)
        return engine
    return StepFunctionsEngine(clients.stepfunctions)


def create_launcher(settings: Settings, clients: AwsClients, container: GateContainer) -> WorkflowLauncher:
    """Return a WorkflowLauncher; a missing workflow id is fatal."""
    workflow_id = settings.require_workflow_id()
    logger.info("Creating WorkflowLauncher", workflow_id=workflow_id, engine=settings.workflow.engine)
    return WorkflowLauncher(
        engine=container.engine,
        codepipeline_client=clients.codepipeline,
        workflow_id=workflow_id,
    )


@dataclass
class GateContainer:
    """
    Process-wide container for the gate's services.

    Services that need extra configuration (the workflow needs a pipeline
    name, the launcher a workflow id) are built on first access, so an entry
    point only fails on configuration it actually uses.
    """

    settings: Settings
    clients: AwsClients
    _cache: dict[str, object] = field(default_factory=dict, repr=False)

    def _get(self, name: str, build):
        if name not in self._cache:
            self._cache[name] = build()
        return self._cache[name]

    @property
    def evaluation(self) -> ChangeEvaluationService:
        return self._get("evaluation", lambda: create_evaluation_service(self.settings, self.clients))

    @property
    def executor(self) -> ApprovalExecutor:
        return self._get("executor", lambda: create_approval_executor(self.settings, self.clients))

    @property
    def workflow(self) -> ApprovalWorkflow:
        return self._get("workflow", lambda: create_workflow(self.settings, self.evaluation, self.executor))

    @property
    def engine(self) -> WorkflowEngine:
        return self._get("engine", lambda: create_engine(self.settings, self.clients, self))

    @property
    def launcher(self) -> WorkflowLauncher:
        return self._get("launcher", lambda: create_launcher(self.settings, self.clients, self))


def create_container(settings: Settings, clients: AwsClients | None = None) -> GateContainer:
    if clients is None:
        clients = AwsClients.from_config(settings.aws)
    return GateContainer(settings=settings, clients=clients)
