"""
approval-gate CLI: evaluate | approve | run | config
"""
import asyncio
import json
import sys
from pathlib import Path

import click

from approval_gate.config.settings import Settings, load_settings
from approval_gate.core.exceptions import ConfigurationError
from approval_gate.core.factories import GateContainer, create_container
from approval_gate.core.structured_logger import configure_logging
from approval_gate.core.types import ApprovalOutcome, ApprovalTarget
from approval_gate.workflow.state_machine import WorkflowState

EXIT_NO_TOKEN = 3


def _load_event(event_file: Path) -> dict:
    try:
        return json.loads(event_file.read_text())
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{event_file} is not valid JSON: {e}") from e


def _container(ctx: click.Context) -> GateContainer:
    if "container" not in ctx.obj:
        ctx.obj["container"] = create_container(ctx.obj["settings"])
    return ctx.obj["container"]


@click.group()
@click.version_option(package_name="approval-gate")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="YAML settings file (environment variables still override)")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Conditional approval gate for delivery pipelines."""
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_path)
    except ValueError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        raise SystemExit(2)
    configure_logging(settings.logging.level, settings.logging.format)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("event_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def evaluate(ctx: click.Context, event_file: Path) -> None:
    """Decide whether the pipeline job in EVENT_FILE may be auto-approved."""
    event = _load_event(event_file)
    result = asyncio.run(_container(ctx).evaluation.evaluate_event(event))
    click.echo(json.dumps({
        "jobId": result.job_id,
        "stackName": result.stack_name,
        "autoApprove": result.auto_approve,
        "changedArtifacts": result.changed_artifacts,
        "reason": result.reason,
    }, indent=2))


@cli.command()
@click.option("--pipeline", default=None, help="Pipeline name (defaults to approval.pipeline_name)")
@click.option("--stage", default=None, help="Stage name (defaults to approval.stage_name)")
@click.option("--action", default=None, help="Action name (defaults to approval.action_name)")
@click.pass_context
def approve(ctx: click.Context, pipeline: str | None, stage: str | None, action: str | None) -> None:
    """Approve the pending manual approval action once, if its token is published."""
    settings: Settings = ctx.obj["settings"]
    pipeline = pipeline or settings.approval.pipeline_name
    if not pipeline:
        raise click.UsageError("--pipeline is required when approval.pipeline_name is not configured")
    target = ApprovalTarget(
        pipeline_name=pipeline,
        stage_name=stage or settings.approval.stage_name,
        action_name=action or settings.approval.action_name,
    )
    attempt = asyncio.run(_container(ctx).executor.resolve_and_approve(target))
    click.echo(json.dumps({"outcome": attempt.outcome.value, "detail": attempt.detail}))
    if attempt.outcome is ApprovalOutcome.NO_TOKEN_YET:
        sys.exit(EXIT_NO_TOKEN)
    if attempt.outcome is ApprovalOutcome.FATAL:
        sys.exit(1)


@cli.command()
@click.argument("event_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def run(ctx: click.Context, event_file: Path) -> None:
    """Run the whole approval workflow in-process for the job in EVENT_FILE."""
    event = _load_event(event_file)
    try:
        workflow = _container(ctx).workflow
    except ConfigurationError as e:
        raise click.UsageError(e.message) from e
    execution = asyncio.run(workflow.run(event))
    click.echo(json.dumps(execution.to_dict(), indent=2))
    if execution.state is WorkflowState.FAILED:
        sys.exit(1)


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective settings."""
    settings: Settings = ctx.obj["settings"]
    click.echo(settings.model_dump_json(indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
