"""Approval Executor: finds the pending approval token and submits an approval with it."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from approval_gate.config.settings import DEFAULT_APPROVAL_SUMMARY
from approval_gate.core.structured_logger import get_logger
from approval_gate.core.types import ApprovalAttempt, ApprovalOutcome, ApprovalTarget

logger = get_logger("ApprovalExecutor")

IN_PROGRESS = "InProgress"


def _in_progress(state: dict[str, Any]) -> bool:
    latest = state.get("latestExecution") or {}
    return latest.get("status") == IN_PROGRESS


class ApprovalExecutor:
    """
    Approves a manual approval action once its token has been published.

    A missing stage, a missing action, or an action without a token all
    produce ``NO_TOKEN_YET``: the caller cannot tell why the token is missing,
    only that it should try again. Failures while reading pipeline state or
    submitting the approval are ``FATAL``; a stale token never becomes valid.
    """

    def __init__(self, codepipeline_client, summary: str = DEFAULT_APPROVAL_SUMMARY):
        self.codepipeline = codepipeline_client
        self.summary = summary

    async def resolve_and_approve(self, target: ApprovalTarget) -> ApprovalAttempt:
        logger.info("Checking pipeline state", pipeline=target.pipeline_name)
        try:
            state = await asyncio.to_thread(self._sync_get_pipeline_state, target.pipeline_name)
        except (ClientError, BotoCoreError) as e:
            logger.error("Unable to read pipeline state", pipeline=target.pipeline_name, error=str(e))
            return ApprovalAttempt(ApprovalOutcome.FATAL, f"get_pipeline_state failed: {e}")

        token = self.find_token(state, target)
        if token is None:
            return ApprovalAttempt(ApprovalOutcome.NO_TOKEN_YET, "No token for action yet")

        logger.info(
            "Auto-approving manual approval step",
            pipeline=target.pipeline_name,
            stage=target.stage_name,
            action=target.action_name,
            token=token,
        )
        try:
            await asyncio.to_thread(self._sync_put_approval_result, target, token)
        except (ClientError, BotoCoreError) as e:
            logger.error("Approval submission rejected", error=str(e), token=token)
            return ApprovalAttempt(ApprovalOutcome.FATAL, f"put_approval_result failed: {e}")

        return ApprovalAttempt(ApprovalOutcome.APPROVED, self.summary)

    @staticmethod
    def find_token(state: dict[str, Any] | None, target: ApprovalTarget) -> str | None:
        """Return the token of the in-progress approval action, if published."""
        if not state or not state.get("stageStates"):
            logger.error("Could not find stages info in pipeline state")
            return None

        stage = next(
            (
                s for s in state["stageStates"]
                if s.get("stageName") == target.stage_name and _in_progress(s)
            ),
            None,
        )
        if stage is None:
            logger.info("Did not find a stage to approve", stage=target.stage_name)
            return None

        action = next(
            (
                a for a in stage.get("actionStates", [])
                if a.get("actionName") == target.action_name and _in_progress(a)
            ),
            None,
        )
        if action is None:
            logger.info("Did not find an action to approve", action=target.action_name)
            return None

        token = action["latestExecution"].get("token")
        if not token:
            logger.info(
                "Target action did not have a token",
                action_state=json.dumps(action, default=str),
            )
            return None
        return token

    # Private sync helpers (called via asyncio.to_thread)

    def _sync_get_pipeline_state(self, pipeline_name: str) -> dict[str, Any]:
        return self.codepipeline.get_pipeline_state(name=pipeline_name)

    def _sync_put_approval_result(self, target: ApprovalTarget, token: str) -> None:
        self.codepipeline.put_approval_result(
            pipelineName=target.pipeline_name,
            stageName=target.stage_name,
            actionName=target.action_name,
            result={"summary": self.summary, "status": "Approved"},
            token=token,
        )
