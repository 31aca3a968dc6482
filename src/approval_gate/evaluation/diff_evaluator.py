"""
Infrastructure Diff Evaluator
=============================

Decides whether deploying a template would change a live stack by creating
a throwaway change set, reading its outcome and deleting it again.

Decision table (after the change set reaches a terminal state):

- FAILED with the "no changes" reason  -> False
- FAILED for any other reason          -> True (logged as anomalous)
- CREATE_COMPLETE with changes         -> True (each change is logged)
- CREATE_COMPLETE without changes      -> False

A missing stack is always a change. Any unexpected error while the change
set exists is also treated as a change. Every change set created here is
deleted exactly once before ``has_changes`` returns.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from approval_gate.config.settings import DEFAULT_NO_CHANGES_PATTERN
from approval_gate.core.structured_logger import get_logger
from approval_gate.core.types import ResourceChange

logger = get_logger("DiffEvaluator")

CHANGE_SET_DESCRIPTION = (
    "Temporary Change Set to see if stack has changed and needs to be submitted for approval"
)

STATUS_COMPLETE = "CREATE_COMPLETE"
STATUS_FAILED = "FAILED"


@dataclass
class ChangeSetDescription:
    """Terminal (or last observed) state of a change set"""
    status: str
    status_reason: str = ""
    changes: list[ResourceChange] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.status in (STATUS_COMPLETE, STATUS_FAILED)


class DiffEvaluator:
    """Simulates a template deployment against a stack via a disposable change set."""

    def __init__(
        self,
        cloudformation_client,
        change_set_prefix: str = "chg",
        poll_delay: int = 5,
        max_polls: int = 60,
        no_changes_pattern: str = DEFAULT_NO_CHANGES_PATTERN,
    ):
        self.cloudformation = cloudformation_client
        self.change_set_prefix = change_set_prefix
        self.poll_delay = poll_delay
        self.max_polls = max_polls
        self.no_changes = re.compile(no_changes_pattern)

    async def has_changes(self, stack_name: str, template_body: str) -> bool:
        """Return True if deploying *template_body* to *stack_name* would change it."""
        try:
            stack = await asyncio.to_thread(self._sync_describe_stack, stack_name)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Error getting information on current stack, treating template as a change",
                stack_name=stack_name,
                error=str(e),
            )
            return True

        if stack is None:
            logger.info("Stack does not exist, treating creation as a change", stack_name=stack_name)
            return True

        try:
            async with self._change_set(stack, template_body) as change_set_id:
                description = await self._wait_for_terminal(change_set_id)
                return self._decide(description)
        except Exception as e:
            logger.error(
                "Error evaluating change set, treating template as a change",
                stack_name=stack_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return True

    # -------------------------------------------------------------------------
    # Private sync helpers (called via asyncio.to_thread)
    # -------------------------------------------------------------------------

    def _sync_describe_stack(self, stack_name: str) -> dict[str, Any] | None:
        try:
            data = self.cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if "does not exist" in str(e):
                return None
            raise
        stacks = data.get("Stacks", [])
        return stacks[0] if stacks else None

    def _sync_create_change_set(self, stack: dict[str, Any], template_body: str) -> str:
        parameters = [
            {"ParameterKey": param["ParameterKey"], "UsePreviousValue": True}
            for param in stack.get("Parameters", [])
        ]
        response = self.cloudformation.create_change_set(
            ChangeSetName=f"{self.change_set_prefix}{uuid.uuid4()}",
            StackName=stack["StackName"],
            Capabilities=["CAPABILITY_NAMED_IAM"],
            ChangeSetType="UPDATE",
            Description=CHANGE_SET_DESCRIPTION,
            Parameters=parameters,
            TemplateBody=template_body,
            UsePreviousTemplate=False,
        )
        return response["Id"]

    def _sync_wait(self, change_set_id: str) -> None:
        waiter = self.cloudformation.get_waiter("change_set_create_complete")
        waiter.wait(
            ChangeSetName=change_set_id,
            WaiterConfig={"Delay": self.poll_delay, "MaxAttempts": self.max_polls},
        )

    def _sync_describe_change_set(self, change_set_id: str) -> ChangeSetDescription:
        changes: list[ResourceChange] = []
        kwargs: dict[str, Any] = {"ChangeSetName": change_set_id}
        while True:
            page = self.cloudformation.describe_change_set(**kwargs)
            changes.extend(ResourceChange.from_api(c) for c in page.get("Changes", []))
            next_token = page.get("NextToken")
            if not next_token:
                break
            kwargs["NextToken"] = next_token
        return ChangeSetDescription(
            status=page.get("Status", ""),
            status_reason=page.get("StatusReason", "") or "",
            changes=changes,
        )

    def _sync_delete_change_set(self, change_set_id: str) -> None:
        self.cloudformation.delete_change_set(ChangeSetName=change_set_id)

    # -------------------------------------------------------------------------
    # Change set lifecycle
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _change_set(self, stack: dict[str, Any], template_body: str) -> AsyncIterator[str]:
        change_set_id = await asyncio.to_thread(self._sync_create_change_set, stack, template_body)
        logger.info("Created change set", stack_name=stack["StackName"], change_set=change_set_id)
        try:
            yield change_set_id
        finally:
            logger.info("Deleting change set", change_set=change_set_id)
            try:
                await asyncio.to_thread(self._sync_delete_change_set, change_set_id)
            except (ClientError, BotoCoreError) as e:
                logger.error("Failed to delete change set", change_set=change_set_id, error=str(e))

    async def _wait_for_terminal(self, change_set_id: str) -> ChangeSetDescription:
        logger.info("Waiting for change set creation to be complete", change_set=change_set_id)
        try:
            await asyncio.to_thread(self._sync_wait, change_set_id)
        except WaiterError as e:
            # The waiter also fails when the change set FAILED because nothing changed.
            logger.info(
                "Change set waiter did not succeed, checking the change set directly",
                change_set=change_set_id,
                error=str(e),
            )
        description = await asyncio.to_thread(self._sync_describe_change_set, change_set_id)
        logger.info("Change set status", change_set=change_set_id, status=description.status)
        return description

    def _decide(self, description: ChangeSetDescription) -> bool:
        if description.status == STATUS_FAILED:
            if self.no_changes.search(description.status_reason):
                logger.info("Change set did not have any changes")
                return False
            logger.error(
                "Change set creation FAILED, treating it as a change",
                reason=description.status_reason,
            )
            return True

        if not description.terminal:
            logger.error(
                "Change set did not reach a terminal state, treating it as a change",
                status=description.status,
            )
            return True

        if description.changes:
            for change in description.changes:
                logger.info(
                    "Change found",
                    action=change.action,
                    logical_id=change.logical_id,
                    resource_type=change.resource_type,
                )
            return True

        logger.info("No changes found")
        return False
