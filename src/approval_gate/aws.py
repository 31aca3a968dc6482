"""AWS clients: one boto3 session and one client per collaborator, built once per process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from approval_gate.config.settings import AwsConfig
from approval_gate.core.structured_logger import get_logger

logger = get_logger("AwsClients")

# Throttling retries happen inside botocore.
_CLIENT_CONFIG = Config(retries={"mode": "standard", "max_attempts": 5})


@dataclass
class AwsClients:
    """Clients for the blob store, stack manager, pipeline service and workflow engine."""

    s3: Any
    cloudformation: Any
    codepipeline: Any
    stepfunctions: Any

    @classmethod
    def from_config(cls, config: AwsConfig) -> AwsClients:
        session = boto3.session.Session(
            region_name=config.region_name,
            profile_name=config.profile_name,
        )
        logger.info(
            "Creating AWS clients",
            region=session.region_name,
            profile=config.profile_name,
        )
        return cls(
            s3=session.client("s3", config=_CLIENT_CONFIG),
            cloudformation=session.client("cloudformation", config=_CLIENT_CONFIG),
            codepipeline=session.client("codepipeline", config=_CLIENT_CONFIG),
            stepfunctions=session.client("stepfunctions", config=_CLIENT_CONFIG),
        )
