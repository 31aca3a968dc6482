"""
Pytest configuration for approval gate tests: shared AWS client fakes,
pipeline event builders, and marker registration.
"""

import io
import sys
import zipfile
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from approval_gate.aws import AwsClients
from approval_gate.config.settings import Settings

STACK_NAME = "iam-roles"
CHANGE_SET_ID = "arn:aws:cloudformation:us-east-1:123456789012:changeSet/chg1/abc"

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def build_zip(files: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip archive; entries keep insertion order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def s3_artifact(bucket: str = "artifacts", key: str = "pipeline/build.zip", name: str = "BuildOutput") -> dict[str, Any]:
    return {
        "name": name,
        "revision": None,
        "location": {
            "type": "S3",
            "s3Location": {"bucketName": bucket, "objectKey": key},
        },
    }


def pipeline_event(
    artifacts: list[dict[str, Any]] | None = None,
    stack_name: str | None = STACK_NAME,
    job_id: str = "job-0001",
) -> dict[str, Any]:
    """Build a pipeline job event shaped like the pipeline service sends it."""
    configuration: dict[str, Any] = {"FunctionName": "auto-approval-evaluation"}
    if stack_name is not None:
        configuration["UserParameters"] = stack_name
    return {
        "CodePipeline.job": {
            "id": job_id,
            "accountId": "123456789012",
            "data": {
                "actionConfiguration": {"configuration": configuration},
                "inputArtifacts": artifacts if artifacts is not None else [s3_artifact()],
                "outputArtifacts": [],
            },
        }
    }


def client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def pipeline_state(
    stage_status: str = "InProgress",
    action_status: str = "InProgress",
    token: str | None = "a1b2c3d4-token-5678",
    stage_name: str = "iam",
    action_name: str = "IAM_Approval",
) -> dict[str, Any]:
    action_execution: dict[str, Any] = {"status": action_status}
    if token is not None:
        action_execution["token"] = token
    return {
        "pipelineName": "image-test",
        "stageStates": [
            {"stageName": "Source", "latestExecution": {"status": "Succeeded"}, "actionStates": []},
            {
                "stageName": stage_name,
                "latestExecution": {"status": stage_status},
                "actionStates": [
                    {"actionName": "Evaluate", "latestExecution": {"status": "Succeeded"}},
                    {"actionName": action_name, "latestExecution": action_execution},
                ],
            },
        ],
    }


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def make_artifact():
    return s3_artifact


@pytest.fixture
def make_event():
    return pipeline_event


@pytest.fixture
def make_client_error():
    return client_error


@pytest.fixture
def make_pipeline_state():
    return pipeline_state


@pytest.fixture
def s3_client():
    """S3 client serving whatever blob the test assigns to ``s3_client.blob``."""
    client = MagicMock()
    client.blob = build_zip({"README.md": "nothing here"})
    client.get_object.side_effect = lambda Bucket, Key: {"Body": io.BytesIO(client.blob)}
    return client


@pytest.fixture
def cloudformation_client():
    """CloudFormation client for an existing stack whose change set has no changes."""
    client = MagicMock()
    client.describe_stacks.return_value = {
        "Stacks": [{
            "StackName": STACK_NAME,
            "Parameters": [
                {"ParameterKey": "Environment", "ParameterValue": "prod"},
                {"ParameterKey": "RoleName", "ParameterValue": "deployer"},
            ],
        }]
    }
    client.create_change_set.return_value = {"Id": CHANGE_SET_ID, "StackId": "stack-id"}
    client.describe_change_set.return_value = {"Status": "CREATE_COMPLETE", "Changes": []}
    return client


@pytest.fixture
def codepipeline_client():
    client = MagicMock()
    client.get_pipeline_state.return_value = pipeline_state()
    return client


@pytest.fixture
def aws_clients(s3_client, cloudformation_client, codepipeline_client):
    return AwsClients(
        s3=s3_client,
        cloudformation=cloudformation_client,
        codepipeline=codepipeline_client,
        stepfunctions=MagicMock(),
    )


@pytest.fixture
def settings(monkeypatch):
    """Settings isolated from the caller's environment, with no real waiting."""
    for var in ("GATE_WORKFLOW_ID", "STEP_FUNCTION_ARN", "GATE_CONFIG_FILE"):
        monkeypatch.delenv(var, raising=False)
    return Settings(
        approval={"pipeline_name": "image-test"},
        workflow={"wait_seconds": 0, "retry_interval_seconds": 0},
    )


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and configure pytest with custom markers."""
    missing = []
    for mod in ("boto3", "pydantic", "pydantic_settings", "click"):
        try:
            __import__(mod)
        except ImportError:
            missing.append(mod)

    if missing:
        print(
            "\n"
            f" Missing dependencies: {', '.join(missing)}\n"
            " Run: pip install -e '.[dev]'\n",
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line(
        "markers", "unit: Fast unit tests with no external dependencies"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests for full workflows"
    )
