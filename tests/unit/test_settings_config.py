"""
Unit tests for Pydantic Settings configuration
"""

import pytest
import yaml
from pydantic import ValidationError

from approval_gate.config.settings import (
    ApprovalConfig,
    EvaluationConfig,
    LoggingConfig,
    Settings,
    WorkflowConfig,
    load_settings,
)
from approval_gate.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("GATE_WORKFLOW_ID", "STEP_FUNCTION_ARN", "GATE_APPROVAL__PIPELINE_NAME",
                "GATE_WORKFLOW__MAX_ATTEMPTS", "GATE_LOGGING__LEVEL"):
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self):
        settings = Settings()
        assert settings.evaluation.template_pattern == r"Role.*\.yaml"
        assert settings.evaluation.artifact_store_type == "S3"
        assert settings.approval.stage_name == "iam"
        assert settings.approval.action_name == "IAM_Approval"
        assert settings.workflow.wait_seconds == 30
        assert settings.workflow.max_attempts == 8
        assert settings.workflow.retry_interval_seconds == 1.0
        assert settings.workflow.backoff_rate == 2.0
        assert settings.workflow.engine == "stepfunctions"
        assert settings.workflow_id is None

    def test_project_name(self):
        assert Settings().project_name == "approval-gate"


class TestEnvironment:
    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("GATE_APPROVAL__PIPELINE_NAME", "image-test")
        monkeypatch.setenv("GATE_WORKFLOW__MAX_ATTEMPTS", "3")
        settings = Settings()
        assert settings.approval.pipeline_name == "image-test"
        assert settings.workflow.max_attempts == 3

    def test_workflow_id_from_prefixed_variable(self, monkeypatch):
        monkeypatch.setenv("GATE_WORKFLOW_ID", "arn:aws:states:us-east-1:1:stateMachine:a")
        assert Settings().require_workflow_id() == "arn:aws:states:us-east-1:1:stateMachine:a"

    def test_workflow_id_from_legacy_variable(self, monkeypatch):
        monkeypatch.setenv("STEP_FUNCTION_ARN", "arn:aws:states:us-east-1:1:stateMachine:b")
        assert Settings().workflow_id == "arn:aws:states:us-east-1:1:stateMachine:b"

    def test_missing_workflow_id_is_fatal(self):
        with pytest.raises(ConfigurationError):
            Settings().require_workflow_id()


class TestValidation:
    def test_invalid_template_pattern(self):
        with pytest.raises(ValidationError):
            EvaluationConfig(template_pattern="Role(.yaml")

    def test_invalid_change_set_prefix(self):
        with pytest.raises(ValidationError):
            EvaluationConfig(change_set_prefix="1-bad_prefix")

    def test_concurrency_bounds(self):
        with pytest.raises(ValidationError):
            EvaluationConfig(max_concurrency=0)

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")

    def test_unknown_engine(self):
        with pytest.raises(ValidationError):
            WorkflowConfig(engine="airflow")

    def test_backoff_rate_below_one(self):
        with pytest.raises(ValidationError):
            WorkflowConfig(backoff_rate=0.5)


class TestApprovalTarget:
    def test_target(self):
        target = ApprovalConfig(pipeline_name="image-test").target()
        assert (target.pipeline_name, target.stage_name, target.action_name) == (
            "image-test", "iam", "IAM_Approval"
        )

    def test_target_requires_pipeline_name(self):
        with pytest.raises(ConfigurationError):
            ApprovalConfig().target()


class TestLoadSettings:
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "gate.yaml"
        path.write_text(yaml.safe_dump({
            "approval": {"pipeline_name": "image-test", "stage_name": "security"},
            "workflow": {"wait_seconds": 10},
            "workflow_id": "arn:aws:states:us-east-1:1:stateMachine:c",
        }))

        settings = load_settings(path)

        assert settings.approval.pipeline_name == "image-test"
        assert settings.approval.stage_name == "security"
        assert settings.workflow.wait_seconds == 10
        assert settings.workflow_id == "arn:aws:states:us-east-1:1:stateMachine:c"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path).approval.stage_name == "iam"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_environment_only(self):
        assert load_settings().workflow.max_attempts == 8

    def test_cross_field_validation(self, tmp_path):
        path = tmp_path / "gate.yaml"
        path.write_text(yaml.safe_dump({"workflow": {"engine": "local", "wait_seconds": 3600}}))
        with pytest.raises(ValueError, match="15 minutes"):
            load_settings(path)

    def test_empty_action_name(self):
        settings = Settings(approval={"action_name": ""})
        assert settings.validate_required_config() == [
            "Approval stage and action names must not be empty"
        ]
