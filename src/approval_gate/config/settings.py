"""
Pydantic Settings Configuration
=================================

Type-safe configuration management using Pydantic.
Validates all configuration values at startup and fails fast with clear error messages.
"""

import re
from importlib import metadata
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from approval_gate.core.exceptions import ConfigurationError
from approval_gate.core.types import ApprovalTarget


def _project_version() -> str:
    """Resolve the project version from package metadata."""
    try:
        return metadata.version("approval-gate")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


DEFAULT_TEMPLATE_PATTERN = r"Role.*\.yaml"
DEFAULT_NO_CHANGES_PATTERN = r"didn.t contain changes|No updates are to be performed"
DEFAULT_APPROVAL_SUMMARY = "Manual approval not required - no IAM changes detected"


class AwsConfig(BaseModel):
    """AWS session configuration"""
    region_name: Optional[str] = Field(None, description="AWS region (falls back to the default chain)")
    profile_name: Optional[str] = Field(None, description="Named credentials profile")

    model_config = ConfigDict(extra='allow')


class EvaluationConfig(BaseModel):
    """Change detection configuration"""
    template_pattern: str = Field(DEFAULT_TEMPLATE_PATTERN, description="Regex selecting the IAM template inside an artifact")
    artifact_store_type: str = Field("S3", description="Only artifacts held in this store kind are evaluated")
    max_concurrency: int = Field(4, ge=1, le=64, description="Artifacts evaluated at once")
    change_set_prefix: str = Field("chg", description="Prefix of generated change set names")
    change_set_poll_delay: int = Field(5, ge=1, le=60, description="Seconds between change set status polls")
    change_set_max_polls: int = Field(60, ge=1, le=720, description="Poll ceiling before falling back to a direct read")
    no_changes_pattern: str = Field(DEFAULT_NO_CHANGES_PATTERN, description="Failure reason meaning 'nothing to change'")

    @field_validator('template_pattern', 'no_changes_pattern')
    @classmethod
    def validate_regex(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}") from e
        return v

    @field_validator('change_set_prefix')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if not re.fullmatch(r"[A-Za-z][-A-Za-z0-9]*", v):
            raise ValueError("Change set prefix must start with a letter and contain only letters, digits and '-'")
        return v

    model_config = ConfigDict(extra='allow')


class ApprovalConfig(BaseModel):
    """Which manual approval action the gate approves"""
    pipeline_name: Optional[str] = Field(None, description="Pipeline holding the approval action")
    stage_name: str = Field("iam", description="Stage holding the approval action")
    action_name: str = Field("IAM_Approval", description="Manual approval action name")
    summary: str = Field(DEFAULT_APPROVAL_SUMMARY, description="Summary submitted with the approval")

    model_config = ConfigDict(extra='allow')

    def target(self) -> ApprovalTarget:
        if not self.pipeline_name:
            raise ConfigurationError(
                "approval.pipeline_name is not set (GATE_APPROVAL__PIPELINE_NAME)"
            )
        return ApprovalTarget(self.pipeline_name, self.stage_name, self.action_name)


class WorkflowConfig(BaseModel):
    """Approval workflow timing and retry policy"""
    wait_seconds: float = Field(30, ge=0, description="Delay before the first approval attempt")
    max_attempts: int = Field(8, ge=1, le=50, description="Approval attempts before the workflow fails")
    retry_interval_seconds: float = Field(1.0, ge=0, description="Delay before the first retry")
    backoff_rate: float = Field(2.0, ge=1.0, description="Multiplier applied to each following retry delay")
    engine: Literal["stepfunctions", "local"] = Field("stepfunctions", description="Where executions run")

    model_config = ConfigDict(extra='allow')


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field("json", description="Log format (json, text)")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(extra='allow')


class Settings(BaseSettings):
    """
    Main application settings with type validation.

    Configuration is loaded from:
    1. YAML config file (if provided)
    2. Environment variables with GATE_ prefix (override)
    3. Default values (fallback)

    Environment variable mapping uses double-underscore nesting:
      GATE_APPROVAL__PIPELINE_NAME
      GATE_WORKFLOW__MAX_ATTEMPTS
      GATE_EVALUATION__TEMPLATE_PATTERN

    The workflow definition id is read from GATE_WORKFLOW_ID, or from
    STEP_FUNCTION_ARN for deployments that predate the prefix.
    """

    aws: AwsConfig = Field(default_factory=AwsConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    workflow_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("workflow_id", "GATE_WORKFLOW_ID", "STEP_FUNCTION_ARN"),
        description="Identifier (state machine ARN) of the approval workflow definition",
    )

    project_name: str = Field("approval-gate", description="Project name")
    version: str = Field(default_factory=_project_version, description="Project version")

    model_config = SettingsConfigDict(
        env_prefix='GATE_',
        env_nested_delimiter='__',
        extra='allow',
        validate_assignment=True,
    )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables only."""
        return cls()

    def require_workflow_id(self) -> str:
        """Return the workflow id; its absence is fatal for the launcher."""
        if not self.workflow_id:
            raise ConfigurationError(
                "Workflow id is not set (GATE_WORKFLOW_ID or STEP_FUNCTION_ARN)"
            )
        return self.workflow_id

    def validate_required_config(self) -> list[str]:
        """
        Cross-field checks that single-field validators cannot express.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        if self.workflow.engine == "local" and self.workflow.wait_seconds > 900:
            errors.append("Local engine executions should not wait longer than 15 minutes")
        if self.approval.stage_name == "" or self.approval.action_name == "":
            errors.append("Approval stage and action names must not be empty")
        return errors


def load_settings(config_path: Optional[str | Path] = None) -> Settings:
    """
    Load and validate application settings.

    Raises:
        ValueError: If configuration is invalid
    """
    if config_path:
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings.from_env()

    errors = settings.validate_required_config()
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return settings


__all__ = [
    'Settings',
    'AwsConfig',
    'EvaluationConfig',
    'ApprovalConfig',
    'WorkflowConfig',
    'LoggingConfig',
    'load_settings',
]
