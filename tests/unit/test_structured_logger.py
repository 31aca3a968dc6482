"""
Tests for structured logging: JSON output, trace ids and token masking.
"""

import json
import logging

import pytest

from approval_gate.core.exceptions import GateError, NoTokenYetError, UnreadableArtifactError
from approval_gate.core.structured_logger import (
    StructuredLogger,
    TraceContext,
    current_trace_id,
    get_logger,
)


@pytest.fixture
def records(caplog):
    caplog.set_level(logging.DEBUG, logger="approval_gate")

    def _entries() -> list[dict]:
        return [json.loads(r.getMessage()) for r in caplog.records if r.name.startswith("approval_gate")]

    return _entries


class TestStructuredLogger:
    def test_emits_json_with_component(self, records):
        get_logger("DiffEvaluator").info("Change found", action="Modify")
        entry = records()[-1]
        assert entry["level"] == "INFO"
        assert entry["component"] == "DiffEvaluator"
        assert entry["message"] == "Change found"
        assert entry["action"] == "Modify"
        assert "trace_id" not in entry

    def test_logger_name_is_namespaced(self):
        assert StructuredLogger("Launcher").logger.name == "approval_gate.Launcher"

    def test_trace_id_attached_inside_context(self, records):
        with TraceContext("job-0001"):
            assert current_trace_id() == "job-0001"
            get_logger("Workflow").info("step")
        assert current_trace_id() is None
        assert records()[-1]["trace_id"] == "job-0001"

    def test_token_field_is_masked(self, records):
        get_logger("ApprovalExecutor").info("Approving", token="a1b2c3d4-token-5678")
        assert records()[-1]["token"] == "[REDACTED]...5678"

    def test_short_token_fully_masked(self, records):
        get_logger("ApprovalExecutor").info("Approving", approval_token="abc")
        assert records()[-1]["approval_token"] == "[REDACTED]"

    def test_token_inside_free_text_is_redacted(self, records):
        get_logger("ApprovalExecutor").info(
            "Target action state",
            action_state='{"status": "InProgress", "token": "a1b2c3d4-token-5678"}',
        )
        entry = records()[-1]
        assert "a1b2c3d4" not in entry["action_state"]
        assert "[REDACTED]" in entry["action_state"]

    def test_non_string_values_pass_through(self, records):
        get_logger("ChangeEvaluation").info("Checking", artifacts=3, files=["a", "b"])
        entry = records()[-1]
        assert entry["artifacts"] == 3
        assert entry["files"] == ["a", "b"]


class TestGateErrors:
    def test_to_dict(self):
        error = UnreadableArtifactError("bad zip", details={"key": "build.zip"})
        assert error.to_dict() == {
            "error_type": "UnreadableArtifactError",
            "error_code": 4001,
            "message": "bad zip",
            "retryable": False,
            "details": {"key": "build.zip"},
        }

    def test_only_missing_token_is_retryable(self):
        assert NoTokenYetError().retryable is True
        assert NoTokenYetError().message == "No token for action yet"
        assert GateError("boom").retryable is False
