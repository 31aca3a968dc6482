"""
Structured Logging with Trace IDs
=================================

Provides JSON-structured logging with per-job tracing. Every record emitted
while a pipeline job is being evaluated or approved carries that job's id,
so one job can be followed from launch through the final approval attempt.

Approval tokens are single-use credentials and never reach the log output.
"""

import json
import logging
import re
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable to store trace_id for the current job
_trace_id_var: ContextVar[str | None] = ContextVar('trace_id', default=None)

_SENSITIVE_FIELDS = frozenset({'token', 'approval_token'})

_TOKEN_PATTERNS = re.compile(
    r'("?token"?\s*[:=]\s*"?)[A-Za-z0-9-]{8,}',
    re.IGNORECASE,
)

_configured = False


def _redact_secrets(text: str) -> str:
    return _TOKEN_PATTERNS.sub(r"\1[REDACTED]", text)


def _mask(value: object) -> str:
    text = str(value)
    if len(text) <= 4:
        return "[REDACTED]"
    return f"[REDACTED]...{text[-4:]}"


class StructuredLogger:
    """
    Structured logger that outputs JSON logs with trace IDs

    Example output:
    {
        "timestamp": "2025-12-17T10:30:45.123Z",
        "level": "INFO",
        "trace_id": "0a1b2c3d-job",
        "component": "DiffEvaluator",
        "message": "Change found",
        "stack_name": "iam-roles",
        "action": "Modify"
    }
    """

    def __init__(self, component: str, logger: logging.Logger | None = None) -> None:
        """
        Initialize structured logger

        Args:
            component: Component name (e.g., 'DiffEvaluator', 'ApprovalWorkflow')
            logger: Optional existing logger (creates new if not provided)
        """
        self.component = component
        self.logger = logger or logging.getLogger(f"approval_gate.{component}")

    def _log(self, level: str, message: str, **kwargs) -> None:
        trace_id = _trace_id_var.get()

        log_entry = {
            'timestamp': datetime.now(tz=UTC).isoformat(),
            'level': level,
            'component': self.component,
            'message': _redact_secrets(message),
        }

        if trace_id:
            log_entry['trace_id'] = trace_id

        for k, v in kwargs.items():
            if k in _SENSITIVE_FIELDS and v is not None:
                log_entry[k] = _mask(v)
            elif isinstance(v, str):
                log_entry[k] = _redact_secrets(v)
            else:
                log_entry[k] = v

        json_log = json.dumps(log_entry, default=str)

        log_method = getattr(self.logger, level.lower())
        log_method(json_log)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message"""
        self._log('DEBUG', message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message"""
        self._log('INFO', message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message"""
        self._log('WARNING', message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message"""
        self._log('ERROR', message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        """Log critical message"""
        self._log('CRITICAL', message, **kwargs)


class TraceContext:
    """
    Context manager binding a pipeline job id as the trace id

    Usage:
        with TraceContext(job.id):
            logger.info("Evaluating job")
    """

    def __init__(self, trace_id: str | None) -> None:
        self.trace_id = trace_id
        self.token = None

    def __enter__(self) -> str | None:
        self.token = _trace_id_var.set(self.trace_id)
        return self.trace_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _trace_id_var.reset(self.token)


def current_trace_id() -> str | None:
    return _trace_id_var.get()


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install a single stream handler on the package logger."""
    global _configured
    root = logging.getLogger("approval_gate")
    root.setLevel(level)
    if _configured:
        return
    handler = logging.StreamHandler()
    if fmt == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    _configured = True


def get_logger(component: str) -> StructuredLogger:
    """
    Get a structured logger for a component

    Args:
        component: Component name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component)
