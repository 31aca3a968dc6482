"""Change detection: artifact extraction, change set diffing and job evaluation."""

from .artifact_extractor import ArtifactExtractor
from .change_evaluation import ChangeEvaluationService
from .diff_evaluator import DiffEvaluator

__all__ = ["ArtifactExtractor", "ChangeEvaluationService", "DiffEvaluator"]
