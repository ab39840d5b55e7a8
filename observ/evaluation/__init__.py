"""Dataset runs, evaluators and run reports."""

from observ.evaluation.evaluators import (
    BaseEvaluator,
    ExactMatchEvaluator,
    ContainsEvaluator,
    JsonStructureEvaluator,
)
from observ.evaluation.registry import (
    BUILT_IN_EVALUATORS,
    build_evaluator,
    get_evaluator_class,
)
from observ.evaluation.evaluator_runner import EvaluatorRunner, EvaluatorRunSummary
from observ.evaluation.metrics import ScoreStatistics
from observ.evaluation.dataset_runs import DatasetRunService
from observ.evaluation.dataset_runner import DatasetRunner
from observ.evaluation.reports import ReportGenerator, RunReport

__all__ = [
    "BaseEvaluator",
    "ExactMatchEvaluator",
    "ContainsEvaluator",
    "JsonStructureEvaluator",
    "BUILT_IN_EVALUATORS",
    "build_evaluator",
    "get_evaluator_class",
    "EvaluatorRunner",
    "EvaluatorRunSummary",
    "ScoreStatistics",
    "DatasetRunService",
    "DatasetRunner",
    "ReportGenerator",
    "RunReport",
]
