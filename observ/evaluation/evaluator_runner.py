"""Batch application of evaluators to a dataset run."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from observ.errors import EvaluatorExecutionError
from observ.evaluation.registry import DEFAULT_EVALUATOR_CONFIGS, build_evaluator
from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.models.dataset import Dataset, DatasetRun, DatasetRunItem

logger = logging.getLogger(__name__)


@dataclass
class EvaluatorRunSummary:
    """Counts from one evaluator batch.

    Attributes:
        items_evaluated: Succeeded run items the evaluators were applied to.
        items_skipped: Run items skipped because they did not succeed.
        scores_written: Scores created or updated.
        not_applicable: Evaluator calls that returned no value.
        errors: Messages of evaluator failures.
    """
    items_evaluated: int = 0
    items_skipped: int = 0
    scores_written: int = 0
    not_applicable: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "items_evaluated": self.items_evaluated,
            "items_skipped": self.items_skipped,
            "scores_written": self.scores_written,
            "not_applicable": self.not_applicable,
            "errors": list(self.errors),
        }


class EvaluatorRunner:
    """Applies configured evaluators to every succeeded item of a run.

    A failing evaluator is logged and counted; it never stops the batch or
    the other evaluators on the same item.

    Attributes:
        repository: Storage for run items and scores.
    """

    def __init__(self, repository: IEvaluationRepository):
        """Initialize the runner.

        Args:
            repository: Storage for run items and scores.
        """
        self.repository = repository

    def evaluator_configs_for(self, dataset: Optional[Dataset]) -> List[Dict[str, Any]]:
        """Get the evaluator configs a dataset declares, or the default."""
        if dataset is not None and dataset.evaluator_configs:
            return list(dataset.evaluator_configs)
        return [dict(c) for c in DEFAULT_EVALUATOR_CONFIGS]

    def run(
        self,
        dataset_run: DatasetRun,
        evaluator_configs: Optional[List[Dict[str, Any]]] = None,
    ) -> EvaluatorRunSummary:
        """Evaluate every succeeded run item of a run, in creation order.

        Args:
            dataset_run: The run to evaluate.
            evaluator_configs: Evaluator configs. Defaults to the dataset's
                configs, or exact_match.

        Returns:
            Summary of what was evaluated and written.
        """
        if evaluator_configs is None:
            evaluator_configs = self.evaluator_configs_for(
                self.repository.get_dataset(dataset_run.dataset_id)
            )

        summary = EvaluatorRunSummary()
        if not evaluator_configs:
            return summary

        evaluators = self.build_evaluators(evaluator_configs, summary)

        for run_item in self.repository.list_run_items(dataset_run.id):
            if not run_item.succeeded:
                summary.items_skipped += 1
                continue

            summary.items_evaluated += 1
            self.evaluate_item(run_item, evaluators, summary)

        logger.info(
            f"Evaluated run {dataset_run.id}: {summary.items_evaluated} items, "
            f"{summary.scores_written} scores, {summary.error_count} errors"
        )
        return summary

    def build_evaluators(
        self,
        evaluator_configs: List[Dict[str, Any]],
        summary: EvaluatorRunSummary,
    ) -> List[tuple]:
        """Instantiate evaluators. A config that cannot be built is logged and recorded as an error."""
        evaluators = []
        for config in evaluator_configs:
            try:
                evaluator = build_evaluator(config)
            except Exception as e:
                logger.error(f"Invalid evaluator config {config!r}: {e}")
                summary.errors.append(f"Invalid evaluator config {config!r}: {type(e).__name__}: {e}")
                continue
            if evaluator is not None:
                evaluators.append((config, evaluator))
        return evaluators

    def evaluate_item(
        self,
        run_item: DatasetRunItem,
        evaluators: List[tuple],
        summary: EvaluatorRunSummary,
    ) -> None:
        """Apply each evaluator to one run item, isolating failures."""
        for config, evaluator in evaluators:
            try:
                score = evaluator.call(run_item, self.repository)
            except Exception as e:
                error = EvaluatorExecutionError(config.get("type"), run_item.id, e)
                logger.error(
                    f"Evaluator {config.get('type')} failed for run_item {run_item.id}: {e}"
                )
                summary.errors.append(str(error))
                continue

            if score is None:
                summary.not_applicable += 1
            else:
                summary.scores_written += 1
