"""Dataset run bookkeeping: creation, run item setup and aggregates."""

import logging
from typing import Any, Dict, List, Optional

from observ.errors import NotFoundError, ValidationError
from observ.evaluation.metrics import group_scores, overall_pass_rate, ScoreStatistics
from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.models.dataset import Dataset, DatasetItem, DatasetRun, ItemStatus, RunStatus
from observ.models.score import ScoreableKind

logger = logging.getLogger(__name__)


class DatasetRunService:
    """Creates dataset runs and keeps their counters in line with their items.

    Counters are always recomputed from the run items rather than
    incremented, so calling ``update_metrics`` twice gives the same result.

    Attributes:
        repository: Storage for datasets, runs, traces and scores.
    """

    def __init__(self, repository: IEvaluationRepository):
        """Initialize the service.

        Args:
            repository: Storage for datasets, runs, traces and scores.
        """
        self.repository = repository

    # ============================================================
    # Datasets
    # ============================================================

    def create_dataset(
        self,
        name: str,
        agent_reference: str = "",
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dataset:
        """Create a dataset.

        Raises:
            ValidationError: If the name is blank.
            DuplicateRecordError: If the name is taken.
        """
        if not name or not name.strip():
            raise ValidationError(["name can't be blank"])
        return self.repository.create_dataset(Dataset(
            name=name,
            agent_reference=agent_reference,
            description=description,
            metadata=metadata or {},
        ))

    def add_item(
        self,
        dataset: Dataset,
        input: Any,
        expected_output: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DatasetItem:
        """Add an active item to a dataset."""
        return self.repository.add_item(DatasetItem(
            dataset_id=dataset.id,
            input=input,
            expected_output=expected_output,
            metadata=metadata or {},
        ))

    def get_dataset(self, dataset_id: int) -> Dataset:
        dataset = self.repository.get_dataset(dataset_id)
        if dataset is None:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return dataset

    def active_items(self, dataset: Dataset) -> List[DatasetItem]:
        return self.repository.list_items(dataset.id, status=ItemStatus.ACTIVE)

    def item_counts(self, dataset: Dataset) -> Dict[str, int]:
        """Number of items per status, plus the total."""
        items = self.repository.list_items(dataset.id)
        counts = {status.value: 0 for status in ItemStatus}
        for item in items:
            counts[item.status.value] += 1
        counts["total"] = len(items)
        return counts

    def archive_item(self, item: DatasetItem) -> DatasetItem:
        """Exclude an item from future runs. Existing run items are kept."""
        item.status = ItemStatus.ARCHIVED
        return self.repository.update_item(item)

    def last_run(self, dataset: Dataset) -> Optional[DatasetRun]:
        """Most recently created run of a dataset."""
        runs = self.repository.list_runs(dataset.id)
        return runs[0] if runs else None

    def get_run(self, run_id: int) -> DatasetRun:
        run = self.repository.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Dataset run {run_id} not found")
        return run

    # ============================================================
    # Runs
    # ============================================================

    def create_run(
        self,
        dataset: Dataset,
        name: str,
        metadata: Optional[Dict[str, Any]] = None,
        initialize: bool = True,
    ) -> DatasetRun:
        """Create a pending run and, by default, its run items.

        Args:
            dataset: Dataset to run.
            name: Run name, unique within the dataset.
            metadata: Free-form run context.
            initialize: Create run items for the active dataset items.

        Raises:
            ValidationError: If the name is blank.
            DuplicateRecordError: If the dataset already has a run with this name.
        """
        if not name or not name.strip():
            raise ValidationError(["name can't be blank"])

        run = self.repository.create_run(DatasetRun(
            dataset_id=dataset.id,
            name=name,
            status=RunStatus.PENDING,
            metadata=metadata or {},
        ))
        logger.info(f"Created run '{name}' for dataset '{dataset.name}'")

        if initialize:
            self.initialize_run_items(run)
        return run

    def initialize_run_items(self, run: DatasetRun) -> DatasetRun:
        """Ensure one run item exists per active dataset item.

        Safe to call repeatedly; existing run items are kept.
        """
        created = 0
        for item in self.repository.list_items(run.dataset_id, status=ItemStatus.ACTIVE):
            _, was_created = self.repository.get_or_create_run_item(run.id, item.id)
            if was_created:
                created += 1

        run.total_items = len(self.repository.list_run_items(run.id))
        self.repository.update_run(run)
        logger.info(f"Run {run.id}: {created} run items created, {run.total_items} total")
        return run

    def update_metrics(self, run: DatasetRun) -> DatasetRun:
        """Recompute counters, and the cost/token totals of succeeded run items."""
        run_items = self.repository.list_run_items(run.id)

        run.total_items = len(run_items)
        run.completed_items = sum(1 for ri in run_items if ri.succeeded)
        run.failed_items = sum(1 for ri in run_items if ri.failed)

        traces = [ri.trace for ri in run_items if ri.succeeded and ri.trace is not None]
        run.total_cost = sum(t.total_cost or 0.0 for t in traces)
        run.total_tokens = sum(t.total_tokens or 0 for t in traces)

        self.repository.update_run(run)
        return run

    def duration_seconds(self, run: DatasetRun) -> Optional[float]:
        """Time from the first run item's creation to the last update, once finished."""
        if not run.finished:
            return None
        run_items = self.repository.list_run_items(run.id)
        if not run_items:
            return None
        started = min(ri.created_at for ri in run_items)
        ended = max(ri.updated_at for ri in run_items)
        return round((ended - started).total_seconds(), 1)

    # ============================================================
    # Score aggregates
    # ============================================================

    def average_score(self, run: DatasetRun, name: str) -> Optional[float]:
        """Mean value of the run's scores with this name, None if there are none."""
        return ScoreStatistics.from_scores(name, self.repository.list_scores_for_run(run.id)).average

    def score_summary(self, run: DatasetRun) -> Dict[str, float]:
        """Mean value per score name."""
        grouped = group_scores(self.repository.list_scores_for_run(run.id))
        return {name: stats.average for name, stats in grouped.items()}

    def score_statistics(self, run: DatasetRun) -> Dict[str, ScoreStatistics]:
        return group_scores(self.repository.list_scores_for_run(run.id))

    def pass_rate(self, run: DatasetRun, name: Optional[str] = None) -> Optional[float]:
        """Percentage of scores with value >= 0.5, for one name or all of them."""
        scores = self.repository.list_scores_for_run(run.id)
        if name is not None:
            scores = [s for s in scores if s.name == name]
        return overall_pass_rate(scores)

    def items_with_scores_count(self, run: DatasetRun) -> int:
        scored = {
            s.scoreable.id for s in self.repository.list_scores_for_run(run.id)
            if s.scoreable.kind == ScoreableKind.DATASET_RUN_ITEM
        }
        return len(scored)

    def items_without_scores_count(self, run: DatasetRun) -> int:
        return run.total_items - self.items_with_scores_count(run)

    def failed_run_items(self, run: DatasetRun) -> List:
        return [ri for ri in self.repository.list_run_items(run.id) if ri.failed]
