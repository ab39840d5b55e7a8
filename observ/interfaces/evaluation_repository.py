"""Abstract interface for dataset, run, trace and score storage."""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from observ.models.dataset import Dataset, DatasetItem, DatasetRun, DatasetRunItem, ItemStatus
from observ.models.score import Score, ScoreableRef, ScoreSource
from observ.models.trace import Trace

class IEvaluationRepository(ABC):
    """Abstract interface for the evaluation pipeline's records.

    The uniqueness rules below are the only concurrency control the
    pipeline relies on, so every implementation must enforce them:
    - dataset names are unique
    - run names are unique per dataset
    - a run has at most one run item per dataset item
    - a scoreable has at most one score per (name, source)
    """

    # ============================================================
    # Datasets and items
    # ============================================================

    @abstractmethod
    def create_dataset(self, dataset: Dataset) -> Dataset:
        """Persist a new dataset.

        Raises:
            DuplicateRecordError: If the name is taken.
        """
        pass

    @abstractmethod
    def get_dataset(self, dataset_id: int) -> Optional[Dataset]:
        pass

    @abstractmethod
    def get_dataset_by_name(self, name: str) -> Optional[Dataset]:
        pass

    @abstractmethod
    def list_datasets(self) -> List[Dataset]:
        pass

    @abstractmethod
    def add_item(self, item: DatasetItem) -> DatasetItem:
        """Persist a new dataset item."""
        pass

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[DatasetItem]:
        pass

    @abstractmethod
    def list_items(self, dataset_id: int, status: Optional[ItemStatus] = None) -> List[DatasetItem]:
        """List a dataset's items in creation order, optionally filtered by status."""
        pass

    @abstractmethod
    def update_item(self, item: DatasetItem) -> DatasetItem:
        pass

    # ============================================================
    # Runs and run items
    # ============================================================

    @abstractmethod
    def create_run(self, run: DatasetRun) -> DatasetRun:
        """Persist a new dataset run.

        Raises:
            DuplicateRecordError: If the dataset already has a run with this name.
        """
        pass

    @abstractmethod
    def get_run(self, run_id: int) -> Optional[DatasetRun]:
        pass

    @abstractmethod
    def list_runs(self, dataset_id: int) -> List[DatasetRun]:
        """List a dataset's runs, newest first."""
        pass

    @abstractmethod
    def update_run(self, run: DatasetRun) -> DatasetRun:
        """Save status, counters, aggregates and metadata of a run."""
        pass

    @abstractmethod
    def get_or_create_run_item(self, run_id: int, item_id: int) -> Tuple[DatasetRunItem, bool]:
        """Get the run item for (run, item), creating it if missing.

        Returns:
            Tuple of (run item, whether it was created).
        """
        pass

    @abstractmethod
    def get_run_item(self, run_item_id: int) -> Optional[DatasetRunItem]:
        """Get a run item with its dataset item and trace loaded."""
        pass

    @abstractmethod
    def list_run_items(self, run_id: int) -> List[DatasetRunItem]:
        """List a run's items in creation order, with dataset items and traces loaded."""
        pass

    @abstractmethod
    def update_run_item(self, run_item: DatasetRunItem) -> DatasetRunItem:
        """Save the trace reference and error of a run item."""
        pass

    # ============================================================
    # Traces
    # ============================================================

    @abstractmethod
    def save_trace(self, trace: Trace) -> Trace:
        """Insert a new trace or update an existing one."""
        pass

    @abstractmethod
    def get_trace(self, trace_id: int) -> Optional[Trace]:
        pass

    # ============================================================
    # Scores
    # ============================================================

    @abstractmethod
    def create_score(self, score: Score) -> Score:
        """Persist a new score.

        Raises:
            ValidationError: If the score is invalid.
            DuplicateRecordError: If the scoreable already has a score with
                this name and source.
        """
        pass

    @abstractmethod
    def upsert_score(self, score: Score) -> Score:
        """Create a score, or update the existing one with the same
        (scoreable, name, source).

        Raises:
            ValidationError: If the score is invalid.
        """
        pass

    @abstractmethod
    def get_score(self, scoreable: ScoreableRef, name: str, source: ScoreSource) -> Optional[Score]:
        pass

    @abstractmethod
    def list_scores(self, scoreable: ScoreableRef) -> List[Score]:
        """List the scores of one owner, oldest first."""
        pass

    @abstractmethod
    def list_scores_for_run(self, run_id: int) -> List[Score]:
        """List the scores attached to any run item of a run."""
        pass
