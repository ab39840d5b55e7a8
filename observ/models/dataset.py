"""Data models for datasets, dataset runs and run items."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from observ.errors import InvalidStateTransitionError
from observ.models.trace import Trace

class ItemStatus(str, Enum):
    """Whether a dataset item takes part in new runs."""
    ACTIVE = "active"
    ARCHIVED = "archived"

class RunStatus(str, Enum):
    """Lifecycle states of a dataset run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class RunItemStatus(str, Enum):
    """Derived status of a run item."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

RUN_TRANSITIONS: FrozenSet[Tuple[RunStatus, RunStatus]] = frozenset({
    (RunStatus.PENDING, RunStatus.RUNNING),
    (RunStatus.PENDING, RunStatus.FAILED),
    (RunStatus.RUNNING, RunStatus.COMPLETED),
    (RunStatus.RUNNING, RunStatus.FAILED),
})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_blank(value: Any) -> bool:
    """Check for None, whitespace-only strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple, set)):
        return len(value) == 0
    return False


def preview(value: Any, max_length: int = 100) -> Optional[str]:
    """Render a structured value as a single truncated line."""
    if is_blank(value):
        return None
    text = json.dumps(value, default=str) if isinstance(value, (dict, list)) else str(value)
    return f"{text[:max_length]}..." if len(text) > max_length else text


def normalize_output(output: Any) -> Any:
    """Normalize an output so structurally equal values compare equal.

    JSON strings are parsed, so ``'{"a": 1, "b": 2}'`` matches
    ``{"b": 2, "a": 1}``. Other strings are stripped.
    """
    if isinstance(output, str):
        try:
            return json.loads(output)
        except ValueError:
            return output.strip()
    return output


@dataclass
class Dataset:
    """A named collection of test inputs.

    Attributes:
        name: Unique dataset name.
        agent_reference: Registry key of the agent that runs the items.
        description: Human-readable description.
        metadata: Free-form settings; ``metadata["evaluators"]`` holds the
            evaluator configuration list.
        id: Storage identifier, assigned on insert.
        created_at: Creation timestamp (UTC).
    """
    name: str
    agent_reference: str = ""
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)

    @property
    def evaluator_configs(self) -> Optional[List[Dict[str, Any]]]:
        """Evaluator configurations stored on the dataset, if any."""
        return self.metadata.get("evaluators") or None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "agent_reference": self.agent_reference,
            "description": self.description,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DatasetItem:
    """One test case in a dataset.

    Attributes:
        dataset_id: Owning dataset.
        input: Input passed to the agent (any JSON-compatible value).
        expected_output: Optional reference output for evaluators.
        status: Active items are included in new runs.
        source_trace_id: Trace the item was created from, if any.
        metadata: Free-form context.
        id: Storage identifier, assigned on insert.
        created_at: Creation timestamp (UTC).
    """
    dataset_id: int
    input: Any
    expected_output: Any = None
    status: ItemStatus = ItemStatus.ACTIVE
    source_trace_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        self.status = ItemStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == ItemStatus.ACTIVE

    def input_preview(self, max_length: int = 100) -> Optional[str]:
        return preview(self.input, max_length)

    def expected_output_preview(self, max_length: int = 100) -> Optional[str]:
        return preview(self.expected_output, max_length)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "dataset_id": self.dataset_id,
            "input": self.input,
            "expected_output": self.expected_output,
            "status": self.status.value,
            "source_trace_id": self.source_trace_id,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DatasetRun:
    """One execution of a dataset's active items.

    Counters and aggregates are recomputed from run items by
    ``DatasetRunService.update_metrics``; they are not maintained
    incrementally.

    Attributes:
        dataset_id: Dataset being run.
        name: Run name, unique per dataset.
        status: Lifecycle state.
        total_items: Number of run items.
        completed_items: Run items with a trace and no error.
        failed_items: Run items with an error.
        total_cost: Cost summed over all linked traces.
        total_tokens: Tokens summed over all linked traces.
        metadata: Free-form context, including failure details.
        id: Storage identifier, assigned on insert.
    """
    dataset_id: int
    name: str
    status: RunStatus = RunStatus.PENDING
    total_items: int = 0
    completed_items: int = 0
    failed_items: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        self.status = RunStatus(self.status)

    def can_transition_to(self, status: RunStatus) -> bool:
        return (self.status, RunStatus(status)) in RUN_TRANSITIONS

    def transition_to(self, status: RunStatus) -> None:
        """Move the run to ``status``.

        Raises:
            InvalidStateTransitionError: If the edge is not in RUN_TRANSITIONS.
        """
        status = RunStatus(status)
        if not self.can_transition_to(status):
            raise InvalidStateTransitionError(
                status.value,
                self.status.value,
                f"Cannot move dataset run from {self.status.value} to {status.value}",
            )
        self.status = status
        self.updated_at = _now()

    @property
    def finished(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    @property
    def in_progress(self) -> bool:
        return self.status in (RunStatus.PENDING, RunStatus.RUNNING)

    @property
    def progress_percentage(self) -> float:
        """Share of items that finished, successfully or not."""
        if self.total_items == 0:
            return 0
        return round((self.completed_items + self.failed_items) / self.total_items * 100, 1)

    @property
    def success_rate(self) -> float:
        if self.total_items == 0:
            return 0
        return round(self.completed_items / self.total_items * 100, 1)

    @property
    def failure_rate(self) -> float:
        if self.total_items == 0:
            return 0
        return round(self.failed_items / self.total_items * 100, 1)

    @property
    def pending_items_count(self) -> int:
        return self.total_items - self.completed_items - self.failed_items

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "dataset_id": self.dataset_id,
            "name": self.name,
            "status": self.status.value,
            "total_items": self.total_items,
            "completed_items": self.completed_items,
            "failed_items": self.failed_items,
            "total_cost": self.total_cost,
            "total_tokens": self.total_tokens,
            "progress_percentage": self.progress_percentage,
            "success_rate": self.success_rate,
            "failure_rate": self.failure_rate,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class DatasetRunItem:
    """Links one dataset item to its execution result within a run.

    ``dataset_item`` and ``trace`` are populated by the repository when the
    run item is loaded.

    Attributes:
        dataset_run_id: Owning run.
        dataset_item_id: Item that was executed.
        trace_id: Trace of the execution, once it happened.
        error: Error text if the execution failed.
        id: Storage identifier, assigned on insert.
    """
    dataset_run_id: int
    dataset_item_id: int
    trace_id: Optional[int] = None
    error: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    dataset_item: Optional[DatasetItem] = field(default=None, repr=False, compare=False)
    trace: Optional[Trace] = field(default=None, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.trace_id is not None and is_blank(self.error)

    @property
    def failed(self) -> bool:
        return not is_blank(self.error)

    @property
    def pending(self) -> bool:
        return self.trace_id is None and is_blank(self.error)

    @property
    def status(self) -> RunItemStatus:
        if self.failed:
            return RunItemStatus.FAILED
        if self.succeeded:
            return RunItemStatus.SUCCEEDED
        return RunItemStatus.PENDING

    @property
    def input(self) -> Any:
        return self.dataset_item.input if self.dataset_item else None

    @property
    def expected_output(self) -> Any:
        return self.dataset_item.expected_output if self.dataset_item else None

    @property
    def actual_output(self) -> Any:
        return self.trace.output if self.trace else None

    @property
    def cost(self) -> Optional[float]:
        return self.trace.total_cost if self.trace else None

    @property
    def tokens(self) -> Optional[int]:
        return self.trace.total_tokens if self.trace else None

    @property
    def duration_ms(self) -> Optional[float]:
        return self.trace.duration_ms if self.trace else None

    def output_matches(self) -> Optional[bool]:
        """Compare expected and actual output.

        Returns:
            None if either side is blank, otherwise whether the normalized
            values are equal.
        """
        expected, actual = self.expected_output, self.actual_output
        if is_blank(expected) or is_blank(actual):
            return None
        return normalize_output(expected) == normalize_output(actual)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "dataset_run_id": self.dataset_run_id,
            "dataset_item_id": self.dataset_item_id,
            "trace_id": self.trace_id,
            "error": self.error,
            "status": self.status.value,
            "input": self.input,
            "expected_output": self.expected_output,
            "actual_output": self.actual_output,
            "cost": self.cost,
            "tokens": self.tokens,
            "duration_ms": self.duration_ms,
        }
