"""Tests for data models."""

import pytest
from datetime import datetime, timedelta, timezone

from observ.errors import InvalidStateTransitionError
from observ.models.dataset import (
    DatasetItem,
    DatasetRun,
    DatasetRunItem,
    RunItemStatus,
    RunStatus,
    is_blank,
    normalize_output,
)
from observ.models.prompt import (
    PromptEvent,
    PromptState,
    PromptVersion,
    can_transition,
    transition_target,
)
from observ.models.score import Score, ScoreableKind, ScoreableRef, ScoreDataType
from observ.models.trace import Trace


class TestPromptVersion:
    """Tests for PromptVersion and the transition table."""

    def test_draft_flags(self):
        """Test the flags of a draft."""
        prompt = PromptVersion(name="greet", version=1, text="Hi {{name}}")

        assert prompt.is_draft is True
        assert prompt.editable is True
        assert prompt.immutable is False
        assert prompt.can_delete is True
        assert prompt.placeholders == ["name"]

    def test_production_flags(self):
        """Test that production versions are immutable and undeletable."""
        prompt = PromptVersion(name="greet", version=1, text="Hi", state="production")

        assert prompt.state == PromptState.PRODUCTION
        assert prompt.editable is False
        assert prompt.immutable is True
        assert prompt.can_delete is False

    def test_transition_table(self):
        """Test allowed and rejected transitions."""
        assert transition_target(PromptEvent.PROMOTE, PromptState.DRAFT) == PromptState.PRODUCTION
        assert transition_target(PromptEvent.DEMOTE, PromptState.PRODUCTION) == PromptState.ARCHIVED
        assert transition_target(PromptEvent.RESTORE, PromptState.ARCHIVED) == PromptState.PRODUCTION
        assert can_transition(PromptEvent.PROMOTE, PromptState.ARCHIVED) is False

        with pytest.raises(InvalidStateTransitionError):
            transition_target(PromptEvent.RESTORE, PromptState.DRAFT)

    def test_dict_roundtrip(self):
        """Test to_dict/from_dict keep every field."""
        prompt = PromptVersion(
            name="greet",
            version=2,
            text="Hello",
            state=PromptState.ARCHIVED,
            config={"temperature": 0.2},
            commit_message="msg",
            created_by="ana",
            id=7,
        )

        restored = PromptVersion.from_dict(prompt.to_dict())

        assert restored == prompt

    def test_str(self):
        """Test the readable representation."""
        assert str(PromptVersion(name="greet", version=3, text="x")) == "greet v3 (draft)"

class TestDatasetRun:
    """Tests for DatasetRun status and rates."""

    def test_progress_zero_items(self):
        """Test rates of an empty run."""
        run = DatasetRun(dataset_id=1, name="r")

        assert run.progress_percentage == 0
        assert run.success_rate == 0
        assert run.failure_rate == 0

    def test_progress_complete(self):
        """Test rates once every item finished."""
        run = DatasetRun(dataset_id=1, name="r", total_items=4, completed_items=3, failed_items=1)

        assert run.progress_percentage == 100
        assert run.success_rate == 75.0
        assert run.failure_rate == 25.0
        assert run.pending_items_count == 0

    def test_partial_progress_rounded(self):
        """Test rounding to one decimal."""
        run = DatasetRun(dataset_id=1, name="r", total_items=3, completed_items=1)
        assert run.progress_percentage == 33.3

    def test_allowed_transitions(self):
        """Test pending -> running -> completed."""
        run = DatasetRun(dataset_id=1, name="r")
        assert run.in_progress is True

        run.transition_to(RunStatus.RUNNING)
        run.transition_to(RunStatus.COMPLETED)

        assert run.finished is True

    def test_rejected_transitions(self):
        """Test that edges outside the table raise."""
        run = DatasetRun(dataset_id=1, name="r")

        with pytest.raises(InvalidStateTransitionError):
            run.transition_to(RunStatus.COMPLETED)

        run.transition_to(RunStatus.FAILED)
        with pytest.raises(InvalidStateTransitionError):
            run.transition_to(RunStatus.RUNNING)

class TestDatasetRunItem:
    """Tests for DatasetRunItem derived values."""

    def test_pending(self):
        """Test an item that has not run yet."""
        run_item = DatasetRunItem(dataset_run_id=1, dataset_item_id=1)

        assert run_item.status == RunItemStatus.PENDING
        assert run_item.actual_output is None
        assert run_item.cost is None

    def test_blank_error_is_pending(self):
        """Test that a blank error string does not count as a result."""
        run_item = DatasetRunItem(dataset_run_id=1, dataset_item_id=1, error="  ")

        assert run_item.pending is True
        assert run_item.failed is False
        assert run_item.status == RunItemStatus.PENDING

    def test_succeeded(self, run_item_factory):
        """Test an item with a trace and no error."""
        run_item = run_item_factory(expected_output="4", actual_output="4")

        assert run_item.status == RunItemStatus.SUCCEEDED
        assert run_item.succeeded is True
        assert run_item.duration_ms is not None

    def test_failed(self, run_item_factory):
        """Test that an error marks the item failed even with a trace."""
        run_item = run_item_factory(actual_output=None)
        run_item.error = "RuntimeError: boom"

        assert run_item.status == RunItemStatus.FAILED
        assert run_item.succeeded is False

    def test_output_matches_strings(self, run_item_factory):
        """Test string comparison with surrounding whitespace."""
        assert run_item_factory("Paris", " Paris\n").output_matches() is True
        assert run_item_factory("Paris", "London").output_matches() is False

    def test_output_matches_json_key_order(self, run_item_factory):
        """Test that JSON structures compare regardless of key order."""
        run_item = run_item_factory({"a": 1, "b": 2}, '{"b": 2, "a": 1}')
        assert run_item.output_matches() is True

    def test_output_matches_blank(self, run_item_factory):
        """Test that a blank side gives no answer."""
        assert run_item_factory(None, "x").output_matches() is None
        assert run_item_factory("x", "  ").output_matches() is None

    def test_to_dict(self, run_item_factory):
        """Test the dictionary form includes derived values."""
        data = run_item_factory("4", "4").to_dict()
        assert data["status"] == "succeeded"
        assert data["expected_output"] == "4"
        assert data["actual_output"] == "4"

class TestDatasetItem:
    """Tests for DatasetItem helpers."""

    def test_previews(self):
        """Test single-line previews, truncated at the limit."""
        item = DatasetItem(dataset_id=1, input={"q": "x" * 200}, expected_output="short")

        preview = item.input_preview()
        assert preview.startswith('{"q": "xxx')
        assert preview.endswith("...")
        assert len(preview) == 103
        assert item.expected_output_preview() == "short"
        assert DatasetItem(dataset_id=1, input="q").expected_output_preview() is None

    def test_helpers(self):
        """Test blank detection and output normalisation."""
        assert is_blank(" ") is True
        assert is_blank([]) is True
        assert is_blank(0) is False
        assert normalize_output('{"a": 1}') == {"a": 1}
        assert normalize_output(" text ") == "text"

class TestScore:
    """Tests for the Score model."""

    def test_validate(self):
        """Test validation messages."""
        score = Score(scoreable=ScoreableRef.run_item(None), name="", value="high")
        errors = score.validate()

        assert "name can't be blank" in errors
        assert "value is not a number" in errors
        assert "scoreable must exist" in errors

    def test_passed_and_display(self):
        """Test pass threshold and display values."""
        passed = Score(ScoreableRef.trace(1), "exact_match", 1.0, data_type=ScoreDataType.BOOLEAN)
        failed = Score(ScoreableRef.trace(1), "exact_match", 0.0, data_type="boolean")
        numeric = Score(ScoreableRef.trace(1), "contains", 0.5)
        label = Score(ScoreableRef.trace(1), "tone", 2.0, data_type="categorical", string_value="friendly")

        assert passed.display_value == "Pass"
        assert failed.display_value == "Fail"
        assert numeric.passed is True
        assert numeric.display_value == "0.50"
        assert label.display_value == "friendly"

    def test_scoreable_ref(self):
        """Test the scoreable reference helpers."""
        ref = ScoreableRef.run_item(5)
        assert ref.kind == ScoreableKind.DATASET_RUN_ITEM
        assert str(ref) == "dataset_run_item:5"
        assert ref == ScoreableRef("dataset_run_item", 5)

class TestTrace:
    """Tests for the Trace model."""

    def test_finalize(self):
        """Test recording output, metrics and metadata."""
        trace = Trace(name="t", input="q", metadata={"dataset_id": 1})
        assert trace.finished is False
        assert trace.duration_ms is None

        trace.finalize(output="a", metadata={"model": "m"}, total_cost=0.01, total_tokens=12)

        assert trace.finished is True
        assert trace.metadata == {"dataset_id": 1, "model": "m"}
        assert trace.total_tokens == 12
        assert trace.duration_ms >= 0

    def test_duration(self):
        """Test duration in milliseconds."""
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        trace = Trace(name="t", start_time=start, end_time=start + timedelta(seconds=1.5))
        assert trace.duration_ms == 1500.0

    def test_dict_roundtrip(self):
        """Test to_dict/from_dict."""
        trace = Trace(name="t", input={"q": 1}, tags=["a"], session_id="s", id=3)
        trace.finalize(output="x", total_tokens=5)

        restored = Trace.from_dict(trace.to_dict())

        assert restored == trace
