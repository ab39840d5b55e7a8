"""Tests for the SQLite repositories."""

import sqlite3

import pytest

from observ.errors import DuplicateRecordError, ValidationError
from observ.evaluation.dataset_runner import DatasetRunner
from observ.evaluation.dataset_runs import DatasetRunService
from observ.models.dataset import Dataset, DatasetItem, DatasetRun, ItemStatus, RunStatus
from observ.models.prompt import PromptState, PromptVersion
from observ.models.score import Score, ScoreableRef, ScoreDataType, ScoreSource
from observ.models.trace import Trace


class TestSQLitePromptRepository:
    """Tests for SQLitePromptRepository."""

    def test_insert_and_get(self, sqlite_prompt_repository):
        """Test a stored version round-trips."""
        prompt = PromptVersion(name="greet", version=1, text="Hi {{name}}", config={"temperature": 0.3})
        sqlite_prompt_repository.insert(prompt)

        loaded = sqlite_prompt_repository.get("greet", 1)

        assert loaded.id == prompt.id
        assert loaded.text == "Hi {{name}}"
        assert loaded.config == {"temperature": 0.3}
        assert loaded.state == PromptState.DRAFT
        assert sqlite_prompt_repository.get("greet", 2) is None

    def test_next_version_number(self, sqlite_prompt_repository):
        """Test version numbering per name."""
        assert sqlite_prompt_repository.next_version_number("greet") == 1
        sqlite_prompt_repository.insert(PromptVersion(name="greet", version=1, text="a"))
        sqlite_prompt_repository.insert(PromptVersion(name="greet", version=2, text="b"))

        assert sqlite_prompt_repository.next_version_number("greet") == 3
        assert sqlite_prompt_repository.next_version_number("other") == 1

    def test_duplicate_version_rejected(self, sqlite_prompt_repository):
        """Test that (name, version) is unique."""
        sqlite_prompt_repository.insert(PromptVersion(name="greet", version=1, text="a"))

        with pytest.raises(DuplicateRecordError):
            sqlite_prompt_repository.insert(PromptVersion(name="greet", version=1, text="b"))

    def test_second_production_insert_rejected(self, sqlite_prompt_repository):
        """Test that the database allows one production version per name."""
        sqlite_prompt_repository.insert(
            PromptVersion(name="greet", version=1, text="a", state=PromptState.PRODUCTION)
        )

        with pytest.raises(DuplicateRecordError):
            sqlite_prompt_repository.insert(
                PromptVersion(name="greet", version=2, text="b", state=PromptState.PRODUCTION)
            )

    def test_raw_write_hits_index(self, sqlite_prompt_repository, temp_db_path):
        """Test that the unique index guards writers bypassing the repository."""
        sqlite_prompt_repository.insert(
            PromptVersion(name="greet", version=1, text="a", state=PromptState.PRODUCTION)
        )

        conn = sqlite3.connect(temp_db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("""
                    INSERT INTO prompt_versions (name, version, state, text, created_at, updated_at)
                    VALUES ('greet', 2, 'production', 'b', '2024-01-01', '2024-01-01')
                """)
        finally:
            conn.close()

    def test_set_state_demotes_current(self, sqlite_prompt_repository):
        """Test that promoting archives the previous production version."""
        first = sqlite_prompt_repository.insert(
            PromptVersion(name="greet", version=1, text="a", state=PromptState.PRODUCTION)
        )
        second = sqlite_prompt_repository.insert(PromptVersion(name="greet", version=2, text="b"))

        demoted = sqlite_prompt_repository.set_state(second, PromptState.PRODUCTION)

        assert demoted.version == first.version
        assert demoted.state == PromptState.ARCHIVED
        assert sqlite_prompt_repository.find_by_state("greet", PromptState.PRODUCTION).version == 2
        assert sqlite_prompt_repository.get("greet", 1).state == PromptState.ARCHIVED

    def test_list_and_delete(self, sqlite_prompt_repository):
        """Test listing versions, names and deleting."""
        sqlite_prompt_repository.insert(PromptVersion(name="b", version=1, text="x"))
        sqlite_prompt_repository.insert(PromptVersion(name="a", version=1, text="x"))
        sqlite_prompt_repository.insert(PromptVersion(name="a", version=2, text="y"))

        assert [p.version for p in sqlite_prompt_repository.list_versions("a")] == [2, 1]
        assert sqlite_prompt_repository.list_names() == ["a", "b"]
        assert sqlite_prompt_repository.list_names(PromptState.PRODUCTION) == []

        assert sqlite_prompt_repository.delete("a", 2) is True
        assert sqlite_prompt_repository.delete("a", 2) is False

    def test_update_content(self, sqlite_prompt_repository):
        """Test editing text, config and message."""
        prompt = sqlite_prompt_repository.insert(PromptVersion(name="greet", version=1, text="a"))
        prompt.text = "b"
        prompt.config = {"max_tokens": 10}
        prompt.commit_message = "shorter"

        sqlite_prompt_repository.update_content(prompt)

        loaded = sqlite_prompt_repository.get("greet", 1)
        assert loaded.text == "b"
        assert loaded.config == {"max_tokens": 10}
        assert loaded.commit_message == "shorter"


class TestSQLiteEvaluationRepository:
    """Tests for SQLiteEvaluationRepository."""

    @pytest.fixture
    def dataset(self, sqlite_evaluation_repository) -> Dataset:
        return sqlite_evaluation_repository.create_dataset(
            Dataset(name="qa", agent_reference="mock", metadata={"evaluators": [{"type": "contains"}]})
        )

    def test_dataset_roundtrip(self, sqlite_evaluation_repository, dataset):
        """Test datasets are stored with their metadata."""
        loaded = sqlite_evaluation_repository.get_dataset_by_name("qa")

        assert loaded.id == dataset.id
        assert loaded.evaluator_configs == [{"type": "contains"}]
        assert [d.name for d in sqlite_evaluation_repository.list_datasets()] == ["qa"]

    def test_dataset_name_unique(self, sqlite_evaluation_repository, dataset):
        """Test duplicate dataset names are rejected."""
        with pytest.raises(DuplicateRecordError):
            sqlite_evaluation_repository.create_dataset(Dataset(name="qa"))

    def test_items(self, sqlite_evaluation_repository, dataset):
        """Test JSON inputs and status filtering."""
        item = sqlite_evaluation_repository.add_item(
            DatasetItem(dataset_id=dataset.id, input={"q": "2+2"}, expected_output=["4"])
        )
        archived = sqlite_evaluation_repository.add_item(DatasetItem(dataset_id=dataset.id, input="x"))
        archived.status = ItemStatus.ARCHIVED
        sqlite_evaluation_repository.update_item(archived)

        active = sqlite_evaluation_repository.list_items(dataset.id, status=ItemStatus.ACTIVE)

        assert [i.id for i in active] == [item.id]
        assert active[0].input == {"q": "2+2"}
        assert active[0].expected_output == ["4"]
        assert len(sqlite_evaluation_repository.list_items(dataset.id)) == 2

    def test_item_requires_dataset(self, sqlite_evaluation_repository):
        """Test items of a missing dataset are rejected."""
        with pytest.raises(ValidationError):
            sqlite_evaluation_repository.add_item(DatasetItem(dataset_id=999, input="x"))

    def test_run_name_unique_per_dataset(self, sqlite_evaluation_repository, dataset):
        """Test (dataset, run name) is unique."""
        sqlite_evaluation_repository.create_run(DatasetRun(dataset_id=dataset.id, name="r1"))

        with pytest.raises(DuplicateRecordError):
            sqlite_evaluation_repository.create_run(DatasetRun(dataset_id=dataset.id, name="r1"))

    def test_get_or_create_run_item(self, sqlite_evaluation_repository, dataset):
        """Test run items are created once per (run, item)."""
        item = sqlite_evaluation_repository.add_item(DatasetItem(dataset_id=dataset.id, input="q"))
        run = sqlite_evaluation_repository.create_run(DatasetRun(dataset_id=dataset.id, name="r1"))

        first, created = sqlite_evaluation_repository.get_or_create_run_item(run.id, item.id)
        second, created_again = sqlite_evaluation_repository.get_or_create_run_item(run.id, item.id)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert second.input == "q"
        assert second.pending is True

    def test_run_item_hydrates_trace(self, sqlite_evaluation_repository, dataset):
        """Test run items load their trace."""
        item = sqlite_evaluation_repository.add_item(DatasetItem(dataset_id=dataset.id, input="q"))
        run = sqlite_evaluation_repository.create_run(DatasetRun(dataset_id=dataset.id, name="r1"))
        run_item, _ = sqlite_evaluation_repository.get_or_create_run_item(run.id, item.id)

        trace = Trace(name="dataset_evaluation", input="q", tags=["a"])
        trace.finalize(output={"answer": 1}, total_cost=0.5, total_tokens=7)
        sqlite_evaluation_repository.save_trace(trace)
        run_item.trace_id = trace.id
        sqlite_evaluation_repository.update_run_item(run_item)

        loaded = sqlite_evaluation_repository.get_run_item(run_item.id)

        assert loaded.succeeded is True
        assert loaded.actual_output == {"answer": 1}
        assert loaded.tokens == 7
        assert loaded.trace.tags == ["a"]

    def test_score_upsert_and_uniqueness(self, sqlite_evaluation_repository):
        """Test one score per (scoreable, name, source)."""
        ref = ScoreableRef.run_item(5)
        sqlite_evaluation_repository.create_score(Score(ref, "exact_match", 0.0, data_type=ScoreDataType.BOOLEAN))

        with pytest.raises(DuplicateRecordError):
            sqlite_evaluation_repository.create_score(Score(ref, "exact_match", 1.0))

        updated = sqlite_evaluation_repository.upsert_score(
            Score(ref, "exact_match", 1.0, data_type=ScoreDataType.BOOLEAN, comment="fixed")
        )
        manual = sqlite_evaluation_repository.upsert_score(
            Score(ref, "exact_match", 0.0, source=ScoreSource.MANUAL)
        )

        scores = sqlite_evaluation_repository.list_scores(ref)
        assert len(scores) == 2
        assert scores[0].id == updated.id
        assert scores[0].value == 1.0
        assert scores[0].comment == "fixed"
        assert manual.id != updated.id

    def test_invalid_score_rejected(self, sqlite_evaluation_repository):
        """Test score validation before insert."""
        with pytest.raises(ValidationError):
            sqlite_evaluation_repository.create_score(Score(ScoreableRef.trace(1), "", 1.0))

    def test_full_run(self, sqlite_evaluation_repository, mock_agent):
        """Test a dataset run end to end on SQLite."""
        service = DatasetRunService(sqlite_evaluation_repository)
        dataset = service.create_dataset("sqlite_qa", agent_reference="mock")
        service.add_item(dataset, "What is 2+2?", expected_output="4")
        service.add_item(dataset, "Capital of France?", expected_output="Paris")
        run = service.create_run(dataset, "baseline")

        DatasetRunner(sqlite_evaluation_repository, agent=mock_agent).run(run, evaluate=True)

        stored = sqlite_evaluation_repository.get_run(run.id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.completed_items == 2
        assert stored.total_tokens == 20
        assert len(sqlite_evaluation_repository.list_scores_for_run(run.id)) == 2
        assert service.pass_rate(stored) == 100.0
        assert service.last_run(dataset).id == run.id
