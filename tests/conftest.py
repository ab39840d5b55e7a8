"""Pytest fixtures and shared test utilities."""

import pytest
import tempfile
import os
from typing import Any, Optional

from observ.config import OpenAIConfig, PromptSettings
from observ.evaluation.dataset_runner import DatasetRunner
from observ.evaluation.dataset_runs import DatasetRunService
from observ.llm_logging.llm_logger import LLMLogger
from observ.models.dataset import Dataset, DatasetItem, DatasetRunItem
from observ.models.trace import Trace
from observ.prompts.store import PromptVersionStore
from observ.storage.sqlite_evaluation_repository import SQLiteEvaluationRepository
from observ.storage.sqlite_prompt_repository import SQLitePromptRepository
from observ.testing.mocks import (
    InMemoryPromptRepository,
    InMemoryEvaluationRepository,
    MockAgent,
)

# ============================================================
# Helpers
# ============================================================

def make_run_item(
    expected_output: Any = None,
    actual_output: Any = None,
    input: Any = "question",
    run_item_id: Optional[int] = 1,
    with_trace: bool = True,
) -> DatasetRunItem:
    """Build a hydrated run item without touching a repository."""
    trace = None
    if with_trace:
        trace = Trace(name="dataset_evaluation", input=input)
        trace.finalize(output=actual_output)
        trace.id = 1
    return DatasetRunItem(
        dataset_run_id=1,
        dataset_item_id=1,
        trace_id=trace.id if trace else None,
        id=run_item_id,
        dataset_item=DatasetItem(dataset_id=1, input=input, expected_output=expected_output, id=1),
        trace=trace,
    )

# ============================================================
# Storage Fixtures
# ============================================================

@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    # Cleanup
    if os.path.exists(path):
        os.unlink(path)

@pytest.fixture
def temp_log_dir() -> str:
    """Create a temporary directory for logs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir

@pytest.fixture
def prompt_repository() -> InMemoryPromptRepository:
    """Create an in-memory prompt repository."""
    return InMemoryPromptRepository()

@pytest.fixture
def sqlite_prompt_repository(temp_db_path) -> SQLitePromptRepository:
    """Create a SQLite prompt repository with a temp database."""
    return SQLitePromptRepository(db_path=temp_db_path)

@pytest.fixture
def evaluation_repository() -> InMemoryEvaluationRepository:
    """Create an in-memory evaluation repository."""
    return InMemoryEvaluationRepository()

@pytest.fixture
def sqlite_evaluation_repository(temp_db_path) -> SQLiteEvaluationRepository:
    """Create a SQLite evaluation repository with a temp database."""
    return SQLiteEvaluationRepository(db_path=temp_db_path)

# ============================================================
# Service Fixtures
# ============================================================

@pytest.fixture
def store(prompt_repository) -> PromptVersionStore:
    """Create a prompt store backed by the in-memory repository."""
    return PromptVersionStore(prompt_repository, settings=PromptSettings())

@pytest.fixture
def sqlite_store(sqlite_prompt_repository) -> PromptVersionStore:
    """Create a prompt store backed by SQLite."""
    return PromptVersionStore(sqlite_prompt_repository, settings=PromptSettings())

@pytest.fixture
def run_service(evaluation_repository) -> DatasetRunService:
    """Create a dataset run service backed by the in-memory repository."""
    return DatasetRunService(evaluation_repository)

@pytest.fixture
def mock_agent() -> MockAgent:
    """Create a mock agent that echoes known answers."""
    agent = MockAgent(default_output="I don't know")
    agent.set_output("What is 2+2?", "4")
    agent.set_output("Capital of France?", "Paris")
    return agent

@pytest.fixture
def dataset_runner(evaluation_repository, mock_agent) -> DatasetRunner:
    """Create a dataset runner that always uses the mock agent."""
    return DatasetRunner(evaluation_repository, agent=mock_agent)

@pytest.fixture
def llm_logger(temp_log_dir) -> LLMLogger:
    """Create an LLM logger writing to a temp directory."""
    return LLMLogger(log_dir=temp_log_dir, log_to_console=False)

@pytest.fixture
def openai_config() -> OpenAIConfig:
    """Create an OpenAI config that never reads the environment."""
    return OpenAIConfig(
        api_key="test-key",
        default_model="gpt-4o-mini",
        max_tokens=1000,
        temperature=0.1,
        cost_per_1k_tokens=0.002,
    )

# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def sample_dataset(run_service) -> Dataset:
    """Create a dataset with three active items."""
    dataset = run_service.create_dataset(
        name="qa_basics",
        agent_reference="mock",
        description="Simple questions with known answers",
    )
    run_service.add_item(dataset, "What is 2+2?", expected_output="4")
    run_service.add_item(dataset, "Capital of France?", expected_output="Paris")
    run_service.add_item(dataset, "Meaning of life?", expected_output="42")
    return dataset

@pytest.fixture
def run_item_factory():
    """Provide make_run_item to tests."""
    return make_run_item
