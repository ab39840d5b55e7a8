"""Execution of an agent over every item of a dataset run."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from observ.agents.registry import AgentRegistry
from observ.evaluation.dataset_runs import DatasetRunService
from observ.evaluation.evaluator_runner import EvaluatorRunner, EvaluatorRunSummary
from observ.interfaces.agent import AgentResult, IAgent
from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.models.dataset import Dataset, DatasetRun, DatasetRunItem, RunStatus
from observ.models.trace import Trace

logger = logging.getLogger(__name__)

TRACE_NAME = "dataset_evaluation"


class DatasetRunner:
    """Runs a dataset's agent against each run item and records the results.

    Each item gets its own trace. An agent exception fails only that item;
    the run ends ``failed`` when every item failed and ``completed``
    otherwise. Errors outside item processing mark the run failed and are
    re-raised.

    Attributes:
        repository: Storage for runs, run items, traces and scores.
        registry: Resolves a dataset's agent reference to an agent.
        run_service: Keeps run counters up to date.
        evaluator_runner: Scores run items after execution.
    """

    def __init__(
        self,
        repository: IEvaluationRepository,
        registry: Optional[AgentRegistry] = None,
        agent: Optional[IAgent] = None,
        evaluator_runner: Optional[EvaluatorRunner] = None,
    ):
        """Initialize the runner.

        Args:
            repository: Storage for runs, run items, traces and scores.
            registry: Agent registry used when no agent is given.
            agent: Agent to use for every run, bypassing the registry.
            evaluator_runner: Evaluator runner for ``evaluate=True``.
        """
        self.repository = repository
        self.registry = registry or AgentRegistry()
        self.agent = agent
        self.run_service = DatasetRunService(repository)
        self.evaluator_runner = evaluator_runner or EvaluatorRunner(repository)
        self.last_evaluation: Optional[EvaluatorRunSummary] = None

    def run(self, dataset_run: DatasetRun, evaluate: bool = False) -> DatasetRun:
        """Execute a pending run.

        Runs that are already running or finished are returned unchanged.

        Args:
            dataset_run: The run to execute.
            evaluate: Apply the dataset's evaluators once execution is done.

        Returns:
            The run with final status and counters.
        """
        if dataset_run.finished or dataset_run.status == RunStatus.RUNNING:
            logger.info(f"Skipping run {dataset_run.id}: already {dataset_run.status.value}")
            return dataset_run

        try:
            dataset = self.run_service.get_dataset(dataset_run.dataset_id)
            agent = self._resolve_agent(dataset)

            dataset_run.transition_to(RunStatus.RUNNING)
            self.repository.update_run(dataset_run)
            logger.info(f"Run {dataset_run.id} ({dataset_run.name}) started")

            for run_item in self.repository.list_run_items(dataset_run.id):
                self.process_item(dataset, dataset_run, run_item, agent)

            self.run_service.update_metrics(dataset_run)
            if dataset_run.failed_items == dataset_run.total_items:
                dataset_run.transition_to(RunStatus.FAILED)
            else:
                dataset_run.transition_to(RunStatus.COMPLETED)
            self.repository.update_run(dataset_run)
        except Exception as e:
            self._handle_run_failure(dataset_run, e)
            raise

        logger.info(
            f"Run {dataset_run.id} {dataset_run.status.value}: "
            f"{dataset_run.completed_items}/{dataset_run.total_items} succeeded, "
            f"{dataset_run.failed_items} failed"
        )

        if evaluate:
            self.last_evaluation = self.evaluator_runner.run(dataset_run)

        return dataset_run

    def process_item(
        self,
        dataset: Dataset,
        dataset_run: DatasetRun,
        run_item: DatasetRunItem,
        agent: IAgent,
    ) -> DatasetRunItem:
        """Run the agent on one item, recording a trace and any error."""
        trace = self.repository.save_trace(Trace(
            name=TRACE_NAME,
            input=run_item.input,
            metadata={
                "dataset_id": dataset.id,
                "dataset_name": dataset.name,
                "dataset_run_id": dataset_run.id,
                "dataset_run_name": dataset_run.name,
                "dataset_item_id": run_item.dataset_item_id,
                "agent_reference": dataset.agent_reference,
            },
            tags=[TRACE_NAME, dataset.name, dataset_run.name],
            session_id=f"dataset_run_{dataset_run.id}",
        ))

        try:
            result = self._as_result(agent.run(run_item.input))
        except Exception as e:
            trace.finalize(output=None, metadata={"error": str(e), "error_class": type(e).__name__})
            run_item.error = f"{type(e).__name__}: {e}"
            logger.warning(f"Run item {run_item.id} failed: {run_item.error}")
        else:
            metadata = dict(result.metadata)
            if result.model:
                metadata["model"] = result.model
            trace.finalize(
                output=result.output,
                metadata=metadata,
                total_cost=result.total_cost,
                total_tokens=result.total_tokens,
            )
            run_item.error = None

        self.repository.save_trace(trace)
        run_item.trace_id = trace.id
        run_item.trace = trace
        return self.repository.update_run_item(run_item)

    def _resolve_agent(self, dataset: Dataset) -> IAgent:
        if self.agent is not None:
            return self.agent
        return self.registry.resolve(
            dataset.agent_reference,
            **dataset.metadata.get("agent_options", {})
        )

    @staticmethod
    def _as_result(result: Any) -> AgentResult:
        if isinstance(result, AgentResult):
            return result
        return AgentResult(output=result)

    def _handle_run_failure(self, dataset_run: DatasetRun, error: Exception) -> None:
        logger.error(f"Run {dataset_run.id} failed: {type(error).__name__}: {error}")
        if dataset_run.can_transition_to(RunStatus.FAILED):
            dataset_run.transition_to(RunStatus.FAILED)
        dataset_run.metadata = {
            **dataset_run.metadata,
            "error": str(error),
            "error_class": type(error).__name__,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        self.repository.update_run(dataset_run)
