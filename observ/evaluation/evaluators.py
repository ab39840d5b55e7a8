"""Programmatic evaluators that score dataset run items."""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.models.dataset import DatasetRunItem, is_blank
from observ.models.score import Score, ScoreableRef, ScoreDataType, ScoreSource


class BaseEvaluator(ABC):
    """Base class for evaluators.

    Subclasses implement ``evaluate``, which returns a value or None when
    the evaluator does not apply to the run item. ``call`` persists the
    value as a programmatic score, one per (run item, evaluator name).

    Attributes:
        name: Score name written by this evaluator.
        options: Evaluator-specific settings (e.g. ``keywords``, ``comment``).
    """

    data_type = ScoreDataType.NUMERIC

    def __init__(self, name: Optional[str] = None, **options: Any):
        """Initialize the evaluator.

        Args:
            name: Score name. Defaults to the evaluator's type name.
            **options: Evaluator-specific settings.
        """
        self.name = name or self.default_name()
        self.options = options

    @classmethod
    def default_name(cls) -> str:
        """Derive a name from the class name, e.g. ExactMatchEvaluator -> exact_match."""
        base = re.sub(r"Evaluator$", "", cls.__name__)
        return re.sub(r"(?<!^)(?=[A-Z])", "_", base).lower()

    @abstractmethod
    def evaluate(self, run_item: DatasetRunItem) -> Optional[float]:
        """Compute the score value for a run item.

        Args:
            run_item: Run item with its dataset item and trace loaded.

        Returns:
            The score value, or None if the evaluator does not apply.
        """
        pass

    def call(self, run_item: DatasetRunItem, repository: IEvaluationRepository) -> Optional[Score]:
        """Evaluate a run item and upsert the resulting score.

        Args:
            run_item: Run item with its dataset item and trace loaded.
            repository: Where the score is stored.

        Returns:
            The stored score, or None if the item has no trace or the
            evaluator does not apply.
        """
        if run_item.trace is None:
            return None

        value = self.evaluate(run_item)
        if value is None:
            return None

        score = Score(
            scoreable=ScoreableRef.run_item(run_item.id),
            name=self.name,
            value=float(value),
            data_type=self.data_type,
            source=ScoreSource.PROGRAMMATIC,
            comment=self.options.get("comment"),
        )
        return repository.upsert_score(score)


class ExactMatchEvaluator(BaseEvaluator):
    """1.0 when the actual output equals the expected output, else 0.0."""

    data_type = ScoreDataType.BOOLEAN

    def evaluate(self, run_item: DatasetRunItem) -> Optional[float]:
        if is_blank(run_item.expected_output):
            return None
        return 1.0 if run_item.output_matches() else 0.0


class ContainsEvaluator(BaseEvaluator):
    """Share of keywords found in the actual output, case-insensitively.

    Keywords come from the ``keywords`` option, or else from the expected
    output: a list is used as-is, a map's ``keywords`` entry is used, and a
    string is a single keyword.
    """

    def evaluate(self, run_item: DatasetRunItem) -> Optional[float]:
        keywords = self.options.get("keywords") or self._keywords_from_expected(run_item)
        if is_blank(keywords):
            return None

        output = self._normalize_output(run_item.actual_output)
        if is_blank(output):
            return 0.0

        haystack = output.lower()
        matched = sum(1 for keyword in keywords if str(keyword).lower() in haystack)
        return matched / len(keywords)

    @staticmethod
    def _keywords_from_expected(run_item: DatasetRunItem) -> List[Any]:
        expected = run_item.expected_output
        if is_blank(expected):
            return []
        if isinstance(expected, dict):
            return expected.get("keywords") or []
        if isinstance(expected, list):
            return expected
        if isinstance(expected, str):
            return [expected]
        return []

    @staticmethod
    def _normalize_output(output: Any) -> str:
        if output is None:
            return ""
        if isinstance(output, (dict, list)):
            return json.dumps(output)
        return str(output)


class JsonStructureEvaluator(BaseEvaluator):
    """Share of required keys present in the actual output's JSON object.

    Required keys come from the ``required_keys`` option, or else from the
    expected output's own keys when it is a map. String outputs are parsed
    as JSON; output that is not a JSON object scores 0.0.
    """

    def evaluate(self, run_item: DatasetRunItem) -> Optional[float]:
        required_keys = self.options.get("required_keys") or self._keys_from_expected(run_item)
        if is_blank(required_keys):
            return None

        output = self._parse_output(run_item.actual_output)
        if output is None:
            return 0.0

        present = sum(1 for key in required_keys if str(key) in output)
        return present / len(required_keys)

    @staticmethod
    def _keys_from_expected(run_item: DatasetRunItem) -> List[str]:
        expected = run_item.expected_output
        if not isinstance(expected, dict):
            return []
        return [str(key) for key in expected]

    @staticmethod
    def _parse_output(output: Any) -> Optional[dict]:
        if isinstance(output, dict):
            return output
        if isinstance(output, str):
            try:
                parsed = json.loads(output)
            except ValueError:
                return None
            return parsed if isinstance(parsed, dict) else None
        return None
