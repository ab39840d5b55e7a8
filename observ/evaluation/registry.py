"""Lookup of evaluator classes by configured type name."""

import logging
from typing import Any, Dict, Mapping, Optional, Type

from observ.errors import UnknownEvaluatorError
from observ.evaluation.evaluators import (
    BaseEvaluator,
    ContainsEvaluator,
    ExactMatchEvaluator,
    JsonStructureEvaluator,
)

logger = logging.getLogger(__name__)

BUILT_IN_EVALUATORS: Dict[str, Type[BaseEvaluator]] = {
    "exact_match": ExactMatchEvaluator,
    "contains": ContainsEvaluator,
    "json_structure": JsonStructureEvaluator,
}

DEFAULT_EVALUATOR_CONFIGS = [{"type": "exact_match"}]


def get_evaluator_class(evaluator_type: str) -> Type[BaseEvaluator]:
    """Get the evaluator class for a type name.

    Raises:
        UnknownEvaluatorError: If the type is not registered.
    """
    try:
        return BUILT_IN_EVALUATORS[evaluator_type]
    except KeyError:
        raise UnknownEvaluatorError(
            f"Unknown evaluator type '{evaluator_type}'. "
            f"Available: {', '.join(sorted(BUILT_IN_EVALUATORS))}"
        ) from None


def build_evaluator(config: Mapping[str, Any]) -> Optional[BaseEvaluator]:
    """Instantiate an evaluator from a config such as ``{"type": "contains", "keywords": [...]}``.

    Every key other than ``type`` is passed to the evaluator as an option.

    Returns:
        The evaluator, or None if the type is unknown.
    """
    evaluator_type = config.get("type")
    evaluator_class = BUILT_IN_EVALUATORS.get(evaluator_type)
    if evaluator_class is None:
        logger.warning(f"Skipping unknown evaluator type: {evaluator_type}")
        return None

    options = {str(k): v for k, v in config.items() if k != "type"}
    return evaluator_class(**options)
