"""Exception types raised by Observ components."""

from typing import List, Optional


class ObservError(Exception):
    """Base class for all Observ errors."""


class ValidationError(ObservError):
    """Raised when a record fails validation and cannot be persisted.

    Attributes:
        errors: Individual validation messages.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class NotFoundError(ObservError):
    """Raised when a requested record does not exist."""


class PromptNotFoundError(NotFoundError):
    """Raised when no prompt matches a name/version/state lookup."""


class MissingVariablesError(ObservError):
    """Raised when strict compilation is missing required template variables.

    Attributes:
        missing: Root variable names that were not supplied.
    """

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing variables: {', '.join(self.missing)}")


class InvalidStateTransitionError(ObservError):
    """Raised when a state transition is not allowed from the current state."""

    def __init__(self, event: str, from_state: str, message: Optional[str] = None):
        self.event = event
        self.from_state = from_state
        super().__init__(message or f"Cannot {event} from state '{from_state}'")


class ImmutablePromptError(ObservError):
    """Raised when editing or deleting a prompt version its state protects."""


class DuplicateRecordError(ObservError):
    """Raised when a uniqueness constraint would be violated."""


class EvaluatorExecutionError(ObservError):
    """Wraps an exception raised by an evaluator during a batch run."""

    def __init__(self, evaluator_type: str, run_item_id: Optional[int], cause: Exception):
        self.evaluator_type = evaluator_type
        self.run_item_id = run_item_id
        self.cause = cause
        super().__init__(
            f"Evaluator {evaluator_type} failed for run_item {run_item_id}: "
            f"{type(cause).__name__}: {cause}"
        )


class UnknownEvaluatorError(ObservError):
    """Raised when an evaluator type is not in the registry."""


class UnknownAgentError(ObservError):
    """Raised when a dataset references an agent that is not registered."""
