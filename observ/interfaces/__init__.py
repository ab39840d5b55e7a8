"""Abstract interfaces for the Observ components."""

from observ.interfaces.prompt_repository import IPromptRepository
from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.interfaces.agent import IAgent, AgentResult

__all__ = [
    "IPromptRepository",
    "IEvaluationRepository",
    "IAgent",
    "AgentResult",
]
