"""Abstract interface for agents that dataset runs execute."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass
class AgentResult:
    """Output of one agent invocation plus the metrics it reported.

    Attributes:
        output: The agent's answer (string or JSON-compatible value).
        total_tokens: Tokens consumed, if known.
        total_cost: Cost in USD, if known.
        model: Model that produced the output.
        metadata: Extra details worth recording on the trace.
    """
    output: Any
    total_tokens: int = 0
    total_cost: float = 0.0
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

class IAgent(ABC):
    """Abstract interface for an agent under evaluation.

    Any exception raised by ``run`` is recorded as the run item's error;
    it does not abort the dataset run.
    """

    @abstractmethod
    def run(self, input: Any) -> AgentResult:
        """Execute the agent on a dataset item input.

        Args:
            input: The dataset item's input value.

        Returns:
            The agent's output and usage metrics.
        """
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name/identifier of the model the agent uses."""
        pass
