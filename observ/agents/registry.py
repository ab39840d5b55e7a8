"""Mapping of dataset agent references to agent factories."""

import logging
from typing import Any, Callable, Dict, List

from observ.errors import UnknownAgentError
from observ.interfaces.agent import IAgent

logger = logging.getLogger(__name__)

AgentFactory = Callable[..., IAgent]


class AgentRegistry:
    """Resolves the ``agent_reference`` stored on a dataset to an agent.

    Factories are registered explicitly, either directly or as a decorator::

        registry = AgentRegistry()

        @registry.register("echo")
        def build_echo(**options):
            return EchoAgent(**options)
    """

    def __init__(self, factories: Dict[str, AgentFactory] = None):
        self._factories: Dict[str, AgentFactory] = dict(factories or {})

    def register(self, reference: str, factory: AgentFactory = None):
        """Register a factory under a reference.

        Returns the factory, so this also works as a decorator.
        """
        if factory is None:
            def decorator(func: AgentFactory) -> AgentFactory:
                self._factories[reference] = func
                return func
            return decorator

        self._factories[reference] = factory
        return factory

    def unregister(self, reference: str) -> None:
        self._factories.pop(reference, None)

    def available(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, reference: str) -> bool:
        return reference in self._factories

    def resolve(self, reference: str, **options: Any) -> IAgent:
        """Build the agent registered under ``reference``.

        Args:
            reference: The dataset's agent reference.
            **options: Passed to the factory.

        Raises:
            UnknownAgentError: If nothing is registered under the reference.
        """
        factory = self._factories.get(reference)
        if factory is None:
            raise UnknownAgentError(
                f"Unknown agent '{reference}'. Registered: {', '.join(self.available()) or 'none'}"
            )
        logger.debug(f"Resolving agent '{reference}' with options {sorted(options)}")
        return factory(**options)
