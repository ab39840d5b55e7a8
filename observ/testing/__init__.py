"""Testing utilities and in-memory implementations.

This module provides in-memory implementations of the repository and
agent interfaces for use in testing, local development and demos.
"""

from observ.testing.mocks import (
    InMemoryPromptRepository,
    InMemoryEvaluationRepository,
    MockAgent,
)

__all__ = [
    "InMemoryPromptRepository",
    "InMemoryEvaluationRepository",
    "MockAgent",
]
