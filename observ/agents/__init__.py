"""Agents that dataset runs execute, and the registry resolving them."""

from typing import Optional

from observ.agents.registry import AgentRegistry
from observ.agents.openai_agent import OpenAIPromptAgent
from observ.config import OpenAIConfig
from observ.llm_logging.llm_logger import LLMLogger
from observ.prompts.store import PromptVersionStore

OPENAI_PROMPT_AGENT = "openai_prompt"


def build_default_registry(
    store: PromptVersionStore,
    config: Optional[OpenAIConfig] = None,
    logger: Optional[LLMLogger] = None,
) -> AgentRegistry:
    """Build a registry with the built-in agents.

    ``openai_prompt`` takes the options ``prompt_name`` (required),
    ``prompt_version`` and ``fallback``, read from a dataset's
    ``metadata["agent_options"]``.
    """
    registry = AgentRegistry()

    @registry.register(OPENAI_PROMPT_AGENT)
    def build_openai_prompt_agent(**options) -> OpenAIPromptAgent:
        return OpenAIPromptAgent(store=store, config=config, logger=logger, **options)

    return registry


__all__ = [
    "AgentRegistry",
    "OpenAIPromptAgent",
    "OPENAI_PROMPT_AGENT",
    "build_default_registry",
]
