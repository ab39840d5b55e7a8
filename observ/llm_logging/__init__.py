"""Structured logging of LLM calls."""

from observ.llm_logging.llm_logger import LLMLogger

__all__ = ["LLMLogger"]
