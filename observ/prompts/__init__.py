"""Prompt templates, config validation and caching.

The version store lives in :mod:`observ.prompts.store`.
"""

from observ.prompts.template import (
    compile_template,
    compile_with_validation,
    extract_placeholders,
    required_variables,
    variables_from_input,
)
from observ.prompts.config_validator import PromptConfigValidator, validate_config
from observ.prompts.cache import PromptCache

__all__ = [
    "compile_template",
    "compile_with_validation",
    "extract_placeholders",
    "required_variables",
    "variables_from_input",
    "PromptConfigValidator",
    "validate_config",
    "PromptCache",
]
