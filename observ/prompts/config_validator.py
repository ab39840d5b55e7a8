"""Validation of prompt model configuration against a schema."""

import re
from typing import Any, Dict, List, Mapping, Optional

INTEGER_STRING = re.compile(r"^-?\d+$")
NUMERIC_STRING = re.compile(r"^-?\d+(?:\.\d+)?$")

# key -> rules; "range" is inclusive
DEFAULT_CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
    "temperature": {"type": "float", "range": (0.0, 2.0)},
    "max_tokens": {"type": "integer", "range": (1, 100000)},
    "top_p": {"type": "float", "range": (0.0, 1.0)},
    "frequency_penalty": {"type": "float", "range": (-2.0, 2.0)},
    "presence_penalty": {"type": "float", "range": (-2.0, 2.0)},
    "stop_sequences": {"type": "array", "item_type": "string"},
    "model": {"type": "string"},
    "response_format": {"type": "hash"},
    "seed": {"type": "integer"},
    "stream": {"type": "boolean"},
}

_TYPE_MESSAGES = {
    "integer": "must be an integer",
    "float": "must be a number",
    "string": "must be a string",
    "boolean": "must be a boolean",
    "array": "must be an array",
    "hash": "must be a hash",
}


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "integer":
        return _is_integer(value)
    if expected == "float":
        return _is_number(value)
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "hash":
        return isinstance(value, Mapping)
    return True


class PromptConfigValidator:
    """Validates a prompt config map against a schema.

    Numeric strings are coerced in place before checking, so
    ``{"max_tokens": "500"}`` validates and becomes ``{"max_tokens": 500}``.

    Attributes:
        config: The config being validated.
        errors: Messages from the last ``valid()`` call.
        strict: Whether keys outside the schema are rejected.
    """

    def __init__(
        self,
        config: Any,
        strict: bool = False,
        schema: Optional[Dict[str, Dict[str, Any]]] = None
    ):
        """Initialize the validator.

        Args:
            config: Config to validate. None and empty maps are valid.
            strict: Reject keys that are not in the schema.
            schema: Schema to validate against. Defaults to DEFAULT_CONFIG_SCHEMA.
        """
        self.config = config
        self.strict = strict
        self.schema = schema if schema is not None else DEFAULT_CONFIG_SCHEMA
        self.errors: List[str] = []

    def valid(self) -> bool:
        """Run validation.

        Returns:
            True if the config passes, False otherwise. See ``errors``.
        """
        self.errors = []

        if self.config is None or (isinstance(self.config, Mapping) and not self.config):
            return True

        if not isinstance(self.config, dict):
            self.errors.append("Config must be a Hash")
            return False

        for key, rules in self.schema.items():
            value = self.config.get(key)
            if rules.get("required") and value is None:
                self.errors.append(f"{key} is required")
                continue
            if value is None:
                continue

            coerced = self._coerce(value, rules.get("type"))
            if coerced is not value:
                self.config[key] = coerced
            self._validate_value(key, coerced, rules)

        if self.strict:
            unknown = [str(key) for key in self.config if key not in self.schema]
            if unknown:
                self.errors.append(f"Unknown configuration keys: {', '.join(unknown)}")

        return not self.errors

    def _validate_value(self, key: str, value: Any, rules: Dict[str, Any]) -> None:
        expected = rules.get("type")
        if expected and not _matches_type(value, expected):
            self.errors.append(f"{key} {_TYPE_MESSAGES[expected]}")

        bounds = rules.get("range")
        if bounds and _is_number(value):
            low, high = bounds
            if not low <= value <= high:
                self.errors.append(f"{key} must be between {low} and {high}")

        allowed = rules.get("allowed")
        if allowed and value not in allowed:
            self.errors.append(f"{key} must be one of: {', '.join(str(a) for a in allowed)}")

        item_type = rules.get("item_type")
        if item_type and isinstance(value, list):
            for index, item in enumerate(value):
                if not _matches_type(item, item_type):
                    self.errors.append(f"{key}[{index}] {_TYPE_MESSAGES[item_type]}")

    @staticmethod
    def _coerce(value: Any, expected: Optional[str]) -> Any:
        if not isinstance(value, str):
            return value
        if expected == "integer" and INTEGER_STRING.match(value):
            return int(value)
        if expected == "float" and NUMERIC_STRING.match(value):
            return float(value)
        return value


def validate_config(config: Any, strict: bool = False) -> List[str]:
    """Validate a prompt config.

    Returns:
        List of validation error messages, empty if valid.
    """
    validator = PromptConfigValidator(config, strict=strict)
    validator.valid()
    return validator.errors
