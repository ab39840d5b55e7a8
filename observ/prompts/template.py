"""Template placeholder extraction and variable substitution.

Templates use double-brace tokens: ``{{name}}`` for a plain variable and
``{{user.name}}`` for a dotted path into nested maps. Section tokens
(``{{#items}}...{{/items}}``, ``{{^empty}}``) as well as comments
(``{{! ... }}``) and partials (``{{> ... }}``) are not variables.
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from observ.errors import MissingVariablesError

TOKEN_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
VARIABLE_PATTERN = re.compile(r"^[A-Za-z_][\w-]*(?:\.[\w-]+)*$")

SECTION_OPEN = ("#", "^")
SECTION_CLOSE = "/"
IGNORED_PREFIXES = ("!", ">", "&")

_MISSING = object()


def extract_placeholders(text: str) -> List[str]:
    """Extract the variable placeholders a template requires.

    Variables that only appear inside a section block are not required,
    since the block decides whether they are rendered.

    Args:
        text: Template text.

    Returns:
        Unique placeholder paths in order of first appearance.
    """
    placeholders: List[str] = []
    depth = 0

    for match in TOKEN_PATTERN.finditer(text or ""):
        token = match.group(1)

        if token.startswith(SECTION_OPEN):
            depth += 1
            continue
        if token.startswith(SECTION_CLOSE):
            depth = max(0, depth - 1)
            continue
        if token.startswith(IGNORED_PREFIXES):
            continue
        if depth > 0 or not VARIABLE_PATTERN.match(token):
            continue

        if token not in placeholders:
            placeholders.append(token)

    return placeholders


def required_variables(text: str) -> List[str]:
    """Get the root keys a caller must supply to compile a template.

    A dotted path such as ``user.name`` is satisfied by the root key ``user``.

    Args:
        text: Template text.

    Returns:
        Unique root keys in order of first appearance.
    """
    roots: List[str] = []
    for placeholder in extract_placeholders(text):
        root = placeholder.split(".", 1)[0]
        if root not in roots:
            roots.append(root)
    return roots


def missing_variables(text: str, variables: Optional[Mapping[str, Any]]) -> List[str]:
    """List required root keys absent from ``variables``."""
    provided = variables or {}
    return [key for key in required_variables(text) if key not in provided]


def compile_template(text: str, variables: Optional[Mapping[str, Any]] = None) -> str:
    """Substitute ``{{key}}`` tokens with values from ``variables``.

    Tokens without a matching variable are left verbatim.

    Args:
        text: Template text.
        variables: Values keyed by variable name. Nested maps are indexed
            for dotted paths.

    Returns:
        The compiled text.
    """
    if not text:
        return text or ""
    values = variables or {}

    def substitute(match: "re.Match[str]") -> str:
        token = match.group(1)
        if not VARIABLE_PATTERN.match(token):
            return match.group(0)

        value = _resolve(values, token)
        if value is _MISSING:
            return match.group(0)
        return _render(value)

    return TOKEN_PATTERN.sub(substitute, text)


def compile_with_validation(text: str, variables: Optional[Mapping[str, Any]] = None) -> str:
    """Compile a template after checking that every required variable is present.

    Raises:
        MissingVariablesError: If any required root key is absent. Raised
            before any substitution happens.
    """
    missing = missing_variables(text, variables)
    if missing:
        raise MissingVariablesError(missing)
    return compile_template(text, variables)


def _resolve(values: Mapping[str, Any], path: str) -> Any:
    """Look up a variable, walking nested maps and lists for dotted paths."""
    if path in values:
        return values[path]

    current: Any = values
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _render(value: Any) -> str:
    """Render a substituted value as text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def variables_from_input(value: Any) -> Dict[str, Any]:
    """Build template variables from a dataset item input.

    Maps are used as-is; anything else is exposed as ``{{input}}``.
    """
    if isinstance(value, Mapping):
        variables = dict(value)
        variables.setdefault("input", json.dumps(value, default=str))
        return variables
    return {"input": value}
