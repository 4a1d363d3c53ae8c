"""Literal text substitution used for config paths and launch argument templates."""
import logging
import re
from typing import Iterable, Mapping

log = logging.getLogger(__name__)


def replace_text(value: str, replacements: Mapping[str, str]) -> str:
    """
    Applies each ``search -> replacement`` pair of ``replacements`` to
    ``value``, in mapping order, without regular expressions.

    Non-string input is returned unchanged; pairs whose key or value is not a
    string are skipped with a warning.
    """
    if not isinstance(value, str):
        log.warning(f"replace_text: expected a string, got {type(value).__name__}; leaving it unchanged")
        return value

    result = value
    for search, replacement in replacements.items():
        if isinstance(search, str) and isinstance(replacement, str):
            result = result.replace(search, replacement)
        else:
            log.warning(f"replace_text: skipping non-string replacement {search!r} -> {replacement!r}")
    return result


_PLACEHOLDER = re.compile(r'\$\{([^}]+)\}')


def replace_placeholders(value: str, variables: Mapping[str, str]) -> str:
    """
    Substitutes ``${name}`` placeholders in a single pass: substituted values
    are never expanded again, and unknown names are left verbatim.
    """
    def substitute(match: re.Match) -> str:
        name = match.group(1)
        return str(variables[name]) if name in variables else match.group(0)

    return _PLACEHOLDER.sub(substitute, value)


def replace_all_placeholders(values: Iterable[str], variables: Mapping[str, str]) -> list[str]:
    return [replace_placeholders(value, variables) for value in values]
