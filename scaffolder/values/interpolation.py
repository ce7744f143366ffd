"""Dotted-path lookups and ``{{placeholder}}`` interpolation."""

import json
import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


def get_nested(data: Any, path: str) -> Any:
    """
    Read ``a.b.c`` from nested mappings.

    Returns:
        The value, or None when any segment is missing.

    Example:
        >>> get_nested({"project": {"name": "demo"}}, "project.name")
        'demo'
    """
    current = data
    for key in path.split("."):
        if not key or not isinstance(current, Mapping) or key not in current:
            return None
        current = current[key]
    return current


def set_nested(data: dict[str, Any], path: str, value: Any) -> None:
    """Write ``a.b.c`` into nested dicts, creating intermediate levels."""
    keys = [k for k in path.split(".") if k]
    if not keys:
        return

    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def stringify(value: Any) -> str:
    """Render a context value the way it appears inside templates and commands."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def interpolate(template: str, context: Mapping[str, Any]) -> str:
    """
    Substitute every ``{{dotted.path}}`` placeholder from ``context``.

    Missing values render as an empty string.

    Example:
        >>> interpolate("Hello {{name}}!", {"name": "World"})
        'Hello World!'
    """
    return PLACEHOLDER_PATTERN.sub(
        lambda match: stringify(get_nested(context, match.group(1))),
        template,
    )


def interpolate_structure(value: Any, context: Mapping[str, Any]) -> Any:
    """Interpolate every string inside nested lists and dicts."""
    if isinstance(value, str):
        return interpolate(value, context)
    if isinstance(value, list):
        return [interpolate_structure(item, context) for item in value]
    if isinstance(value, dict):
        return {k: interpolate_structure(v, context) for k, v in value.items()}
    return value
