"""JSON-schema validation of raw configuration documents."""

from typing import Any

from jsonschema import Draft202012Validator

from scaffolder.core.errors import SchemaValidationError

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["name"],
    "properties": {
        "$schema": {"type": "string"},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "extends": {"anyOf": [{"type": "string"}, _STRING_LIST]},
        "dependencies": _STRING_LIST,
        "enabled": {"$ref": "#/$defs/dynamicBoolean"},
        "tasks": {"type": "array", "items": {"$ref": "#/$defs/task"}},
        "variables": {"type": "array", "items": {"$ref": "#/$defs/variable"}},
        "prompts": {"type": "array", "items": {"$ref": "#/$defs/prompt"}},
        "transformers": {"type": "array", "items": {"$ref": "#/$defs/transformer"}},
    },
    "$defs": {
        "dynamicBoolean": {
            "anyOf": [
                {"type": "boolean"},
                {"type": "string"},
                {
                    "type": "object",
                    "required": ["condition"],
                    "properties": {"condition": {"type": "string"}},
                },
                {
                    "type": "object",
                    "required": ["type", "value"],
                    "properties": {
                        "type": {"enum": ["condition", "exec"]},
                        "value": {"type": "string"},
                    },
                },
            ]
        },
        "override": {"enum": ["merge", "replace"]},
        "task": {
            "type": "object",
            "required": ["id", "type"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "type": {"type": "string", "minLength": 1},
                "name": {"type": "string"},
                "description": {"type": "string"},
                "config": {"type": "object"},
                "dependencies": _STRING_LIST,
                "enabled": {"$ref": "#/$defs/dynamicBoolean"},
                "required": {"$ref": "#/$defs/dynamicBoolean"},
                "override": {"$ref": "#/$defs/override"},
            },
        },
        "variable": {
            "type": "object",
            "required": ["id", "value"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "transformers": _STRING_LIST,
                "global": {"type": "boolean"},
                "override": {"$ref": "#/$defs/override"},
            },
        },
        "prompt": {
            "type": "object",
            "required": ["id", "type"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "type": {"enum": ["input", "password", "number", "select", "confirm"]},
                "message": {"type": "string"},
                "required": {"type": "boolean"},
                "global": {"type": "boolean"},
                "choices": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"name": {"type": "string"}},
                    },
                },
                "min": {"type": "number"},
                "max": {"type": "number"},
                "placeholder": {"type": "string"},
                "override": {"$ref": "#/$defs/override"},
            },
        },
        "transformer": {
            "type": "object",
            "required": ["id", "type"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "type": {"type": "string"},
                "config": {"type": "object"},
            },
        },
    },
}

_validator = Draft202012Validator(DOCUMENT_SCHEMA)


def validate_document(document: Any) -> list[str]:
    """
    Validate a raw document against :data:`DOCUMENT_SCHEMA`.

    Returns:
        Diagnostics formatted as ``$.path: message``; empty when valid.
    """
    errors = sorted(_validator.iter_errors(document), key=lambda e: [str(p) for p in e.path])
    formatted: list[str] = []
    for error in errors:
        path = "$"
        for part in error.path:
            path += f"[{part!r}]" if isinstance(part, int) else f".{part}"
        formatted.append(f"{path}: {error.message}")
    return formatted


def ensure_valid(document: Any, location: str) -> None:
    """
    Raise when a raw document does not match the schema.

    Raises:
        SchemaValidationError: With every diagnostic.
    """
    diagnostics = validate_document(document)
    if diagnostics:
        raise SchemaValidationError(location, diagnostics)
