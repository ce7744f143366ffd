"""Value resolution - interpolation, conditions, ValueSpecs, enablement and transformers."""

from scaffolder.values.conditions import (
    ConditionError,
    ConditionSyntaxError,
    UndefinedNameError,
    evaluate_condition,
    evaluate_expression,
)
from scaffolder.values.enablement import (
    evaluate_enabled,
    evaluate_enabled_async,
    evaluate_required,
    evaluate_required_async,
    is_task_enabled,
    snapshot,
)
from scaffolder.values.interpolation import get_nested, interpolate, set_nested
from scaffolder.values.resolver import ValueResolver, parse_output, resolve_value
from scaffolder.values.transformers import TransformerManager

__all__ = [
    # Interpolation
    "get_nested",
    "interpolate",
    "set_nested",
    # Conditions
    "ConditionError",
    "ConditionSyntaxError",
    "UndefinedNameError",
    "evaluate_condition",
    "evaluate_expression",
    # Resolver
    "ValueResolver",
    "parse_output",
    "resolve_value",
    # Enablement
    "evaluate_enabled",
    "evaluate_enabled_async",
    "evaluate_required",
    "evaluate_required_async",
    "is_task_enabled",
    "snapshot",
    # Transformers
    "TransformerManager",
]
