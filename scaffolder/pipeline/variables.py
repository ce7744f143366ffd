"""Variable validation, batch resolution and collection."""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger

from scaffolder.configurations.id_validator import find_duplicate_ids
from scaffolder.core.errors import VariableValidationError
from scaffolder.core.models import VariableDefinition
from scaffolder.values.enablement import snapshot
from scaffolder.values.resolver import ValueResolver
from scaffolder.values.transformers import TransformerManager


def validate_variables(variables: Sequence[VariableDefinition]) -> list[str]:
    """Problems with a variable set; only duplicate ids are not covered by the schema."""
    return [f'Duplicate variable ID: "{d}"' for d in find_duplicate_ids(v.id for v in variables)]


def ensure_valid_variables(variables: Sequence[VariableDefinition]) -> None:
    """
    Raises:
        VariableValidationError: Listing every problem.
    """
    problems = validate_variables(variables)
    if problems:
        raise VariableValidationError(problems)


async def resolve_all_variable_values(
    variables: Sequence[VariableDefinition],
    context: Mapping[str, Any],
    resolver: ValueResolver,
    skip_conditional: bool = False,
) -> dict[str, Any]:
    """
    Resolve a batch of variables concurrently.

    Every resolution in the batch reads the same frozen snapshot of
    ``context``; nothing is written until the whole batch has finished.

    Returns:
        Variable id -> value, omitting unresolved variables.
    """
    targets = [v for v in variables if not (skip_conditional and v.is_conditional)]
    if not targets:
        return {}

    frozen = snapshot(context)
    values = await asyncio.gather(
        *(resolver.resolve(v.value, frozen, v.id, "Variable", v.source_url) for v in targets)
    )

    resolved: dict[str, Any] = {}
    for variable, value in zip(targets, values):
        if value is None:
            logger.debug(f'Variable "{variable.id}" is unresolved')
            continue
        resolved[variable.id] = value
    return resolved


async def collect_variables(
    variables: Sequence[VariableDefinition],
    resolved: Mapping[str, Any],
    context: Mapping[str, Any],
    transformers: TransformerManager,
) -> dict[str, Any]:
    """
    Apply each variable's transformers to its resolved value.

    Transformers see the context plus the variables collected before them.

    Raises:
        TransformerError: If a transformer is unknown or fails.
    """
    collected: dict[str, Any] = {}
    for variable in variables:
        if variable.id not in resolved:
            continue
        value = resolved[variable.id]
        if variable.transformers:
            value = await transformers.apply(variable.transformers, value, {**context, **collected})
        collected[variable.id] = value
    return collected
