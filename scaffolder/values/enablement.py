"""Enablement and required-flag evaluation.

Enablement is read twice per run: a *lazy* pass before any variable or prompt
is resolved (unknown names count as enabled so the task's inputs still get
resolved) and a *final* pass afterwards, which is authoritative. Both passes
are pure functions over an immutable snapshot of the resolution context.
"""

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from loguru import logger

from scaffolder.core.models import EnabledSpec, TaskDefinition
from scaffolder.values.conditions import (
    ConditionError,
    evaluate_condition,
    evaluate_expression,
    is_truthy,
)
from scaffolder.values.interpolation import interpolate
from scaffolder.values.resolver import EXEC_TIMEOUT, run_shell

Snapshot = Mapping[str, Any]


def snapshot(context: Mapping[str, Any] | None = None) -> Snapshot:
    """Freeze the current context for a pure evaluation pass."""
    return MappingProxyType(dict(context or {}))


def normalize_spec(spec: EnabledSpec) -> tuple[str, Any]:
    """
    Reduce an EnabledSpec to ``(kind, value)``.

    Kinds are ``default``, ``literal``, ``condition``, ``exec`` and ``invalid``.

    Example:
        >>> normalize_spec("env == 'prod'")
        ('condition', "env == 'prod'")
        >>> normalize_spec({"type": "exec", "value": "test -f setup.py"})
        ('exec', 'test -f setup.py')
    """
    if spec is None:
        return ("default", None)
    if isinstance(spec, bool):
        return ("literal", spec)
    if isinstance(spec, str):
        return ("condition", spec)
    if isinstance(spec, Mapping):
        spec_type = spec.get("type")
        if spec_type is None and isinstance(spec.get("condition"), str):
            return ("condition", spec["condition"])
        if spec_type == "condition" and isinstance(spec.get("value"), str):
            return ("condition", spec["value"])
        if spec_type == "exec" and isinstance(spec.get("value"), str):
            return ("exec", spec["value"])
    return ("invalid", spec)


# =============================================================================
# ENABLED
# =============================================================================


def evaluate_enabled(spec: EnabledSpec, context: Snapshot, lazy: bool = False) -> bool:
    """
    Evaluate an EnabledSpec without running external commands.

    Exec specs cannot be decided here: the lazy pass keeps them, the final
    pass must use :func:`evaluate_enabled_async`.
    """
    kind, value = normalize_spec(spec)

    if kind == "default":
        return True
    if kind == "literal":
        return value
    if kind == "condition":
        return evaluate_condition(value, context, lazy=lazy)
    if kind == "exec":
        if not lazy:
            logger.warning(f"Exec enabled spec needs asynchronous evaluation: {value}")
        return lazy

    logger.warning(f"Invalid enabled value: {spec!r}")
    return False


def evaluate_enabled_lazy(spec: EnabledSpec, context: Snapshot) -> bool:
    """Provisional pass: names not yet resolved count as enabled."""
    return evaluate_enabled(spec, context, lazy=True)


async def evaluate_enabled_async(
    spec: EnabledSpec,
    context: Snapshot,
    lazy: bool = False,
    working_dir: str | Path | None = None,
    timeout: float = EXEC_TIMEOUT,
) -> bool:
    """
    Evaluate an EnabledSpec, running exec specs.

    Exec commands are interpolated against the context; exit code 0 means enabled.
    """
    kind, value = normalize_spec(spec)
    if kind != "exec":
        return evaluate_enabled(spec, context, lazy=lazy)

    command = interpolate(value, context)
    try:
        result = await run_shell(command, cwd=working_dir, timeout=timeout)
    except OSError as e:
        logger.warning(f"Failed to evaluate enabled command: {command} ({e})")
        return False

    if result.timed_out:
        logger.warning(f"Enabled command timed out after {timeout}s: {command}")
    return result.success


async def is_task_enabled(
    task: TaskDefinition,
    context: Snapshot,
    lazy: bool = False,
    working_dir: str | Path | None = None,
    timeout: float = EXEC_TIMEOUT,
) -> bool:
    """Check the owning document's inherited spec, then the task's own."""
    if task.template_enabled is not None and not await evaluate_enabled_async(
        task.template_enabled, context, lazy=lazy, working_dir=working_dir, timeout=timeout
    ):
        return False
    return await evaluate_enabled_async(
        task.enabled, context, lazy=lazy, working_dir=working_dir, timeout=timeout
    )


# =============================================================================
# REQUIRED
# =============================================================================


def _required_condition(condition: str, context: Snapshot) -> bool:
    try:
        return is_truthy(evaluate_expression(condition, context))
    except ConditionError:
        # fail safe: an unreadable condition still counts as required
        return True


def evaluate_required(spec: EnabledSpec, context: Snapshot) -> bool:
    """
    Decide whether a failed task halts the run.

    Defaults to True; condition errors count as required; exec specs cannot
    be run synchronously and count as not required.
    """
    kind, value = normalize_spec(spec)

    if kind == "literal":
        return value
    if kind == "condition":
        return _required_condition(value, context)
    if kind == "exec":
        return False
    return True


async def evaluate_required_async(
    spec: EnabledSpec,
    context: Snapshot,
    working_dir: str | Path | None = None,
    timeout: float = EXEC_TIMEOUT,
) -> bool:
    """Like :func:`evaluate_required`, but runs exec specs (exit code 0 means required)."""
    kind, value = normalize_spec(spec)
    if kind != "exec":
        return evaluate_required(spec, context)

    try:
        result = await run_shell(interpolate(value, context), cwd=working_dir, timeout=timeout)
    except OSError as e:
        logger.warning(f"Failed to evaluate required command: {value} ({e})")
        return False
    return result.success
