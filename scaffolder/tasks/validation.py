"""Pre-run task validation against the plugin registry."""

from collections.abc import Sequence

from loguru import logger

from scaffolder.configurations.id_validator import find_duplicate_ids
from scaffolder.core.errors import TaskValidationError
from scaffolder.core.models import TaskDefinition
from scaffolder.plugins.registry import PluginRegistry


def collect_task_problems(
    tasks: Sequence[TaskDefinition],
    registry: PluginRegistry,
) -> list[str]:
    """Every problem found in ``tasks``: duplicate ids, unknown types, bad config."""
    problems = [f'Duplicate task id "{d}"' for d in find_duplicate_ids(t.id for t in tasks)]
    for task in tasks:
        problems.extend(registry.validate_task(task))
    return problems


def validate_all_tasks(tasks: Sequence[TaskDefinition], registry: PluginRegistry) -> None:
    """
    Validate every task before anything runs.

    Raises:
        TaskValidationError: Listing all problems at once.
    """
    problems = collect_task_problems(tasks, registry)
    if problems:
        raise TaskValidationError(problems)
    logger.debug(f"Validated {len(tasks)} task(s)")
