"""Task ordering and validation."""

from scaffolder.tasks.dependency_resolver import TaskDependencyResolver, topological_sort
from scaffolder.tasks.validation import collect_task_problems, validate_all_tasks

__all__ = [
    "TaskDependencyResolver",
    "collect_task_problems",
    "topological_sort",
    "validate_all_tasks",
]
