"""Task dependency resolver - orders tasks so dependencies run first.

Depth-first traversal with three colors: visiting a task first visits its
dependencies, a revisit of an in-progress task is a cycle, and a dependency
id outside the task set is fatal. Tasks with no relative constraint keep
their declaration order.
"""

from collections.abc import Sequence

from loguru import logger

from scaffolder.core.errors import CircularDependencyError, TaskNotFoundError
from scaffolder.core.models import TaskDefinition

WHITE, GRAY, BLACK = 0, 1, 2


class TaskDependencyResolver:
    """
    Topologically sort a task set.

    Example:
        >>> resolver = TaskDependencyResolver()
        >>> ordered = resolver.sort([build, setup])  # build depends on setup
        >>> [t.id for t in ordered]
        ['setup', 'build']
    """

    def sort(self, tasks: Sequence[TaskDefinition]) -> list[TaskDefinition]:
        """
        Return ``tasks`` in dependency order.

        Raises:
            CircularDependencyError: If dependencies form a cycle.
            TaskNotFoundError: If a dependency id is not in ``tasks``.
        """
        task_map = {task.id: task for task in tasks}
        colors: dict[str, int] = {task_id: WHITE for task_id in task_map}
        ordered: list[TaskDefinition] = []

        def visit(task_id: str, path: list[str]) -> None:
            colors[task_id] = GRAY
            path.append(task_id)

            for dependency in task_map[task_id].dependencies:
                if dependency not in task_map:
                    raise TaskNotFoundError.for_id(dependency, required_by=task_id)
                if colors[dependency] == GRAY:
                    cycle = path[path.index(dependency):] + [dependency]
                    raise CircularDependencyError.for_task_dependency(cycle)
                if colors[dependency] == WHITE:
                    visit(dependency, path)

            path.pop()
            colors[task_id] = BLACK
            ordered.append(task_map[task_id])

        for task_id in task_map:
            if colors[task_id] == WHITE:
                visit(task_id, [])

        logger.debug(f"Task order: {' -> '.join(t.id for t in ordered)}")
        return ordered

    def detect_cycles(self, tasks: Sequence[TaskDefinition]) -> list[str] | None:
        """
        Find one dependency cycle, ignoring missing dependencies.

        Returns:
            The cycle path (first id repeated at the end), or None.
        """
        graph = {task.id: list(task.dependencies) for task in tasks}
        colors: dict[str, int] = {node: WHITE for node in graph}

        def dfs(node: str, path: list[str]) -> list[str] | None:
            colors[node] = GRAY
            path.append(node)
            for neighbor in graph[node]:
                if neighbor not in colors:
                    continue
                if colors[neighbor] == GRAY:
                    return path[path.index(neighbor):] + [neighbor]
                if colors[neighbor] == WHITE:
                    found = dfs(neighbor, path)
                    if found:
                        return found
            path.pop()
            colors[node] = BLACK
            return None

        for node in graph:
            if colors[node] == WHITE:
                cycle = dfs(node, [])
                if cycle:
                    return cycle
        return None

    def missing_dependencies(self, tasks: Sequence[TaskDefinition]) -> list[tuple[str, str]]:
        """Return ``(task_id, missing_dependency)`` pairs."""
        ids = {task.id for task in tasks}
        return [(t.id, d) for t in tasks for d in t.dependencies if d not in ids]


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def topological_sort(tasks: Sequence[TaskDefinition]) -> list[TaskDefinition]:
    """
    Sort tasks with a default resolver.

    Example:
        >>> [t.id for t in topological_sort(tasks)]
        ['setup', 'install', 'build']
    """
    return TaskDependencyResolver().sort(tasks)
