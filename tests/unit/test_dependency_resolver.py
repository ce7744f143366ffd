"""Unit tests for task dependency ordering and validation."""

import pytest

from scaffolder.core.errors import CircularDependencyError, TaskNotFoundError, TaskValidationError
from scaffolder.core.models import TaskDefinition
from scaffolder.plugins.builtin import create_default_registry
from scaffolder.tasks.dependency_resolver import TaskDependencyResolver, topological_sort
from scaffolder.tasks.validation import collect_task_problems, validate_all_tasks


def _task(task_id: str, *dependencies: str, **fields) -> TaskDefinition:
    return TaskDefinition(
        id=task_id, type=fields.pop("type", "write"), dependencies=list(dependencies), **fields
    )


class TestTaskDependencyResolver:
    """Tests for TaskDependencyResolver."""

    def test_independent_tasks_keep_order(self) -> None:
        """Test tasks without dependencies keep declaration order."""
        tasks = [_task("c"), _task("a"), _task("b")]
        assert [t.id for t in topological_sort(tasks)] == ["c", "a", "b"]

    def test_dependencies_first(self) -> None:
        """Test each task follows its dependencies."""
        tasks = [_task("build", "install"), _task("install", "setup"), _task("setup")]
        assert [t.id for t in topological_sort(tasks)] == ["setup", "install", "build"]

    def test_diamond(self) -> None:
        """Test a shared dependency is emitted once."""
        tasks = [_task("d", "b", "c"), _task("b", "a"), _task("c", "a"), _task("a")]
        assert [t.id for t in topological_sort(tasks)] == ["a", "b", "c", "d"]

    def test_cycle(self) -> None:
        """Test a cycle raises CircularDependencyError with its path."""
        tasks = [_task("a", "b"), _task("b", "c"), _task("c", "a")]
        with pytest.raises(CircularDependencyError) as exc_info:
            topological_sort(tasks)
        assert exc_info.value.chain == ["a", "b", "c", "a"]
        assert "involving task: a" in exc_info.value.message

    def test_missing_dependency(self) -> None:
        """Test a dependency outside the task set is fatal."""
        with pytest.raises(TaskNotFoundError) as exc_info:
            topological_sort([_task("a", "ghost")])
        assert exc_info.value.task_id == "ghost"
        assert exc_info.value.message == "Task not found: ghost (required by a)"

    def test_detect_cycles(self) -> None:
        """Test cycle detection ignores missing dependencies."""
        resolver = TaskDependencyResolver()
        assert resolver.detect_cycles([_task("a", "ghost"), _task("b", "a")]) is None
        assert resolver.detect_cycles([_task("a", "a")]) == ["a", "a"]

    def test_missing_dependencies(self) -> None:
        """Test missing dependencies are listed per task."""
        resolver = TaskDependencyResolver()
        assert resolver.missing_dependencies([_task("a", "x", "y")]) == [("a", "x"), ("a", "y")]


class TestValidateAllTasks:
    """Tests for pre-run task validation."""

    def test_valid(self) -> None:
        """Test well-formed tasks pass."""
        registry = create_default_registry()
        validate_all_tasks([_task("t", config={"file": "a", "template": "x"})], registry)

    def test_collects_every_problem(self) -> None:
        """Test all problems are reported together."""
        registry = create_default_registry()
        tasks = [
            _task("dup", config={"file": "a", "template": "x"}),
            _task("dup", config={"file": "b", "template": "y"}),
            _task("odd", type="teleport"),
        ]
        problems = collect_task_problems(tasks, registry)
        assert 'Duplicate task id "dup"' in problems
        assert 'Task "odd": unknown task type "teleport"' in problems

        with pytest.raises(TaskValidationError) as exc_info:
            validate_all_tasks(tasks, registry)
        assert exc_info.value.problems == problems
