"""Plugin registry - maps task types to executors, and holds lifecycle hooks.

A registry is constructed per run and passed by reference; there is no
process-wide plugin state, so tests and concurrent runs stay isolated.
"""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from scaffolder.configurations.fetcher import ConfigurationFetcher
from scaffolder.configurations.merger import DEFAULT_CONFLICTING_FIELDS
from scaffolder.core.errors import PluginRegistrationError, ScaffolderError
from scaffolder.core.models import ResolutionContext, TaskDefinition

DIFF_NOT_AVAILABLE = "Diff not available"


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class ExecutionOptions:
    """Per-run settings handed to every executor."""

    dry_run: bool = False
    working_dir: Path = field(default_factory=Path.cwd)
    fetcher: ConfigurationFetcher = field(default_factory=ConfigurationFetcher)


TaskExecutor = Callable[[TaskDefinition, ResolutionContext, ExecutionOptions], Any]
TaskDiff = Callable[[TaskDefinition, ResolutionContext, ExecutionOptions], Any]
TaskValidator = Callable[[TaskDefinition], list[str] | None]


@dataclass
class TaskPlugin:
    """
    A set of task types and the functions that run them.

    ``execute`` and ``get_diff`` may be plain or async functions. ``validate``
    returns a list of problems (empty or None when valid).
    """

    name: str
    task_types: list[str]
    execute: TaskExecutor
    version: str = "1.0.0"
    description: str | None = None
    get_diff: TaskDiff | None = None
    validate: TaskValidator | None = None
    conflicting_fields: dict[str, list[list[str]]] = field(default_factory=dict)


class HookName(str, Enum):
    """Lifecycle hook points."""

    BEFORE_ALL = "beforeAll"
    AFTER_ALL = "afterAll"
    BEFORE_TASK = "beforeTask"
    AFTER_TASK = "afterTask"
    ON_ERROR = "onError"


@dataclass
class HookEvent:
    """Payload passed to a lifecycle hook."""

    hook: HookName
    context: ResolutionContext
    task: TaskDefinition | None = None
    result: Any = None
    error: BaseException | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hook": self.hook.value,
            "task_id": self.task.id if self.task else None,
            "error": str(self.error) if self.error else None,
            "timestamp": self.timestamp.isoformat(),
        }


HookCallback = Callable[[HookEvent], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# =============================================================================
# REGISTRY
# =============================================================================


class PluginRegistry:
    """
    Task plugins and hooks for one run.

    Example:
        >>> registry = PluginRegistry()
        >>> registry.register(create_task_plugin("greet", "greet", greet))
        >>> registry.handles("greet")
        True
    """

    def __init__(self, conflicting_fields: Mapping[str, list[list[str]]] | None = None) -> None:
        self._plugins: dict[str, TaskPlugin] = {}
        self._task_types: dict[str, str] = {}
        self._hooks: dict[HookName, list[HookCallback]] = {h: [] for h in HookName}
        base = DEFAULT_CONFLICTING_FIELDS if conflicting_fields is None else conflicting_fields
        self._conflicting_fields: dict[str, list[list[str]]] = {
            task_type: [list(g) for g in groups] for task_type, groups in base.items()
        }

    # =========================================================================
    # PLUGINS
    # =========================================================================

    def register(self, plugin: TaskPlugin) -> None:
        """
        Register a plugin.

        Raises:
            PluginRegistrationError: If the plugin is malformed, already
                registered, or claims a task type another plugin owns.
        """
        if not plugin.name:
            raise PluginRegistrationError("Plugin must have a name")
        if not plugin.task_types:
            raise PluginRegistrationError(
                f"Plugin {plugin.name} must handle at least one task type"
            )
        if not callable(plugin.execute):
            raise PluginRegistrationError(f"Plugin {plugin.name} must have an execute function")
        if plugin.name in self._plugins:
            raise PluginRegistrationError(f'Plugin "{plugin.name}" is already registered')
        for task_type in plugin.task_types:
            owner = self._task_types.get(task_type)
            if owner is not None:
                raise PluginRegistrationError(
                    f'Task type "{task_type}" is already registered by plugin "{owner}"'
                )

        self._plugins[plugin.name] = plugin
        for task_type in plugin.task_types:
            self._task_types[task_type] = plugin.name
        for task_type, groups in plugin.conflicting_fields.items():
            self._conflicting_fields[task_type] = [list(g) for g in groups]
        logger.debug(f"Registered plugin {plugin.name} v{plugin.version}: {', '.join(plugin.task_types)}")

    def unregister(self, name: str) -> bool:
        """Remove a plugin; returns False if it was not registered."""
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False
        for task_type in plugin.task_types:
            self._task_types.pop(task_type, None)
        return True

    def get(self, name: str) -> TaskPlugin | None:
        return self._plugins.get(name)

    def list_plugins(self) -> list[TaskPlugin]:
        return list(self._plugins.values())

    def clear(self) -> None:
        """Remove every plugin and hook."""
        self._plugins.clear()
        self._task_types.clear()
        self._hooks = {h: [] for h in HookName}

    def plugin_for(self, task_type: str) -> TaskPlugin | None:
        """The plugin handling ``task_type``, if any."""
        name = self._task_types.get(task_type)
        return self._plugins.get(name) if name else None

    def handles(self, task_type: str) -> bool:
        return task_type in self._task_types

    @property
    def conflicting_fields(self) -> dict[str, list[list[str]]]:
        """Task type -> groups of mutually exclusive config fields."""
        return self._conflicting_fields

    @property
    def task_types(self) -> list[str]:
        return sorted(self._task_types)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(
        self,
        task: TaskDefinition,
        context: ResolutionContext,
        options: ExecutionOptions | None = None,
    ) -> Any:
        """
        Run ``task`` with the plugin for its type.

        Raises:
            PluginRegistrationError: If no plugin handles the task type.
        """
        plugin = self.plugin_for(task.type)
        if plugin is None:
            raise PluginRegistrationError(f'No plugin registered for task type "{task.type}"')
        return await _maybe_await(plugin.execute(task, context, options or ExecutionOptions()))

    async def get_diff(
        self,
        task: TaskDefinition,
        context: ResolutionContext,
        options: ExecutionOptions | None = None,
    ) -> str:
        """
        Dry-run preview of ``task``.

        Plugins without a diff report "Diff not available". A diff that fails
        is reported in place of the diff so the rest of the preview continues.
        """
        plugin = self.plugin_for(task.type)
        if plugin is None or plugin.get_diff is None:
            return DIFF_NOT_AVAILABLE
        options = options or ExecutionOptions(dry_run=True)
        try:
            return str(await _maybe_await(plugin.get_diff(task, context, options)))
        except Exception as e:
            logger.warning(f'Failed to generate diff for task "{task.id}": {e}')
            return f"Error generating diff: {e}"

    def validate_task(self, task: TaskDefinition) -> list[str]:
        """
        Problems that would stop ``task`` from running.

        Uses the plugin's own validator when it has one, otherwise checks the
        conflicting-field groups of the task type.
        """
        plugin = self.plugin_for(task.type)
        if plugin is None:
            return [f'Task "{task.id}": unknown task type "{task.type}"']

        if plugin.validate is not None:
            try:
                return [f'Task "{task.id}": {p}' for p in plugin.validate(task) or []]
            except ScaffolderError as e:
                return [f'Task "{task.id}": {e.message}']

        problems: list[str] = []
        for group in self._conflicting_fields.get(task.type, []):
            present = [f for f in group if f in task.config]
            if len(present) > 1:
                problems.append(
                    f'Task "{task.id}": fields {", ".join(present)} cannot be used together'
                )
        return problems

    # =========================================================================
    # HOOKS
    # =========================================================================

    def add_hook(self, hook: HookName | str, callback: HookCallback) -> None:
        """Register one callback; several callbacks per hook run in order."""
        self._hooks[HookName(hook)].append(callback)

    def register_hooks(self, hooks: Mapping[HookName | str, HookCallback]) -> None:
        """Register callbacks keyed by hook name (``beforeAll``, ``onError``, ...)."""
        for hook, callback in hooks.items():
            self.add_hook(hook, callback)

    def hooks(self, hook: HookName | str) -> list[HookCallback]:
        return list(self._hooks[HookName(hook)])

    async def call_hook(self, event: HookEvent) -> None:
        """Run every callback for ``event.hook``; failures are logged and ignored."""
        for callback in self._hooks[event.hook]:
            try:
                await _maybe_await(callback(event))
            except Exception as e:
                logger.warning(f"Hook {event.hook.value} failed: {e}")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def create_task_plugin(
    name: str,
    task_type: str | list[str],
    execute: TaskExecutor,
    get_diff: TaskDiff | None = None,
    validate: TaskValidator | None = None,
    version: str = "1.0.0",
    conflicting_fields: dict[str, list[list[str]]] | None = None,
) -> TaskPlugin:
    """
    Build a TaskPlugin for one or more task types.

    Example:
        >>> async def greet(task, context, options):
        ...     print(f"Hello {context['name']}")
        >>> plugin = create_task_plugin("greeter", "greet", greet)
    """
    return TaskPlugin(
        name=name,
        task_types=[task_type] if isinstance(task_type, str) else list(task_type),
        execute=execute,
        version=version,
        get_diff=get_diff,
        validate=validate,
        conflicting_fields=conflicting_fields or {},
    )
