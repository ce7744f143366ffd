"""Task plugins - registry, hooks and the built-in task types."""

from scaffolder.plugins.builtin import (
    BUILTIN_TASKS,
    create_default_registry,
    register_builtin_plugins,
)
from scaffolder.plugins.registry import (
    ExecutionOptions,
    HookEvent,
    HookName,
    PluginRegistry,
    TaskPlugin,
    create_task_plugin,
)

__all__ = [
    # Registry
    "ExecutionOptions",
    "HookEvent",
    "HookName",
    "PluginRegistry",
    "TaskPlugin",
    "create_task_plugin",
    # Built-ins
    "BUILTIN_TASKS",
    "create_default_registry",
    "register_builtin_plugins",
]
