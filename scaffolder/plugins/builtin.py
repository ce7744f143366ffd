"""The built-in task types and their registration."""

import re
from collections.abc import Callable

from scaffolder.core.errors import PluginConfigurationError
from scaffolder.core.models import TaskDefinition
from scaffolder.plugins import content, files, system
from scaffolder.plugins.registry import (
    PluginRegistry,
    TaskDiff,
    TaskExecutor,
    create_task_plugin,
)

BUILTIN_PREFIX = "builtin"


def _require(*keys: str) -> Callable[[TaskDefinition], list[str]]:
    def check(task: TaskDefinition) -> list[str]:
        return [f'missing required config field "{k}"' for k in keys if not task.config.get(k)]

    return check


def _template_source(task: TaskDefinition) -> list[str]:
    problems = _require("file")(task)
    inline = task.config.get("template")
    if task.type == "append" and inline is None:
        inline = task.config.get("content")
    has_file = bool(task.config.get("templateFile"))
    if inline is not None and has_file:
        problems.append(PluginConfigurationError.both_templates(task.type).message)
    elif inline is None and not has_file:
        problems.append(PluginConfigurationError.missing_template(task.type).message)
    return problems


def _regex(task: TaskDefinition) -> list[str]:
    problems = _require("file", "pattern")(task)
    if task.config.get("pattern"):
        try:
            re.compile(task.config["pattern"])
        except re.error as e:
            problems.append(f"invalid pattern: {e}")
    return problems


def _replacements(task: TaskDefinition) -> list[str]:
    problems = _require("file")(task)
    replacements = task.config.get("replacements")
    if not isinstance(replacements, list) or not replacements:
        problems.append('"replacements" must be a non-empty list')
        return problems
    for index, replacement in enumerate(replacements):
        if not isinstance(replacement, dict) or not replacement.get("find"):
            problems.append(f'replacement {index} needs a "find" pattern')
    return problems


def _updates(task: TaskDefinition) -> list[str]:
    problems = _require("file")(task)
    if not isinstance(task.config.get("updates"), dict):
        problems.append('"updates" must be an object')
    return problems


def _paths(task: TaskDefinition) -> list[str]:
    paths = task.config.get("paths")
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        return ['"paths" must be a list of strings']
    return []


BUILTIN_TASKS: dict[str, tuple[TaskExecutor, TaskDiff, Callable[[TaskDefinition], list[str]]]] = {
    "write": (files.execute_write, files.write_diff, _template_source),
    "create": (files.execute_create, files.create_diff, _template_source),
    "append": (files.execute_append, files.append_diff, _template_source),
    "delete": (files.execute_delete, files.delete_diff, _paths),
    "rename": (files.execute_rename, files.rename_diff, _require("from", "to")),
    "move": (files.execute_move, files.move_diff, _require("from", "to")),
    "copy": (files.execute_copy, files.copy_diff, _require("from", "to")),
    "mkdir": (files.execute_mkdir, files.mkdir_diff, _require("path")),
    "regex-replace": (content.execute_regex_replace, content.regex_replace_diff, _regex),
    "replace-in-file": (
        content.execute_replace_in_file,
        content.replace_in_file_diff,
        _replacements,
    ),
    "update-json": (content.execute_update_json, content.update_json_diff, _updates),
    "exec": (system.execute_exec, system.exec_diff, _require("command")),
    "exec-file": (system.execute_exec_file, system.exec_file_diff, _require("file")),
    "git-init": (system.execute_git_init, system.git_init_diff, lambda task: []),
}


def register_builtin_plugins(registry: PluginRegistry) -> PluginRegistry:
    """
    Register every built-in task type on ``registry``.

    Example:
        >>> registry = register_builtin_plugins(PluginRegistry())
        >>> registry.handles("update-json")
        True
    """
    for task_type, (execute, get_diff, validate) in BUILTIN_TASKS.items():
        registry.register(
            create_task_plugin(
                f"{BUILTIN_PREFIX}:{task_type}",
                task_type,
                execute,
                get_diff=get_diff,
                validate=validate,
            )
        )
    return registry


def create_default_registry() -> PluginRegistry:
    """A fresh registry with the built-in task types."""
    return register_builtin_plugins(PluginRegistry())
