"""Built-in content-editing executors: regex-replace, replace-in-file, update-json."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from scaffolder.core.models import ResolutionContext, TaskDefinition
from scaffolder.plugins.diff import unified_diff
from scaffolder.plugins.registry import ExecutionOptions
from scaffolder.plugins.templates import CONDITION_NOT_MET, condition_met, resolve_path
from scaffolder.values.interpolation import interpolate, interpolate_structure, set_nested
from scaffolder.values.transformers import python_replacement, regex_flags

JSON_INDENT = 2


def _read(path: Path) -> str:
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_text(encoding="utf-8")


# =============================================================================
# REGEX REPLACE
# =============================================================================


def _regex_replaced(task: TaskDefinition, context: ResolutionContext, content: str) -> str:
    flags = task.config.get("flags") or ""
    replacement = interpolate(task.config.get("replacement") or "", context)
    return re.sub(
        task.config["pattern"],
        python_replacement(replacement),
        content,
        count=0 if "g" in flags else 1,
        flags=regex_flags(flags),
    )


async def execute_regex_replace(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """
    Replace ``config.pattern`` matches in ``config.file``.

    ``flags`` follow JavaScript conventions (``g`` replaces every match);
    the replacement is interpolated and may reference groups as ``$1``.
    """
    if not condition_met(task, context):
        return None
    path = resolve_path(task.config["file"], context, options)
    path.write_text(_regex_replaced(task, context, _read(path)), encoding="utf-8")
    return str(path)


async def regex_replace_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["file"], context, options)
    if not path.is_file():
        return f"File not found: {task.config['file']}"
    before = _read(path)
    return unified_diff(task.config["file"], before, _regex_replaced(task, context, before))


# =============================================================================
# REPLACE IN FILE
# =============================================================================


def _replacements_applied(task: TaskDefinition, context: ResolutionContext, content: str) -> str:
    for replacement in task.config.get("replacements", []):
        content = re.sub(
            replacement["find"],
            python_replacement(interpolate(str(replacement.get("replace", "")), context)),
            content,
        )
    return content


async def execute_replace_in_file(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Apply every ``{find, replace}`` pair globally; a missing file is skipped."""
    if not condition_met(task, context):
        return None
    path = resolve_path(task.config["file"], context, options)
    if not path.is_file():
        logger.warning(f"File not found: {path}, skipping")
        return None
    path.write_text(_replacements_applied(task, context, _read(path)), encoding="utf-8")
    return str(path)


async def replace_in_file_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["file"], context, options)
    if not path.is_file():
        return f"File not found, would skip: {task.config['file']}"
    before = _read(path)
    return unified_diff(task.config["file"], before, _replacements_applied(task, context, before))


# =============================================================================
# UPDATE JSON
# =============================================================================


def _json_updated(task: TaskDefinition, context: ResolutionContext, content: str) -> str:
    data: dict[str, Any] = json.loads(content)
    for key, value in (task.config.get("updates") or {}).items():
        set_nested(data, key, interpolate_structure(value, context))
    return json.dumps(data, indent=JSON_INDENT, ensure_ascii=False) + "\n"


async def execute_update_json(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """
    Set dotted keys in a JSON file.

    Example config:
        ``{"file": "package.json", "updates": {"name": "{{projectName}}", "scripts.test": "pytest"}}``
    """
    if not condition_met(task, context):
        return None
    path = resolve_path(task.config["file"], context, options)
    path.write_text(_json_updated(task, context, _read(path)), encoding="utf-8")
    return str(path)


async def update_json_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["file"], context, options)
    if not path.is_file():
        return f"File not found: {task.config['file']}"
    before = _read(path)
    return unified_diff(task.config["file"], before, _json_updated(task, context, before))
