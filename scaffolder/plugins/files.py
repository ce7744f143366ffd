"""Built-in file task executors: write, create, append, delete, rename, move, copy, mkdir.

Every path is interpolated and resolved against the run's working directory.
Each executor has a matching ``*_diff`` used in dry-run mode, which reads
the file system but never changes it.
"""

import shutil
from pathlib import Path

from loguru import logger

from scaffolder.core.models import ResolutionContext, TaskDefinition
from scaffolder.plugins.diff import file_diff, read_text_or_empty, unified_diff
from scaffolder.plugins.registry import ExecutionOptions
from scaffolder.plugins.templates import (
    CONDITION_NOT_MET,
    condition_met,
    render_task_content,
    resolve_path,
)
from scaffolder.values.interpolation import interpolate


def _label(task: TaskDefinition, key: str, context: ResolutionContext) -> str:
    return interpolate(str(task.config.get(key, "")), context)


# =============================================================================
# WRITE / CREATE / APPEND
# =============================================================================


async def execute_write(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """
    Write rendered content to ``config.file``, replacing what is there.

    Raises:
        FileNotFoundError: If the file is missing and ``allowCreate`` is false.
        PluginConfigurationError: If not exactly one template source is set.
    """
    if not condition_met(task, context):
        return None

    path = resolve_path(task.config["file"], context, options)
    if not path.exists():
        if task.config.get("allowCreate", True) is False:
            raise FileNotFoundError(f"Write task failed: file does not exist ({path})")
        logger.info(f"File not found, creating new file: {path}")

    content = await render_task_content(task, context, options)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return str(path)


async def write_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["file"], context, options)
    content = await render_task_content(task, context, options)
    return file_diff(path, content, _label(task, "file", context))


async def execute_create(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Create ``config.file`` with rendered content; an existing file is left alone."""
    if not condition_met(task, context):
        return None

    path = resolve_path(task.config["file"], context, options)
    if path.exists():
        logger.info(f"File already exists, skipping: {path}")
        return None

    content = await render_task_content(task, context, options)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info(f"Created file: {path}")
    return str(path)


async def create_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["file"], context, options)
    if path.exists():
        return f"File already exists, would skip: {_label(task, 'file', context)}"
    content = await render_task_content(task, context, options)
    return file_diff(path, content, _label(task, "file", context))


def _normalize_append(task: TaskDefinition) -> TaskDefinition:
    # "content" is an alias of "template"
    config = dict(task.config)
    if "content" in config:
        content = config.pop("content")
        config.setdefault("template", content)
        return task.model_copy(update={"config": config})
    return task


async def _appended(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> tuple[str, str]:
    task = _normalize_append(task)
    path = resolve_path(task.config["file"], context, options)
    before = read_text_or_empty(path)
    content = await render_task_content(task, context, options)
    if before and not before.endswith("\n") and task.config.get("newline", True) is not False:
        content = "\n" + content
    return before, before + content


async def execute_append(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Append rendered content to ``config.file``, creating it if needed."""
    if not condition_met(task, context):
        return None

    path = resolve_path(task.config["file"], context, options)
    _, after = await _appended(task, context, options)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(after, encoding="utf-8")
    logger.info(f"Appended content to {path}")
    return str(path)


async def append_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    before, after = await _appended(task, context, options)
    return unified_diff(_label(task, "file", context), before, after)


# =============================================================================
# DELETE / RENAME / MOVE / COPY / MKDIR
# =============================================================================


async def execute_delete(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> list[str]:
    """Remove every path in ``config.paths``, recursively; missing paths are ignored."""
    if not condition_met(task, context):
        return []

    removed: list[str] = []
    for entry in task.config.get("paths", []):
        path = resolve_path(entry, context, options)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            continue
        removed.append(str(path))
    logger.debug(f"Deleted {len(removed)} path(s)")
    return removed


def delete_diff(task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    lines = []
    for entry in task.config.get("paths", []):
        path = resolve_path(entry, context, options)
        if path.exists():
            kind = "directory" if path.is_dir() else "file"
            lines.append(f"Would delete {kind}: {entry}")
        else:
            lines.append(f"Already absent: {entry}")
    return "\n".join(lines) or "No paths to delete"


def _source_and_target(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> tuple[Path, Path]:
    return (
        resolve_path(task.config["from"], context, options),
        resolve_path(task.config["to"], context, options),
    )


async def execute_rename(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Rename ``config.from`` to ``config.to``; a missing source logs a warning."""
    if not condition_met(task, context):
        return None
    source, target = _source_and_target(task, context, options)
    if not source.exists():
        logger.warning(f"Source path does not exist: {source}")
        return None
    source.rename(target)
    return str(target)


async def execute_move(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Move a file or directory, creating the destination's parent directories."""
    if not condition_met(task, context):
        return None
    source, target = _source_and_target(task, context, options)
    if not source.exists():
        logger.warning(f"Source path does not exist: {source}")
        return None
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(target))
    logger.info(f"Moved {source} to {target}")
    return str(target)


async def execute_copy(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Copy a file, or a directory recursively."""
    if not condition_met(task, context):
        return None
    source, target = _source_and_target(task, context, options)
    if not source.exists():
        logger.warning(f"Source path does not exist: {source}")
        return None
    target.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, target, dirs_exist_ok=True)
        logger.info(f"Copied directory {source} to {target}")
    else:
        shutil.copy2(source, target)
        logger.info(f"Copied file {source} to {target}")
    return str(target)


def _relocation_diff(verb: str):
    def diff(task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions) -> str:
        if not condition_met(task, context):
            return CONDITION_NOT_MET
        source, _ = _source_and_target(task, context, options)
        origin, destination = _label(task, "from", context), _label(task, "to", context)
        if not source.exists():
            return f"Source path does not exist, would skip: {origin}"
        return f"Would {verb}: {origin} -> {destination}"

    return diff


rename_diff = _relocation_diff("rename")
move_diff = _relocation_diff("move")
copy_diff = _relocation_diff("copy")


async def execute_mkdir(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Create ``config.path`` and any missing parents."""
    if not condition_met(task, context):
        return None
    path = resolve_path(task.config["path"], context, options)
    path.mkdir(parents=True, exist_ok=True)
    logger.info(f"Created directory: {path}")
    return str(path)


def mkdir_diff(task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    path = resolve_path(task.config["path"], context, options)
    label = _label(task, "path", context)
    if path.is_dir():
        return f"Directory already exists: {label}"
    return f"Would create directory: {label}"
