"""Built-in process executors: exec, exec-file, git-init.

Task commands have no timeout unless the task config sets ``timeout``
(seconds); value-resolution commands keep their own short timeout.
"""

import shutil

from loguru import logger

from scaffolder.core.errors import TaskExecutionError
from scaffolder.core.models import ResolutionContext, TaskDefinition
from scaffolder.plugins.registry import ExecutionOptions
from scaffolder.plugins.templates import CONDITION_NOT_MET, condition_met, resolve_path
from scaffolder.values.interpolation import interpolate
from scaffolder.values.resolver import CommandResult, execute_script_file, run_program, run_shell

DEFAULT_COMMIT_MESSAGE = "Initial commit"


def _log_output(result: CommandResult) -> None:
    for line in result.stdout.splitlines():
        logger.info(f"  {line}")


# =============================================================================
# EXEC
# =============================================================================


async def execute_exec(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """
    Run ``config.command`` in a shell.

    Raises:
        TaskExecutionError: On a non-zero exit code or timeout.
    """
    if not condition_met(task, context):
        return None

    command = interpolate(task.config["command"], context)
    cwd = options.working_dir
    if task.config.get("cwd"):
        cwd = resolve_path(task.config["cwd"], context, options)
    logger.info(f"Running: {command}")
    result = await run_shell(command, cwd=cwd, timeout=task.config.get("timeout"))
    _log_output(result)
    if not result.success:
        raise TaskExecutionError.for_command(command, result.returncode, result.stderr)
    return result.stdout


def exec_diff(task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    command = interpolate(task.config["command"], context)
    cwd = str(options.working_dir)
    if task.config.get("cwd"):
        cwd = interpolate(task.config["cwd"], context)
    return f"Would execute:\n  Command: {command}\n  Working directory: {cwd}"


# =============================================================================
# EXEC FILE
# =============================================================================


async def execute_exec_file(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """
    Run a local or remote script with its runtime.

    Raises:
        TaskExecutionError: If the script fails or times out.
    """
    if not condition_met(task, context):
        return None

    output = await execute_script_file(
        task.config,
        context,
        fetcher=options.fetcher,
        working_dir=options.working_dir,
        timeout=task.config.get("timeout"),
        source_url=task.source_url,
    )
    if output is None:
        raise TaskExecutionError(f"Script failed: {task.config['file']}")
    for line in output.splitlines():
        logger.info(f"  {line}")
    return output


def exec_file_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    file_ref = interpolate(task.config["file"], context)
    args = " ".join(interpolate(str(a), context) for a in task.config.get("args") or [])
    runtime = task.config.get("runtime") or "auto-detected"
    return f"Would execute script:\n  File: {file_ref}\n  Runtime: {runtime}\n  Args: {args or '(none)'}"


# =============================================================================
# GIT INIT
# =============================================================================


async def _git(args: list[str], options: ExecutionOptions) -> None:
    result = await run_program(["git", *args], cwd=options.working_dir, timeout=None)
    _log_output(result)
    if not result.success:
        raise TaskExecutionError.for_command(f"git {' '.join(args)}", result.returncode, result.stderr)


async def execute_git_init(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str | None:
    """Initialize a repository, optionally replacing ``.git`` and committing everything."""
    if not condition_met(task, context):
        return None

    git_dir = options.working_dir / ".git"
    if task.config.get("removeExisting") and git_dir.exists():
        shutil.rmtree(git_dir)
        logger.info("Removed existing .git directory")

    await _git(["init"], options)
    if task.config.get("initialCommit"):
        message = interpolate(task.config.get("message") or DEFAULT_COMMIT_MESSAGE, context)
        await _git(["add", "."], options)
        await _git(["commit", "-m", message], options)
    return str(git_dir)


def git_init_diff(
    task: TaskDefinition, context: ResolutionContext, options: ExecutionOptions
) -> str:
    if not condition_met(task, context):
        return CONDITION_NOT_MET
    lines = []
    if task.config.get("removeExisting") and (options.working_dir / ".git").exists():
        lines.append("Would remove existing .git directory")
    lines.append("Would initialize git repository")
    if task.config.get("initialCommit"):
        message = interpolate(task.config.get("message") or DEFAULT_COMMIT_MESSAGE, context)
        lines.append(f'Would create initial commit: "{message}"')
    return "\n".join(lines)
