"""Template rendering for content-producing tasks.

Inline ``template`` strings use ``{{placeholder}}`` interpolation. A
``templateFile`` is fetched like a configuration document, relative to the
task's own document; files ending in ``.j2`` or ``.jinja`` are rendered
with jinja2, anything else is interpolated.
"""

from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import jinja2
from loguru import logger

from scaffolder.configurations.fetcher import is_url, resolve_location
from scaffolder.core.errors import PluginConfigurationError
from scaffolder.core.models import ResolutionContext, TaskDefinition
from scaffolder.plugins.registry import ExecutionOptions
from scaffolder.values.conditions import evaluate_condition
from scaffolder.values.interpolation import interpolate

JINJA_SUFFIXES = (".j2", ".jinja")

_environment = jinja2.Environment(
    keep_trailing_newline=True,
    undefined=jinja2.ChainableUndefined,
    autoescape=False,
)


def render_jinja(source: str, context: ResolutionContext) -> str:
    """Render a jinja2 template; undefined names render empty."""
    return _environment.from_string(source).render(**context)


def is_jinja_template(location: str) -> bool:
    path = urlparse(location).path if is_url(location) else location
    return Path(path).suffix.lower() in JINJA_SUFFIXES


def check_template_fields(task: TaskDefinition) -> None:
    """
    Require exactly one of ``template`` and ``templateFile``.

    Raises:
        PluginConfigurationError: If both or neither are set.
    """
    has_inline = task.config.get("template") is not None
    has_file = bool(task.config.get("templateFile"))
    if has_inline and has_file:
        raise PluginConfigurationError.both_templates(task.type)
    if not has_inline and not has_file:
        raise PluginConfigurationError.missing_template(task.type)


async def render_task_content(
    task: TaskDefinition,
    context: ResolutionContext,
    options: ExecutionOptions,
    optional: bool = False,
) -> str | None:
    """
    Produce the content a task writes.

    Args:
        task: Task whose config holds ``template`` or ``templateFile``.
        context: Resolution context.
        options: Supplies the fetcher and working directory.
        optional: Return None instead of raising when neither field is set.

    Raises:
        PluginConfigurationError: If both fields are set, or neither and not ``optional``.
    """
    config = task.config
    if optional and config.get("template") is None and not config.get("templateFile"):
        return None
    check_template_fields(task)

    if config.get("template") is not None:
        return interpolate(str(config["template"]), context)

    reference = interpolate(str(config["templateFile"]), context)
    location = resolve_location(reference, task.source_url, options.working_dir)
    source = await options.fetcher.fetch_text(location)
    if is_jinja_template(location):
        return render_jinja(source, context)
    return interpolate(source, context)


CONDITION_NOT_MET = "Condition not met - task would be skipped"


def condition_met(task: TaskDefinition, context: ResolutionContext) -> bool:
    """Check the optional ``config.condition`` every built-in task honours."""
    condition = task.config.get("condition")
    if condition is None or condition == "":
        return True
    if evaluate_condition(str(condition), context):
        return True
    logger.info(f"Condition not met, skipping {task.type} task {task.id}")
    return False


def resolve_path(value: Any, context: ResolutionContext, options: ExecutionOptions) -> Path:
    """Interpolate a task path and anchor it at the working directory."""
    path = Path(interpolate(str(value), context)).expanduser()
    if not path.is_absolute():
        path = options.working_dir / path
    return path
