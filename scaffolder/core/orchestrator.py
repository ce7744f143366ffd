"""Main scaffolder orchestrator - resolves configurations and runs their tasks.

This module provides the primary interface for running scaffolding
configurations: loading the extends chain, merging it into one document,
resolving variables and prompts, deciding which tasks are enabled, and
executing (or previewing) them in dependency order.
"""

import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from loguru import logger

from scaffolder import __version__
from scaffolder.configurations.extends_resolver import (
    ExtendsResolver,
    propagate_enablement,
    sort_by_document_dependencies,
)
from scaffolder.configurations.fetcher import ConfigurationFetcher
from scaffolder.configurations.loader import ConfigurationLoader
from scaffolder.configurations.merger import ConfigurationMerger
from scaffolder.core.config import Settings, get_settings
from scaffolder.core.errors import RequiredTaskFailedError, ScaffolderError
from scaffolder.core.models import (
    ConfigurationDocument,
    EnabledSpec,
    PromptDefinition,
    ResolutionContext,
    TaskDefinition,
    TransformerDefinition,
    VariableDefinition,
)
from scaffolder.core.state import RunState, RunStateMachine, load_marker, save_marker
from scaffolder.pipeline.prompter import Prompter
from scaffolder.pipeline.resolution import ResolutionPipeline
from scaffolder.plugins.builtin import register_builtin_plugins
from scaffolder.plugins.registry import ExecutionOptions, HookEvent, HookName, PluginRegistry
from scaffolder.tasks.dependency_resolver import TaskDependencyResolver
from scaffolder.tasks.validation import validate_all_tasks
from scaffolder.values.enablement import (
    evaluate_enabled_async,
    evaluate_required_async,
    is_task_enabled,
    snapshot,
)
from scaffolder.values.resolver import ValueResolver
from scaffolder.values.transformers import TransformerManager


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class RunOptions:
    """
    Options for one run.

    Attributes:
        dry_run: Preview diffs instead of executing.
        force: Run even when a completion marker exists.
        config_path: Document the tasks came from, for messages.
        variables: Variables resolved before anything else (global).
        prompts: Prompts asked before anything else (global).
        values: Pre-answered ids; prompts with these ids are not asked.
        enabled: Enablement inherited from the originating document.
        transformers: Custom transformers available to variables.
        sequential: Run the pipeline once per document instead of once.
        working_dir: Directory tasks operate in.
        prompter: Source of prompt answers.
    """

    dry_run: bool = False
    force: bool = False
    config_path: str | None = None
    variables: list[VariableDefinition] = field(default_factory=list)
    prompts: list[PromptDefinition] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)
    enabled: EnabledSpec = None
    transformers: list[TransformerDefinition] = field(default_factory=list)
    sequential: bool = False
    working_dir: Path | None = None
    prompter: Prompter | None = None


@dataclass
class RunResult:
    """
    Outcome of a run.

    ``provisional`` is the task order computed from lazy enablement, before
    any variable or prompt was resolved.
    """

    state: RunState = RunState.NOT_STARTED
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    provisional: list[str] = field(default_factory=list)
    diffs: dict[str, str] = field(default_factory=dict)
    context: ResolutionContext = field(default_factory=dict)
    marker_path: Path | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state == RunState.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.state.value,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "provisional": self.provisional,
            "diffs": self.diffs,
            "context": self.context,
            "marker_path": str(self.marker_path) if self.marker_path else None,
            "error": self.error,
        }


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================


class Scaffolder:
    """
    Main scaffolder orchestrator class.

    Drives one run through the state machine:
    1. Validate tasks and check lazy enablement
    2. Resolve variables, then prompts, then conditional variables
    3. Check final enablement
    4. Order tasks by their dependencies
    5. Execute them with lifecycle hooks, or preview their diffs

    Example:
        >>> scaffolder = Scaffolder()
        >>> result = await scaffolder.run_configuration(
        ...     "scaffold.json",
        ...     RunOptions(dry_run=True),
        ... )
        >>> print(result.state)
        RunState.COMPLETED
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: PluginRegistry | None = None,
        fetcher: ConfigurationFetcher | None = None,
        configure_logging: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Optional settings override. Uses default if not provided.
            registry: Plugin registry for this run. Built-in plugins are
                registered on a fresh one if not provided.
            fetcher: Fetcher for documents and template files.
            configure_logging: Replace loguru sinks according to settings.
        """
        self.settings = settings or get_settings()
        self.registry = registry or register_builtin_plugins(PluginRegistry())
        self.fetcher = fetcher or ConfigurationFetcher(
            timeout=self.settings.scaffolder_fetch_timeout
        )
        self.last_result: RunResult | None = None

        if configure_logging:
            self._configure_logging()

    def _configure_logging(self) -> None:
        """Configure loguru based on settings."""
        logger.remove()  # Remove default handler

        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        if self.settings.scaffolder_log_file:
            log_path = Path(self.settings.scaffolder_log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                str(log_path),
                rotation="1 day",
                retention="7 days",
                level=self.settings.scaffolder_log_level,
                format=log_format,
            )

        logger.add(
            sys.stderr,
            level="DEBUG" if self.settings.scaffolder_debug else self.settings.scaffolder_log_level,
            format=log_format,
            colorize=True,
        )

    @property
    def working_dir(self) -> Path:
        return Path(self.settings.scaffolder_working_dir).resolve()

    # =========================================================================
    # CONFIGURATION LOADING
    # =========================================================================

    async def resolve_documents(
        self,
        reference: str,
        cwd: str | Path | None = None,
    ) -> list[ConfigurationDocument]:
        """
        Load ``reference`` and every document it extends.

        Args:
            reference: Path or URL of the root document.
            cwd: Directory relative references resolve against.

        Returns:
            Documents with ancestors first, enablement propagated.

        Raises:
            CircularDependencyError: If the extends chain has a cycle.
            ConfigurationNotFoundError: If a document does not exist.
            ConfigFetchError: If a remote document cannot be retrieved.
            SchemaValidationError: If a document fails schema validation.
        """
        loader = ConfigurationLoader(fetcher=self.fetcher, cwd=cwd or self.working_dir)
        graph = await ExtendsResolver(loader).resolve(reference)
        documents = sort_by_document_dependencies(propagate_enablement(graph))
        logger.info(f"Resolved {len(documents)} configuration document(s)")
        return documents

    async def load(
        self,
        reference: str,
        cwd: str | Path | None = None,
    ) -> ConfigurationDocument:
        """
        Load ``reference`` and merge its extends chain into one document.

        Raises:
            IdConflictError: If a same-id redefinition has no override strategy.
            DuplicateIdError: If an id is reused across entity kinds.
        """
        return self.merge(await self.resolve_documents(reference, cwd), cwd)

    def merge(
        self,
        documents: list[ConfigurationDocument],
        cwd: str | Path | None = None,
    ) -> ConfigurationDocument:
        """Merge resolved documents with the conflict-field table of the registry."""
        merger = ConfigurationMerger(self.registry.conflicting_fields, cwd=cwd or self.working_dir)
        return merger.merge(documents)

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    async def run_configuration(
        self,
        reference: str,
        options: RunOptions | None = None,
    ) -> RunResult:
        """
        Resolve a configuration and run its tasks.

        In sequential mode every document runs its own variable/prompt
        pipeline before all tasks are pooled; otherwise the merged document
        is run as a whole.

        Args:
            reference: Path or URL of the root document.
            options: Run options.

        Returns:
            The run result.

        Raises:
            ScaffolderError: Structural errors and required-task failures.
        """
        options = options or RunOptions()
        options = replace(options, config_path=options.config_path or reference)
        cwd = options.working_dir or self.working_dir

        if options.sequential:
            documents = await self.resolve_documents(reference, cwd)
            return await self.run_documents(documents, options)

        merged = await self.load(reference, cwd)
        options = replace(
            options,
            variables=[*options.variables, *merged.variables],
            prompts=[*options.prompts, *merged.prompts],
            transformers=[*options.transformers, *merged.transformers],
            enabled=merged.enabled if options.enabled is None else options.enabled,
        )
        return await self.run_tasks(merged.tasks, options)

    async def run_tasks(
        self,
        tasks: list[TaskDefinition],
        options: RunOptions | None = None,
    ) -> RunResult:
        """
        Run an ordered task list through the full resolve-and-execute cycle.

        Enablement is read twice: lazily before resolution, where unknown
        names count as enabled so the inputs of a task still get resolved,
        and finally afterwards, which decides what actually runs. The final
        order is the provisional order with the disabled tasks removed.

        Args:
            tasks: Tasks to run.
            options: Run options; ``variables`` and ``prompts`` feed the pipeline.

        Returns:
            The run result.

        Raises:
            TaskValidationError: If any task is invalid.
            CircularDependencyError: If task dependencies have a cycle.
            TaskNotFoundError: If a dependency names an unknown task.
            RequiredTaskFailedError: If a required task fails.

        Example:
            >>> result = await scaffolder.run_tasks(
            ...     [TaskDefinition(id="readme", type="create", config={...})],
            ...     RunOptions(dry_run=True),
            ... )
            >>> list(result.diffs)
            ['readme']
        """
        options = options or RunOptions()
        machine = RunStateMachine()
        result = RunResult()
        self.last_result = result
        context = result.context
        self._check_marker(options)

        try:
            machine.advance(RunState.VALIDATING_CONFIG)
            if not await self._enabled(options.enabled, context, options, lazy=True):
                logger.info("Configuration is disabled - skipping all tasks")
                return self._complete(machine, result, skipped=tasks)

            pipeline = self._pipeline(options, options.transformers)
            validate_all_tasks(tasks, self.registry)
            pipeline.validate(options.variables, options.prompts)

            frozen = snapshot(context)
            provisional = [
                task for task in tasks if await self._task_enabled(task, frozen, options, lazy=True)
            ]
            ordered = TaskDependencyResolver().sort(provisional)
            result.provisional = [t.id for t in ordered]
            logger.debug(f"{len(ordered)} of {len(tasks)} task(s) provisionally enabled")

            await self._resolve(machine, pipeline, options.variables, options.prompts, context)

            machine.advance(RunState.CHECKING_ENABLEMENT)
            if not await self._enabled(options.enabled, context, options):
                logger.info("Configuration is disabled after variable resolution - skipping all tasks")
                return self._complete(machine, result, skipped=tasks)

            return await self._finish(machine, result, tasks, ordered, options)

        except Exception as e:
            self._fail(machine, result, e)
            raise

    async def run_documents(
        self,
        documents: list[ConfigurationDocument],
        options: RunOptions | None = None,
    ) -> RunResult:
        """
        Run documents sequentially, then all of their tasks together.

        Each document resolves its own variables and prompts against the
        shared context, so later documents can read what earlier ones
        resolved. A document disabled before or after its own pipeline
        contributes no tasks.

        Raises:
            Same as :meth:`run_tasks`.
        """
        options = options or RunOptions()
        machine = RunStateMachine()
        result = RunResult()
        self.last_result = result
        context = result.context
        self._check_marker(options)

        all_tasks = [task for document in documents for task in document.tasks]
        transformers = [*options.transformers]
        for document in documents:
            transformers.extend(document.transformers)

        try:
            machine.advance(RunState.VALIDATING_CONFIG)
            pipeline = self._pipeline(options, transformers)
            validate_all_tasks(all_tasks, self.registry)
            pipeline.validate(options.variables, options.prompts)
            for document in documents:
                pipeline.validate(document.variables, document.prompts)

            # options-level variables and prompts are global and go first
            await self._resolve(machine, pipeline, options.variables, options.prompts, context)

            collected: list[TaskDefinition] = []
            for index, document in enumerate(documents, 1):
                logger.debug(f'Processing configuration {index}/{len(documents)}: "{document.name}"')
                if not await self._enabled(document.enabled, context, options, lazy=True):
                    logger.info(f'Configuration "{document.name}" is disabled - skipping')
                    continue

                await self._resolve(machine, pipeline, document.variables, document.prompts, context)

                if not await self._enabled(document.enabled, context, options):
                    logger.info(
                        f'Configuration "{document.name}" became disabled after '
                        "variable/prompt resolution - skipping its tasks"
                    )
                    continue
                collected.extend(document.tasks)

            machine.advance(RunState.CHECKING_ENABLEMENT)
            kept = {t.id for t in collected}
            result.skipped = [t.id for t in all_tasks if t.id not in kept]
            return await self._finish(machine, result, collected, None, options)

        except Exception as e:
            self._fail(machine, result, e)
            raise

    # =========================================================================
    # PHASES
    # =========================================================================

    def _pipeline(
        self,
        options: RunOptions,
        transformers: list[TransformerDefinition],
    ) -> ResolutionPipeline:
        manager = TransformerManager()
        if transformers:
            logger.debug(f"Registering {len(transformers)} transformer(s)")
            manager.register_all(transformers)
        resolver = ValueResolver(
            timeout=self.settings.scaffolder_exec_timeout,
            working_dir=options.working_dir or self.working_dir,
            fetcher=self.fetcher,
        )
        return ResolutionPipeline(
            resolver=resolver,
            prompter=options.prompter,
            transformers=manager,
            preset=options.values,
        )

    async def _resolve(
        self,
        machine: RunStateMachine,
        pipeline: ResolutionPipeline,
        variables: list[VariableDefinition],
        prompts: list[PromptDefinition],
        context: ResolutionContext,
    ) -> None:
        """Run the three pipeline phases, advancing the state machine through each."""
        machine.advance(RunState.RESOLVING_VARIABLES)
        await pipeline.resolve_variables(variables, context)

        machine.advance(RunState.RESOLVING_PROMPTS)
        await pipeline.resolve_prompts(prompts, context)

        machine.advance(RunState.RE_RESOLVING_CONDITIONALS)
        await pipeline.reresolve_conditionals(variables, context)

    async def _finish(
        self,
        machine: RunStateMachine,
        result: RunResult,
        tasks: list[TaskDefinition],
        ordered: list[TaskDefinition] | None,
        options: RunOptions,
    ) -> RunResult:
        """Final enablement, ordering, then preview or execution."""
        frozen = snapshot(result.context)
        enabled_ids = {
            task.id for task in tasks if await self._task_enabled(task, frozen, options)
        }

        machine.advance(RunState.SORTING)
        if ordered is None:
            final = TaskDependencyResolver().sort([t for t in tasks if t.id in enabled_ids])
        else:
            final = [t for t in ordered if t.id in enabled_ids]
        result.skipped.extend(t.id for t in tasks if t.id not in enabled_ids)
        logger.info(f"{len(final)} of {len(tasks)} task(s) enabled for execution")

        execution_options = ExecutionOptions(
            dry_run=options.dry_run,
            working_dir=options.working_dir or self.working_dir,
            fetcher=self.fetcher,
        )

        if options.dry_run:
            machine.advance(RunState.DRY_RUN_PREVIEW)
            await self._preview(final, result, execution_options)
            logger.info("Dry run completed - no changes were made")
            return self._complete(machine, result)

        machine.advance(RunState.EXECUTING)
        await self._execute(final, result, execution_options)
        self._complete(machine, result)
        result.marker_path = save_marker(
            execution_options.working_dir,
            self.settings.scaffolder_marker_file,
            result.context,
            result.completed,
            __version__,
            dry_run=options.dry_run,
        )
        return result

    async def _preview(
        self,
        tasks: list[TaskDefinition],
        result: RunResult,
        options: ExecutionOptions,
    ) -> None:
        """One diff per task; no hooks, no mutation."""
        for task in tasks:
            result.diffs[task.id] = await self.registry.get_diff(task, result.context, options)
            logger.debug(f'Diff for "{task.display_name}":\n{result.diffs[task.id]}')

    async def _execute(
        self,
        tasks: list[TaskDefinition],
        result: RunResult,
        options: ExecutionOptions,
    ) -> None:
        """
        Execute ``tasks`` in order, bracketed by ``beforeAll``/``afterAll``.

        Raises:
            RequiredTaskFailedError: On the first failing required task.
        """
        context = result.context
        total = len(tasks)
        await self._hook(HookName.BEFORE_ALL, context)

        for index, task in enumerate(tasks, 1):
            logger.info(f"[{index}/{total}] {task.display_name}")
            await self._hook(HookName.BEFORE_TASK, context, task=task)

            try:
                outcome = await self.registry.execute(task, context, options)
            except Exception as e:
                logger.error(f'Task "{task.display_name}" failed: {e}')
                result.failed.append(task.id)
                await self._hook(HookName.ON_ERROR, context, task=task, error=e)

                required = await evaluate_required_async(
                    task.required,
                    snapshot(context),
                    working_dir=options.working_dir,
                    timeout=self.settings.scaffolder_exec_timeout,
                )
                if required:
                    raise RequiredTaskFailedError(task.id, len(result.completed), total, e) from e
                logger.warning(f'Optional task "{task.display_name}" failed, continuing')
                continue

            result.completed.append(task.id)
            await self._hook(HookName.AFTER_TASK, context, task=task, result=outcome)

        await self._hook(HookName.AFTER_ALL, context)
        logger.info(f"Completed: {len(result.completed)}/{total} tasks")

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _enabled(
        self,
        spec: EnabledSpec,
        context: ResolutionContext,
        options: RunOptions,
        lazy: bool = False,
    ) -> bool:
        return await evaluate_enabled_async(
            spec,
            snapshot(context),
            lazy=lazy,
            working_dir=options.working_dir or self.working_dir,
            timeout=self.settings.scaffolder_exec_timeout,
        )

    async def _task_enabled(
        self,
        task: TaskDefinition,
        frozen: Any,
        options: RunOptions,
        lazy: bool = False,
    ) -> bool:
        return await is_task_enabled(
            task,
            frozen,
            lazy=lazy,
            working_dir=options.working_dir or self.working_dir,
            timeout=self.settings.scaffolder_exec_timeout,
        )

    async def _hook(self, hook: HookName, context: ResolutionContext, **kwargs: Any) -> None:
        await self.registry.call_hook(HookEvent(hook=hook, context=context, **kwargs))

    def _check_marker(self, options: RunOptions) -> None:
        if options.force or options.dry_run:
            return
        marker = load_marker(
            options.working_dir or self.working_dir, self.settings.scaffolder_marker_file
        )
        if marker is not None:
            logger.warning(f"Already initialized at {marker.initialized_at}; running again")

    @staticmethod
    def _complete(
        machine: RunStateMachine,
        result: RunResult,
        skipped: list[TaskDefinition] | None = None,
    ) -> RunResult:
        if skipped:
            result.skipped.extend(t.id for t in skipped)
        machine.advance(RunState.COMPLETED)
        result.state = machine.state
        return result

    @staticmethod
    def _fail(machine: RunStateMachine, result: RunResult, error: Exception) -> None:
        message = error.message if isinstance(error, ScaffolderError) else str(error)
        logger.error(f"Run failed in state {machine.state.value}: {message}")
        if machine.can_advance(RunState.FAILED):
            machine.advance(RunState.FAILED)
        result.state = RunState.FAILED
        result.error = message

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"Scaffolder(working_dir={self.working_dir}, "
            f"plugins={len(self.registry.list_plugins())}, "
            f"debug={self.settings.scaffolder_debug})"
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def load_merged_configuration(
    reference: str,
    cwd: str | Path | None = None,
    fetcher: ConfigurationFetcher | None = None,
    registry: PluginRegistry | None = None,
) -> ConfigurationDocument:
    """
    Resolve and merge a configuration for non-CLI consumers.

    Args:
        reference: Path or URL of the root document.
        cwd: Directory relative references resolve against.
        fetcher: Optional fetcher (e.g. with a mock transport).
        registry: Optional registry supplying the conflict-field table.

    Returns:
        The merged document.

    Example:
        >>> import anyio
        >>> merged = anyio.run(load_merged_configuration, "scaffold.json")
        >>> [t.id for t in merged.tasks]
    """
    scaffolder = Scaffolder(registry=registry, fetcher=fetcher, configure_logging=False)
    return await scaffolder.load(reference, cwd)


async def run_configuration(
    reference: str,
    **kwargs: Any,
) -> RunResult:
    """
    Convenience function to run a configuration.

    Args:
        reference: Path or URL of the root document.
        **kwargs: Fields of :class:`RunOptions`.

    Returns:
        The run result.

    Example:
        >>> import anyio
        >>> from functools import partial
        >>> result = anyio.run(partial(run_configuration, "scaffold.json", dry_run=True))
    """
    scaffolder = Scaffolder(configure_logging=False)
    return await scaffolder.run_configuration(reference, RunOptions(**kwargs))


async def run_tasks(
    tasks: list[TaskDefinition],
    **kwargs: Any,
) -> RunResult:
    """
    Convenience function to run a task list with the built-in plugins.

    Args:
        tasks: Tasks to run.
        **kwargs: Fields of :class:`RunOptions`.

    Returns:
        The run result.
    """
    scaffolder = Scaffolder(configure_logging=False)
    return await scaffolder.run_tasks(tasks, RunOptions(**kwargs))
