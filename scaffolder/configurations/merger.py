"""Configuration merger - folds an ordered document list into one document.

Entities are merged by id per kind. The first occurrence establishes the
entry; a later occurrence must declare how it combines with it:

- ``"override": "replace"`` discards the earlier entry.
- ``"override": "merge"`` shallow-merges fields. Task ``dependencies`` are
  unioned, and task config fields in a conflicting-field group clear their
  siblings before the merge.

A later occurrence without an override strategy is an ID conflict.
"""

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger

from scaffolder.configurations.fetcher import display_name
from scaffolder.configurations.id_validator import validate_unique_ids
from scaffolder.core.errors import IdConflictError
from scaffolder.core.models import (
    ConfigurationDocument,
    EntityKind,
    OverrideStrategy,
    PromptDefinition,
    TaskDefinition,
    TransformerDefinition,
    VariableDefinition,
)

EMPTY_CONFIGURATION_NAME = "empty-configuration"

# Task type -> groups of mutually exclusive config fields
ConflictingFields = Mapping[str, Sequence[Sequence[str]]]

DEFAULT_CONFLICTING_FIELDS: dict[str, list[list[str]]] = {
    "write": [["template", "templateFile"]],
    "create": [["template", "templateFile"]],
    "append": [["template", "templateFile"]],
}

EntityT = TypeVar("EntityT", TaskDefinition, VariableDefinition, PromptDefinition)


def _fields(entity: Any) -> dict[str, Any]:
    data = entity.to_dict()
    data.pop("override", None)
    return data


class ConfigurationMerger:
    """
    Merge configuration documents, ancestors first.

    Attributes:
        conflicting_fields: Task type -> groups of mutually exclusive config keys.
        cwd: Directory used to shorten provenance in error messages.

    Example:
        >>> merger = ConfigurationMerger()
        >>> merged = merger.merge([base, child])
        >>> [t.id for t in merged.tasks]
        ['setup', 'readme']
    """

    def __init__(
        self,
        conflicting_fields: ConflictingFields | None = None,
        cwd: str | Path | None = None,
    ) -> None:
        self.conflicting_fields = (
            DEFAULT_CONFLICTING_FIELDS if conflicting_fields is None else conflicting_fields
        )
        self.cwd = cwd

    def merge(self, documents: Sequence[ConfigurationDocument]) -> ConfigurationDocument:
        """
        Fold ``documents`` into one.

        Documents whose ``enabled`` is literally ``False`` contribute nothing.
        Entities of the remaining documents carry the document's ``enabled``
        as ``$templateEnabled`` for evaluation at run time.

        Raises:
            IdConflictError: A same-id redefinition without an override strategy.
            DuplicateIdError: The same id used by two entity kinds.
        """
        if not documents:
            return ConfigurationDocument(name=EMPTY_CONFIGURATION_NAME)

        tasks: dict[str, TaskDefinition] = {}
        variables: dict[str, VariableDefinition] = {}
        prompts: dict[str, PromptDefinition] = {}
        transformers: dict[str, TransformerDefinition] = {}
        last = documents[-1]

        for document in documents:
            if document.enabled is False:
                logger.info(f"Skipping disabled configuration: {document.name}")
                continue
            last = document

            for task in document.tasks:
                task = self._inherit(task, document)
                tasks[task.id] = self._combine(
                    EntityKind.TASK, tasks.get(task.id), task, self.merge_task
                )
            for variable in document.variables:
                variable = self._inherit(variable, document)
                variables[variable.id] = self._combine(
                    EntityKind.VARIABLE, variables.get(variable.id), variable, self.merge_variable
                )
            for prompt in document.prompts:
                prompt = self._inherit(prompt, document)
                prompts[prompt.id] = self._combine(
                    EntityKind.PROMPT, prompts.get(prompt.id), prompt, self.merge_prompt
                )
            for transformer in document.transformers:
                transformers[transformer.id] = transformer

        validate_unique_ids(list(tasks.values()), list(variables.values()), list(prompts.values()))

        logger.debug(
            f"Merged {len(documents)} configuration(s): {len(tasks)} tasks, "
            f"{len(variables)} variables, {len(prompts)} prompts"
        )
        return ConfigurationDocument(
            name=last.name,
            description=last.description,
            dependencies=list(last.dependencies),
            enabled=last.enabled,
            tasks=list(tasks.values()),
            variables=list(variables.values()),
            prompts=list(prompts.values()),
            transformers=list(transformers.values()),
            source_url=last.source_url,
        )

    # =========================================================================
    # ENTITY MERGING
    # =========================================================================

    def merge_task(self, base: TaskDefinition, override: TaskDefinition) -> TaskDefinition:
        """
        Shallow-merge ``override`` into ``base``.

        Config keys of ``override`` clear their conflict-group siblings from
        the base config; dependencies are unioned, base order first.
        """
        config = dict(base.config)
        groups = self.conflicting_fields.get(override.type or base.type, [])
        for group in groups:
            if any(f in override.config for f in group):
                for name in group:
                    config.pop(name, None)
        config.update(override.config)

        for group in groups:
            present = [f for f in group if f in config]
            if len(present) > 1:
                logger.warning(
                    f'Task "{override.id}" sets conflicting config fields: {", ".join(present)}'
                )

        merged = {**_fields(base), **_fields(override)}
        merged["config"] = config
        merged["dependencies"] = list(dict.fromkeys([*base.dependencies, *override.dependencies]))
        merged["$sourceUrl"] = override.source_url or base.source_url
        return TaskDefinition.model_validate(merged)

    def merge_variable(
        self, base: VariableDefinition, override: VariableDefinition
    ) -> VariableDefinition:
        """Shallow-merge two variable definitions."""
        return VariableDefinition.model_validate({**_fields(base), **_fields(override)})

    def merge_prompt(self, base: PromptDefinition, override: PromptDefinition) -> PromptDefinition:
        """Shallow-merge two prompt definitions."""
        return PromptDefinition.model_validate({**_fields(base), **_fields(override)})

    def _combine(
        self,
        kind: EntityKind,
        existing: EntityT | None,
        entity: EntityT,
        merge: Callable[[EntityT, EntityT], EntityT],
    ) -> EntityT:
        if existing is None:
            return entity

        if entity.override is None:
            raise IdConflictError.for_entity(
                kind.value,
                entity.id,
                display_name(existing.source_url, self.cwd),
                display_name(entity.source_url, self.cwd),
            )

        logger.debug(f'{kind.value.capitalize()} "{entity.id}" overridden ({entity.override.value})')
        if entity.override == OverrideStrategy.REPLACE:
            return type(entity).model_validate(_fields(entity))
        return merge(existing, entity)

    @staticmethod
    def _inherit(entity: EntityT, document: ConfigurationDocument) -> EntityT:
        if document.enabled is None:
            return entity
        return entity.model_copy(update={"template_enabled": document.enabled})


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def merge_configurations(
    documents: Sequence[ConfigurationDocument],
    conflicting_fields: ConflictingFields | None = None,
) -> ConfigurationDocument:
    """
    Merge documents with the default conflict table.

    Example:
        >>> merged = merge_configurations([base, child])
        >>> merged.name
        'child'
    """
    return ConfigurationMerger(conflicting_fields).merge(documents)
