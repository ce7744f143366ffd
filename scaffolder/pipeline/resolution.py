"""Variable/prompt resolution pipeline.

Three phases fill the shared context for one document (or one merged
document):

1. Resolve non-conditional variables.
2. Collect prompt answers; defaults are resolved first.
3. Re-resolve conditional variables, which may read prompt answers.

Each phase writes only the keys it resolved. Entities whose inherited
document enablement is already known to be false are skipped.
"""

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from loguru import logger

from scaffolder.core.models import PromptDefinition, ResolutionContext, VariableDefinition
from scaffolder.pipeline.prompter import Prompter, ScriptedPrompter
from scaffolder.pipeline.prompts import (
    collect_prompts,
    ensure_valid_prompts,
    resolve_all_default_values,
)
from scaffolder.pipeline.variables import (
    collect_variables,
    ensure_valid_variables,
    resolve_all_variable_values,
)
from scaffolder.values.enablement import evaluate_enabled_lazy, snapshot
from scaffolder.values.resolver import ValueResolver
from scaffolder.values.transformers import TransformerManager

EntityT = TypeVar("EntityT", VariableDefinition, PromptDefinition)


def active_entities(entities: Sequence[EntityT], context: Mapping[str, Any]) -> list[EntityT]:
    """Entities whose owning document is not known to be disabled yet."""
    frozen = snapshot(context)
    return [
        e
        for e in entities
        if e.template_enabled is None or evaluate_enabled_lazy(e.template_enabled, frozen)
    ]


class ResolutionPipeline:
    """
    Resolve variables and prompts into a shared context.

    One pipeline serves a whole run: global prompts answered for one
    document are reused, not asked again, by later documents.

    Attributes:
        resolver: Resolves ValueSpecs.
        prompter: Source of prompt answers.
        transformers: Applied to resolved variables.
        preset: Values supplied up front; prompts with these ids are not asked.
        answered_globals: Global prompt id -> answer, filled as the run goes.

    Example:
        >>> pipeline = ResolutionPipeline(prompter=ScriptedPrompter({"name": "demo"}))
        >>> context = {}
        >>> await pipeline.run(document.variables, document.prompts, context)
        >>> context["name"]
        'demo'
    """

    def __init__(
        self,
        resolver: ValueResolver | None = None,
        prompter: Prompter | None = None,
        transformers: TransformerManager | None = None,
        preset: Mapping[str, Any] | None = None,
    ) -> None:
        self.resolver = resolver or ValueResolver()
        self.prompter = prompter or ScriptedPrompter()
        self.transformers = transformers or TransformerManager()
        self.preset = dict(preset or {})
        self.answered_globals: dict[str, Any] = {}

    def validate(
        self,
        variables: Sequence[VariableDefinition],
        prompts: Sequence[PromptDefinition],
    ) -> None:
        """
        Raises:
            VariableValidationError: Duplicate variable ids.
            PromptValidationError: Malformed prompts.
        """
        ensure_valid_variables(variables)
        ensure_valid_prompts(prompts)

    async def run(
        self,
        variables: Sequence[VariableDefinition],
        prompts: Sequence[PromptDefinition],
        context: ResolutionContext,
    ) -> ResolutionContext:
        """Validate, then run all three phases against ``context``."""
        self.validate(variables, prompts)
        await self.resolve_variables(variables, context)
        await self.resolve_prompts(prompts, context)
        await self.reresolve_conditionals(variables, context)
        return context

    # =========================================================================
    # PHASES
    # =========================================================================

    async def resolve_variables(
        self,
        variables: Sequence[VariableDefinition],
        context: ResolutionContext,
    ) -> dict[str, Any]:
        """Phase 1: non-conditional variables."""
        targets = active_entities(variables, context)
        resolved = await resolve_all_variable_values(
            targets, context, self.resolver, skip_conditional=True
        )
        collected = await collect_variables(targets, resolved, context, self.transformers)
        context.update(collected)
        logger.debug(f"Resolved {len(collected)} variable(s)")
        return collected

    async def resolve_prompts(
        self,
        prompts: Sequence[PromptDefinition],
        context: ResolutionContext,
    ) -> dict[str, Any]:
        """Phase 2: prompt answers, reusing preset values and answered global prompts."""
        answers: dict[str, Any] = {}
        to_ask: list[PromptDefinition] = []

        for prompt in active_entities(prompts, context):
            if prompt.id in self.preset:
                answers[prompt.id] = self.preset[prompt.id]
            elif prompt.is_global and prompt.id in self.answered_globals:
                logger.debug(f'Reusing answer of global prompt "{prompt.id}"')
                answers[prompt.id] = self.answered_globals[prompt.id]
            else:
                to_ask.append(prompt)

        if to_ask:
            defaults = await resolve_all_default_values(to_ask, context, self.resolver)
            answers.update(collect_prompts(to_ask, defaults, self.prompter))

        for prompt in prompts:
            if prompt.is_global and prompt.id in answers:
                self.answered_globals[prompt.id] = answers[prompt.id]

        context.update(answers)
        logger.debug(f"Collected {len(answers)} prompt answer(s)")
        return answers

    async def reresolve_conditionals(
        self,
        variables: Sequence[VariableDefinition],
        context: ResolutionContext,
    ) -> dict[str, Any]:
        """Phase 3: conditional variables, now that prompt answers exist."""
        conditionals = [v for v in active_entities(variables, context) if v.is_conditional]
        if not conditionals:
            return {}
        resolved = await resolve_all_variable_values(conditionals, context, self.resolver)
        collected = await collect_variables(conditionals, resolved, context, self.transformers)
        context.update(collected)
        logger.debug(f"Re-resolved {len(collected)} conditional variable(s)")
        return collected
