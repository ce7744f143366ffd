"""Prompt validation, default resolution and answer collection."""

import asyncio
import re
from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger

from scaffolder.core.errors import PromptValidationError
from scaffolder.core.models import PromptDefinition, PromptType
from scaffolder.pipeline.prompter import Prompter
from scaffolder.values.enablement import snapshot
from scaffolder.values.resolver import ValueResolver

PROMPT_ID_PATTERN = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")


def validate_prompts(prompts: Sequence[PromptDefinition]) -> list[str]:
    """
    Check prompt definitions.

    Ids must be unique identifiers, messages non-empty; select prompts need
    named choices with values; number prompts need ``min <= max``.

    Returns:
        Every problem found; empty when valid.
    """
    problems: list[str] = []
    seen: set[str] = set()

    for prompt in prompts:
        if prompt.id in seen:
            problems.append(f"Duplicate prompt ID: {prompt.id}")
        seen.add(prompt.id)

        if not PROMPT_ID_PATTERN.match(prompt.id):
            problems.append(
                f'Invalid prompt ID "{prompt.id}": must start with a letter, underscore or $, '
                "followed by letters, digits, underscores or $"
            )
        if not prompt.message.strip():
            problems.append(f'Prompt "{prompt.id}" must have a non-empty message')

        if prompt.type == PromptType.SELECT:
            if not prompt.choices:
                problems.append(f'Select prompt "{prompt.id}" must have at least one choice')
            for choice in prompt.choices:
                if not choice.name.strip():
                    problems.append(f'Select prompt "{prompt.id}" has a choice with empty name')
                if choice.value is None:
                    problems.append(f'Select prompt "{prompt.id}" has a choice with undefined value')

        if (
            prompt.type == PromptType.NUMBER
            and prompt.min is not None
            and prompt.max is not None
            and prompt.min > prompt.max
        ):
            problems.append(f'Number prompt "{prompt.id}" has min greater than max')

    return problems


def ensure_valid_prompts(prompts: Sequence[PromptDefinition]) -> None:
    """
    Raises:
        PromptValidationError: Listing every problem.
    """
    problems = validate_prompts(prompts)
    if problems:
        raise PromptValidationError.for_problems(problems)


async def resolve_all_default_values(
    prompts: Sequence[PromptDefinition],
    context: Mapping[str, Any],
    resolver: ValueResolver,
) -> dict[str, Any]:
    """Resolve every prompt default concurrently against one context snapshot."""
    targets = [p for p in prompts if p.default is not None]
    if not targets:
        return {}

    frozen = snapshot(context)
    values = await asyncio.gather(
        *(resolver.resolve(p.default, frozen, p.id, "Prompt", p.source_url) for p in targets)
    )
    return {p.id: v for p, v in zip(targets, values) if v is not None}


def _is_empty(prompt: PromptDefinition, answer: Any) -> bool:
    if answer is None:
        return True
    return prompt.type in (PromptType.INPUT, PromptType.PASSWORD) and str(answer).strip() == ""


def collect_prompts(
    prompts: Sequence[PromptDefinition],
    defaults: Mapping[str, Any],
    prompter: Prompter,
) -> dict[str, Any]:
    """
    Ask each prompt in order.

    Raises:
        PromptValidationError: If a required prompt gets an empty answer.
    """
    answers: dict[str, Any] = {}
    for prompt in prompts:
        answer = prompter.ask(prompt, defaults.get(prompt.id))
        if prompt.required and _is_empty(prompt, answer):
            logger.error(f"{prompt.message} is required")
            raise PromptValidationError.required(prompt.id)
        answers[prompt.id] = answer
    return answers
