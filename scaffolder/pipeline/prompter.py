"""Prompters - where prompt answers come from.

``RichPrompter`` asks on the terminal with rich; ``ScriptedPrompter`` answers
from a mapping and falls back to defaults, for ``--yes`` runs and tests.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from loguru import logger
from rich.console import Console
from rich.prompt import Confirm, FloatPrompt, Prompt

from scaffolder.core.models import PromptDefinition, PromptType


class Prompter(Protocol):
    """Source of prompt answers."""

    def ask(self, prompt: PromptDefinition, default: Any = None) -> Any:
        """Return the answer to ``prompt``; ``default`` is the resolved default value."""
        ...


def _as_number(value: Any) -> int | float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric value for number prompt: {value!r}")
        return None
    return int(number) if number.is_integer() else number


class RichPrompter:
    """
    Interactive prompts on the terminal.

    Example:
        >>> prompter = RichPrompter()
        >>> prompter.ask(PromptDefinition(id="name", message="Project name"), "my-app")
        'my-app'
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def ask(self, prompt: PromptDefinition, default: Any = None) -> Any:
        if prompt.type == PromptType.CONFIRM:
            return Confirm.ask(prompt.message, default=bool(default), console=self.console)

        if prompt.type == PromptType.NUMBER:
            return self._ask_number(prompt, default)

        if prompt.type == PromptType.SELECT:
            return self._ask_select(prompt, default)

        answer = Prompt.ask(
            prompt.message,
            default=None if default is None else str(default),
            password=prompt.type == PromptType.PASSWORD,
            console=self.console,
        )
        return answer if answer is not None else ""

    def _ask_number(self, prompt: PromptDefinition, default: Any) -> int | float | None:
        while True:
            answer = FloatPrompt.ask(
                prompt.message,
                default=_as_number(default),
                console=self.console,
            )
            value = _as_number(answer)
            if value is None:
                return None
            if prompt.min is not None and value < prompt.min:
                self.console.print(f"[red]Must be at least {prompt.min:g}[/red]")
                continue
            if prompt.max is not None and value > prompt.max:
                self.console.print(f"[red]Must be at most {prompt.max:g}[/red]")
                continue
            return value

    def _ask_select(self, prompt: PromptDefinition, default: Any) -> Any:
        names = [choice.name for choice in prompt.choices]
        default_name = next((c.name for c in prompt.choices if c.value == default), names[0])
        for index, name in enumerate(names, 1):
            self.console.print(f"  [cyan]{index}[/cyan]. {name}")
        answer = Prompt.ask(
            prompt.message,
            choices=names,
            default=default_name,
            console=self.console,
            show_choices=False,
        )
        return next(c.value for c in prompt.choices if c.name == answer)


class ScriptedPrompter:
    """
    Non-interactive answers.

    Attributes:
        answers: Prompt id -> answer; prompts without an entry take their default.
        asked: Ids of the prompts answered so far, in order.

    Example:
        >>> prompter = ScriptedPrompter({"name": "demo"})
        >>> prompter.ask(PromptDefinition(id="name", message="Name"))
        'demo'
    """

    def __init__(self, answers: Mapping[str, Any] | None = None) -> None:
        self.answers = dict(answers or {})
        self.asked: list[str] = []

    def ask(self, prompt: PromptDefinition, default: Any = None) -> Any:
        self.asked.append(prompt.id)
        answer = self.answers.get(prompt.id, default)

        if prompt.type == PromptType.CONFIRM:
            return bool(answer)
        if prompt.type == PromptType.NUMBER:
            return _as_number(answer)
        if prompt.type == PromptType.SELECT and answer is None and prompt.choices:
            return prompt.choices[0].value
        return answer
