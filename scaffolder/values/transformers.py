"""Value transformers applied to resolved variables.

A variable may list transformer ids (``"transformers": ["trim", "kebabcase"]``);
they run in order on the resolved value. Built-in transformers are always
available; documents can declare ``regex``, ``computed`` and ``chain``
transformers, and Python callers can register ``custom`` callables.
"""

import re
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import quote

from loguru import logger

from scaffolder.core.errors import TransformerError
from scaffolder.core.models import TransformerDefinition
from scaffolder.values.conditions import ConditionError, evaluate_expression
from scaffolder.values.interpolation import stringify

TransformerFunction = Callable[[Any, Mapping[str, Any]], Any]

_WORD_PATTERN = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")

REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def _words(value: Any) -> list[str]:
    return _WORD_PATTERN.findall(stringify(value))


def _camel(value: Any) -> str:
    words = _words(value)
    if not words:
        return ""
    return words[0].lower() + "".join(w.capitalize() for w in words[1:])


def _slugify(value: Any) -> str:
    text = re.sub(r"[^a-z0-9]+", "-", stringify(value).lower())
    return text.strip("-")


def _capitalize(value: Any) -> str:
    text = stringify(value)
    return text[:1].upper() + text[1:]


BUILT_IN_TRANSFORMERS: dict[str, Callable[[Any], Any]] = {
    "lowercase": lambda v: stringify(v).lower(),
    "uppercase": lambda v: stringify(v).upper(),
    "trim": lambda v: stringify(v).strip(),
    "slugify": _slugify,
    "capitalize": _capitalize,
    "titlecase": lambda v: " ".join(w.capitalize() for w in _words(v)),
    "camelcase": _camel,
    "pascalcase": lambda v: "".join(w.capitalize() for w in _words(v)),
    "snakecase": lambda v: "_".join(w.lower() for w in _words(v)),
    "kebabcase": lambda v: "-".join(w.lower() for w in _words(v)),
    "constantcase": lambda v: "_".join(w.upper() for w in _words(v)),
    "alphanumeric": lambda v: re.sub(r"[^A-Za-z0-9]", "", stringify(v)),
    "collapse-spaces": lambda v: re.sub(r"\s+", " ", stringify(v)),
    "remove-spaces": lambda v: re.sub(r"\s+", "", stringify(v)),
    "urlencode": lambda v: quote(stringify(v), safe="-_.!~*'()"),
    "dasherize": lambda v: re.sub(r"[\s_]+", "-", stringify(v)),
    "underscore": lambda v: re.sub(r"[\s-]+", "_", stringify(v)),
}


def regex_flags(flags: str) -> int:
    """Translate JavaScript-style regex flags; ``g`` and unknown flags are ignored."""
    result = 0
    for flag in flags:
        result |= REGEX_FLAGS.get(flag, 0)
    return result


def python_replacement(replacement: str) -> str:
    """Translate ``$1`` / ``$&`` replacement references to Python syntax."""
    replacement = replacement.replace("\\", "\\\\")
    replacement = replacement.replace("$&", r"\g<0>")
    return re.sub(r"\$(\d+)", r"\\g<\1>", replacement)


class TransformerManager:
    """
    Registry and executor for value transformers.

    Example:
        >>> manager = TransformerManager()
        >>> await manager.apply(["trim", "kebabcase"], "  My Project  ")
        'my-project'
    """

    def __init__(self) -> None:
        self._definitions: dict[str, TransformerDefinition] = {
            name: TransformerDefinition(id=name, type=name) for name in BUILT_IN_TRANSFORMERS
        }
        self._functions: dict[str, TransformerFunction] = {}

    def register(self, transformer: TransformerDefinition | Mapping[str, Any]) -> None:
        """Register (or overwrite) a declared transformer."""
        definition = (
            transformer
            if isinstance(transformer, TransformerDefinition)
            else TransformerDefinition.model_validate(transformer)
        )
        if definition.id in self._definitions:
            logger.warning(f'Transformer with id "{definition.id}" is already registered. Overwriting.')
        self._definitions[definition.id] = definition

    def register_all(self, transformers: list[TransformerDefinition] | list[dict[str, Any]]) -> None:
        for transformer in transformers:
            self.register(transformer)

    def register_function(self, transformer_id: str, function: TransformerFunction) -> None:
        """Register a Python callable as a ``custom`` transformer."""
        self._functions[transformer_id] = function
        self._definitions[transformer_id] = TransformerDefinition(id=transformer_id, type="custom")

    def get(self, transformer_id: str) -> TransformerDefinition | None:
        return self._definitions.get(transformer_id)

    def has(self, transformer_id: str) -> bool:
        return transformer_id in self._definitions

    def validate(self, transformer_ids: list[str] | None) -> list[str]:
        """Return a problem message for each unknown transformer id."""
        return [f'Transformer "{t}" not found' for t in transformer_ids or [] if not self.has(t)]

    async def apply(
        self,
        transformer_ids: list[str] | None,
        value: Any,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Run ``transformer_ids`` in order on ``value``.

        Raises:
            TransformerError: If a transformer is unknown or fails.
        """
        if not transformer_ids:
            return value
        result = value
        for transformer_id in transformer_ids:
            result = await self.execute(transformer_id, result, context or {})
        return result

    async def execute(
        self,
        transformer_id: str,
        value: Any,
        context: Mapping[str, Any],
        _chain: tuple[str, ...] = (),
    ) -> Any:
        """Run one transformer."""
        definition = self._definitions.get(transformer_id)
        if definition is None:
            raise TransformerError.not_found(transformer_id)
        if transformer_id in _chain:
            raise TransformerError.execution_failed(
                transformer_id, f"circular chain {' -> '.join((*_chain, transformer_id))}"
            )

        try:
            return await self._run(definition, value, context, (*_chain, transformer_id))
        except TransformerError:
            raise
        except (ConditionError, re.error, KeyError, TypeError, ValueError) as e:
            raise TransformerError.execution_failed(transformer_id, str(e)) from e

    async def _run(
        self,
        definition: TransformerDefinition,
        value: Any,
        context: Mapping[str, Any],
        chain: tuple[str, ...],
    ) -> Any:
        if definition.type in BUILT_IN_TRANSFORMERS:
            return BUILT_IN_TRANSFORMERS[definition.type](value)

        config = definition.config
        if definition.type == "regex":
            count = 0 if "g" in config.get("flags", "") else 1
            return re.sub(
                config["pattern"],
                python_replacement(config.get("replacement", "")),
                stringify(value),
                count=count,
                flags=regex_flags(config.get("flags", "")),
            )

        if definition.type == "computed":
            scope = {**context, "value": value, "context": dict(context)}
            return evaluate_expression(config["expression"], scope)

        if definition.type == "chain":
            result = value
            for transformer_id in config.get("transformers", []):
                result = await self.execute(transformer_id, result, context, chain)
            return result

        if definition.type == "custom" and definition.id in self._functions:
            return self._functions[definition.id](value, context)

        raise TransformerError.invalid_type(definition.id, definition.type)
