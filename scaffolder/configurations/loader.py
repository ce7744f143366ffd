"""Configuration loader - parses one document and records provenance.

Every task, variable and prompt of a loaded document carries the document's
identity in ``$sourceUrl``, so later steps can resolve relative references
and name the origin of a conflict.
"""

import json
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from loguru import logger
from pydantic import ValidationError

from scaffolder.configurations.fetcher import (
    ConfigurationCache,
    ConfigurationFetcher,
    display_name,
    is_url,
    resolve_location,
)
from scaffolder.configurations.schema import ensure_valid
from scaffolder.core.errors import ConfigParseError, InvalidConfigError, SchemaValidationError
from scaffolder.core.models import ConfigurationDocument

NAME_PATTERN = re.compile(r"^[a-z\d]+(?:-[a-z\d]+)*$")

_YAML_SUFFIXES = (".yaml", ".yml")
_ANNOTATED_COLLECTIONS = ("tasks", "variables", "prompts")


def _suffix(location: str) -> str:
    path = urlparse(location).path if is_url(location) else location
    return Path(path).suffix.lower()


def parse_text(text: str, location: str) -> Any:
    """
    Parse document text as YAML or JSON, chosen by extension.

    Raises:
        ConfigParseError: If the text is not well-formed.
    """
    try:
        if _suffix(location) in _YAML_SUFFIXES:
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError.for_file(location, e) from e


def annotate(raw: dict[str, Any], location: str) -> dict[str, Any]:
    """Return a copy of ``raw`` with ``$sourceUrl`` set on the document and its entities."""
    annotated = dict(raw)
    annotated["$sourceUrl"] = location
    for collection in _ANNOTATED_COLLECTIONS:
        entries = raw.get(collection) or []
        annotated[collection] = [
            {**entry, "$sourceUrl": location} if isinstance(entry, dict) else entry
            for entry in entries
        ]
    return annotated


def check_structure(raw: Any, label: str) -> None:
    """
    Check the rules that precede schema validation.

    Raises:
        InvalidConfigError: Missing or malformed name, or non-list tasks.
    """
    if not isinstance(raw, dict) or not raw.get("name"):
        raise InvalidConfigError.missing_name(label)
    name = raw["name"]
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        raise InvalidConfigError.invalid_name_format(label, str(name))
    if "tasks" in raw and raw["tasks"] is not None and not isinstance(raw["tasks"], list):
        raise InvalidConfigError.tasks_not_list(label)


class ConfigurationLoader:
    """
    Load configuration documents by identity, once per run.

    Attributes:
        fetcher: Retrieves document text.
        cache: Identity-keyed memo of loaded documents.
        cwd: Directory relative locations and display names resolve against.

    Example:
        >>> loader = ConfigurationLoader(cwd="/work")
        >>> document = await loader.load("scaffold.json")
        >>> document.source_url
        '/work/scaffold.json'
    """

    def __init__(
        self,
        fetcher: ConfigurationFetcher | None = None,
        cache: ConfigurationCache | None = None,
        cwd: str | Path | None = None,
        validate_schema: bool = True,
    ) -> None:
        self.fetcher = fetcher or ConfigurationFetcher()
        self.cache = cache if cache is not None else ConfigurationCache()
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.validate_schema = validate_schema

    def identify(self, reference: str, base: str | None = None) -> str:
        """Canonical identity of ``reference`` as seen from document ``base``."""
        return resolve_location(reference, base, self.cwd)

    def label(self, location: str | None) -> str:
        """Diagnostic label for a document identity."""
        return display_name(location, self.cwd)

    async def load(self, reference: str, base: str | None = None) -> ConfigurationDocument:
        """
        Load one document.

        Args:
            reference: Path or URL, relative to ``base`` when given.
            base: Identity of the referring document.

        Returns:
            The parsed, provenance-annotated document.

        Raises:
            ConfigurationNotFoundError: Local file missing.
            ConfigFetchError: Remote retrieval failed.
            ConfigParseError: Malformed JSON or YAML.
            InvalidConfigError: Missing or malformed name, non-list tasks.
            SchemaValidationError: Schema or model validation failed.
        """
        location = self.identify(reference, base)
        cached = self.cache.get(location)
        if cached is not None:
            logger.debug(f"Using cached configuration: {self.label(location)}")
            return cached

        logger.debug(f"Loading configuration: {self.label(location)}")
        text = await self.fetcher.fetch_text(location)
        document = self.build(parse_text(text, location), location)
        self.cache.set(location, document)
        return document

    def build(self, raw: Any, location: str) -> ConfigurationDocument:
        """Validate a parsed document and construct the model."""
        label = self.label(location)
        check_structure(raw, label)
        if self.validate_schema:
            ensure_valid(raw, label)

        try:
            return ConfigurationDocument.model_validate(annotate(raw, location))
        except ValidationError as e:
            diagnostics = [
                f"$.{'.'.join(str(p) for p in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ]
            raise SchemaValidationError(label, diagnostics) from e


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def load_configuration(
    reference: str,
    cwd: str | Path | None = None,
    fetcher: ConfigurationFetcher | None = None,
) -> ConfigurationDocument:
    """
    Load a single document without following ``extends``.

    Example:
        >>> document = await load_configuration("scaffold.json")
        >>> document.name
        'my-template'
    """
    return await ConfigurationLoader(fetcher=fetcher, cwd=cwd).load(reference)
