"""Configuration documents - fetching, loading, extends resolution and merging."""

from scaffolder.configurations.extends_resolver import (
    ExtendsGraph,
    ExtendsResolver,
    propagate_enablement,
    resolve_extends,
    sort_by_document_dependencies,
)
from scaffolder.configurations.fetcher import ConfigurationCache, ConfigurationFetcher
from scaffolder.configurations.id_validator import validate_unique_ids
from scaffolder.configurations.loader import ConfigurationLoader, load_configuration
from scaffolder.configurations.merger import (
    DEFAULT_CONFLICTING_FIELDS,
    ConfigurationMerger,
    merge_configurations,
)
from scaffolder.configurations.schema import validate_document

__all__ = [
    # Fetching
    "ConfigurationCache",
    "ConfigurationFetcher",
    # Loading
    "ConfigurationLoader",
    "load_configuration",
    "validate_document",
    # Extends
    "ExtendsGraph",
    "ExtendsResolver",
    "propagate_enablement",
    "resolve_extends",
    "sort_by_document_dependencies",
    # Merging
    "DEFAULT_CONFLICTING_FIELDS",
    "ConfigurationMerger",
    "merge_configurations",
    "validate_unique_ids",
]
