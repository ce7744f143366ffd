"""Exception hierarchy for scaffolder.

Structural errors (parse, fetch, cycles, duplicate ids, schema) abort a run.
Value resolution never raises these; it logs and degrades instead.
"""

from typing import Any


# =============================================================================
# BASE
# =============================================================================


class ScaffolderError(Exception):
    """Base exception for scaffolder errors."""

    code = "SCAFFOLDER_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class CircularDependencyError(ScaffolderError):
    """A cycle in the extends graph, document dependencies or task dependencies."""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, message: str, chain: list[str] | None = None) -> None:
        super().__init__(message)
        self.chain = chain or []

    @classmethod
    def for_extends(cls, chain: list[str]) -> "CircularDependencyError":
        return cls(f"Circular dependency detected: {' -> '.join(chain)}", chain)

    @classmethod
    def for_task_dependency(cls, chain: list[str]) -> "CircularDependencyError":
        return cls(
            f"Circular dependency detected involving task: {chain[-1]} "
            f"({' -> '.join(chain)})",
            chain,
        )

    @classmethod
    def for_document_dependencies(cls, chain: list[str]) -> "CircularDependencyError":
        return cls(
            f"Circular dependency detected in configuration dependencies: "
            f"{' -> '.join(chain)}",
            chain,
        )


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


class ConfigurationNotFoundError(ScaffolderError):
    """A local configuration or template file does not exist."""

    code = "CONFIGURATION_NOT_FOUND"

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path

    @classmethod
    def for_path(cls, path: str) -> "ConfigurationNotFoundError":
        return cls(f"Configuration file not found: {path}", path)


class ConfigFetchError(ScaffolderError):
    """A remote document could not be retrieved."""

    code = "CONFIG_FETCH_ERROR"

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url

    @classmethod
    def for_status(cls, url: str, status: int, reason: str = "") -> "ConfigFetchError":
        return cls(f"Failed to fetch configuration from {url}: {status} {reason}".strip(), url)

    @classmethod
    def for_exception(cls, url: str, error: Exception) -> "ConfigFetchError":
        return cls(f"Failed to fetch configuration from {url}: {error}", url)


class ConfigParseError(ScaffolderError):
    """A document is not valid JSON or YAML."""

    code = "CONFIG_PARSE_ERROR"

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path

    @classmethod
    def for_file(cls, path: str, error: Exception) -> "ConfigParseError":
        return cls(f"Failed to parse configuration file {path}: {error}", path)


class InvalidConfigError(ScaffolderError):
    """A parsed document violates a structural rule."""

    code = "INVALID_CONFIG"

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path

    @classmethod
    def missing_name(cls, path: str) -> "InvalidConfigError":
        return cls(f"Invalid configuration file {path}: missing required field 'name'", path)

    @classmethod
    def invalid_name_format(cls, path: str, name: str) -> "InvalidConfigError":
        return cls(
            f"Invalid configuration file {path}: name '{name}' must be lowercase "
            "words separated by single hyphens",
            path,
        )

    @classmethod
    def tasks_not_list(cls, path: str) -> "InvalidConfigError":
        return cls(f"Invalid configuration file {path}: 'tasks' must be a list", path)


class SchemaValidationError(ScaffolderError):
    """A raw document failed JSON-schema validation."""

    code = "SCHEMA_VALIDATION_ERROR"

    def __init__(self, path: str, diagnostics: list[str]) -> None:
        lines = "\n".join(f"  - {d}" for d in diagnostics)
        super().__init__(f"Configuration {path} failed schema validation:\n{lines}")
        self.path = path
        self.diagnostics = diagnostics


# =============================================================================
# IDS
# =============================================================================


class DuplicateIdError(ScaffolderError):
    """The same id is used by two entity kinds in a merged document."""

    code = "DUPLICATE_ID"

    def __init__(self, message: str, entity_id: str) -> None:
        super().__init__(message)
        self.entity_id = entity_id

    @classmethod
    def for_id(cls, entity_id: str, kind: str, existing_kind: str) -> "DuplicateIdError":
        return cls(
            f'Duplicate ID "{entity_id}" found in {kind}. '
            f"This ID is already used in {existing_kind}",
            entity_id,
        )


class IdConflictError(ScaffolderError):
    """A same-id redefinition without an override strategy."""

    code = "ID_CONFLICT"

    def __init__(self, message: str, entity_id: str) -> None:
        super().__init__(message)
        self.entity_id = entity_id

    @classmethod
    def for_entity(
        cls,
        kind: str,
        entity_id: str,
        existing_source: str,
        new_source: str,
    ) -> "IdConflictError":
        return cls(
            f'{kind.capitalize()} ID conflict: "{entity_id}" is defined in both '
            f"{existing_source} and {new_source}. "
            'Use "override": "merge" or "override": "replace" to redefine it.',
            entity_id,
        )


# =============================================================================
# TASKS, PROMPTS, PLUGINS
# =============================================================================


class TaskNotFoundError(ScaffolderError):
    """A task dependency references an id outside the task set."""

    code = "TASK_NOT_FOUND"

    def __init__(self, message: str, task_id: str) -> None:
        super().__init__(message)
        self.task_id = task_id

    @classmethod
    def for_id(cls, task_id: str, required_by: str | None = None) -> "TaskNotFoundError":
        suffix = f" (required by {required_by})" if required_by else ""
        return cls(f"Task not found: {task_id}{suffix}", task_id)


class TaskValidationError(ScaffolderError):
    """One or more tasks failed pre-run validation."""

    code = "TASK_VALIDATION_ERROR"

    def __init__(self, problems: list[str]) -> None:
        lines = "\n".join(f"  - {p}" for p in problems)
        super().__init__(f"Task validation failed:\n{lines}")
        self.problems = problems


class PromptValidationError(ScaffolderError):
    """Prompt definitions are malformed, or a required answer is empty."""

    code = "PROMPT_VALIDATION_ERROR"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []

    @classmethod
    def for_problems(cls, problems: list[str]) -> "PromptValidationError":
        lines = "\n".join(f"  - {p}" for p in problems)
        return cls(f"Prompt validation failed:\n{lines}", problems)

    @classmethod
    def required(cls, prompt_id: str) -> "PromptValidationError":
        return cls(f'Prompt "{prompt_id}" is required')


class VariableValidationError(ScaffolderError):
    """Variable definitions are malformed."""

    code = "VARIABLE_VALIDATION_ERROR"

    def __init__(self, problems: list[str]) -> None:
        lines = "\n".join(f"  - {p}" for p in problems)
        super().__init__(f"Variable validation failed:\n{lines}")
        self.problems = problems


class TaskExecutionError(ScaffolderError):
    """An external command run by a task failed."""

    code = "TASK_EXECUTION_ERROR"

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode

    @classmethod
    def for_command(
        cls, command: str, returncode: int | None, stderr: str = ""
    ) -> "TaskExecutionError":
        if returncode is None:
            return cls(f"Command timed out: {command}")
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        return cls(f"Command failed with exit code {returncode}: {command}{detail}", returncode)


class PluginConfigurationError(ScaffolderError):
    """A task config sets both, or neither, of two mutually exclusive fields."""

    code = "PLUGIN_CONFIGURATION_ERROR"

    @classmethod
    def missing_template(cls, task_type: str) -> "PluginConfigurationError":
        return cls(
            f'{task_type} task requires either "template" (inline) or '
            '"templateFile" (file path) to be specified'
        )

    @classmethod
    def both_templates(cls, task_type: str) -> "PluginConfigurationError":
        return cls(
            f'{task_type} task cannot have both "template" and "templateFile" '
            "specified. Use one or the other."
        )


class PluginRegistrationError(ScaffolderError):
    """A plugin could not be registered."""

    code = "PLUGIN_REGISTRATION_ERROR"


class TransformerError(ScaffolderError):
    """A value transformer is unknown, malformed or failed."""

    code = "TRANSFORMER_ERROR"

    def __init__(self, message: str, transformer_id: str) -> None:
        super().__init__(message)
        self.transformer_id = transformer_id

    @classmethod
    def not_found(cls, transformer_id: str) -> "TransformerError":
        return cls(f'Transformer "{transformer_id}" not found', transformer_id)

    @classmethod
    def execution_failed(cls, transformer_id: str, reason: str) -> "TransformerError":
        return cls(f'Transformer "{transformer_id}" failed: {reason}', transformer_id)

    @classmethod
    def invalid_type(cls, transformer_id: str, transformer_type: str) -> "TransformerError":
        return cls(
            f'Transformer "{transformer_id}" has unknown type "{transformer_type}"',
            transformer_id,
        )


class RequiredTaskFailedError(ScaffolderError):
    """A required task failed and the run was halted."""

    code = "REQUIRED_TASK_FAILED"

    def __init__(
        self,
        task_id: str,
        completed: int,
        total: int,
        cause: BaseException | None = None,
    ) -> None:
        reason = f": {cause}" if cause is not None else ""
        super().__init__(
            f'Required task "{task_id}" failed{reason}. Completed: {completed}/{total} tasks'
        )
        self.task_id = task_id
        self.completed = completed
        self.total = total
        self.remaining = total - completed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "task_id": self.task_id,
            "completed": self.completed,
            "total": self.total,
            "remaining": self.remaining,
            "message": self.message,
        }
