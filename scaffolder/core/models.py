"""Data models for scaffolding configuration documents.

Documents, tasks, variables and prompts are frozen pydantic models: once a
document is loaded it is never mutated, and every merge or enablement
propagation step derives a fresh copy.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# A boolean, a bare condition string, or {"condition": ...} / {"type": ..., "value": ...}
EnabledSpec = bool | str | dict[str, Any] | None

# The shared key -> value map threaded through a run.
ResolutionContext = dict[str, Any]


class OverrideStrategy(str, Enum):
    """How a same-id redefinition combines with the earlier entry."""

    MERGE = "merge"
    REPLACE = "replace"


class ValueType(str, Enum):
    """Tags of the ValueSpec union."""

    STATIC = "static"
    INTERPOLATE = "interpolate"
    CONDITIONAL = "conditional"
    EXEC = "exec"
    EXEC_FILE = "exec-file"


class PromptType(str, Enum):
    """Interactive prompt kinds."""

    INPUT = "input"
    PASSWORD = "password"
    NUMBER = "number"
    SELECT = "select"
    CONFIRM = "confirm"


class EntityKind(str, Enum):
    """Entity kinds that share the id namespace of a merged document."""

    TASK = "task"
    VARIABLE = "variable"
    PROMPT = "prompt"


# =============================================================================
# ENTITIES
# =============================================================================


class _Entity(BaseModel):
    """Fields common to tasks, variables and prompts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str
    override: OverrideStrategy | None = None
    source_url: str | None = Field(default=None, alias="$sourceUrl")
    template_enabled: EnabledSpec = Field(default=None, alias="$templateEnabled")

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the document field names, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class TaskDefinition(_Entity):
    """A single unit of work executed by a plugin."""

    type: str
    name: str | None = None
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    enabled: EnabledSpec = None
    required: EnabledSpec = True

    @property
    def display_name(self) -> str:
        """Human-readable task label."""
        return self.name or self.id


class VariableDefinition(_Entity):
    """A value resolved without user interaction."""

    value: Any = None
    transformers: list[str] | None = None
    is_global: bool = Field(default=False, alias="global")

    @property
    def is_conditional(self) -> bool:
        """Whether the value is a conditional ValueSpec."""
        return isinstance(self.value, dict) and self.value.get("type") == ValueType.CONDITIONAL.value


class PromptChoice(BaseModel):
    """One option of a select prompt."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    value: Any = None


class PromptDefinition(_Entity):
    """A value collected from the user."""

    type: PromptType = PromptType.INPUT
    message: str = ""
    default: Any = None
    required: bool = False
    is_global: bool = Field(default=False, alias="global")
    choices: list[PromptChoice] = Field(default_factory=list)
    min: float | None = None
    max: float | None = None
    placeholder: str | None = None


class TransformerDefinition(BaseModel):
    """A user-declared value transformer."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    type: str
    name: str | None = None
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# DOCUMENTS
# =============================================================================


class ConfigurationDocument(BaseModel):
    """One loaded configuration document.

    ``source_url`` is the document identity: an absolute local path or an
    http(s) URL. Entities carry the same value as their provenance.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str
    description: str | None = None
    extends: str | list[str] | None = None
    dependencies: list[str] = Field(default_factory=list)
    enabled: EnabledSpec = None
    tasks: list[TaskDefinition] = Field(default_factory=list)
    variables: list[VariableDefinition] = Field(default_factory=list)
    prompts: list[PromptDefinition] = Field(default_factory=list)
    transformers: list[TransformerDefinition] = Field(default_factory=list)
    source_url: str | None = Field(default=None, alias="$sourceUrl")

    @property
    def extends_list(self) -> list[str]:
        """``extends`` normalized to a list, in declaration order."""
        if self.extends is None:
            return []
        if isinstance(self.extends, str):
            return [self.extends] if self.extends else []
        return [e for e in self.extends if e]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data = self.model_dump(
            by_alias=True,
            exclude_none=True,
            mode="json",
            exclude={"tasks", "variables", "prompts", "transformers"},
        )
        data["tasks"] = [t.to_dict() for t in self.tasks]
        if self.variables:
            data["variables"] = [v.to_dict() for v in self.variables]
        if self.prompts:
            data["prompts"] = [p.to_dict() for p in self.prompts]
        if self.transformers:
            data["transformers"] = [
                t.model_dump(exclude_none=True, mode="json") for t in self.transformers
            ]
        return data
