"""Core module - Orchestrator, run state, models, errors and configuration."""

from scaffolder.core.config import Settings, get_settings
from scaffolder.core.errors import ScaffolderError
from scaffolder.core.models import (
    ConfigurationDocument,
    PromptDefinition,
    TaskDefinition,
    VariableDefinition,
)
from scaffolder.core.orchestrator import RunOptions, RunResult, Scaffolder
from scaffolder.core.state import CompletionMarker, RunState, RunStateMachine

__all__ = [
    # Orchestrator
    "RunOptions",
    "RunResult",
    "Scaffolder",
    # State
    "CompletionMarker",
    "RunState",
    "RunStateMachine",
    # Models
    "ConfigurationDocument",
    "PromptDefinition",
    "TaskDefinition",
    "VariableDefinition",
    # Errors
    "ScaffolderError",
    # Settings
    "Settings",
    "get_settings",
]
