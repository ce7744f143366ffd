"""Run state machine and the persisted completion marker."""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class RunState(str, Enum):
    """States of a single orchestrated run."""

    NOT_STARTED = "not_started"
    VALIDATING_CONFIG = "validating_config"
    RESOLVING_VARIABLES = "resolving_variables"
    RESOLVING_PROMPTS = "resolving_prompts"
    RE_RESOLVING_CONDITIONALS = "re_resolving_conditionals"
    CHECKING_ENABLEMENT = "checking_enablement"
    SORTING = "sorting"
    DRY_RUN_PREVIEW = "dry_run_preview"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.COMPLETED, RunState.FAILED})

# Every non-terminal state may also move to FAILED.
TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.NOT_STARTED: frozenset({RunState.VALIDATING_CONFIG}),
    RunState.VALIDATING_CONFIG: frozenset(
        {RunState.RESOLVING_VARIABLES, RunState.COMPLETED}
    ),
    RunState.RESOLVING_VARIABLES: frozenset({RunState.RESOLVING_PROMPTS}),
    RunState.RESOLVING_PROMPTS: frozenset({RunState.RE_RESOLVING_CONDITIONALS}),
    RunState.RE_RESOLVING_CONDITIONALS: frozenset(
        # sequential mode runs the pipeline once per document
        {RunState.RESOLVING_VARIABLES, RunState.CHECKING_ENABLEMENT}
    ),
    RunState.CHECKING_ENABLEMENT: frozenset({RunState.SORTING, RunState.COMPLETED}),
    RunState.SORTING: frozenset({RunState.DRY_RUN_PREVIEW, RunState.EXECUTING}),
    RunState.DRY_RUN_PREVIEW: frozenset({RunState.COMPLETED}),
    RunState.EXECUTING: frozenset({RunState.COMPLETED}),
    RunState.COMPLETED: frozenset(),
    RunState.FAILED: frozenset(),
}


class RunStateMachine:
    """
    Track the state of a run and reject illegal transitions.

    Example:
        >>> machine = RunStateMachine()
        >>> machine.advance(RunState.VALIDATING_CONFIG)
        >>> machine.state
        <RunState.VALIDATING_CONFIG: 'validating_config'>
    """

    def __init__(self) -> None:
        self.state = RunState.NOT_STARTED
        self.history: list[RunState] = [RunState.NOT_STARTED]

    def can_advance(self, target: RunState) -> bool:
        """Check whether ``target`` is reachable from the current state."""
        if target == RunState.FAILED:
            return self.state not in TERMINAL_STATES
        return target in TRANSITIONS[self.state]

    def advance(self, target: RunState) -> None:
        """
        Move to ``target``.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if not self.can_advance(target):
            raise RuntimeError(
                f"Illegal run state transition: {self.state.value} -> {target.value}"
            )
        logger.debug(f"Run state: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        """Whether the run has finished."""
        return self.state in TERMINAL_STATES


# =============================================================================
# COMPLETION MARKER
# =============================================================================


class CompletionMarker(BaseModel):
    """Snapshot persisted after a successful non-dry run."""

    model_config = ConfigDict(populate_by_name=True)

    initialized_at: str = Field(alias="initializedAt")
    config: dict[str, Any] = Field(default_factory=dict)
    completed_tasks: list[str] = Field(default_factory=list, alias="completedTasks")
    version: str = "0.0.0"


def load_marker(directory: str | Path, file_name: str) -> CompletionMarker | None:
    """
    Load the completion marker from ``directory``.

    Returns:
        The marker, or None when absent or unreadable.
    """
    path = Path(directory) / file_name
    if not path.exists():
        return None

    try:
        return CompletionMarker.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable completion marker {path}: {e}")
        return None


def save_marker(
    directory: str | Path,
    file_name: str,
    context: dict[str, Any],
    completed_tasks: list[str],
    version: str,
    dry_run: bool = False,
) -> Path | None:
    """
    Write the completion marker.

    Args:
        directory: Directory the run operated in.
        file_name: Marker file name.
        context: Resolved context snapshot.
        completed_tasks: Ids of tasks that completed.
        version: Tool version.
        dry_run: When True nothing is written.

    Returns:
        Path of the written marker, or None on dry runs.
    """
    if dry_run:
        return None

    marker = CompletionMarker(
        initialized_at=datetime.now(timezone.utc).isoformat(),
        config=context,
        completed_tasks=completed_tasks,
        version=version,
    )
    path = Path(directory) / file_name
    path.write_text(
        json.dumps(marker.model_dump(by_alias=True), indent=2, default=str),
        encoding="utf-8",
    )
    logger.debug(f"Wrote completion marker {path}")
    return path
