"""Value resolver - turns a ValueSpec into a concrete value.

A ValueSpec is either a bare literal or a mapping tagged by ``type``:

- ``static``: ``{"type": "static", "value": ...}``
- ``interpolate``: ``{"type": "interpolate", "value": "Hello {{name}}"}``
- ``conditional``: ``{"type": "conditional", "condition": ..., "ifTrue": ..., "ifFalse": ...}``
- ``exec``: ``{"type": "exec", "value": "git config user.name"}``
- ``exec-file``: ``{"type": "exec-file", "file": ..., "runtime": ..., "args": [...],
  "parameters": {...}, "cwd": ...}``

Resolution never raises. Failures are logged and yield None ("unresolved");
callers decide whether that matters.
"""

import asyncio
import json
import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from scaffolder.configurations.fetcher import (
    ConfigurationFetcher,
    is_url,
    local_copy,
    resolve_location,
)
from scaffolder.core.errors import ScaffolderError
from scaffolder.core.models import ValueType
from scaffolder.values.conditions import evaluate_condition
from scaffolder.values.interpolation import interpolate

EXEC_TIMEOUT = 10.0

_NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")

RUNTIME_COMMANDS: dict[str, list[str]] = {
    "python": [sys.executable],
    "node": ["node"],
    "bash": ["bash"],
    "sh": ["sh"],
    "pwsh": ["pwsh", "-File"],
    "powershell": ["powershell", "-File"],
}

RUNTIME_BY_EXTENSION: dict[str, str] = {
    ".py": "python",
    ".js": "node",
    ".cjs": "node",
    ".mjs": "node",
    ".sh": "bash",
    ".bash": "bash",
    ".ps1": "pwsh",
}


# =============================================================================
# PROCESS EXECUTION
# =============================================================================


@dataclass
class CommandResult:
    """Outcome of an external command."""

    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return not self.timed_out and self.returncode == 0


async def _communicate(process: asyncio.subprocess.Process, timeout: float | None) -> CommandResult:
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return CommandResult(returncode=None, timed_out=True)

    return CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def run_shell(
    command: str,
    cwd: str | Path | None = None,
    timeout: float | None = EXEC_TIMEOUT,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """
    Run a shell command, capturing output, bounded by ``timeout``.

    Example:
        >>> result = await run_shell("echo hi")
        >>> result.stdout.strip()
        'hi'
    """
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    return await _communicate(process, timeout)


async def run_program(
    argv: list[str],
    cwd: str | Path | None = None,
    timeout: float | None = EXEC_TIMEOUT,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a program without a shell, capturing output."""
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    return await _communicate(process, timeout)


def parse_output(output: str) -> Any:
    """
    Opportunistically type command output: JSON, boolean, number, string.

    Example:
        >>> parse_output('{"a": 1}')
        {'a': 1}
        >>> parse_output("true"), parse_output("42"), parse_output("1.5")
        (True, 42, 1.5)
    """
    if output.startswith(("{", "[")):
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            return output
    if output == "true":
        return True
    if output == "false":
        return False
    if _NUMBER_PATTERN.match(output):
        return float(output) if "." in output else int(output)
    return output


def detect_runtime(file_name: str) -> str | None:
    """Guess the runtime from a script's extension."""
    return RUNTIME_BY_EXTENSION.get(Path(file_name).suffix.lower())


# =============================================================================
# VALUE RESOLVER
# =============================================================================


class ValueResolver:
    """
    Resolve ValueSpecs against a context.

    Attributes:
        timeout: Seconds allowed for exec and exec-file values.
        working_dir: Directory commands run in.

    Example:
        >>> resolver = ValueResolver()
        >>> await resolver.resolve(
        ...     {"type": "conditional", "condition": "x === 1", "ifTrue": "A", "ifFalse": "B"},
        ...     {"x": 1},
        ... )
        'A'
    """

    def __init__(
        self,
        timeout: float = EXEC_TIMEOUT,
        working_dir: str | Path | None = None,
        fetcher: ConfigurationFetcher | None = None,
    ) -> None:
        self.timeout = timeout
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.fetcher = fetcher or ConfigurationFetcher()

    async def resolve(
        self,
        spec: Any,
        context: Mapping[str, Any] | None = None,
        entity_id: str = "value",
        kind: str = "Variable",
        source_url: str | None = None,
    ) -> Any:
        """
        Resolve one ValueSpec.

        Args:
            spec: Literal or tagged mapping.
            context: Resolution context; None means "no context supplied".
            entity_id: Id of the owning variable or prompt, for log messages.
            kind: "Variable" or "Prompt", for log messages.
            source_url: Provenance used to resolve relative exec-file paths.

        Returns:
            The resolved value, or None when unresolved.
        """
        if spec is None:
            return None
        if not isinstance(spec, Mapping):
            return spec

        label = f'{kind} "{entity_id}"'
        value_type = spec.get("type")

        if value_type is None:
            return dict(spec)
        if value_type == ValueType.STATIC.value:
            return spec.get("value")
        if value_type == ValueType.INTERPOLATE.value:
            return self._resolve_interpolate(spec, context, label)
        if value_type == ValueType.CONDITIONAL.value:
            return await self._resolve_conditional(spec, context, label, entity_id, kind, source_url)
        if value_type == ValueType.EXEC.value:
            return await self._resolve_exec(spec, label)
        if value_type == ValueType.EXEC_FILE.value:
            return await self._resolve_exec_file(spec, context, label, source_url)

        logger.error(
            f'{label}: unknown value type "{value_type}". Expected "static", "exec", '
            '"exec-file", "conditional", or "interpolate".'
        )
        return None

    # =========================================================================
    # VALUE TYPES
    # =========================================================================

    def _resolve_interpolate(
        self,
        spec: Mapping[str, Any],
        context: Mapping[str, Any] | None,
        label: str,
    ) -> Any:
        template = spec.get("value")
        if not isinstance(template, str):
            logger.error(f"{label}: interpolate value must be a string with {{{{variable}}}} placeholders")
            return None
        if context is None:
            logger.debug(f"{label}: interpolate value has no context, returning template")
            return template
        return interpolate(template, context)

    async def _resolve_conditional(
        self,
        spec: Mapping[str, Any],
        context: Mapping[str, Any] | None,
        label: str,
        entity_id: str,
        kind: str,
        source_url: str | None,
    ) -> Any:
        if context is None:
            logger.warning(f"{label}: conditional value requires context but none provided")
            return None

        condition = spec.get("condition")
        if not isinstance(condition, str):
            logger.error(f"{label}: conditional value must have a string condition")
            return None

        selected = spec.get("ifTrue") if evaluate_condition(condition, context) else spec.get("ifFalse")
        if isinstance(selected, Mapping):
            return await self.resolve(selected, context, entity_id, kind, source_url)
        return selected

    async def _resolve_exec(self, spec: Mapping[str, Any], label: str) -> Any:
        command = spec.get("value")
        if not isinstance(command, str):
            logger.error(f"{label}: exec value must have a string command")
            return None

        try:
            result = await run_shell(command, cwd=self.working_dir, timeout=self.timeout)
        except OSError as e:
            logger.warning(f"{label}: failed to execute command: {e}")
            return None

        if result.timed_out:
            logger.warning(f"{label}: command timed out after {self.timeout}s: {command}")
            return None
        if not result.success:
            logger.warning(
                f"{label}: command exited with {result.returncode}: {result.stderr.strip()}"
            )
            return None
        return parse_output(result.stdout.strip())

    async def _resolve_exec_file(
        self,
        spec: Mapping[str, Any],
        context: Mapping[str, Any] | None,
        label: str,
        source_url: str | None,
    ) -> Any:
        file_ref = spec.get("file")
        if not isinstance(file_ref, str) or not file_ref:
            logger.error(f"{label}: exec-file value must have a file path")
            return None

        try:
            output = await execute_script_file(
                spec,
                context or {},
                fetcher=self.fetcher,
                working_dir=self.working_dir,
                timeout=self.timeout,
                source_url=source_url,
            )
        except (ScaffolderError, OSError) as e:
            logger.warning(f"{label}: failed to execute script file: {e}")
            return None

        if output is None:
            logger.warning(f"{label}: script file {file_ref} did not complete")
            return None
        return parse_output(output.strip())


async def execute_script_file(
    spec: Mapping[str, Any],
    context: Mapping[str, Any],
    fetcher: ConfigurationFetcher,
    working_dir: Path,
    timeout: float | None = EXEC_TIMEOUT,
    source_url: str | None = None,
) -> str | None:
    """
    Run an exec-file spec and return its stdout.

    ``file``, ``args``, ``parameters`` and ``cwd`` are interpolated first.
    Parameters are passed to the script as environment variables.

    Returns:
        Captured stdout, or None when the script failed or timed out.

    Raises:
        ConfigurationNotFoundError: If a local script does not exist.
        ConfigFetchError: If a remote script cannot be downloaded.
    """
    file_ref = interpolate(str(spec["file"]), context)
    args = [interpolate(str(a), context) for a in spec.get("args") or []]
    parameters = {
        str(k): interpolate(str(v), context) for k, v in (spec.get("parameters") or {}).items()
    }
    cwd = working_dir / interpolate(spec["cwd"], context) if spec.get("cwd") else working_dir

    location = file_ref if is_url(file_ref) else resolve_location(file_ref, source_url, working_dir)
    runtime = spec.get("runtime") or detect_runtime(location)
    if runtime is None:
        logger.warning(f"Could not detect runtime for {file_ref}, defaulting to 'sh'")
        runtime = "sh"
    command = RUNTIME_COMMANDS.get(runtime)
    if command is None:
        logger.error(f'Unknown runtime "{runtime}" for {file_ref}')
        return None

    env = {**os.environ, **parameters}
    async with local_copy(fetcher, location) as script_path:
        result = await run_program(
            [*command, str(script_path), *args],
            cwd=cwd,
            timeout=timeout,
            env=env,
        )

    if result.timed_out:
        logger.warning(f"Script {file_ref} timed out after {timeout}s")
        return None
    if not result.success:
        logger.warning(f"Script {file_ref} exited with {result.returncode}: {result.stderr.strip()}")
        return None
    return result.stdout


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def resolve_value(
    spec: Any,
    context: Mapping[str, Any] | None = None,
    source_url: str | None = None,
) -> Any:
    """
    Resolve a ValueSpec with a default resolver.

    Example:
        >>> await resolve_value({"type": "interpolate", "value": "Hello {{name}}!"}, {"name": "World"})
        'Hello World!'
        >>> await resolve_value({"type": "interpolate", "value": "Hello {{name}}!"})
        'Hello {{name}}!'
    """
    return await ValueResolver().resolve(spec, context, source_url=source_url)
