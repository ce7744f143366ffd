"""Main CLI entry point using Typer."""

import json
from pathlib import Path
from typing import Any

import anyio
import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from scaffolder import __version__
from scaffolder.configurations.fetcher import is_url
from scaffolder.core.config import Settings, get_settings
from scaffolder.core.errors import RequiredTaskFailedError, ScaffolderError
from scaffolder.core.orchestrator import RunOptions, RunResult, Scaffolder
from scaffolder.core.state import load_marker
from scaffolder.pipeline.prompter import RichPrompter, ScriptedPrompter
from scaffolder.pipeline.resolution import ResolutionPipeline
from scaffolder.tasks.validation import validate_all_tasks
from scaffolder.values.resolver import parse_output

app = typer.Typer(
    name="scaffolder",
    help="Scaffolder - resolve and run declarative scaffolding configurations",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Scaffolder[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Scaffolder - turn configuration documents into project files.

    Follows extends chains, merges documents, resolves variables and
    prompts, then runs the enabled tasks in dependency order.
    """
    pass


def parse_assignments(assignments: list[str] | None) -> dict[str, Any]:
    """
    Parse ``key=value`` pairs; values are typed like exec output.

    Raises:
        typer.BadParameter: If a pair has no ``=`` or an empty key.
    """
    values: dict[str, Any] = {}
    for assignment in assignments or []:
        key, sep, raw = assignment.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {assignment!r}", param_hint="--var")
        values[key.strip()] = parse_output(raw)
    return values


def _config_location(config: str) -> str:
    """Resolve a local CONFIG argument against the directory the command runs in."""
    if is_url(config):
        return config
    return str((Path.cwd() / config).resolve())


def _settings(cwd: Path | None, debug: bool = False) -> Settings:
    update: dict[str, Any] = {}
    if cwd is not None:
        update["scaffolder_working_dir"] = str(cwd.resolve())
    if debug:
        update["scaffolder_debug"] = True
    return get_settings().model_copy(update=update)


def _print_summary(result: RunResult) -> None:
    table = Table(title="Run Summary")
    table.add_column("Outcome", style="cyan")
    table.add_column("Tasks")

    table.add_row("[green]completed[/green]", ", ".join(result.completed) or "-")
    table.add_row("[red]failed[/red]", ", ".join(result.failed) or "-")
    table.add_row("[dim]skipped[/dim]", ", ".join(result.skipped) or "-")
    console.print(table)


@app.command()
def run(
    config: str = typer.Argument(..., help="Path or URL of the configuration document"),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would change without changing anything",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Run even if the directory was already initialized",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        help="Resolve variables and prompts document by document",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Accept every prompt default without asking",
    ),
    var: list[str] | None = typer.Option(
        None,
        "--var",
        help="Pre-answer a prompt or variable as key=value (repeatable)",
    ),
    cwd: Path | None = typer.Option(
        None,
        "--cwd",
        "-C",
        help="Directory to run in",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging",
    ),
) -> None:
    """
    Resolve a configuration and run its tasks.

    Example:
        scaffolder run scaffold.json --dry-run --var projectName=demo
    """
    settings = _settings(cwd, debug)
    config = _config_location(config)
    working_dir = Path(settings.scaffolder_working_dir).resolve()
    values = parse_assignments(var)

    marker = load_marker(working_dir, settings.scaffolder_marker_file)
    if marker is not None and not force and not dry_run:
        console.print(
            f"[yellow]This directory was already initialized at {marker.initialized_at}[/yellow]"
        )
        if yes or not Confirm.ask(
            "Do you want to re-initialize? This may cause issues", default=False, console=console
        ):
            console.print("Initialization cancelled (use --force to run anyway)")
            raise typer.Exit(0)
        force = True

    console.print(
        Panel(
            f"[bold]Configuration:[/bold] {config}\n"
            f"[bold]Directory:[/bold] {working_dir}"
            + ("\n[yellow]DRY RUN - no changes will be made[/yellow]" if dry_run else ""),
            title="[bold blue]Scaffolder[/bold blue]",
            border_style="blue",
        )
    )

    options = RunOptions(
        dry_run=dry_run,
        force=force,
        values=values,
        sequential=sequential,
        working_dir=working_dir,
        prompter=ScriptedPrompter(values) if yes else RichPrompter(console),
    )

    async def execute() -> RunResult:
        scaffolder = Scaffolder(settings=settings)
        try:
            return await scaffolder.run_configuration(config, options)
        except RequiredTaskFailedError:
            if scaffolder.last_result is not None:
                _print_summary(scaffolder.last_result)
            raise

    try:
        result = anyio.run(execute)
    except ScaffolderError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1) from e

    if dry_run:
        for task_id, diff in result.diffs.items():
            console.print(Panel(diff, title=f"[bold]{task_id}[/bold]", border_style="dim"))
        console.print("\n[bold green]Dry run completed - no changes were made[/bold green]")
        console.print("[dim]Run without --dry-run to apply changes[/dim]")
        return

    _print_summary(result)
    if result.failed:
        console.print(
            f"\n[bold yellow]Completed with {len(result.failed)} optional task failure(s)[/bold yellow]"
        )
    else:
        console.print("\n[bold green]All tasks completed successfully![/bold green]")


@app.command()
def show(
    config: str = typer.Argument(..., help="Path or URL of the configuration document"),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the merged document to this file",
    ),
    cwd: Path | None = typer.Option(None, "--cwd", "-C", help="Directory to resolve from"),
) -> None:
    """
    Print the fully merged configuration as JSON.
    """
    config = _config_location(config)

    async def do_show() -> dict[str, Any]:
        scaffolder = Scaffolder(settings=_settings(cwd), configure_logging=False)
        merged = await scaffolder.load(config)
        return merged.to_dict()

    try:
        document = anyio.run(do_show)
    except ScaffolderError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1) from e

    text = json.dumps(document, indent=2, ensure_ascii=False)
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Saved to {output}[/green]")
    else:
        console.print_json(text)


@app.command()
def validate(
    config: str = typer.Argument(..., help="Path or URL of the configuration document"),
    cwd: Path | None = typer.Option(None, "--cwd", "-C", help="Directory to resolve from"),
) -> None:
    """
    Check a configuration without running anything.

    Loads and schema-checks every document, merges them, and validates
    tasks, variables and prompts.
    """
    config = _config_location(config)

    async def do_validate() -> tuple[int, Any]:
        scaffolder = Scaffolder(settings=_settings(cwd), configure_logging=False)
        documents = await scaffolder.resolve_documents(config)
        merged = scaffolder.merge(documents)
        validate_all_tasks(merged.tasks, scaffolder.registry)
        ResolutionPipeline().validate(merged.variables, merged.prompts)
        return len(documents), merged

    try:
        count, merged = anyio.run(do_validate)
    except ScaffolderError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1) from e

    table = Table(title=f"Configuration {merged.name}")
    table.add_column("Item", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Documents", str(count))
    table.add_row("Tasks", str(len(merged.tasks)))
    table.add_row("Variables", str(len(merged.variables)))
    table.add_row("Prompts", str(len(merged.prompts)))
    console.print(table)
    console.print("[bold green]Configuration is valid[/bold green]")


if __name__ == "__main__":
    app()
