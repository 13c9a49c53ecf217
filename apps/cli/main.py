"""CLI application for depsync."""

from pathlib import Path

import typer
from rich.console import Console

from depsync.config import ValidateOptions, ValidationConfig
from depsync.logging import setup_logging
from depsync.orchestrator import validate
from depsync.report import render_report, report_to_json

console = Console()

app = typer.Typer(
    name="depsync",
    help="depsync - Keep R code, DESCRIPTION and renv.lock in sync",
    add_completion=False,
)


@app.command()
def check(
    project_root: Path = typer.Argument(Path("."), help="Project directory containing DESCRIPTION and renv.lock"),
    fix: bool = typer.Option(False, "--fix", help="Add missing packages to DESCRIPTION and renv.lock"),
    strict: bool = typer.Option(False, "--strict", help="Also scan tests/, vignettes/ and inst/; report unused Imports"),
    prune: bool = typer.Option(False, "--prune", help="With --strict --fix, remove unused Imports"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show filtered names and debug logs"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
    exclude: list[str] = typer.Option([], "--exclude", "-x", help="Package name to ignore (repeatable)"),
    registry_url: str | None = typer.Option(None, "--registry-url", help="Registry base URL"),
    concurrency: int | None = typer.Option(None, "--concurrency", min=1, help="Maximum concurrent registry lookups"),
    timeout: float | None = typer.Option(None, "--timeout", help="Deadline in seconds for all registry lookups"),
) -> None:
    """Validate package dependencies, optionally repairing them."""
    if format_type not in ("table", "json"):
        console.print(f"Error: Unsupported format: {format_type}", style="red")
        raise typer.Exit(2)

    if not project_root.is_dir():
        console.print(f"Error: Directory {project_root} not found", style="red")
        raise typer.Exit(2)

    setup_logging(verbose=verbose, json_format=format_type == "json")

    overrides: dict = {"extra_excludes": frozenset(exclude)}
    if registry_url:
        overrides["registry_url"] = registry_url
    if concurrency:
        overrides["max_concurrency"] = concurrency
    config = ValidationConfig(**overrides)
    options = ValidateOptions(fix=fix, strict=strict, verbose=verbose, prune=prune, timeout=timeout)

    report, exit_code = validate(project_root, options, config)

    if format_type == "json":
        typer.echo(report_to_json(report))
    else:
        render_report(report, console, verbose=verbose)

    raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
