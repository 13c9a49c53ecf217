"""Human and JSON rendering of a run report."""

import json

from rich.console import Console
from rich.table import Table

from .models import Report, Severity

SEVERITY_STYLE = {
    Severity.CRITICAL: "red",
    Severity.WARNING: "yellow",
}


def render_report(report: Report, console: Console, verbose: bool = False) -> None:
    """Print every finding and recoverable error, whatever the exit code."""
    summary = report.summary
    console.print(
        f"Found {summary.code_packages} packages in code, "
        f"{summary.manifest_packages} in DESCRIPTION, "
        f"{summary.lock_packages} in renv.lock"
    )

    if report.findings:
        table = Table(title="Findings")
        table.add_column("Package")
        table.add_column("Problem")
        table.add_column("Severity")
        table.add_column("Status")
        remaining = set(report.remaining)
        for finding in report.findings:
            style = SEVERITY_STYLE[finding.severity]
            if finding.package_name in report.unresolved:
                status = "unresolved"
            elif finding in remaining:
                status = "open"
            else:
                status = "fixed"
            table.add_row(
                finding.package_name,
                finding.kind.value.replace("_", " "),
                f"[{style}]{finding.severity.value}[/{style}]",
                status,
            )
        console.print(table)

    for name in report.manifest_added:
        console.print(f"[green]+ DESCRIPTION Imports: {name}[/green]")
    for name in report.manifest_removed:
        console.print(f"[yellow]- DESCRIPTION Imports: {name}[/yellow]")
    for metadata in report.lock_added:
        console.print(
            f"[green]+ renv.lock: {metadata.name} {metadata.latest_version} ({metadata.source_type})[/green]"
        )

    for name, reason in sorted(report.unresolved.items()):
        console.print(f"[red]Unresolved {name}: {reason}[/red]")

    for error in report.extraction_errors:
        console.print(f"[yellow]Skipped unreadable file {error}[/yellow]")

    if verbose and report.rejected:
        table = Table(title="Filtered out")
        table.add_column("Name")
        table.add_column("Where")
        table.add_column("Rule")
        table.add_column("Reason")
        for reference, rule, reason in report.rejected:
            table.add_row(reference.name, f"{reference.file}:{reference.line}", rule, reason)
        console.print(table)

    if summary.lock_only and verbose:
        console.print(f"{len(summary.lock_only)} renv.lock packages are not declared (transitive)")

    if report.error:
        console.print(f"Error: {report.error}", style="red")

    if report.exit_code == 0:
        console.print("Repository READY for commit", style="green")
    else:
        console.print("Repository NOT READY for commit", style="red")


def report_to_json(report: Report) -> str:
    """Format JSON output."""
    payload = {
        "project_root": str(report.project_root),
        "exit_code": report.exit_code,
        "states": [state.value for state in report.states],
        "findings": [
            {
                "package": finding.package_name,
                "kind": finding.kind.value,
                "severity": finding.severity.value,
                "remaining": finding in report.remaining,
            }
            for finding in report.findings
        ],
        "unresolved": report.unresolved,
        "manifest_added": report.manifest_added,
        "manifest_removed": report.manifest_removed,
        "lock_added": [
            {
                "name": metadata.name,
                "version": metadata.latest_version,
                "source": metadata.source_type,
            }
            for metadata in report.lock_added
        ],
        "extraction_errors": report.extraction_errors,
        "summary": {
            "code_packages": report.summary.code_packages,
            "manifest_packages": report.summary.manifest_packages,
            "lock_packages": report.summary.lock_packages,
            "lock_only": report.summary.lock_only,
        },
        "error": report.error,
    }
    return json.dumps(payload, indent=2)
