"""
Rendering of validation results as rich console tables and markdown.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Final

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .comparison import LATEST_COMMIT_SHA_METRIC, count_statuses
from .models import ResultGroup, ValidationStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import ComparisonResult, RepositorySnapshot
    from .validator import BatchResult, RepositoryValidationResult

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

VERDICT_FAILED: Final[str] = "❌ Migration validation FAILED - Some data is missing in target"
VERDICT_WARNINGS: Final[str] = "⚠️ Migration validation completed with WARNINGS - Target has more data than source"
VERDICT_PASSED: Final[str] = "✅ Migration validation PASSED - All data matches!"

_GROUP_TITLES: Final[dict[ResultGroup, str]] = {
    ResultGroup.STANDARD: "🔄 Source vs Target Validation",
    ResultGroup.ARCHIVE_VS_SOURCE: "📦 Migration Archive vs Source Validation",
    ResultGroup.ARCHIVE_VS_TARGET: "🎯 Migration Archive vs Target Validation",
}

_STATUS_STYLES: Final[dict[ValidationStatus, str]] = {
    ValidationStatus.PASS: "green",
    ValidationStatus.FAIL: "red",
    ValidationStatus.WARN: "yellow",
    ValidationStatus.INFO: "cyan",
}


def difference_text(result: ComparisonResult) -> str:
    if result.difference > 0:
        return f"Missing: {result.difference}"
    if result.difference < 0:
        return f"Extra: {-result.difference}"
    if result.metric == LATEST_COMMIT_SHA_METRIC:
        return "N/A"
    return "Perfect match"


def verdict(results: Sequence[ComparisonResult]) -> str:
    counts = count_statuses(results)
    if counts.failed:
        return VERDICT_FAILED
    if counts.warnings:
        return VERDICT_WARNINGS
    return VERDICT_PASSED


def _value_headers(group: ResultGroup, source_label: str) -> tuple[str, str]:
    if group is ResultGroup.ARCHIVE_VS_SOURCE:
        return f"{source_label} API Value", "Archive Value"
    if group is ResultGroup.ARCHIVE_VS_TARGET:
        return "Archive Value", "Target Value"
    return f"{source_label} Value", "Target Value"


def _results_table(title: str, results: Sequence[ComparisonResult], group: ResultGroup, source_label: str) -> Table:
    source_header, target_header = _value_headers(group, source_label)
    table = Table(title=title, box=box.ROUNDED, title_justify="left")
    table.add_column("Metric", style="bold")
    table.add_column("Status")
    table.add_column(source_header, justify="right")
    table.add_column(target_header, justify="right")
    table.add_column("Difference")
    for result in results:
        table.add_row(
            result.metric,
            f"[{_STATUS_STYLES[result.status]}]{result.status.message}[/]",
            str(result.source_value),
            str(result.target_value),
            difference_text(result),
        )
    return table


def render_console(
    source: RepositorySnapshot,
    target: RepositorySnapshot,
    results: Sequence[ComparisonResult],
    console: Console | None = None,
    *,
    source_label: str = "Source",
) -> None:
    """Print the validation report: one table per result group, summary counts and verdict."""
    console = console or Console()
    console.print(Panel("📊 Migration Validation Report", style="bold white on blue"))
    console.print(f"[bold]{source_label} Repository:[/bold] {source.identity}")
    console.print(f"[bold]Target Repository:[/bold] {target.identity}\n")

    for group, title in _GROUP_TITLES.items():
        grouped = [result for result in results if result.group is group]
        if grouped:
            title = title.replace("Source", source_label) if group is ResultGroup.STANDARD else title
            console.print(_results_table(title, grouped, group, source_label))
            console.print()

    counts = count_statuses(results)
    console.print(f"📊 [green]Passed: {counts.passed}[/green]")
    console.print(f"📊 [red]Failed: {counts.failed}[/red]")
    console.print(f"📊 [yellow]Warnings: {counts.warnings}[/yellow]")
    if counts.info:
        console.print(f"📊 [cyan]Info: {counts.info}[/cyan]")
    console.print()

    final = verdict(results)
    style = "red" if counts.failed else "yellow" if counts.warnings else "green"
    console.print(f"[bold {style}]{final}[/]")


def render_markdown(
    source: RepositorySnapshot,
    target: RepositorySnapshot,
    results: Sequence[ComparisonResult],
    *,
    source_label: str = "Source",
) -> str:
    """Render the report as markdown, one table per result group with that group's value headers."""
    lines = [
        "# Migration Validation Report",
        "",
        f"**{source_label}:** `{source.identity}`  ",
        f"**Target:** `{target.identity}`  ",
    ]
    for group, title in _GROUP_TITLES.items():
        grouped = [result for result in results if result.group is group]
        if not grouped:
            continue
        title = title.replace("Source", source_label) if group is ResultGroup.STANDARD else title
        source_header, target_header = _value_headers(group, source_label)
        lines += [
            "",
            f"## {title}",
            "",
            f"| Metric | Status | {source_header} | {target_header} | Difference |",
            "|--------|--------|--------------|--------------|------------|",
        ]
        lines.extend(
            f"| {result.metric} | {result.status.message} | {result.source_value} | "
            f"{result.target_value} | {difference_text(result)} |"
            for result in grouped
        )

    counts = count_statuses(results)
    lines += [
        "",
        "## Summary",
        "",
        f"- **Passed:** {counts.passed}  ",
        f"- **Failed:** {counts.failed}  ",
        f"- **Warnings:** {counts.warnings}  ",
    ]
    if counts.info:
        lines.append(f"- **Info:** {counts.info}  ")
    lines += ["", f"**Result:** {verdict(results)}", ""]
    return "\n".join(lines)


def print_markdown(markdown: str, console: Console | None = None) -> None:
    """Print markdown inside a code fence so it can be copied as-is."""
    console = console or Console()
    console.print("[bold]📋 Markdown Table (Copy-Paste Ready)[/bold]")
    console.print("```markdown", markup=False, highlight=False)
    console.print(markdown, markup=False, highlight=False)
    console.print("```", markup=False, highlight=False)


def write_markdown(markdown: str, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(markdown, encoding="utf-8")
    logger.info(f"Markdown report saved to {path}")


def render_batch_console(batch: BatchResult, console: Console | None = None) -> None:
    """One row per repository followed by the batch summary."""
    console = console or Console()
    table = Table(
        title=f"📋 Batch Validation: {batch.source_organization} → {batch.target_organization}",
        box=box.ROUNDED,
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Source", style="bold cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for index, repository in enumerate(batch.repositories, start=1):
        table.add_row(
            str(index),
            repository.source.name,
            repository.target.name,
            f"[{_STATUS_STYLES[repository.status]}]{repository.status.message}[/]",
            repository.failure_reason,
        )
    console.print(table)

    summary = batch.summary
    console.print(
        f"\nTotal: {summary.total}  [green]Passed: {summary.passed}[/green]  "
        f"[red]Failed: {summary.failed}[/red]  [yellow]Warnings: {summary.warnings}[/yellow]  "
        f"Errors: {summary.errors}"
    )


def render_repository_detail(
    batch: BatchResult, repository: RepositoryValidationResult, console: Console | None = None
) -> None:
    """Detailed view of one repository from a saved batch session."""
    console = console or Console()
    console.print(Panel(f"📊 Detailed Report: {repository.source.name}", style="bold white on blue"))
    console.print(f"[bold]Source Repository:[/bold] {repository.source}")
    console.print(f"[bold]Target Repository:[/bold] {repository.target}\n")

    if repository.status is ValidationStatus.PASS:
        console.print("[green]✅ Repository validation PASSED - All data matches![/green]")
    elif repository.status is ValidationStatus.FAIL:
        console.print(f"[red]❌ Repository validation FAILED - {repository.failure_reason}[/red]")
    else:
        console.print(f"[yellow]⚠️ Repository validation has WARNINGS - {repository.failure_reason}[/yellow]")
    console.print()

    if repository.results:
        console.print(_results_table("📋 Detailed Metrics", repository.results, ResultGroup.STANDARD, "Source"))
        console.print()

    session_table = Table(title="📅 Session Information", box=box.ROUNDED, title_justify="left")
    session_table.add_column("Property", style="cyan")
    session_table.add_column("Value")
    session_table.add_row("Validation Time", batch.timestamp.strftime("%Y-%m-%d %H:%M:%S"))
    session_table.add_row("Source Organization", batch.source_organization)
    session_table.add_row("Target Organization", batch.target_organization)
    session_table.add_row("Total Repositories", str(batch.summary.total))
    session_table.add_row(
        "Batch Status", f"{batch.summary.passed}✅ {batch.summary.failed}❌ {batch.summary.warnings}⚠️"
    )
    console.print(session_table)
