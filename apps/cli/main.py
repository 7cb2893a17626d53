"""CLI application for Liberator."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from liberation.config import LiberationConfig
from liberation.errors import LiberationError, RunAbandoned
from liberation.logging import configure_logging
from liberation.models import AnalysisResult, Severity
from liberation.pipeline import Liberator, RunOptions

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "dim",
}


def build_liberator(config: LiberationConfig) -> Liberator:
    """Liberator wired to local storage; patched in tests."""
    return Liberator.from_config(config)


def load_liberator() -> Liberator:
    """Liberator for the current environment; bad settings end the command."""
    try:
        return build_liberator(LiberationConfig.from_env())
    except LiberationError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


def score_style(score: int) -> str:
    if score >= 80:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def render_analysis(analysis: AnalysisResult) -> None:
    """Print the score, issue table and recommendations."""
    platform = analysis.detected_platform or "none detected"
    console.print(
        f"Portability score: [{score_style(analysis.score)}]{analysis.score}/100[/] "
        f"(platform: {platform})"
    )

    if analysis.issues:
        table = Table(title="Issues")
        table.add_column("Severity")
        table.add_column("File")
        table.add_column("Line", justify="right")
        table.add_column("Description")
        for issue in analysis.issues:
            table.add_row(
                f"[{SEVERITY_STYLES[issue.severity]}]{issue.severity.value}[/]",
                issue.file_path,
                str(issue.line or ""),
                issue.description,
            )
        console.print(table)
    else:
        console.print("No proprietary signals found")

    if analysis.files_to_remove:
        console.print(f"Files to remove: {', '.join(analysis.files_to_remove)}")
    for recommendation in analysis.recommendations:
        console.print(f"  • {recommendation}")


def format_json_output(analysis: AnalysisResult) -> str:
    """Format JSON output."""
    return json.dumps(analysis.to_dict(), indent=2, default=str)


app = typer.Typer(
    name="liberator",
    help="Liberator - Remove proprietary-platform coupling from generated projects",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Liberator - Remove proprietary-platform coupling from generated projects."""
    configure_logging(verbose=verbose)


@app.command()
def analyze(
    source: str = typer.Argument(help="Path to a .zip export or a GitHub URL / owner/repo"),
    ref: str | None = typer.Option(None, "--ref", help="Branch, tag or commit"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
) -> None:
    """Analyze a project and report its portability score."""
    liberator = load_liberator()

    try:
        retrieval = asyncio.run(liberator.retrieve(source, ref))
        analysis = liberator.analyze(retrieval.snapshot)
    except LiberationError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    if format_type == "json":
        console.print_json(format_json_output(analysis))
    else:
        render_analysis(analysis)
        if retrieval.skipped:
            console.print(f"Skipped {len(retrieval.skipped)} files", style="yellow")


@app.command()
def liberate(
    source: str = typer.Argument(help="Path to a .zip export or a GitHub URL / owner/repo"),
    ref: str | None = typer.Option(None, "--ref", help="Branch, tag or commit"),
    name: str | None = typer.Option(None, "--name", help="Project name used inside the archive"),
    output: Path | None = typer.Option(None, "--out", "-o", help="Write the archive to this path"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip the AI-assisted rewrite"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    owner: str = typer.Option("local", "--owner", help="Owner recorded in the history"),
) -> None:
    """Clean a project and package it as a self-hostable archive."""
    liberator = load_liberator()

    def approve(analysis: AnalysisResult) -> bool:
        render_analysis(analysis)
        if yes:
            return True
        # The live progress bar would redraw over the prompt.
        progress.stop()
        accepted = typer.confirm("Proceed with cleaning?", default=True)
        if accepted:
            progress.start()
        return accepted

    options = RunOptions(
        project_name=name,
        owner_id=owner,
        use_ai=not no_ai,
        ref=ref,
        approve=approve,
    )

    progress = Progress(
        TextColumn("{task.description}"), BarColumn(), TextColumn("{task.percentage:>3.0f}%"),
        console=console, transient=True,
    )
    task = progress.add_task("Starting", total=100)

    def on_progress(percent: int, message: str) -> None:
        progress.update(task, completed=percent, description=message)

    try:
        with progress:
            result = asyncio.run(liberator.run(source, options, on_progress))
    except RunAbandoned:
        console.print("Cancelled", style="yellow")
        raise typer.Exit(2)
    except LiberationError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    stats = result.stats
    console.print(
        f"Score: {result.analysis.score} -> "
        f"[{score_style(result.score_after)}]{result.score_after}[/]"
    )
    console.print(
        f"Removed {stats.files_removed} files, rewrote {stats.files_changed_locally} locally "
        f"and {stats.files_changed_by_ai} with AI, dropped {stats.dependencies_removed} "
        f"dependencies, generated {stats.polyfills_generated} polyfills"
    )
    if result.skipped_files:
        console.print(f"Skipped {len(result.skipped_files)} files", style="yellow")
    if result.record is None:
        console.print("Warning: run was not recorded in history", style="yellow")

    if output:
        output.write_bytes(liberator.store.get(result.archive_ref))
        console.print(f"Wrote archive to {output}")
    else:
        console.print(f"Archive reference: {result.archive_ref}")


@app.command()
def history(
    owner: str = typer.Option("local", "--owner", help="Owner whose runs to list"),
) -> None:
    """List previous runs, newest first."""
    liberator = load_liberator()
    try:
        records = liberator.ledger.list(owner)
    except LiberationError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    if not records:
        console.print("No runs recorded")
        return

    table = Table(title="Runs")
    for column in ("Run", "Project", "Before", "After", "Files", "Created"):
        table.add_column(column)
    for record in records:
        table.add_row(
            record.run_id,
            record.project_name,
            str(record.score_before),
            str(record.score_after),
            str(record.files_total),
            record.created_at,
        )
    console.print(table)


@app.command()
def forget(
    run_id: str = typer.Argument(help="Run to delete from the history"),
    owner: str = typer.Option("local", "--owner", help="Owner of the run"),
) -> None:
    """Delete one run from the history."""
    liberator = load_liberator()
    try:
        deleted = liberator.ledger.delete(run_id, owner)
    except LiberationError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    if not deleted:
        console.print(f"Error: No run {run_id} for {owner}", style="red")
        raise typer.Exit(1)
    console.print(f"Deleted run {run_id}")


if __name__ == "__main__":
    app()
