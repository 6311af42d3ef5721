"""Run reports for export and import.

``ExportSummary`` collects per-database results of an export run.  The
``render_*`` functions print plans and summaries as rich tables; listings
always follow database order and stage order, whatever order results were
recorded in.

Usage:
    from rich.console import Console
    from db_artifacts.reporting import render_import_summary

    render_import_summary(ledger, Console())
"""

from pathlib import Path

from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from db_artifacts.artifacts.formatting import format_elapsed, format_size
from db_artifacts.artifacts.models import (
    ArtifactSet,
    ImportLedger,
    ImportOutcome,
    Stage,
)

_OUTCOME_LABELS = {
    ImportOutcome.SUCCEEDED: "[green]v succeeded[/green]",
    ImportOutcome.FAILED: "[bold red]x failed[/bold red]",
    ImportOutcome.SKIPPED_ABSENT: "[dim]- not found[/dim]",
    ImportOutcome.SKIPPED_EMPTY: "[dim]- empty[/dim]",
}


# ============================================================================
# Export
# ============================================================================


class ExportSummary(BaseModel):
    """Outcome of an export run across all selected databases."""

    output_dir: Path
    include_full: bool = True
    databases: list[str] = Field(default_factory=list)
    artifact_sets: dict[str, ArtifactSet] = Field(default_factory=dict)
    failures: dict[str, str] = Field(default_factory=dict)

    def record_success(self, artifact_set: ArtifactSet) -> None:
        self.artifact_sets[artifact_set.database] = artifact_set

    def record_failure(self, database: str, reason: str) -> None:
        self.failures[database] = reason

    @property
    def succeeded(self) -> list[ArtifactSet]:
        """Exported artifact sets, in selection order."""
        return [self.artifact_sets[db] for db in self.databases if db in self.artifact_sets]

    @property
    def failed(self) -> list[str]:
        """Databases that could not be exported, in selection order."""
        return [db for db in self.databases if db in self.failures]

    @property
    def partial(self) -> list[str]:
        """Exported databases where at least one stage failed."""
        return [s.database for s in self.succeeded if s.has_errors]


def render_export_summary(summary: ExportSummary, console: Console) -> None:
    """Print the export summary: counts, then each database's files."""
    overview = Table(title="Dump Summary", show_header=False)
    overview.add_column("Key", style="dim")
    overview.add_column("Value")
    overview.add_row("Output directory", escape(str(summary.output_dir)))
    overview.add_row("Full dump", "yes" if summary.include_full else "skipped")
    overview.add_row("Total databases", str(len(summary.databases)))
    overview.add_row("Successful", f"[green]{len(summary.succeeded)}[/green]")
    overview.add_row("Failed", f"[red]{len(summary.failed)}[/red]" if summary.failed else "0")
    console.print(overview)

    for artifact_set in summary.succeeded:
        files = Table(title=f"[bold cyan]{escape(artifact_set.database)}[/bold cyan]",
                      show_header=True, header_style="bold")
        files.add_column("File")
        files.add_column("Size", justify="right")
        files.add_column("Note", style="dim")
        for artifact in artifact_set.files:
            note = ""
            if artifact.stage in artifact_set.stage_errors:
                note = "[red]stage failed[/red]"
            elif artifact.is_empty:
                note = "empty"
            files.add_row(artifact.path.name, format_size(artifact.size_bytes), note)
        console.print(files)

    if summary.partial:
        console.print(
            f"[yellow]Stages failed in:[/yellow] {escape(', '.join(summary.partial))}"
        )
    if summary.failed:
        console.print(f"[bold red]FAILED databases:[/bold red] {escape(', '.join(summary.failed))}")
        for database in summary.failed:
            console.print(f"  {escape(database)}: {escape(summary.failures[database])}", style="dim")


# ============================================================================
# Import
# ============================================================================


def render_import_plan(artifact_set: ArtifactSet, server: str, console: Console) -> None:
    """Print what an import will do before it starts."""
    plan = Table(title="Import Plan", show_header=True, header_style="bold")
    plan.add_column("File")
    plan.add_column("Size", justify="right")
    plan.add_column("Action", style="dim")

    for stage in Stage.import_order():
        artifact = artifact_set.get(stage)
        if artifact is None:
            plan.add_row(stage.filename, "", "not found, skipping")
        elif artifact.is_empty:
            plan.add_row(stage.filename, format_size(artifact.size_bytes), "will skip - empty")
        else:
            plan.add_row(stage.filename, format_size(artifact.size_bytes), "import")

    console.print(
        f"Target DB: [bold cyan]{escape(artifact_set.database)}[/bold cyan]  "
        f"Source dir: {escape(str(artifact_set.directory))}  Server: {escape(server)}  "
        f"Total size: {format_size(artifact_set.total_bytes)}"
    )
    console.print(plan)


def render_import_summary(ledger: ImportLedger, console: Console) -> None:
    """Print the ledger in stage order, outcome counts and verification."""
    results = Table(title="Import Summary", show_header=True, header_style="bold")
    results.add_column("File")
    results.add_column("Outcome")
    results.add_column("Size", justify="right")
    results.add_column("Time", justify="right")
    for result in sorted(ledger.results, key=lambda r: r.stage.position):
        results.add_row(
            result.stage.filename,
            _OUTCOME_LABELS[result.outcome],
            format_size(result.size_bytes) if result.size_bytes else "",
            format_elapsed(result.elapsed_seconds)
            if result.outcome in (ImportOutcome.SUCCEEDED, ImportOutcome.FAILED)
            else "",
        )
    console.print(results)

    counts = ledger.counts()
    console.print(
        f"Database: [bold cyan]{escape(ledger.database)}[/bold cyan]  "
        f"Total time: {format_elapsed(ledger.elapsed_seconds)}  "
        f"Total size: {format_size(ledger.total_bytes)}"
    )
    console.print(
        f"Successful: {counts[ImportOutcome.SUCCEEDED]}  "
        f"Skipped: {counts[ImportOutcome.SKIPPED_ABSENT] + counts[ImportOutcome.SKIPPED_EMPTY]}  "
        f"Failed: {counts[ImportOutcome.FAILED]}"
    )
    if ledger.halted:
        console.print("[yellow]Import aborted by operator; remaining stages not run.[/yellow]")

    for result in ledger.results:
        if result.outcome is ImportOutcome.FAILED and result.error:
            console.print(f"[red]{result.stage.filename}:[/red] {escape(result.error)}")

    verification = ledger.verification
    tables = "unknown" if verification.table_count is None else str(verification.table_count)
    rows = "unknown" if verification.row_count is None else f"{verification.row_count} (approximate)"
    console.print(f"Verification: tables {tables}, rows {rows}")
