"""
Command-line interface for the docvault pipeline.

The main entry point is the re-extraction batch job; the remaining commands
run the extractor, the keyword classifier and the LLM insight providers
against a single local file.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from docvault.batch.reextract import ReextractionRunner
from docvault.classification.insights import create_insight_provider
from docvault.classification.matcher import KeywordClassifier
from docvault.config import get_settings
from docvault.database import (
    ClassificationRuleRepository,
    DatabaseConnectionManager,
    DocumentRepository,
    SettingsRepository,
)
from docvault.document_processor.extractor import create_content_extractor
from docvault.document_processor.files import format_file_size
from docvault.models import BatchSummary, ClassificationResult, FileType, ItemStatus, ReextractionOutcome
from docvault.utils.errors import ConfigurationError, ExtractionError, PersistenceError
from docvault.utils.logging import get_logger, setup_logging

app = typer.Typer(
    name="docvault",
    help="Document text extraction and classification tools",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)


def _print_outcome(outcome: ReextractionOutcome) -> None:
    label = f"{outcome.title} (ID: {outcome.document_id})"
    if outcome.status is ItemStatus.SUCCESS:
        console.print(f"[green]✓[/green] {label}: {outcome.characters} characters")
    elif outcome.status is ItemStatus.EMPTY:
        console.print(f"[yellow]⚠[/yellow] {label}: no content extracted")
    else:
        console.print(f"[red]✗[/red] {label}: {outcome.error}")


def _summary_table(summary: BatchSummary) -> Table:
    table = Table(title="Re-extraction summary")
    table.add_column("Processed", justify="right")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(str(summary.processed), str(summary.success_count), str(summary.error_count))
    return table


async def _run_reextraction() -> BatchSummary:
    db = DatabaseConnectionManager()
    try:
        runner = ReextractionRunner(DocumentRepository(db), on_outcome=_print_outcome)
        return await runner.run()
    finally:
        health = db.get_health()
        logger.debug(f"Connection pool {health.status}: {health.error_count} connection errors")
        await db.close()


@app.command()
def reextract():
    """Extract text for every stored document that has none yet."""
    console.print("Starting re-extraction of stored documents...")
    try:
        summary = asyncio.run(_run_reextraction())
    except (PersistenceError, ConfigurationError) as e:
        console.print(f"[red]Fatal error:[/red] {e}")
        raise typer.Exit(1)

    console.print(_summary_table(summary))


def _resolve_file_type(path: Path, file_type: Optional[str]) -> FileType:
    if file_type is None:
        return FileType.from_filename(path.name)
    try:
        return FileType(file_type.lower())
    except ValueError:
        return FileType.UNKNOWN


@app.command()
def extract(
    path: Path = typer.Argument(..., help="Local document to extract"),
    file_type: Optional[str] = typer.Option(
        None,
        "--type",
        "-t",
        help="pdf, docx or xlsx (derived from the file name if omitted)",
    ),
):
    """Print the text extracted from a local document."""
    tag = _resolve_file_type(path, file_type)
    if not tag.is_extractable:
        console.print(f"[yellow]Nothing to extract:[/yellow] unsupported file type for {path.name}")
        return

    try:
        text = asyncio.run(create_content_extractor().extract(path, tag))
    except (ExtractionError, ConfigurationError) as e:
        console.print(f"[red]Extraction failed:[/red] {e}")
        raise typer.Exit(1)

    size = format_file_size(path.stat().st_size)
    console.print(f"[green]✓[/green] {path.name} ({tag.value}, {size}): {len(text)} characters")
    typer.echo(text)


@app.command()
def classify(
    path: Path = typer.Argument(..., help="Local document to classify"),
    owner: Optional[int] = typer.Option(None, "--owner", "-o", help="Only use this user's rules"),
    folder: Optional[int] = typer.Option(None, "--folder", "-f", help="Manually chosen folder"),
):
    """Show which folder the keyword rules would route a document into."""

    async def _classify() -> ClassificationResult:
        text = await create_content_extractor().extract(path, FileType.from_filename(path.name))
        db = DatabaseConnectionManager()
        try:
            classifier = KeywordClassifier(ClassificationRuleRepository(db))
            return await classifier.classify_document(
                text, title=path.name, owner_id=owner, manual_folder_id=folder
            )
        finally:
            await db.close()

    try:
        result = asyncio.run(_classify())
    except (ExtractionError, ConfigurationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if result.error:
        console.print(f"[yellow]Classification unavailable:[/yellow] {result.error}")
    elif result.auto_classified:
        folder_label = result.folder_name or f"folder {result.target_folder_id}"
        console.print(
            f"[green]✓[/green] Keyword '{result.matched_keyword}' -> {folder_label} (rule {result.rule_id})"
        )
    elif result.target_folder_id is not None:
        console.print(f"Manual folder {result.target_folder_id} kept")
    else:
        console.print("No classification rule matched")


@app.command()
def insights(
    path: Path = typer.Argument(..., help="Local document to analyze"),
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="gemini or ollama (defaults to AI_PROVIDER)",
    ),
    use_stored_settings: bool = typer.Option(
        False,
        "--stored-settings",
        help="Read provider URLs from the system_settings table",
    ),
):
    """Ask an LLM for the type, summary and tags of a local document."""

    async def _analyze():
        text = await create_content_extractor().extract(path, FileType.from_filename(path.name))
        db = DatabaseConnectionManager() if use_stored_settings else None
        try:
            name = (provider or get_settings().ai_provider).lower()
            kwargs = {}
            if db is not None and name == "ollama":
                kwargs["settings_repository"] = SettingsRepository(db)
            insight_provider = create_insight_provider(name, **kwargs)
            return await insight_provider.analyze(text, path.name)
        finally:
            if db is not None:
                await db.close()

    try:
        insight = asyncio.run(_analyze())
    except (ExtractionError, ConfigurationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if insight.error:
        console.print(f"[red]✗[/red] {insight.error}")
        raise typer.Exit(1)

    table = Table(title=f"Insights for {path.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Type", insight.document_type)
    table.add_row("Confidence", f"{insight.confidence:.2f}")
    table.add_row("Summary", insight.summary)
    table.add_row("Entities", ", ".join(insight.key_entities))
    table.add_row("Tags", ", ".join(insight.suggested_tags))
    console.print(table)


def _setup_logging_or_exit(log_level: Optional[str] = None) -> None:
    """Configure logging, exiting with status 1 on invalid settings."""
    try:
        setup_logging(log_level=log_level)
    except ConfigurationError as e:
        console.print(f"[red]Fatal error:[/red] {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """docvault - extract, classify and backfill document content."""
    _setup_logging_or_exit("DEBUG" if debug else None)


def reextract_main() -> None:
    """Entry point for the no-argument ``docvault-reextract`` script."""
    try:
        setup_logging()
    except ConfigurationError as e:
        console.print(f"[red]Fatal error:[/red] {e}")
        raise SystemExit(1)
    typer.run(reextract)


if __name__ == "__main__":
    app()
