"""
CLI Interface
=============
Command-line interface for the certificate extraction engine.

Usage:
    python -m award_parser extract <path> [options]
    python -m award_parser batch <directory> [options]
    python -m award_parser inspect <path>
    python -m award_parser serve [options]
    python -m award_parser cache list|clear|delete
"""

from __future__ import annotations

import json
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table
from rich.text import Text

from . import __version__
from . import database as db
from .engine import ExtractionConfig, ExtractionEngine, result_to_json
from .normalizer import normalize
from .segmenter import segment
from .text_source import SUPPORTED_EXTENSIONS, TextExtractionError, TextExtractor

console = Console()

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])


@click.group()
@click.version_option(version=__version__, prog_name="award-parser")
def cli():
    """Award Parser: exam-certificate grade extractor."""
    pass


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--file-key",
    default=None,
    help="Cache identifier (defaults to the file name)",
)
@click.option(
    "--no-cache",
    is_flag=True,
    default=False,
    help="Skip the results cache for this run",
)
@click.option(
    "--no-ocr",
    is_flag=True,
    default=False,
    help="Never fall back to OCR for sparse PDFs",
)
@click.option(
    "--min-text-length",
    default=100,
    type=int,
    help="PDF text layers shorter than this trigger OCR",
)
@click.option(
    "--no-raw-text",
    is_flag=True,
    default=False,
    help="Omit the rawText debug preview from each student",
)
@click.option(
    "--db-path",
    default=None,
    help="Path to the SQLite results cache",
)
@click.option(
    "--log-level",
    default="INFO",
    type=LOG_LEVELS,
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def extract(
    path: str,
    file_key: str,
    no_cache: bool,
    no_ocr: bool,
    min_text_length: int,
    no_raw_text: bool,
    db_path: str,
    log_level: str,
    log_file: str,
    json_output: bool,
):
    """Extract student grades from a single certificate file."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = ExtractionConfig(
        use_cache=not no_cache,
        db_path=db_path,
        min_text_length=min_text_length,
        ocr_enabled=not no_ocr,
        include_raw_text=not no_raw_text,
        log_level=log_level,
        log_file=log_file,
    )

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Award Parser v{__version__}[/]\n"
                f"[dim]Extracting: {os.path.basename(path)}[/]",
                border_style="cyan",
            )
        )
        console.print()

    try:
        engine = ExtractionEngine(config)
        result = engine.extract(path, file_key=file_key)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except TextExtractionError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)

    if json_output:
        click.echo(result_to_json(result))
    else:
        _display_result(result)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", default=None, help="Write all results to this JSON file")
@click.option("--no-cache", is_flag=True, default=False, help="Skip the results cache")
@click.option("--no-ocr", is_flag=True, default=False, help="Disable OCR fallback")
@click.option("--db-path", default=None, help="Path to the SQLite results cache")
@click.option("--log-level", default="WARNING", type=LOG_LEVELS, help="Logging level")
@click.option(
    "--parallel", "-j",
    default=1,
    type=int,
    help="Number of parallel extraction workers (1 = sequential)",
)
def batch(
    directory: str,
    output: str,
    no_cache: bool,
    no_ocr: bool,
    db_path: str,
    log_level: str,
    parallel: int,
):
    """Extract every supported certificate file in a directory."""

    files = sorted(
        p for p in Path(directory).iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
    )

    if not files:
        console.print(f"[yellow]No supported files found in: {directory}[/]")
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Batch Certificate Extraction[/]\n"
            f"[dim]Found {len(files)} files in: {directory}[/]",
            border_style="cyan",
        )
    )
    console.print()

    engine = ExtractionEngine(ExtractionConfig(
        use_cache=not no_cache,
        db_path=db_path,
        ocr_enabled=not no_ocr,
        log_level=log_level,
    ))

    results = []
    errors = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Processing files...", total=len(files))

        with ThreadPoolExecutor(max_workers=max(1, parallel)) as pool:
            futures = {
                pool.submit(engine.extract, str(f)): f for f in files
            }
            for future in as_completed(futures):
                file = futures[future]
                progress.update(task, description=f"Done: {file.name}")
                try:
                    results.append((file.name, future.result()))
                except Exception as e:
                    errors.append((file.name, str(e)))
                progress.advance(task)

    results.sort(key=lambda item: item[0])
    errors.sort(key=lambda item: item[0])

    if output:
        payload = [r.model_dump(by_alias=True, mode="json") for _, r in results]
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        console.print(f"[dim]Results written to {output}[/]")

    _display_batch_summary(results, errors)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--no-ocr", is_flag=True, default=False, help="Disable OCR fallback")
def inspect(path: str, no_ocr: bool):
    """Show the normalized text and student chunks of a file (debugging)."""

    try:
        extracted = TextExtractor(ocr_enabled=not no_ocr).extract(path)
    except TextExtractionError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    normalized = normalize(extracted.text)
    chunks = segment(normalized)

    console.print()
    console.print(
        f"[bold]Method:[/] {extracted.method.value}  "
        f"[bold]Raw chars:[/] {len(extracted.text)}  "
        f"[bold]Chunks:[/] {len(chunks)}"
    )
    console.print()

    for index, chunk in enumerate(chunks, start=1):
        console.print(
            Panel(Text(chunk), title=f"Chunk {index}", border_style="cyan")
        )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP extraction service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Award Parser Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Cache Commands ───────────────────────────────────────────────────────────


@cli.group()
def cache():
    """Inspect or clear the results cache."""
    pass


@cache.command("list")
@click.option("--db-path", default=None, help="Path to the SQLite results cache")
def cache_list(db_path: str):
    """List cached extractions."""
    db.init_db(db_path)
    entries = db.list_cached(db_path)

    if not entries:
        console.print("[yellow]Cache is empty[/]")
        return

    table = Table(title="Cached Extractions", border_style="cyan")
    table.add_column("Key", style="bold")
    table.add_column("File")
    table.add_column("Method")
    table.add_column("Students", justify="right")
    table.add_column("Updated")

    for entry in entries:
        table.add_row(
            entry["file_key"],
            entry["file_name"],
            entry["method"],
            str(entry["student_count"]),
            entry["updated_at"],
        )
    console.print(table)


@cache.command("clear")
@click.option("--db-path", default=None, help="Path to the SQLite results cache")
@click.confirmation_option(prompt="Delete every cached extraction?")
def cache_clear(db_path: str):
    """Delete every cache entry."""
    db.init_db(db_path)
    count = db.clear_cache(db_path)
    console.print(f"[green]Removed {count} cache entries[/]")


@cache.command("delete")
@click.argument("file_key")
@click.option("--db-path", default=None, help="Path to the SQLite results cache")
def cache_delete(file_key: str, db_path: str):
    """Delete one cache entry by key."""
    db.init_db(db_path)
    if db.delete_cached_results(file_key, db_path):
        console.print(f"[green]Deleted {file_key}[/]")
    else:
        console.print(f"[yellow]No cache entry for {file_key}[/]")
        sys.exit(1)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_result(result):
    """Display extracted students as rich tables."""
    console.print(
        f"[dim]File: {result.file_name} | Method: {result.method.value} | "
        f"Text: {result.text_length} chars | "
        f"Cached: {'yes' if result.cached else 'no'}[/]"
    )
    console.print()

    if not result.students:
        console.print("[yellow]No candidates found in this file.[/]")
        console.print()
        return

    for student in result.students:
        table = Table(
            title=f"{student.candidate_name}",
            caption=f"UCI {student.uci} | DOB {student.dob}",
            border_style="green",
        )
        table.add_column("Code", style="bold")
        table.add_column("Subject")
        table.add_column("Grade", justify="center")

        for grade in student.results:
            table.add_row(grade.code or "-", grade.subject, grade.grade)

        if not student.results:
            table.add_row("-", "[dim](no awards found)[/]", "-")

        console.print(table)
        console.print()


def _display_batch_summary(results, errors):
    """Display batch processing summary."""
    console.print()

    table = Table(title="Batch Processing Summary", border_style="cyan")
    table.add_column("File", style="bold")
    table.add_column("Students", justify="right")
    table.add_column("Grades", justify="right")
    table.add_column("Method")
    table.add_column("Status", justify="center")

    total_students = 0
    total_grades = 0

    for name, result in results:
        grade_count = sum(len(s.results) for s in result.students)
        total_students += len(result.students)
        total_grades += grade_count

        status = "[green]✓[/]" if result.students else "[yellow]⚠ empty[/]"
        table.add_row(
            name,
            str(len(result.students)),
            str(grade_count),
            result.method.value + (" (cached)" if result.cached else ""),
            status,
        )

    for name, error in errors:
        table.add_row(name, "-", "-", "-", f"[red]✗ {error}[/]")

    console.print(table)
    console.print()
    console.print(
        f"[bold]Total:[/] {total_students} students, {total_grades} grades "
        f"from {len(results)} files, {len(errors)} failures"
    )
    console.print()


# ─── Entry point (for python -m award_parser.cli) ─────────────────────────────


if __name__ == "__main__":
    cli()
