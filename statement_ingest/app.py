#!/usr/bin/env python3
"""
CLI interface for the bank statement ingestion pipeline.
"""
import typer
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.categorize import Categorizer
from .core.detectors import BankFormatRegistry
from .core.fingerprint import file_hash
from .core.loader import ExtractionError
from .core.providers import InMemoryFamilyConfigProvider
from .core.runner import default_extractor, parse_statement
from .models.schema import (
    CategorizeRequest, FamilySnapshot, ParseOptions, ParseResult, SourceFormat
)
from .tools.row_trace import render_trace, trace_rows

app = typer.Typer(help="Thai bank statement ingestion (KBank, SCB)")
console = Console()


def _source_format(csv: bool) -> SourceFormat:
    return SourceFormat.CSV if csv else SourceFormat.PDF


def _require_file(path: Path):
    if not path.exists():
        console.print(f"[red]Error: file not found: {path}[/red]")
        raise typer.Exit(1)


@app.command()
def parse(
    path: Path = typer.Argument(..., help="Path to statement PDF or CSV"),
    csv: bool = typer.Option(False, "--csv", help="Treat the file as a CSV export"),
    bank: str = typer.Option("kbank", "--bank", "-b", help="Bank format: kbank, scb or auto"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="PDF password"),
    output: Optional[Path] = typer.Option(None, "--out", "-o", help="Output JSON file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output")
):
    """Parse a bank statement into expense transactions as JSON."""
    _require_file(path)

    options = ParseOptions(password=password, source_format=_source_format(csv), bank=bank)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True
    ) as progress:
        progress.add_task("Parsing statement...", total=None)
        result = parse_statement(path.read_bytes(), options, verbose=verbose)

    if output:
        output.write_text(result.to_json(), encoding='utf-8')
        console.print(f"Output written to: {output}")
    else:
        console.print_json(result.to_json())

    if not result.success:
        console.print(f"[red]{result.error.value}: {result.error_message}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓ {len(result.transactions)} expenses, "
        f"{result.filtered_out_count} inflows filtered, "
        f"month {result.statement_month or '-'}[/green]"
    )


@app.command()
def detect(
    path: Path = typer.Argument(..., help="Path to statement PDF or CSV"),
    csv: bool = typer.Option(False, "--csv", help="Treat the file as a CSV export"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="PDF password")
):
    """Detect which bank produced a statement."""
    _require_file(path)

    try:
        text = default_extractor(_source_format(csv)).extract(path.read_bytes(), password)
    except ExtractionError as e:
        console.print(f"[red]Error reading document: {e}[/red]")
        raise typer.Exit(1)

    bank = BankFormatRegistry().detect_bank(text)
    if bank:
        console.print(f"[green]Detected bank: {bank}[/green]")
    else:
        console.print("[red]No matching bank format found[/red]")
        raise typer.Exit(1)


@app.command()
def categorize(
    result_path: Path = typer.Argument(..., help="ParseResult JSON produced by 'parse'"),
    snapshot_path: Path = typer.Argument(..., help="Family snapshot JSON (categories and rules)")
):
    """Categorize parsed transactions against a family's rules and categories."""
    _require_file(result_path)
    _require_file(snapshot_path)

    try:
        result = ParseResult.model_validate_json(result_path.read_text(encoding='utf-8'))
        snapshot = FamilySnapshot.model_validate_json(snapshot_path.read_text(encoding='utf-8'))
    except ValidationError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        raise typer.Exit(1)

    provider = InMemoryFamilyConfigProvider({snapshot.family_id: snapshot})
    requests: List[CategorizeRequest] = [
        CategorizeRequest.from_transaction(tx) for tx in result.transactions
    ]
    decisions = Categorizer(provider).categorize_batch(snapshot.family_id, requests)

    table = Table(title=f"Categories for family {snapshot.family_id}")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Description", overflow="fold")
    table.add_column("Category")
    table.add_column("Matched by")

    for tx, decision in zip(result.transactions, decisions):
        table.add_row(
            tx.date_time.isoformat(sep=' '),
            f"{tx.amount:,.2f}",
            tx.description_raw,
            decision.category_name or "-",
            decision.matched_rule or decision.matched_by.value,
        )
    console.print(table)


@app.command("hash")
def hash_file(
    path: Path = typer.Argument(..., help="Path to uploaded file")
):
    """Print the SHA-256 hash used to recognize re-uploaded files."""
    _require_file(path)
    console.print(file_hash(path.read_bytes()))


@app.command()
def validate(
    json_path: Path = typer.Argument(..., help="Path to JSON file to validate")
):
    """Validate a ParseResult JSON file against the schema."""
    try:
        data = ParseResult.model_validate_json(json_path.read_text(encoding='utf-8'))
    except (OSError, ValidationError) as e:
        console.print(f"[red]Validation failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]✓ JSON is valid[/green]")
    console.print(f"Success: {data.success}")
    console.print(f"Statement Month: {data.statement_month}")
    console.print(f"Transactions: {len(data.transactions)}")
    console.print(f"Filtered Out: {data.filtered_out_count}")


@app.command()
def trace(
    path: Path = typer.Argument(..., help="Path to statement PDF or CSV"),
    csv: bool = typer.Option(False, "--csv", help="Treat the file as a CSV export"),
    bank: str = typer.Option("kbank", "--bank", "-b", help="Bank format: kbank, scb or auto"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="PDF password"),
    only_rows: bool = typer.Option(False, "--only-rows", help="Hide lines that are not rows")
):
    """Show how each line of a statement was recognized."""
    _require_file(path)

    options = ParseOptions(password=password, source_format=_source_format(csv), bank=bank)
    try:
        traced = trace_rows(path.read_bytes(), options)
    except (ExtractionError, ValueError) as e:
        console.print(f"[red]Error tracing rows: {e}[/red]")
        raise typer.Exit(1)

    render_trace(traced, console, only_rows=only_rows)


if __name__ == "__main__":
    app()
