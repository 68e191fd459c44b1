"""
Row trace tool for QA of statement recognition.

Shows every line (PDF) or record (CSV) with the decision the recognizer and
flow classifier made about it.
"""
from typing import List, Optional
import logging

from rich.console import Console
from rich.table import Table

from ..core.classify import build_classifiers
from ..core.detectors import BankFormatRegistry
from ..core.patterns import PatternTables, default_tables
from ..core.runner import AUTO_BANK, default_extractor
from ..core.tables import CsvRowRecognizer, PdfLineRecognizer, RowDecision, RowReason
from ..core.loader import TextExtractor
from ..models.schema import ParseOptions, SourceFormat

logger = logging.getLogger(__name__)

VERDICT_STYLES = {
    'expense': 'green',
    'inflow': 'blue',
}


class TracedRow:
    """A recognizer decision plus the flow verdict for accepted rows."""
    def __init__(self, decision: RowDecision, verdict: str, matched_phrase: Optional[str] = None):
        self.decision = decision
        self.verdict = verdict
        self.matched_phrase = matched_phrase

    @property
    def line_no(self) -> int:
        return self.decision.line_no

    def __repr__(self):
        return f"TracedRow(line_no={self.line_no}, verdict={self.verdict})"


def trace_rows(data: bytes, options: Optional[ParseOptions] = None,
               extractor: Optional[TextExtractor] = None,
               registry: Optional[BankFormatRegistry] = None,
               tables: Optional[PatternTables] = None) -> List[TracedRow]:
    """
    Trace how each line of a document is treated.

    Args:
        data: Raw PDF or CSV bytes
        options: Parse options (password, format, bank)
        extractor: Text extractor override
        registry: Bank format registry override
        tables: Pattern tables override

    Returns:
        One TracedRow per non-blank line or record

    Raises:
        ExtractionError: the document cannot be read
        ValueError: the bank cannot be resolved
    """
    options = options or ParseOptions()
    extractor = extractor or default_extractor(options.source_format)
    registry = registry or BankFormatRegistry()
    flow, _ = build_classifiers(tables or default_tables())

    text = extractor.extract(data, options.password)

    bank_id = registry.detect_bank(text) if options.bank == AUTO_BANK else options.bank
    bank_format = registry.get_format(bank_id) if bank_id else None
    if bank_format is None:
        raise ValueError(f"Could not resolve bank format: {options.bank}")

    if options.source_format is SourceFormat.CSV:
        decisions = CsvRowRecognizer(bank_format).decisions(text)
    else:
        decisions = PdfLineRecognizer().decisions(text)

    traced = []
    for decision in decisions:
        if not decision.accepted:
            traced.append(TracedRow(decision, decision.reason.value))
            continue
        row = decision.row
        phrase = flow.matched_phrase(row.remainder)
        if row.is_inflow:
            traced.append(TracedRow(decision, 'inflow', 'deposit column'))
        elif phrase:
            traced.append(TracedRow(decision, 'inflow', phrase))
        else:
            traced.append(TracedRow(decision, 'expense'))
    return traced


def render_trace(traced: List[TracedRow], console: Optional[Console] = None,
                 only_rows: bool = False):
    """
    Print traced rows as a table.

    Args:
        traced: Output of :func:`trace_rows`
        console: Console to print to
        only_rows: Hide lines that did not match the row pattern at all
    """
    console = console or Console()
    table = Table(title="Row trace")
    table.add_column("Line", justify="right")
    table.add_column("Verdict")
    table.add_column("Date/Time")
    table.add_column("Amount", justify="right")
    table.add_column("Text", overflow="fold")

    for entry in traced:
        decision = entry.decision
        if only_rows and decision.reason in (RowReason.NO_MATCH, RowReason.HEADER):
            continue
        style = VERDICT_STYLES.get(entry.verdict, 'dim')
        verdict = entry.verdict
        if entry.matched_phrase:
            verdict = f"{verdict} ({entry.matched_phrase})"
        row = decision.row
        table.add_row(
            str(decision.line_no),
            f"[{style}]{verdict}[/{style}]",
            row.date_time.isoformat(sep=' ') if row else "",
            f"{row.amount:,.2f}" if row else "",
            decision.text,
        )

    console.print(table)

    expenses = sum(1 for entry in traced if entry.verdict == 'expense')
    inflows = sum(1 for entry in traced if entry.verdict == 'inflow')
    console.print(f"{expenses} expense rows, {inflows} inflow rows, {len(traced)} lines")
