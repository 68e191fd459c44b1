"""
End-to-end parsing orchestration.
"""
from typing import List, Optional
import logging

from pydantic import ValidationError

from .classify import build_classifiers
from .detectors import (
    BankFormatRegistry, detect_account_number, detect_statement_month, month_of_mode
)
from .fingerprint import transaction_fingerprint
from .loader import (
    CsvTextExtractor, ExtractionError, PasswordIncorrectError, PasswordRequiredError,
    PdfTextExtractor, TextExtractor
)
from .normalize import truncate_description
from .patterns import PatternTables, default_tables
from .tables import CsvRowRecognizer, PdfLineRecognizer, RawRow
from ..models.schema import (
    BankFormat, DocumentCheck, ParsedTransaction, ParseErrorCode, ParseOptions, ParseResult,
    SourceFormat
)

logger = logging.getLogger(__name__)

AUTO_BANK = "auto"

# Less stripped text than this means an image-only or empty PDF
MIN_TEXT_LENGTH = 50

UNREADABLE_PDF_MESSAGE = (
    "Could not extract text from PDF. Make sure it is a text-based statement, "
    "not a scanned image."
)


def default_extractor(source_format: SourceFormat) -> TextExtractor:
    if source_format is SourceFormat.CSV:
        return CsvTextExtractor()
    return PdfTextExtractor()


def _error_code(error: ExtractionError) -> ParseErrorCode:
    if isinstance(error, PasswordRequiredError):
        return ParseErrorCode.PASSWORD_REQUIRED
    if isinstance(error, PasswordIncorrectError):
        return ParseErrorCode.PASSWORD_INCORRECT
    return ParseErrorCode.UNREADABLE_DOCUMENT


class StatementParser:
    """Main parser class that orchestrates the entire parsing process."""

    def __init__(self, options: Optional[ParseOptions] = None,
                 extractor: Optional[TextExtractor] = None,
                 tables: Optional[PatternTables] = None,
                 registry: Optional[BankFormatRegistry] = None,
                 verbose: bool = False):
        self.options = options or ParseOptions()
        self.extractor = extractor or default_extractor(self.options.source_format)
        self.tables = tables or default_tables()
        self.registry = registry or BankFormatRegistry()
        self.verbose = verbose

        self.flow, self.inferrer = build_classifiers(self.tables)

        self.bank_format: Optional[BankFormat] = None
        if self.options.bank != AUTO_BANK:
            self.bank_format = self.registry.get_format(self.options.bank)
            if not self.bank_format:
                raise ValueError(f"Bank format not found: {self.options.bank}")

        if verbose:
            logging.basicConfig(level=logging.DEBUG)

    @property
    def is_csv(self) -> bool:
        return self.options.source_format is SourceFormat.CSV

    def parse(self, data: bytes) -> ParseResult:
        """
        Parse statement bytes into expense transactions.

        Args:
            data: Raw PDF or CSV bytes

        Returns:
            ParseResult; failures are reported through ``error``, never raised
        """
        provenance = {'source_format': self.options.source_format}
        if self.bank_format:
            provenance['bank'] = self.bank_format.bank_id

        try:
            text = self.extractor.extract(data, self.options.password)
            return self._parse_text(text, provenance)
        except ExtractionError as e:
            logger.warning(f"Extraction failed: {e}")
            return ParseResult.failure(_error_code(e), str(e), **provenance)
        except Exception as e:
            logger.error(f"Error parsing statement: {e}", exc_info=self.verbose)
            return ParseResult.failure(
                ParseErrorCode.PARSE_FAILED, f"Failed to parse statement: {e}", **provenance
            )

    def _parse_text(self, text: str, provenance: dict) -> ParseResult:
        if not self.is_csv and len(text.strip()) < MIN_TEXT_LENGTH:
            return ParseResult.failure(
                ParseErrorCode.UNREADABLE_DOCUMENT, UNREADABLE_PDF_MESSAGE, **provenance
            )

        bank_format = self.bank_format
        if bank_format is None:
            bank_id = self.registry.detect_bank(text)
            if not bank_id:
                return ParseResult.failure(
                    ParseErrorCode.UNRECOGNIZED_FORMAT,
                    "Could not recognize the bank that produced this statement",
                    **provenance,
                )
            bank_format = self.registry.get_format(bank_id)
            provenance['bank'] = bank_id

        if self.is_csv:
            rows = CsvRowRecognizer(bank_format).recognize(text)
        else:
            rows = PdfLineRecognizer().recognize(text)

        transactions, filtered_out = self._build_transactions(rows, bank_format)
        transactions = self._sort(transactions)

        statement_month = None
        if not self.is_csv:
            statement_month = detect_statement_month(text)
        statement_month = statement_month or month_of_mode(transactions)
        account_number = detect_account_number(text)

        logger.info(
            f"Recognized {len(rows)} rows: {len(transactions)} expenses, "
            f"{filtered_out} inflows filtered, statement month {statement_month}"
        )

        if not transactions:
            return ParseResult.failure(
                ParseErrorCode.NO_TRANSACTIONS,
                "No expense transactions found in statement",
                statement_month=statement_month,
                account_number=account_number,
                raw_row_count=len(rows),
                filtered_out_count=filtered_out,
                **provenance,
            )

        return ParseResult(
            success=True,
            transactions=transactions,
            statement_month=statement_month,
            account_number=account_number,
            raw_row_count=len(rows),
            filtered_out_count=filtered_out,
            **provenance,
        )

    def _build_transactions(self, rows: List[RawRow], bank_format: BankFormat):
        section = bank_format.csv if self.is_csv else bank_format.pdf
        transactions = []
        filtered_out = 0

        for row in rows:
            if row.is_inflow or self.flow.is_inflow(row.remainder):
                logger.debug(f"Line {row.line_no}: inflow filtered")
                filtered_out += 1
                continue

            channel = row.channel or self.inferrer.infer_channel(
                row.remainder, default=section.default_channel)
            item_type = row.item_type or self.inferrer.infer_item_type(
                row.remainder, default=section.default_item_type)
            description = truncate_description(row.remainder)

            try:
                transaction = ParsedTransaction(
                    date_time=row.date_time,
                    amount=row.amount,
                    item_type=item_type,
                    channel=channel,
                    description_raw=description,
                    fingerprint=transaction_fingerprint(
                        row.date_time, row.amount, channel, description),
                )
            except (ValidationError, ValueError) as e:
                logger.warning(f"Error creating transaction from line {row.line_no}: {e}")
                continue
            logger.debug(f"Line {row.line_no}: {transaction.amount} {description!r}")
            transactions.append(transaction)

        return transactions, filtered_out

    def _sort(self, transactions: List[ParsedTransaction]) -> List[ParsedTransaction]:
        """Newest first; ties ordered by fingerprint so input order never matters."""
        by_fingerprint = sorted(transactions, key=lambda tx: tx.fingerprint)
        return sorted(by_fingerprint, key=lambda tx: tx.date_time, reverse=True)


def parse_statement(data: bytes, options: Optional[ParseOptions] = None, *,
                    extractor: Optional[TextExtractor] = None,
                    tables: Optional[PatternTables] = None,
                    registry: Optional[BankFormatRegistry] = None,
                    verbose: bool = False) -> ParseResult:
    """
    Parse a KBank or SCB statement export.

    Args:
        data: Raw PDF or CSV bytes
        options: Password, source format and bank (``kbank``, ``scb`` or ``auto``)
        extractor: Text extractor override, mainly for tests
        tables: Pattern tables override
        registry: Bank format registry override
        verbose: Enable verbose logging

    Returns:
        ParseResult object
    """
    options = options or ParseOptions()
    registry = registry or BankFormatRegistry()

    if options.bank != AUTO_BANK and not registry.get_format(options.bank):
        return ParseResult.failure(
            ParseErrorCode.UNRECOGNIZED_FORMAT,
            f"Unsupported bank: {options.bank}. Supported: {', '.join(registry.list_formats())}",
            source_format=options.source_format,
        )

    parser = StatementParser(options, extractor, tables, registry, verbose)
    return parser.parse(data)


def validate_document(data: bytes, password: Optional[str] = None,
                      source_format: SourceFormat = SourceFormat.PDF,
                      extractor: Optional[TextExtractor] = None,
                      registry: Optional[BankFormatRegistry] = None,
                      bank: str = "kbank") -> DocumentCheck:
    """
    Quick check of an upload without a full parse.

    Reports whether a password is needed, whether the document carries
    extractable text and which bank produced it. The bank is resolved the
    same way ``parse_statement`` resolves it: by id, or from markers in the
    text when ``bank`` is ``auto``.
    """
    extractor = extractor or default_extractor(source_format)
    registry = registry or BankFormatRegistry()
    bank = bank.strip().lower()
    supported = ', '.join(registry.list_formats())

    if bank != AUTO_BANK and not registry.get_format(bank):
        return DocumentCheck(
            valid=False,
            error=ParseErrorCode.UNRECOGNIZED_FORMAT,
            error_message=f"Unsupported bank: {bank}. Supported: {supported}",
        )

    try:
        text = extractor.extract(data, password)
    except PasswordRequiredError as e:
        return DocumentCheck(valid=True, requires_password=True,
                             error=ParseErrorCode.PASSWORD_REQUIRED, error_message=str(e))
    except PasswordIncorrectError as e:
        return DocumentCheck(valid=False, requires_password=True,
                             error=ParseErrorCode.PASSWORD_INCORRECT, error_message=str(e))
    except ExtractionError as e:
        return DocumentCheck(valid=False, error=ParseErrorCode.UNREADABLE_DOCUMENT,
                             error_message=str(e))
    except Exception as e:
        logger.error(f"Error validating document: {e}")
        return DocumentCheck(valid=False, error=ParseErrorCode.PARSE_FAILED,
                             error_message=f"Could not validate document: {e}")

    if source_format is SourceFormat.PDF and len(text.strip()) < MIN_TEXT_LENGTH:
        return DocumentCheck(
            valid=False,
            error=ParseErrorCode.UNREADABLE_DOCUMENT,
            error_message="PDF appears to be empty or image-based. Please export a text-based statement.",
        )

    if bank == AUTO_BANK:
        bank = registry.detect_bank(text)
        if not bank:
            return DocumentCheck(
                valid=False,
                error=ParseErrorCode.UNRECOGNIZED_FORMAT,
                error_message=f"Not a supported bank statement. Supported: {supported}",
            )

    return DocumentCheck(valid=True, bank=bank)
