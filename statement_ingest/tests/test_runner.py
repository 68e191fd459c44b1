"""
Tests for the end-to-end statement parser.
"""
import json
import random
import pytest
from datetime import datetime
from decimal import Decimal

from ..core.detectors import BankFormatRegistry
from ..core.loader import (
    CsvTextExtractor, PasswordIncorrectError, PasswordRequiredError, PdfTextExtractor,
    UnreadableDocumentError
)
from ..core.runner import StatementParser, parse_statement, validate_document
from ..models.schema import ParseErrorCode, ParseOptions, ParseResult, SourceFormat

HEADER_LINES = [
    "KASIKORNBANK K PLUS Statement of Account",
    "บัญชี: 123-4-56789-0",
    "รอบรายการ มกราคม 2567",
]

ROW_LINES = [
    "01/01/2567 00:00 10,000.00 10,000.00 ยอดยกมา",
    "05/01/2567 08:15 120.00 9,880.00 ชำระเงิน K PLUS STARBUCKS",
    "10/01/2567 12:00 5,000.00 14,880.00 รับโอนเงิน จาก สมชาย",
    "15/01/2567 19:45 1,500.00 13,380.00 โอนเงิน K PLUS ค่าเช่า",
    "20/01/2567 07:30 350.00 13,030.00 จ่ายบิล K PLUS MEA",
]

KBANK_CSV = "\n".join([
    "Date,Time,Type,Channel,Withdrawal,Deposit,Balance,Description",
    '03/02/2024,10:00,ชำระเงิน,K PLUS,120.00,,"9,880.00",STARBUCKS',
    '04/02/2024,11:00,รับโอน,K PLUS,,"5,000.00","14,880.00",salary',
    '05/02/2024,12:00,,,"1,500.00",,"13,380.00",ค่าเช่า',
    '28/01/2024,09:00,ชำระเงิน,EDC,80.00,,"13,300.00",noodles',
])

MARKERLESS_KBANK_CSV = "\n".join([
    "Date,Time,Description,Withdrawal,Deposit,Balance",
    "03/02/2024,10:00,STARBUCKS,120.00,,9880.00",
])


class FakeExtractor:
    """Returns canned text, or raises the given error."""

    def __init__(self, text: str = "", error: Exception = None):
        self.text = text
        self.error = error
        self.passwords = []

    def extract(self, data: bytes, password=None) -> str:
        self.passwords.append(password)
        if self.error:
            raise self.error
        return self.text


def _statement(rows=ROW_LINES):
    return "\n".join(HEADER_LINES + list(rows))


class TestParseStatement:

    @pytest.fixture
    def result(self):
        return parse_statement(b"%PDF", extractor=FakeExtractor(_statement()))

    def test_success(self, result):
        assert result.success is True
        assert result.error is None
        assert result.bank == "kbank"
        assert result.source_format is SourceFormat.PDF

    def test_counts(self, result):
        assert result.raw_row_count == 5
        assert result.filtered_out_count == 2
        assert len(result.transactions) == 3

    def test_newest_first(self, result):
        assert [tx.date_time for tx in result.transactions] == [
            datetime(2024, 1, 20, 7, 30),
            datetime(2024, 1, 15, 19, 45),
            datetime(2024, 1, 5, 8, 15),
        ]

    def test_transaction_fields(self, result):
        bill, rent, coffee = result.transactions
        assert bill.amount == Decimal("350.00")
        assert bill.item_type == "จ่ายบิล"
        assert bill.channel == "K PLUS"
        assert bill.description_raw == "จ่ายบิล K PLUS MEA"
        assert rent.item_type == "โอนเงิน"
        assert coffee.item_type == "ชำระเงิน"
        assert len({tx.fingerprint for tx in result.transactions}) == 3

    def test_metadata(self, result):
        assert result.statement_month == "2024-01"
        assert result.account_number == "123-4-56789-0"

    def test_camel_case_json(self, result):
        payload = json.loads(result.to_json())
        assert payload["rawRowCount"] == 5
        assert payload["filteredOutCount"] == 2
        assert payload["statementMonth"] == "2024-01"
        assert set(payload["transactions"][0]) == {
            "dateTime", "amount", "itemType", "channel", "descriptionRaw", "fingerprint"
        }
        assert ParseResult.model_validate_json(result.to_json()) == result

    def test_permutation_does_not_change_output(self, result):
        shuffled = list(ROW_LINES) + ["20/01/2567 07:30 99.00 13,000.00 QR coffee"]
        expected = parse_statement(b"%PDF", extractor=FakeExtractor(_statement(shuffled)))
        for seed in range(5):
            random.Random(seed).shuffle(shuffled)
            again = parse_statement(b"%PDF", extractor=FakeExtractor(_statement(shuffled)))
            assert again.transactions == expected.transactions

    def test_reupload_gives_same_fingerprints(self, result):
        again = parse_statement(b"%PDF", extractor=FakeExtractor(_statement()))
        assert [tx.fingerprint for tx in again.transactions] == \
            [tx.fingerprint for tx in result.transactions]

    def test_month_falls_back_to_mode(self):
        text = "\n".join(["KASIKORNBANK K PLUS Statement of Account"] + ROW_LINES[1:])
        result = parse_statement(b"%PDF", extractor=FakeExtractor(text))
        assert result.statement_month == "2024-01"

    def test_password_is_forwarded(self):
        extractor = FakeExtractor(_statement())
        parse_statement(b"%PDF", ParseOptions(password="0812345678"), extractor=extractor)
        assert extractor.passwords == ["0812345678"]


class TestParseFailures:

    @pytest.mark.parametrize("error, code", [
        (PasswordRequiredError("PDF is password protected"), ParseErrorCode.PASSWORD_REQUIRED),
        (PasswordIncorrectError("Incorrect password for PDF"), ParseErrorCode.PASSWORD_INCORRECT),
        (UnreadableDocumentError("Could not open PDF"), ParseErrorCode.UNREADABLE_DOCUMENT),
    ])
    def test_extraction_errors(self, error, code):
        result = parse_statement(b"%PDF", extractor=FakeExtractor(error=error))
        assert result.success is False
        assert result.error is code
        assert result.transactions == []

    def test_unexpected_error_is_parse_failed(self):
        result = parse_statement(b"%PDF", extractor=FakeExtractor(error=RuntimeError("boom")))
        assert result.error is ParseErrorCode.PARSE_FAILED
        assert "boom" in result.error_message

    def test_image_only_pdf(self):
        result = parse_statement(b"%PDF", extractor=FakeExtractor("  page 1  "))
        assert result.error is ParseErrorCode.UNREADABLE_DOCUMENT

    def test_only_inflows(self):
        text = _statement([ROW_LINES[0], ROW_LINES[2]])
        result = parse_statement(b"%PDF", extractor=FakeExtractor(text))
        assert result.success is False
        assert result.error is ParseErrorCode.NO_TRANSACTIONS
        assert result.raw_row_count == 2
        assert result.filtered_out_count == 2

    def test_unknown_bank(self):
        result = parse_statement(b"%PDF", ParseOptions(bank="bbl"),
                                 extractor=FakeExtractor(_statement()))
        assert result.error is ParseErrorCode.UNRECOGNIZED_FORMAT

    def test_parser_rejects_unknown_bank(self):
        with pytest.raises(ValueError):
            StatementParser(ParseOptions(bank="bbl"), extractor=FakeExtractor())

    def test_unknown_options_rejected(self):
        with pytest.raises(ValueError):
            ParseOptions(bank="kbank", currency="THB")


class TestAutoBank:

    def test_detects_kbank(self):
        result = parse_statement(b"%PDF", ParseOptions(bank="auto"),
                                 extractor=FakeExtractor(_statement()))
        assert result.success is True
        assert result.bank == "kbank"

    def test_unrecognized(self):
        text = "\n".join([
            "Monthly utility invoice for apartment 12B, nothing to see",
            "05/01/2567 08:15 120.00 9,880.00 coffee",
        ])
        result = parse_statement(b"%PDF", ParseOptions(bank="auto"), extractor=FakeExtractor(text))
        assert result.error is ParseErrorCode.UNRECOGNIZED_FORMAT


class TestCsvStatements:

    @pytest.fixture
    def options(self):
        return ParseOptions(source_format=SourceFormat.CSV, bank="kbank")

    def test_kbank_csv(self, options):
        result = parse_statement(KBANK_CSV.encode('utf-8-sig'), options)
        assert result.success is True
        assert result.raw_row_count == 4
        assert result.filtered_out_count == 1
        assert len(result.transactions) == 3
        assert result.statement_month == "2024-02"

        rent, coffee, noodles = result.transactions
        assert rent.channel == "K PLUS"
        assert rent.item_type == "รายจ่าย"
        assert coffee.item_type == "ชำระเงิน"
        assert noodles.channel == "EDC"
        assert noodles.date_time == datetime(2024, 1, 28, 9, 0)

    def test_thai_windows_encoding(self, options):
        result = parse_statement(KBANK_CSV.encode('cp874'), options)
        assert result.success is True
        assert result.transactions[0].description_raw == "ค่าเช่า"

    def test_empty_csv(self, options):
        result = parse_statement(b"Date,Time,Description,Withdrawal\n", options)
        assert result.error is ParseErrorCode.UNREADABLE_DOCUMENT

    def test_reupload_gives_same_fingerprints(self, options):
        first = parse_statement(KBANK_CSV.encode("utf-8"), options)
        second = parse_statement(KBANK_CSV.encode("utf-8"), options)
        assert [tx.fingerprint for tx in second.transactions] == \
            [tx.fingerprint for tx in first.transactions]
        assert {tx.channel for tx in first.transactions} == {"K PLUS", "EDC"}

    def test_scb_csv(self):
        text = "\n".join([
            "Date,Time,Description,Withdrawal,Deposit",
            "01/03/2567,,PromptPay ร้านค้า,250.00,",
            "02/03/2567,09:30,REFUND,,100.00",
        ])
        options = ParseOptions(source_format=SourceFormat.CSV, bank="scb")
        result = parse_statement(text.encode('utf-8'), options)
        assert result.success is True
        assert result.bank == "scb"
        tx = result.transactions[0]
        assert tx.channel == "SCB Easy"
        assert tx.item_type == "PromptPay"
        assert tx.date_time == datetime(2024, 3, 1)
        assert result.filtered_out_count == 1


class TestValidateDocument:

    def test_password_required(self):
        check = validate_document(b"%PDF", extractor=FakeExtractor(error=PasswordRequiredError("locked")))
        assert check.valid is True
        assert check.requires_password is True

    def test_password_incorrect(self):
        check = validate_document(b"%PDF", password="x",
                                  extractor=FakeExtractor(error=PasswordIncorrectError("nope")))
        assert check.valid is False
        assert check.error is ParseErrorCode.PASSWORD_INCORRECT

    def test_image_only(self):
        check = validate_document(b"%PDF", extractor=FakeExtractor(""))
        assert check.valid is False
        assert check.error is ParseErrorCode.UNREADABLE_DOCUMENT

    def test_recognized_bank(self):
        check = validate_document(b"%PDF", extractor=FakeExtractor(_statement()))
        assert check.valid is True
        assert check.bank == "kbank"

    def test_unrecognized_bank(self):
        text = "Monthly utility invoice for apartment 12B, nothing to see here at all"
        check = validate_document(b"%PDF", extractor=FakeExtractor(text),
                                  registry=BankFormatRegistry(), bank="auto")
        assert check.valid is False
        assert check.error is ParseErrorCode.UNRECOGNIZED_FORMAT

    def test_csv_without_markers_uses_requested_bank(self):
        data = MARKERLESS_KBANK_CSV.encode("utf-8")
        assert parse_statement(data, ParseOptions(source_format=SourceFormat.CSV)).success is True

        check = validate_document(data, source_format=SourceFormat.CSV)
        assert check.valid is True
        assert check.bank == "kbank"
        assert check.error is None

    def test_csv_without_markers_auto_is_unrecognized(self):
        check = validate_document(MARKERLESS_KBANK_CSV.encode("utf-8"),
                                  source_format=SourceFormat.CSV, bank="auto")
        assert check.valid is False
        assert check.error is ParseErrorCode.UNRECOGNIZED_FORMAT

    def test_unknown_bank(self):
        extractor = FakeExtractor(_statement())
        check = validate_document(b"%PDF", extractor=extractor, bank="bbl")
        assert check.valid is False
        assert check.error is ParseErrorCode.UNRECOGNIZED_FORMAT
        assert extractor.passwords == []


class TestExtractors:

    def test_garbage_pdf_is_unreadable(self):
        with pytest.raises(UnreadableDocumentError):
            PdfTextExtractor().extract(b"this is not a pdf at all")

    def test_csv_decoding(self):
        assert CsvTextExtractor().extract("ค่าไฟ".encode('cp874')) == "ค่าไฟ"
        assert CsvTextExtractor().extract("\ufeffDate".encode('utf-8')) == "Date"

    def test_csv_undecodable(self):
        with pytest.raises(UnreadableDocumentError):
            CsvTextExtractor(encodings=['ascii']).extract("ค่าไฟ".encode('utf-8'))
