"""
Pydantic models for statement ingestion and categorization.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


DEFAULT_ITEM_TYPE = "รายจ่าย"
DEFAULT_CHANNEL = "Other"
DESCRIPTION_PLACEHOLDER = "(no description)"
DESCRIPTION_MAX_LENGTH = 500


class SourceFormat(str, Enum):
    """Kind of uploaded document."""
    PDF = "pdf"
    CSV = "csv"


class ParseErrorCode(str, Enum):
    """Structured failure reasons the caller branches on."""
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    PASSWORD_INCORRECT = "PASSWORD_INCORRECT"
    UNREADABLE_DOCUMENT = "UNREADABLE_DOCUMENT"
    UNRECOGNIZED_FORMAT = "UNRECOGNIZED_FORMAT"
    NO_TRANSACTIONS = "NO_TRANSACTIONS"
    PARSE_FAILED = "PARSE_FAILED"


class MatchType(str, Enum):
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    EXACT = "EXACT"
    REGEX = "REGEX"


class MatchSource(str, Enum):
    RULE = "RULE"
    HINT = "HINT"
    NONE = "NONE"


class _CamelModel(BaseModel):
    """Base for records exchanged with callers as camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ParsedTransaction(_CamelModel):
    """A single expense row recognized in a statement."""
    model_config = ConfigDict(frozen=True)

    date_time: datetime
    amount: Decimal
    item_type: str = DEFAULT_ITEM_TYPE
    channel: str = DEFAULT_CHANNEL
    description_raw: str = DESCRIPTION_PLACEHOLDER
    fingerprint: str

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Amounts are positive and kept at two decimal places."""
        if v <= 0:
            raise ValueError(f"Transaction amount must be positive: {v}")
        return v.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @field_validator('description_raw')
    @classmethod
    def validate_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            return DESCRIPTION_PLACEHOLDER
        return v[:DESCRIPTION_MAX_LENGTH]

    @field_validator('fingerprint')
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        if len(v) != 64:
            raise ValueError(f"Fingerprint must be a 64 character hex digest: {v!r}")
        return v


class ParseResult(_CamelModel):
    """Outcome of one parse invocation."""
    success: bool
    transactions: List[ParsedTransaction] = Field(default_factory=list)
    statement_month: Optional[str] = None
    account_number: Optional[str] = None
    error: Optional[ParseErrorCode] = None
    error_message: Optional[str] = None
    raw_row_count: int = 0
    filtered_out_count: int = 0
    source_format: Optional[SourceFormat] = None
    bank: Optional[str] = None

    @classmethod
    def failure(cls, code: ParseErrorCode, message: str, **kwargs) -> "ParseResult":
        """Build an unsuccessful result carrying a structured error code."""
        return cls(success=False, error=code, error_message=message, **kwargs)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


class ParseOptions(BaseModel):
    """Caller-supplied options for a parse invocation."""
    model_config = ConfigDict(extra="forbid")

    password: Optional[str] = None
    source_format: SourceFormat = SourceFormat.PDF
    bank: str = "kbank"

    @field_validator('bank')
    @classmethod
    def normalize_bank(cls, v: str) -> str:
        return v.strip().lower()


class DocumentCheck(BaseModel):
    """Result of a quick document validation before a full parse."""
    valid: bool
    requires_password: bool = False
    bank: Optional[str] = None
    error: Optional[ParseErrorCode] = None
    error_message: Optional[str] = None


class CsvLayout(BaseModel):
    """Column positions for one CSV export layout."""
    model_config = ConfigDict(extra="forbid")

    min_fields: int
    columns: Dict[str, int]

    @field_validator('columns')
    @classmethod
    def validate_columns(cls, v: Dict[str, int]) -> Dict[str, int]:
        allowed = {'date', 'time', 'item_type', 'channel', 'withdrawal', 'deposit', 'description'}
        unknown = set(v) - allowed
        if unknown:
            raise ValueError(f"Unknown CSV columns: {sorted(unknown)}")
        for required in ('date', 'description', 'withdrawal'):
            if required not in v:
                raise ValueError(f"CSV layout is missing required column: {required}")
        return v


class CsvFormat(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_channel: str = DEFAULT_CHANNEL
    default_item_type: str = DEFAULT_ITEM_TYPE
    time_required: bool = False
    layouts: List[CsvLayout] = Field(default_factory=list)


class PdfFormat(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_channel: str = DEFAULT_CHANNEL
    default_item_type: str = DEFAULT_ITEM_TYPE


class BankFormat(BaseModel):
    """Bank export format loaded from ``patterns/banks/*.yaml``."""
    model_config = ConfigDict(extra="forbid")

    bank_id: str
    name: str
    markers: List[str] = Field(default_factory=list)
    pdf: PdfFormat = Field(default_factory=PdfFormat)
    csv: CsvFormat = Field(default_factory=CsvFormat)


class Category(BaseModel):
    """A family's spending category."""
    id: str
    name: str
    active: bool = True
    emoji: str = "📦"
    sort_order: int = 0


class CategoryRule(BaseModel):
    """User-authored pattern-to-category mapping."""
    id: str
    category_id: str
    pattern: str
    match_type: MatchType = MatchType.CONTAINS
    channel: Optional[str] = None
    priority: int = 10
    enabled: bool = True
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Rule pattern cannot be empty")
        return v

    @field_validator('channel')
    @classmethod
    def blank_channel_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class FamilySnapshot(BaseModel):
    """Categories and rules of one family, loaded once per call."""
    family_id: str
    categories: List[Category] = Field(default_factory=list)
    rules: List[CategoryRule] = Field(default_factory=list)


class CategorizeRequest(BaseModel):
    """The transaction fields categorization looks at."""
    model_config = ConfigDict(extra="forbid")

    description: str
    channel: str = DEFAULT_CHANNEL
    item_type: str = DEFAULT_ITEM_TYPE

    @classmethod
    def from_transaction(cls, transaction: ParsedTransaction) -> "CategorizeRequest":
        return cls(
            description=transaction.description_raw,
            channel=transaction.channel,
            item_type=transaction.item_type,
        )


class CategorizeResult(BaseModel):
    """Category decision for one transaction."""
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    matched_by: MatchSource = MatchSource.NONE
    matched_rule: Optional[str] = None


class PreviewRow(_CamelModel):
    index: int
    date_time: datetime
    amount: Decimal
    item_type: str
    channel: str
    description: str
    is_duplicate: bool


class ImportPreview(_CamelModel):
    """What the caller shows before committing an import."""
    file_hash: str
    statement_month: Optional[str] = None
    account_number: Optional[str] = None
    total_transactions: int
    duplicate_count: int
    new_transaction_count: int
    preview: List[PreviewRow] = Field(default_factory=list)
