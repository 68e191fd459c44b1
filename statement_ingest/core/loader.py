"""
Document loading and text extraction using pdfplumber.
"""
import io
import re
from typing import List, Optional, Protocol
import logging

import pdfplumber
from pdfminer.pdfdocument import PDFEncryptionError, PDFPasswordIncorrect
from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

logger = logging.getLogger(__name__)

CSV_ENCODINGS = ('utf-8-sig', 'cp874')


class ExtractionError(Exception):
    """Base class for failures turning document bytes into text."""


class PasswordRequiredError(ExtractionError):
    """The document is encrypted and no password was supplied."""


class PasswordIncorrectError(ExtractionError):
    """The supplied password does not open the document."""


class UnreadableDocumentError(ExtractionError):
    """The bytes are not a readable document of the expected kind."""


class TextExtractor(Protocol):
    def extract(self, data: bytes, password: Optional[str] = None) -> str:
        ...


class PageText:
    """Represents a page with its extracted text."""
    def __init__(self, page_num: int, text: str):
        self.page_num = page_num
        self.text = text

    def __repr__(self):
        return f"PageText(page_num={self.page_num}, chars={len(self.text)})"


def _is_password_error(error: BaseException) -> bool:
    """Walk wrapped pdfminer errors looking for an encryption failure."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, (PDFPasswordIncorrect, PDFEncryptionError)):
            return True
        if 'password' in str(current).lower():
            return True
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        pending.extend([current.__cause__, current.__context__])
    return False


class PDFLoader:
    """Handles PDF loading and per-page text extraction."""

    def __init__(self, data: bytes, password: Optional[str] = None):
        self.data = data
        self.password = password
        self._pdf = None
        self._pages: List[PageText] = []

    def load(self) -> List[PageText]:
        """
        Open the PDF and extract text from all pages.

        Raises:
            PasswordRequiredError: encrypted and no password given
            PasswordIncorrectError: the password does not decrypt the file
            UnreadableDocumentError: the bytes are not a parseable PDF
        """
        if self._pages:
            return self._pages

        try:
            self._pdf = pdfplumber.open(io.BytesIO(self.data), password=self.password or "")
        except (PdfminerException, PDFPasswordIncorrect, PDFEncryptionError, PDFSyntaxError) as e:
            if _is_password_error(e):
                if self.password:
                    raise PasswordIncorrectError("Incorrect password for PDF") from e
                raise PasswordRequiredError("PDF is password protected") from e
            logger.error(f"Error loading PDF: {e}")
            raise UnreadableDocumentError(f"Could not open PDF: {e}") from e

        logger.info(f"Loaded PDF with {len(self._pdf.pages)} pages")

        for i, page in enumerate(self._pdf.pages, 1):
            text = self._normalize_text(page.extract_text() or "")
            self._pages.append(PageText(page_num=i, text=text))
            logger.debug(f"Page {i}: {len(text)} characters extracted")

        return self._pages

    def _normalize_text(self, text: str) -> str:
        """Normalize ligatures and runs of spaces while keeping line breaks."""
        ligatures = {
            'ﬁ': 'fi',
            'ﬂ': 'fl',
            'ﬀ': 'ff',
            'ﬃ': 'ffi',
            'ﬄ': 'ffl',
            'ﬆ': 'st',
            'ﬅ': 'st'
        }

        for ligature, replacement in ligatures.items():
            text = text.replace(ligature, replacement)

        lines = [re.sub(r'[ \t\f\v]+', ' ', line).strip() for line in text.splitlines()]
        return '\n'.join(lines)

    @property
    def text(self) -> str:
        """All pages merged into one blob."""
        return '\n'.join(page.text for page in self.load())

    def close(self):
        """Close the PDF file."""
        if self._pdf:
            self._pdf.close()
            self._pdf = None


class PdfTextExtractor:
    """Extractor backend for PDF statements."""

    def extract(self, data: bytes, password: Optional[str] = None) -> str:
        loader = PDFLoader(data, password)
        try:
            return loader.text
        finally:
            loader.close()


class CsvTextExtractor:
    """Decodes CSV exports; Thai banks ship UTF-8 (often with BOM) or TIS-620."""

    def __init__(self, encodings=CSV_ENCODINGS):
        self.encodings = tuple(encodings)

    def extract(self, data: bytes, password: Optional[str] = None) -> str:
        for encoding in self.encodings:
            try:
                text = data.decode(encoding)
                logger.debug(f"Decoded CSV as {encoding}")
                return text
            except UnicodeDecodeError:
                continue
        raise UnreadableDocumentError(
            f"Could not decode CSV with any of: {', '.join(self.encodings)}"
        )
