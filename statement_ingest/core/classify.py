"""
Monetary-flow classification and channel / item-type inference.
"""
from enum import Enum
from typing import Optional, Sequence
import logging

from .patterns import PatternLabel, PatternTables, default_tables
from ..models.schema import DEFAULT_CHANNEL, DEFAULT_ITEM_TYPE

logger = logging.getLogger(__name__)


class FlowDirection(str, Enum):
    INFLOW = "INFLOW"
    EXPENSE = "EXPENSE"


class FlowClassifier:
    """
    Decides whether a row is money coming in.

    This is a denylist: text that matches no inflow phrase is an expense.
    """

    def __init__(self, inflow_phrases: Sequence[str]):
        self.inflow_phrases = tuple(phrase for phrase in inflow_phrases if phrase)
        self._lowered = tuple(phrase.lower() for phrase in self.inflow_phrases)

    def matched_phrase(self, text: str) -> Optional[str]:
        """Return the first inflow phrase found in the text, if any."""
        lowered = (text or "").lower()
        for phrase, needle in zip(self.inflow_phrases, self._lowered):
            if needle in lowered:
                return phrase
        return None

    def classify(self, text: str) -> FlowDirection:
        if self.matched_phrase(text) is not None:
            return FlowDirection.INFLOW
        return FlowDirection.EXPENSE

    def is_inflow(self, text: str) -> bool:
        return self.classify(text) is FlowDirection.INFLOW


def _first_label(table: Sequence[PatternLabel], text: str) -> Optional[str]:
    for entry in table:
        if entry.matches(text):
            return entry.label
    return None


class DetailInferrer:
    """Infers channel and item type from free text using ordered pattern tables."""

    def __init__(self, channels: Sequence[PatternLabel], item_types: Sequence[PatternLabel]):
        self.channels = tuple(channels)
        self.item_types = tuple(item_types)

    def infer_channel(self, text: str, default: str = DEFAULT_CHANNEL) -> str:
        return _first_label(self.channels, text or "") or default

    def infer_item_type(self, text: str, default: str = DEFAULT_ITEM_TYPE) -> str:
        return _first_label(self.item_types, text or "") or default


def build_classifiers(tables: Optional[PatternTables] = None):
    """Construct the flow classifier and detail inferrer from one set of tables."""
    tables = tables or default_tables()
    return (
        FlowClassifier(tables.inflow),
        DetailInferrer(tables.channels, tables.item_types),
    )
