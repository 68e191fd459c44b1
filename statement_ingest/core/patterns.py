"""
Versionable pattern tables loaded from YAML.

Inflow phrases, channel and item-type tables, category keyword hints and the
seeded category list live as data under ``statement_ingest/patterns`` so
locale or bank coverage can be extended without code changes.
"""
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import yaml

from ..models.schema import Category

logger = logging.getLogger(__name__)

PATTERNS_DIR = Path(__file__).parent.parent / "patterns"


class PatternLabel:
    """A case-insensitive regular expression paired with the label it yields."""

    def __init__(self, pattern: str, label: str):
        try:
            self.regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid pattern {pattern!r} for label {label!r}: {e}") from e
        self.pattern = pattern
        self.label = label

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None

    def __repr__(self):
        return f"PatternLabel({self.pattern!r} -> {self.label!r})"


class PatternTables:
    """Immutable bundle of every table the pipeline consults."""

    def __init__(self, inflow: List[str], channels: List[PatternLabel],
                 item_types: List[PatternLabel], category_hints: Dict[str, List[str]],
                 default_categories: Optional[List[Dict[str, Any]]] = None):
        self.inflow: Tuple[str, ...] = tuple(inflow)
        self.channels: Tuple[PatternLabel, ...] = tuple(channels)
        self.item_types: Tuple[PatternLabel, ...] = tuple(item_types)
        self.category_hints: Dict[str, Tuple[str, ...]] = {
            name: tuple(keywords) for name, keywords in category_hints.items()
        }
        self.default_categories: Tuple[Dict[str, Any], ...] = tuple(default_categories or [])

    @classmethod
    def load(cls, patterns_dir: Optional[Path] = None) -> "PatternTables":
        """
        Load all tables from a patterns directory.

        Args:
            patterns_dir: Directory holding the YAML files (package data by default)

        Returns:
            PatternTables instance
        """
        base = Path(patterns_dir) if patterns_dir else PATTERNS_DIR

        inflow = _read_yaml(base / "inflow.yaml").get('inflow', [])
        channels = _pattern_labels(_read_yaml(base / "channels.yaml").get('channels', []))
        item_types = _pattern_labels(_read_yaml(base / "item_types.yaml").get('item_types', []))
        hints = _read_yaml(base / "category_hints.yaml").get('hints', {})
        categories = _read_yaml(base / "default_categories.yaml").get('categories', [])

        tables = cls(
            inflow=[str(phrase) for phrase in inflow],
            channels=channels,
            item_types=item_types,
            category_hints={str(name): [str(k) for k in keywords] for name, keywords in hints.items()},
            default_categories=categories,
        )
        logger.debug(
            f"Loaded pattern tables from {base}: {len(tables.inflow)} inflow phrases, "
            f"{len(tables.channels)} channels, {len(tables.item_types)} item types, "
            f"{len(tables.category_hints)} hint categories"
        )
        return tables


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning(f"Pattern file not found: {path}")
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data or {}


def _pattern_labels(entries: List[Dict[str, Any]]) -> List[PatternLabel]:
    labels = []
    for entry in entries:
        if 'pattern' not in entry or 'label' not in entry:
            raise ValueError(f"Pattern entry needs 'pattern' and 'label': {entry}")
        labels.append(PatternLabel(str(entry['pattern']), str(entry['label'])))
    return labels


@lru_cache(maxsize=1)
def default_tables() -> PatternTables:
    """Tables shipped with the package, loaded once."""
    return PatternTables.load()


def default_categories(tables: Optional[PatternTables] = None) -> List[Category]:
    """
    Categories seeded for a new family.

    Ids are left as the category names; the persistence layer assigns its own.
    """
    tables = tables or default_tables()
    return [
        Category(
            id=str(entry['name']),
            name=str(entry['name']),
            emoji=str(entry.get('emoji', '📦')),
            sort_order=int(entry.get('sort_order', 0)),
        )
        for entry in tables.default_categories
    ]
