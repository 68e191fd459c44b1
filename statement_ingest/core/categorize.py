"""
Rule-priority auto-categorization.

Order of precedence: the family's enabled rules (priority, then most recent
first), then built-in keyword hints for categories the family owns, then no
category.
"""
import re
import uuid
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from .normalize import normalize_description
from .patterns import default_tables
from .providers import FamilyConfigProvider
from ..models.schema import (
    Category, CategorizeRequest, CategorizeResult, CategoryRule, FamilySnapshot,
    MatchSource, MatchType
)

logger = logging.getLogger(__name__)


class _CompiledRule:
    """A rule with its pattern prepared once per snapshot."""

    def __init__(self, rule: CategoryRule):
        self.rule = rule
        self.channel = rule.channel.lower() if rule.channel else None
        self.regex: Optional[re.Pattern] = None
        self.needle = ""

        if rule.match_type is MatchType.REGEX:
            try:
                self.regex = re.compile(rule.pattern, re.IGNORECASE)
            except re.error as e:
                logger.warning(f"Rule {rule.id} has an invalid regex {rule.pattern!r}: {e}")
        else:
            self.needle = normalize_description(rule.pattern)

    def matches(self, description: str, channel: str) -> bool:
        """
        Args:
            description: Already normalized description
            channel: Lowercased channel
        """
        if self.channel and self.channel not in channel:
            return False

        match_type = self.rule.match_type
        if match_type is MatchType.REGEX:
            return self.regex is not None and self.regex.search(description) is not None
        if not self.needle:
            return False
        if match_type is MatchType.CONTAINS:
            return self.needle in description
        if match_type is MatchType.STARTS_WITH:
            return description.startswith(self.needle)
        if match_type is MatchType.ENDS_WITH:
            return description.endswith(self.needle)
        if match_type is MatchType.EXACT:
            return description == self.needle
        return False

    @property
    def explanation(self) -> str:
        return f'{self.rule.match_type.value}: "{self.rule.pattern}"'


class RuleEngine:
    """Pure categorization decision over one family snapshot."""

    def __init__(self, snapshot: FamilySnapshot, hints: Mapping[str, Sequence[str]]):
        self.snapshot = snapshot
        self.categories_by_id: Dict[str, Category] = {c.id: c for c in snapshot.categories}
        active_by_name = {c.name: c for c in snapshot.categories if c.active}

        enabled = [rule for rule in snapshot.rules if rule.enabled]
        # sorted() is stable, so equal keys keep snapshot order
        ordered = sorted(enabled, key=lambda r: (r.priority, r.created_at), reverse=True)
        self.rules = [_CompiledRule(rule) for rule in ordered]

        # Only hint categories the family actually owns take part
        self.hints: List[Tuple[Category, List[Tuple[str, str]]]] = []
        for name, keywords in hints.items():
            category = active_by_name.get(name)
            if category is None:
                continue
            prepared = [(kw, normalize_description(kw).upper()) for kw in keywords]
            self.hints.append((category, [(kw, needle) for kw, needle in prepared if needle]))

    def decide(self, description: str, channel: str = "", item_type: str = "") -> CategorizeResult:
        normalized = normalize_description(description)
        lowered_channel = (channel or "").lower()

        for compiled in self.rules:
            if compiled.matches(normalized, lowered_channel):
                category = self.categories_by_id.get(compiled.rule.category_id)
                return CategorizeResult(
                    category_id=compiled.rule.category_id,
                    category_name=category.name if category else None,
                    matched_by=MatchSource.RULE,
                    matched_rule=compiled.explanation,
                )

        upper = normalized.upper()
        for category, keywords in self.hints:
            for keyword, needle in keywords:
                if needle in upper:
                    return CategorizeResult(
                        category_id=category.id,
                        category_name=category.name,
                        matched_by=MatchSource.HINT,
                        matched_rule=f'keyword: "{keyword}"',
                    )

        return CategorizeResult()


class Categorizer:
    """Categorizes transactions for a family using its stored configuration."""

    def __init__(self, provider: FamilyConfigProvider,
                 hints: Optional[Mapping[str, Sequence[str]]] = None):
        self.provider = provider
        self.hints = hints if hints is not None else default_tables().category_hints

    def engine_for(self, family_id: str) -> RuleEngine:
        snapshot = self.provider.load_snapshot(family_id)
        logger.debug(
            f"Family {family_id}: {len(snapshot.categories)} categories, "
            f"{len(snapshot.rules)} rules"
        )
        return RuleEngine(snapshot, self.hints)

    def categorize(self, family_id: str, description: str, channel: str = "",
                   item_type: str = "") -> CategorizeResult:
        """
        Categorize a single transaction.

        Args:
            family_id: Family whose rules and categories apply
            description: Raw transaction description
            channel: Transaction channel, used by channel-filtered rules
            item_type: Transaction item type

        Returns:
            CategorizeResult (``matched_by`` NONE when nothing applies)
        """
        return self.engine_for(family_id).decide(description, channel, item_type)

    def categorize_batch(self, family_id: str,
                         requests: Sequence[CategorizeRequest]) -> List[CategorizeResult]:
        """Categorize many transactions against one snapshot load, in input order."""
        engine = self.engine_for(family_id)
        results = [engine.decide(r.description, r.channel, r.item_type) for r in requests]

        matched = sum(1 for r in results if r.matched_by is not MatchSource.NONE)
        logger.info(f"Categorized {matched}/{len(results)} transactions for family {family_id}")
        return results


def rule_from_transaction(category_id: str, pattern: str, channel: Optional[str] = None,
                          match_type: MatchType = MatchType.CONTAINS) -> CategoryRule:
    """Build a rule from a user's manual categorization; the caller persists it."""
    return CategoryRule(
        id=uuid.uuid4().hex,
        category_id=category_id,
        pattern=pattern,
        match_type=match_type,
        channel=channel,
    )
