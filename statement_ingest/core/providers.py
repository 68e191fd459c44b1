"""
Collaborator interfaces for family configuration and known fingerprints.

The persistence layer implements these; the in-memory versions back tests and
embedding in small tools.
"""
from typing import Dict, Iterable, List, Optional, Protocol, Set
import logging

from ..models.schema import Category, CategoryRule, FamilySnapshot

logger = logging.getLogger(__name__)


class FamilyConfigProvider(Protocol):
    def load_snapshot(self, family_id: str) -> FamilySnapshot:
        ...


class DuplicateSetProvider(Protocol):
    def known_fingerprints(self, family_id: str, candidates: Iterable[str]) -> Set[str]:
        ...


class InMemoryFamilyConfigProvider:
    """Serves snapshots from a dict keyed by family id."""

    def __init__(self, snapshots: Optional[Dict[str, FamilySnapshot]] = None):
        self.snapshots: Dict[str, FamilySnapshot] = dict(snapshots or {})

    def add_family(self, family_id: str, categories: List[Category],
                   rules: Optional[List[CategoryRule]] = None) -> FamilySnapshot:
        snapshot = FamilySnapshot(family_id=family_id, categories=categories, rules=rules or [])
        self.snapshots[family_id] = snapshot
        return snapshot

    def load_snapshot(self, family_id: str) -> FamilySnapshot:
        """Unknown families get an empty snapshot."""
        snapshot = self.snapshots.get(family_id)
        if snapshot is None:
            logger.debug(f"No snapshot for family {family_id}, using empty configuration")
            return FamilySnapshot(family_id=family_id)
        return snapshot


class InMemoryDuplicateSetProvider:
    """Remembers fingerprints per family."""

    def __init__(self):
        self._known: Dict[str, Set[str]] = {}

    def remember(self, family_id: str, fingerprints: Iterable[str]):
        self._known.setdefault(family_id, set()).update(fingerprints)

    def known_fingerprints(self, family_id: str, candidates: Iterable[str]) -> Set[str]:
        known = self._known.get(family_id, set())
        return {fp for fp in candidates if fp in known}
