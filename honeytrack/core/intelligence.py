"""
Cumulative intelligence for one conversation: the data set, the merger
that folds new findings into it, the completeness scorer and the
frustration tracker.
"""

from typing import Dict, Any, Iterable, List, Optional, Set
from dataclasses import dataclass, field

from honeytrack.core.analysis import StructuredAnalysis
from honeytrack.core.pattern_extraction import PatternCandidates


# attribute name -> wire name
SET_CATEGORIES: Dict[str, str] = {
    "scam_type": "scamType",
    "requested_data": "requestedData",
    "attack_method": "attackMethod",
    "psychological_techniques": "psychologicalTechniques",
    "phone_numbers": "phoneNumbers",
    "emails": "emails",
    "links": "links",
    "bank_accounts": "bankAccounts",
    "payment_handles": "paymentHandles",
    "suspicious_keywords": "suspiciousKeywords",
    "key_phrases": "keyPhrases",
}

REQUIRED_WEIGHTS: Dict[str, int] = {
    "scam_type": 25,
    "requested_data": 20,
    "attack_method": 20,
    "psychological_techniques": 15,
}

BONUS_WEIGHTS: Dict[str, int] = {
    "impersonated_entity": 5,
    "phone_numbers": 5,
    "emails": 5,
    "links": 5,
}

SOURCE_LOCAL = "local"
SOURCE_EXTERNAL = "external"

# a source may only replace an impersonated entity set by a lower-ranked one
_SOURCE_RANK = {SOURCE_LOCAL: 1, SOURCE_EXTERNAL: 2}


@dataclass
class ExtractedData:
    """Per-session intelligence; every category is a set that only grows."""
    scam_type: Set[str] = field(default_factory=set)
    requested_data: Set[str] = field(default_factory=set)
    attack_method: Set[str] = field(default_factory=set)
    psychological_techniques: Set[str] = field(default_factory=set)
    phone_numbers: Set[str] = field(default_factory=set)
    emails: Set[str] = field(default_factory=set)
    links: Set[str] = field(default_factory=set)
    bank_accounts: Set[str] = field(default_factory=set)
    payment_handles: Set[str] = field(default_factory=set)
    suspicious_keywords: Set[str] = field(default_factory=set)
    key_phrases: Set[str] = field(default_factory=set)
    impersonated_entity: Optional[str] = None
    impersonated_entity_source: Optional[str] = None

    def category(self, name: str) -> Set[str]:
        return getattr(self, name)

    def has(self, name: str) -> bool:
        """True when a category holds at least one value."""
        value = getattr(self, name)
        if isinstance(value, set):
            return len(value) > 0
        return value is not None

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot with sorted lists, keyed by wire names."""
        snapshot: Dict[str, Any] = {
            wire: sorted(getattr(self, attr)) for attr, wire in SET_CATEGORIES.items()
        }
        snapshot["impersonatedEntity"] = self.impersonated_entity
        return snapshot


class ExtractionMerger:
    """
    Folds candidate values into a session's ExtractedData with set-union
    semantics. Merging the same input twice changes nothing the second time.

    The impersonated entity is the only scalar. A value from the external
    analyzer replaces one guessed by the local patterns; otherwise the first
    value seen is kept.
    """

    def merge_candidates(self, data: ExtractedData, candidates: PatternCandidates) -> int:
        """
        Merge locally extracted candidates.

        Returns:
            int: Number of values that were not already present
        """
        added = 0
        for attr in SET_CATEGORIES:
            added += self._union(data, attr, getattr(candidates, attr, []))

        if candidates.impersonated_entity:
            added += self._set_impersonated_entity(data, candidates.impersonated_entity, SOURCE_LOCAL)
        return added

    def merge_analysis(self, data: ExtractedData, analysis: StructuredAnalysis) -> int:
        """
        Merge an upstream structured analysis.

        Returns:
            int: Number of values that were not already present
        """
        extraction = analysis.extraction
        added = 0
        added += self._union(data, "scam_type", analysis.all_scam_types)
        added += self._union(data, "psychological_techniques", analysis.psychologicalTechniques)
        added += self._union(data, "requested_data", extraction.requestedData)
        added += self._union(data, "attack_method", extraction.attackMethod)
        added += self._union(data, "links", extraction.links)
        added += self._union(data, "phone_numbers", extraction.phoneNumbers)
        added += self._union(data, "emails", extraction.emails)
        added += self._union(data, "bank_accounts", extraction.bankAccounts)
        added += self._union(data, "payment_handles", extraction.all_payment_handles)
        added += self._union(data, "suspicious_keywords", extraction.suspiciousKeywords)

        if extraction.impersonatedEntity:
            added += self._set_impersonated_entity(data, extraction.impersonatedEntity, SOURCE_EXTERNAL)
        return added

    @staticmethod
    def _union(data: ExtractedData, attr: str, values: Iterable[str]) -> int:
        target = data.category(attr)
        before = len(target)
        target.update(v for v in values if v)
        return len(target) - before

    @staticmethod
    def _set_impersonated_entity(data: ExtractedData, value: str, source: str) -> int:
        if data.impersonated_entity == value:
            return 0
        current_rank = _SOURCE_RANK.get(data.impersonated_entity_source, 0)
        if data.impersonated_entity is None or _SOURCE_RANK[source] > current_rank:
            data.impersonated_entity = value
            data.impersonated_entity_source = source
            return 1
        return 0


class CompletenessScorer:
    """Weighted 0-100 score; a category earns its full weight once non-empty."""

    def __init__(self, required: Optional[Dict[str, int]] = None,
                 bonus: Optional[Dict[str, int]] = None):
        self.required = dict(required or REQUIRED_WEIGHTS)
        self.bonus = dict(bonus or BONUS_WEIGHTS)
        self.total_weight = sum(self.required.values()) + sum(self.bonus.values())

    def score(self, data: ExtractedData) -> int:
        earned = sum(
            weight
            for weights in (self.required, self.bonus)
            for name, weight in weights.items()
            if data.has(name)
        )
        return int(round(100 * earned / self.total_weight))

    def missing_categories(self, data: ExtractedData) -> List[str]:
        """Categories that have not contributed yet, required ones first."""
        return [name for name in list(self.required) + list(self.bonus) if not data.has(name)]


class FrustrationTracker:
    """Bounded, never-decreasing impatience counter."""

    def __init__(self, step: int = 15, ceiling: int = 100):
        self.step = step
        self.ceiling = ceiling

    def observe(self, level: int, marker_found: bool) -> int:
        """Return the new level after one counterparty message."""
        if not marker_found:
            return level
        return min(self.ceiling, level + self.step)
