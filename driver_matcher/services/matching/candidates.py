"""
Candidate Generator

Reduces the driver population to the ids worth scoring for one record.

Priority matching (cheapest first, stop at the first non-empty tier):
1. Exact phone hits unioned with exact name hits
2. Inverted word index hits for every comparison word of 3+ characters
3. Full scan by phone similarity (O(population), last resort)
"""

from dataclasses import dataclass, field
from typing import List, Optional
import structlog

from driver_matcher.services.matching.driver_index import DriverIndex, MIN_INDEXED_WORD_LENGTH
from driver_matcher.services.matching.normalizer import (
    normalize_name,
    normalize_name_for_comparison,
    normalize_phone,
)
from driver_matcher.services.matching.rules import MatchRules
from driver_matcher.services.matching.signals import phone_similarity
from driver_matcher.services.matching.types import ExternalRecord

logger = structlog.get_logger(__name__)

TIER_EXACT = "exact"
TIER_NAME_WORDS = "name_words"
TIER_PHONE_SCAN = "phone_scan"


@dataclass
class CandidateSet:
    """Driver ids to score and the tier that produced them."""
    driver_ids: List[str] = field(default_factory=list)
    tier: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.driver_ids)

    def __len__(self) -> int:
        return len(self.driver_ids)


class CandidateGenerator:
    """Tiered candidate lookup over a DriverIndex."""

    def __init__(self, index: DriverIndex, rules: MatchRules):
        self.index = index
        self.rules = rules

    def generate(self, record: ExternalRecord) -> CandidateSet:
        phone = normalize_phone(record.candidate_phone) if self.rules.match_by_phone else ""
        raw_name = record.display_name if self.rules.match_by_name else None
        name = normalize_name(raw_name)

        # Tier 1: exact keys; phone and name are unioned since either may
        # surface the right driver on its own
        found = set()
        if phone:
            found.update(d.driver_id for d in self.index.by_phone.get(phone, []))
        if name:
            found.update(d.driver_id for d in self.index.by_name.get(name, []))
        if found:
            return CandidateSet(sorted(found), TIER_EXACT)

        # Tier 2: inverted word index
        if name:
            for word in normalize_name_for_comparison(raw_name).split(" "):
                if len(word) >= MIN_INDEXED_WORD_LENGTH:
                    found.update(d.driver_id for d in self.index.by_name_word.get(word, []))
            if found:
                return CandidateSet(sorted(found), TIER_NAME_WORDS)

        # Tier 3: phone similarity scan
        if phone:
            threshold = self.rules.effective_phone_threshold
            for driver in self.index.by_id.values():
                if driver.phone and phone_similarity(phone, driver.phone) >= threshold:
                    found.add(driver.driver_id)
            if found:
                logger.debug("phone_scan_candidates",
                             external_id=record.external_id,
                             scanned=len(self.index),
                             found=len(found))
                return CandidateSet(sorted(found), TIER_PHONE_SCAN)

        return CandidateSet()


__all__ = [
    "CandidateGenerator",
    "CandidateSet",
    "TIER_EXACT",
    "TIER_NAME_WORDS",
    "TIER_PHONE_SCAN",
]
