"""
Matching Value Types

Plain dataclasses passed between the index, resolver, store and
reconciliation tracker. ORM rows convert to and from these at the store
boundary so the engine itself never touches a session.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from driver_matcher.services.matching.normalizer import build_full_name


class Source(str, Enum):
    """External systems that claim driver identities."""
    LEAD = "lead"
    FIELD_AGENT_REGISTRATION = "field_agent_registration"
    LEDGER_TRANSACTION = "ledger_transaction"


class ReconciliationStatus(str, Enum):
    UNMATCHED = "unmatched"
    SINGLE_SOURCE_PENDING = "single_source_pending"
    MATCHED_BOTH_SOURCES = "matched_both_sources"
    CONFLICTING = "conflicting"


@dataclass(frozen=True)
class CanonicalDriver:
    """Authoritative driver record; read-only for the duration of a batch."""
    driver_id: str
    full_name: Optional[str]
    phone: Optional[str]
    hire_date: Optional[date]


@dataclass
class ExternalRecord:
    """
    One row from an imported source claiming a driver by name/phone/date.

    The name may arrive split (first_name + last_name) or as a single
    free-text candidate_name; display_name resolves either form.
    """
    external_id: str
    source: Source
    candidate_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    candidate_phone: Optional[str] = None
    reference_date: Optional[date] = None
    claimant_id: Optional[str] = None  # field agent asserting the claim

    def __post_init__(self):
        self.source = Source(self.source)

    @property
    def display_name(self) -> Optional[str]:
        if self.first_name or self.last_name:
            return build_full_name(self.first_name, self.last_name)
        if self.candidate_name and self.candidate_name.strip():
            return self.candidate_name.strip()
        return None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source.value, self.external_id)


@dataclass
class MatchResult:
    """Outcome of matching one external record. driver_id None means unmatched."""
    external_id: str
    source: Source
    driver_id: Optional[str] = None
    score: float = 0.0
    day_diff: Optional[int] = None
    hire_date: Optional[date] = None
    is_manual: bool = False
    is_discarded: bool = False
    phone_similarity: float = 0.0
    name_similarity: float = 0.0
    candidate_tier: Optional[str] = None
    scoring_details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.source = Source(self.source)

    @property
    def is_matched(self) -> bool:
        return self.driver_id is not None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source.value, self.external_id)

    @classmethod
    def unmatched(cls, record: ExternalRecord, scoring_details: Optional[dict] = None) -> "MatchResult":
        return cls(
            external_id=record.external_id,
            source=record.source,
            scoring_details=scoring_details or {},
        )


@dataclass
class BatchSummary:
    """Counts reported after a batch or re-match run."""
    total: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    skipped_count: int = 0  # manual or discarded, left untouched
    date_range_from: Optional[date] = None
    date_range_to: Optional[date] = None

    def add_dates(self, dates: List[Optional[date]]) -> None:
        known = [d for d in dates if d is not None]
        if not known:
            return
        low, high = min(known), max(known)
        if self.date_range_from is None or low < self.date_range_from:
            self.date_range_from = low
        if self.date_range_to is None or high > self.date_range_to:
            self.date_range_to = high

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "skipped_count": self.skipped_count,
            "date_range_from": self.date_range_from.isoformat() if self.date_range_from else None,
            "date_range_to": self.date_range_to.isoformat() if self.date_range_to else None,
        }


__all__ = [
    "Source",
    "ReconciliationStatus",
    "CanonicalDriver",
    "ExternalRecord",
    "MatchResult",
    "BatchSummary",
]
