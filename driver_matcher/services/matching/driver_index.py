"""
Driver Index

In-memory multi-key lookup over the canonical drivers hired inside a batch's
date window. Built once per batch, read-only afterwards, safe to share
between threads.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
import structlog

from driver_matcher.services.matching.normalizer import normalize_name, normalize_phone
from driver_matcher.services.matching.types import CanonicalDriver

logger = structlog.get_logger(__name__)

MIN_INDEXED_WORD_LENGTH = 3


@dataclass(frozen=True)
class IndexedDriver:
    """Driver with pre-normalized keys, plus the raw attributes for scoring."""
    driver_id: str
    phone: str  # normalized
    name: str  # normalized
    full_name: Optional[str]
    hire_date: Optional[date]


@dataclass
class DriverIndex:
    """
    Four lookups populated in a single pass:
    exact phone, exact name, per-word inverted index, and primary key.
    """
    by_phone: Dict[str, List[IndexedDriver]] = field(default_factory=dict)
    by_name: Dict[str, List[IndexedDriver]] = field(default_factory=dict)
    by_name_word: Dict[str, List[IndexedDriver]] = field(default_factory=dict)
    by_id: Dict[str, IndexedDriver] = field(default_factory=dict)

    @classmethod
    def build(cls, drivers: Iterable[CanonicalDriver]) -> "DriverIndex":
        by_phone = defaultdict(list)
        by_name = defaultdict(list)
        by_name_word = defaultdict(list)
        by_id = {}

        for driver in drivers:
            entry = IndexedDriver(
                driver_id=driver.driver_id,
                phone=normalize_phone(driver.phone),
                name=normalize_name(driver.full_name),
                full_name=driver.full_name,
                hire_date=driver.hire_date,
            )
            by_id[entry.driver_id] = entry

            if entry.phone:
                by_phone[entry.phone].append(entry)

            if entry.name:
                by_name[entry.name].append(entry)
                for word in set(entry.name.split(" ")):
                    if len(word) >= MIN_INDEXED_WORD_LENGTH:
                        by_name_word[word].append(entry)

        index = cls(
            by_phone=dict(by_phone),
            by_name=dict(by_name),
            by_name_word=dict(by_name_word),
            by_id=by_id,
        )

        logger.info("driver_index_built",
                    drivers=len(by_id),
                    phones=len(index.by_phone),
                    names=len(index.by_name),
                    words=len(index.by_name_word))
        return index

    def __len__(self) -> int:
        return len(self.by_id)

    def get(self, driver_id: str) -> Optional[IndexedDriver]:
        return self.by_id.get(driver_id)

    @staticmethod
    def window(
        reference_dates: Iterable[Optional[date]],
        margin_days: int,
        fallback_days: int = 90,
        today: Optional[date] = None,
    ) -> Tuple[date, date]:
        """
        Hire-date window covering every reference date plus the margin.

        Without any reference date the window is the last fallback_days
        ending today.
        """
        known = [d for d in reference_dates if d is not None]
        margin = timedelta(days=margin_days)
        if known:
            return min(known) - margin, max(known) + margin

        today = today or date.today()
        return today - timedelta(days=fallback_days), today


__all__ = ["DriverIndex", "IndexedDriver", "MIN_INDEXED_WORD_LENGTH"]
