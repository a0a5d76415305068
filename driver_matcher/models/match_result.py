"""
MatchResultRecord Model
Stores the driver assignment and score for each external record
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Boolean, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func
from driver_matcher.database import Base
from driver_matcher.services.matching.types import MatchResult


class MatchResultRecord(Base):
    """
    Persisted outcome of matching one external record.

    One row per (source, external_id). Rows with is_manual=True are operator
    assertions and are never overwritten by automatic runs; discarded rows
    are kept for audit but excluded from reconciliation.
    """
    __tablename__ = "match_results"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # External record identity
    source = Column(String(50), nullable=False)
    external_id = Column(String(255), nullable=False)

    # Assignment (driver_id NULL = unmatched)
    driver_id = Column(String(64), nullable=True, index=True)
    hire_date = Column(Date, nullable=True)
    day_diff = Column(Integer, nullable=True)

    # Scores
    score = Column(Numeric(5, 4, asdecimal=False), nullable=False, default=0.0)  # 0.0000 to 1.0000
    phone_similarity = Column(Numeric(5, 4, asdecimal=False), nullable=True)
    name_similarity = Column(Numeric(5, 4, asdecimal=False), nullable=True)
    candidate_tier = Column(String(20), nullable=True)  # exact, name_words, phone_scan

    # Lifecycle flags
    is_manual = Column(Boolean, nullable=False, default=False)
    is_discarded = Column(Boolean, nullable=False, default=False)

    # Reconciliation (claims with a claimant only)
    claimant_id = Column(String(255), nullable=True, index=True)
    reconciliation_status = Column(String(50), nullable=True)
    # Statuses: unmatched, single_source_pending, matched_both_sources, conflicting
    is_reconciled = Column(Boolean, nullable=False, default=False)

    # Scoring Details (JSON for debugging)
    scoring_details = Column(JSON, nullable=True)
    """
    Example scoring_details structure:
    {
        "version": "v1.0",
        "match_status": "auto_matched",
        "final_score": 0.9,
        "decision_row": "exact_phone_strong_name",
        "candidate_tier": "exact",
        "signals": {"phone": {"score": 1.0, ...}, "name": {"score": 0.85, ...}},
        "thresholds": {"name": 0.5, "phone": 0.7, ...},
        "filters_applied": {"margin_days": 3, "day_diff": 2, ...}
    }
    """

    # Timestamps
    matched_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('source', 'external_id', name='uq_match_results_source_external_id'),
        Index('idx_match_results_claim', 'claimant_id', 'driver_id'),
    )

    def apply(self, result: MatchResult) -> None:
        """Copy an engine result onto this row (flags included)."""
        self.driver_id = result.driver_id
        self.hire_date = result.hire_date
        self.day_diff = result.day_diff
        self.score = result.score
        self.phone_similarity = result.phone_similarity
        self.name_similarity = result.name_similarity
        self.candidate_tier = result.candidate_tier
        self.is_manual = result.is_manual
        self.is_discarded = result.is_discarded
        self.scoring_details = result.scoring_details

    def to_result(self) -> MatchResult:
        return MatchResult(
            external_id=self.external_id,
            source=self.source,
            driver_id=self.driver_id,
            score=float(self.score or 0.0),
            day_diff=self.day_diff,
            hire_date=self.hire_date,
            is_manual=bool(self.is_manual),
            is_discarded=bool(self.is_discarded),
            phone_similarity=float(self.phone_similarity or 0.0),
            name_similarity=float(self.name_similarity or 0.0),
            candidate_tier=self.candidate_tier,
            scoring_details=self.scoring_details or {},
        )

    def __repr__(self):
        return (
            f"<MatchResultRecord(source='{self.source}', external_id='{self.external_id}', "
            f"driver_id={self.driver_id!r}, score={self.score}, manual={self.is_manual})>"
        )
