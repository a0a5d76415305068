"""
Explainability Builder

Produces JSON-ready match explanations for debugging and threshold tuning.

Design decisions:
- Primary audience: operators reviewing unmatched or conflicting records
- Detail level: signal scores, decision-table row and gates only
- Storage: JSON column on match_results
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from driver_matcher.services.matching.driver_index import IndexedDriver
    from driver_matcher.services.matching.rules import MatchRules
    from driver_matcher.services.matching.types import ExternalRecord


class ExplainabilityBuilder:
    """
    Build JSON explainability payloads for match results.

    Payloads hold only deterministic values (no timestamps) so re-running a
    batch with the same inputs reproduces them exactly.
    """

    VERSION = "v1.0"  # Track explainability schema version

    @staticmethod
    def build(
        record: "ExternalRecord",
        rules: "MatchRules",
        match_status: str,
        candidate_tier: Optional[str] = None,
        candidates_considered: int = 0,
        candidates_in_window: int = 0,
        driver: Optional["IndexedDriver"] = None,
        phone_similarity: float = 0.0,
        name_similarity: float = 0.0,
        decision_row: Optional[str] = None,
        final_score: float = 0.0,
        day_diff: Optional[int] = None,
        name_threshold: Optional[float] = None,
    ) -> dict:
        """
        Build explainability payload.

        Args:
            record: External record being matched
            rules: Rules in force for this batch
            match_status: auto_matched, no_candidates or rejected
            candidate_tier: Candidate generator tier that produced candidates
            candidates_considered: Number of driver ids scored
            candidates_in_window: Number that cleared both gates
            driver: Winning driver (None when unmatched)
            phone_similarity: Winner's phone similarity
            name_similarity: Winner's name similarity
            decision_row: Decision-table row that produced final_score
            final_score: Composite score
            day_diff: Days between reference date and hire date
            name_threshold: Name threshold actually applied (adaptive or fixed)

        Returns:
            Dict suitable for MatchResultRecord.scoring_details

        Example:
            >>> payload = ExplainabilityBuilder.build(record, rules, "no_candidates")
            >>> payload["version"]
            'v1.0'
        """
        return {
            "version": ExplainabilityBuilder.VERSION,
            "match_status": match_status,
            "final_score": round(final_score, 4),
            "decision_row": decision_row,
            "candidate_tier": candidate_tier,
            "candidates_considered": candidates_considered,
            "candidates_in_window": candidates_in_window,
            "signals": {
                "phone": {
                    "score": round(phone_similarity, 4),
                    "record_value": record.candidate_phone,
                    "driver_value": driver.phone if driver else None,
                },
                "name": {
                    "score": round(name_similarity, 4),
                    "record_value": record.display_name,
                    "driver_value": driver.full_name if driver else None,
                },
            },
            "thresholds": {
                "name": name_threshold if name_threshold is not None else rules.effective_name_threshold,
                "phone": rules.effective_phone_threshold,
                "min_words_match": rules.min_words_match,
                "fuzzy_enabled": rules.enable_fuzzy_matching,
            },
            "filters_applied": {
                "margin_days": rules.margin_days,
                "hire_before_reference": rules.hire_before_reference,
                "day_diff": day_diff,
            },
            "driver_id": driver.driver_id if driver else None,
            "reference_date": record.reference_date.isoformat() if record.reference_date else None,
            "hire_date": driver.hire_date.isoformat() if driver and driver.hire_date else None,
        }

    @staticmethod
    def manual(driver_id: str, day_diff: Optional[int]) -> dict:
        """Payload for an operator-asserted match."""
        return {
            "version": ExplainabilityBuilder.VERSION,
            "match_status": "manual",
            "final_score": 1.0,
            "driver_id": driver_id,
            "filters_applied": {"day_diff": day_diff},
        }
