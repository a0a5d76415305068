"""
Match Rules

Per-batch configuration for the matching engine. One rule set covers every
source; per-source defaults come from settings via MatchRules.for_source().
"""

from pydantic import BaseModel, Field

from driver_matcher.config import settings
from driver_matcher.services.matching.types import Source


class MatchRules(BaseModel):
    """Options recognized by the candidate generator and resolver."""

    match_by_phone: bool = True
    match_by_name: bool = True
    name_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    phone_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    min_words_match: int = Field(default=2, ge=0)
    ignore_trailing_surname: bool = False
    margin_days: int = Field(default=3, ge=0)
    enable_fuzzy_matching: bool = True

    # Ledger transactions can only pay drivers that were already hired
    hire_before_reference: bool = False
    # Scale the name threshold by word count instead of using name_threshold
    adaptive_name_threshold: bool = False

    model_config = {"frozen": True}

    @property
    def effective_name_threshold(self) -> float:
        return self.name_threshold if self.enable_fuzzy_matching else 1.0

    @property
    def effective_phone_threshold(self) -> float:
        return self.phone_threshold if self.enable_fuzzy_matching else 1.0

    @classmethod
    def for_source(cls, source: Source, **overrides) -> "MatchRules":
        """Default rules for a source, built from settings."""
        source = Source(source)
        margins = {
            Source.LEAD: settings.lead_margin_days,
            Source.FIELD_AGENT_REGISTRATION: settings.field_agent_registration_margin_days,
            Source.LEDGER_TRANSACTION: settings.ledger_transaction_margin_days,
        }
        values = {
            "name_threshold": settings.default_name_threshold,
            "phone_threshold": settings.default_phone_threshold,
            "min_words_match": settings.default_min_words_match,
            "margin_days": margins[source],
            "hire_before_reference": source == Source.LEDGER_TRANSACTION,
        }
        values.update(overrides)
        return cls(**values)


__all__ = ["MatchRules"]
