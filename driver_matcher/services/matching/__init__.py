"""
Matching Engine Service Package

Provides normalization, signal scorers, the driver index, tiered candidate
generation, the composite decision table and explainability builders for
matching external records to canonical drivers.
"""

from driver_matcher.services.matching.normalizer import (
    normalize_name,
    normalize_name_for_comparison,
    normalize_phone,
)
from driver_matcher.services.matching.signals import (
    phone_similarity,
    name_similarity,
    adaptive_name_threshold,
)
from driver_matcher.services.matching.scoring import composite_score
from driver_matcher.services.matching.rules import MatchRules
from driver_matcher.services.matching.driver_index import DriverIndex, IndexedDriver
from driver_matcher.services.matching.candidates import CandidateGenerator, CandidateSet
from driver_matcher.services.matching.explainability import ExplainabilityBuilder
from driver_matcher.services.matching.types import (
    Source,
    ReconciliationStatus,
    CanonicalDriver,
    ExternalRecord,
    MatchResult,
    BatchSummary,
)

__all__ = [
    # Normalizer
    "normalize_name",
    "normalize_name_for_comparison",
    "normalize_phone",
    # Signal scorers
    "phone_similarity",
    "name_similarity",
    "adaptive_name_threshold",
    "composite_score",
    # Configuration
    "MatchRules",
    # Index and candidates
    "DriverIndex",
    "IndexedDriver",
    "CandidateGenerator",
    "CandidateSet",
    # Explainability
    "ExplainabilityBuilder",
    # Value types
    "Source",
    "ReconciliationStatus",
    "CanonicalDriver",
    "ExternalRecord",
    "MatchResult",
    "BatchSummary",
]
