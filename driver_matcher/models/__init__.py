"""
Database Models
"""

from driver_matcher.models.driver import Driver
from driver_matcher.models.external_record import ExternalRecordEntry
from driver_matcher.models.match_result import MatchResultRecord
from driver_matcher.models.reconciliation_report import ReconciliationReport

__all__ = [
    "Driver",
    "ExternalRecordEntry",
    "MatchResultRecord",
    "ReconciliationReport",
]
