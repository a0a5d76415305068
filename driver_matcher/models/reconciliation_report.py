"""
ReconciliationReport Model
Tracks reconciliation runs over cross-source driver claims
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from sqlalchemy.sql import func
from driver_matcher.database import Base


class ReconciliationReport(Base):
    """
    Audit trail for reconciliation runs.

    Records how many claims were corroborated by two sources, how many still
    wait for a second source, and which identities conflict.
    """
    __tablename__ = "reconciliation_reports"

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Run Timestamps
    run_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Reconciliation Metrics
    claims_checked = Column(Integer, default=0, nullable=False)
    matched_both_sources = Column(Integer, default=0, nullable=False)
    single_source_pending = Column(Integer, default=0, nullable=False)
    conflicting = Column(Integer, default=0, nullable=False)
    unmatched = Column(Integer, default=0, nullable=False)

    # Conflict Details
    details = Column(JSON, nullable=True)
    # List of conflicts: [{claimant_id, identity_name, driver_ids, claims: [{source, external_id, driver_id}]}]

    # Status
    status = Column(String(50), default='running', nullable=False)
    # Statuses: running, completed, failed

    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ReconciliationReport(id={self.id}, run_at={self.run_at}, status='{self.status}', conflicts={self.conflicting})>"
