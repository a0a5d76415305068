"""
ExternalRecordEntry Model
Stores ingested rows from leads, field-agent registrations and ledger transactions
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint, Index
from sqlalchemy.sql import func
from driver_matcher.database import Base
from driver_matcher.services.matching.types import ExternalRecord


class ExternalRecordEntry(Base):
    """
    One ingested row claiming an association with some driver.

    Unique per (source, external_id): re-ingesting the same id updates the
    mutable fields in place instead of duplicating the row. Re-match runs
    rebuild ExternalRecord values from these rows.
    """
    __tablename__ = "external_records"

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity within the source system
    source = Column(String(50), nullable=False)  # lead, field_agent_registration, ledger_transaction
    external_id = Column(String(255), nullable=False)

    # Claimed attributes (any may be missing)
    candidate_name = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    candidate_phone = Column(String(50), nullable=True)
    reference_date = Column(Date, nullable=True)  # lead creation / registration / transaction date

    # Field agent asserting the claim (reconciliation grouping key)
    claimant_id = Column(String(255), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('source', 'external_id', name='uq_external_records_source_external_id'),
        Index('idx_external_records_reference_date', 'reference_date'),
    )

    MUTABLE_FIELDS = (
        "candidate_name", "first_name", "last_name",
        "candidate_phone", "reference_date", "claimant_id",
    )

    @classmethod
    def from_record(cls, record: ExternalRecord) -> "ExternalRecordEntry":
        entry = cls(source=record.source.value, external_id=record.external_id)
        entry.update_from(record)
        return entry

    def update_from(self, record: ExternalRecord) -> None:
        for name in self.MUTABLE_FIELDS:
            setattr(self, name, getattr(record, name))

    def to_record(self) -> ExternalRecord:
        return ExternalRecord(
            external_id=self.external_id,
            source=self.source,
            candidate_name=self.candidate_name,
            first_name=self.first_name,
            last_name=self.last_name,
            candidate_phone=self.candidate_phone,
            reference_date=self.reference_date,
            claimant_id=self.claimant_id,
        )

    def __repr__(self):
        return f"<ExternalRecordEntry(source='{self.source}', external_id='{self.external_id}')>"
