"""
Driver Model
Canonical driver registry; the engine only reads from it
"""

from sqlalchemy import Column, String, Date, DateTime
from sqlalchemy.sql import func
from driver_matcher.database import Base
from driver_matcher.services.matching.types import CanonicalDriver


class Driver(Base):
    """
    Authoritative worker record against which external claims are resolved.

    Written by the registry sync (outside this service); matching treats it
    as a read-only snapshot per batch.
    """
    __tablename__ = "drivers"

    # Primary Key
    driver_id = Column(String(64), primary_key=True)

    # Identity attributes (fuzzy)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True, index=True)

    # Hire date anchors the temporal window
    hire_date = Column(Date, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_canonical(self) -> CanonicalDriver:
        return CanonicalDriver(
            driver_id=self.driver_id,
            full_name=self.full_name,
            phone=self.phone,
            hire_date=self.hire_date,
        )

    def __repr__(self):
        return f"<Driver(driver_id='{self.driver_id}', name='{self.full_name}', hire_date={self.hire_date})>"
