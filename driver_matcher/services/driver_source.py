"""
Canonical Driver Accessors

The engine reads drivers through the DriverSource protocol: a hire-date
range query for index building and a single lookup for manual matches.
"""

from datetime import date
from typing import Iterable, List, Optional, Protocol
from sqlalchemy.orm import Session
import structlog

from driver_matcher.models.driver import Driver
from driver_matcher.services.matching.types import CanonicalDriver

logger = structlog.get_logger(__name__)


class DriverSource(Protocol):
    """Read-only access to the canonical driver registry."""

    def drivers_hired_between(self, date_from: date, date_to: date) -> List[CanonicalDriver]:
        ...

    def get_driver(self, driver_id: str) -> Optional[CanonicalDriver]:
        ...


class SqlDriverSource:
    """DriverSource backed by the drivers table."""

    def __init__(self, db: Session):
        self.db = db

    def drivers_hired_between(self, date_from: date, date_to: date) -> List[CanonicalDriver]:
        rows = self.db.query(Driver).filter(
            Driver.hire_date >= date_from,
            Driver.hire_date <= date_to
        ).order_by(
            Driver.hire_date, Driver.driver_id
        ).all()

        logger.info("drivers_loaded",
                    date_from=date_from.isoformat(),
                    date_to=date_to.isoformat(),
                    count=len(rows))
        return [row.to_canonical() for row in rows]

    def get_driver(self, driver_id: str) -> Optional[CanonicalDriver]:
        row = self.db.query(Driver).filter(Driver.driver_id == driver_id).first()
        return row.to_canonical() if row else None


class StaticDriverSource:
    """DriverSource over an in-memory snapshot (collaborator-supplied lists, tests)."""

    def __init__(self, drivers: Iterable[CanonicalDriver]):
        self._drivers = {d.driver_id: d for d in drivers}

    def drivers_hired_between(self, date_from: date, date_to: date) -> List[CanonicalDriver]:
        selected = [
            d for d in self._drivers.values()
            if d.hire_date is not None and date_from <= d.hire_date <= date_to
        ]
        return sorted(selected, key=lambda d: (d.hire_date, d.driver_id))

    def get_driver(self, driver_id: str) -> Optional[CanonicalDriver]:
        return self._drivers.get(driver_id)


__all__ = ["DriverSource", "SqlDriverSource", "StaticDriverSource"]
