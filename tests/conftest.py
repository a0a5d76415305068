"""
Shared fixtures: canonical drivers, record factories and an in-memory database.
"""

from datetime import date

import pytest

from driver_matcher import database
from driver_matcher.models import Driver
from driver_matcher.services.matching.types import CanonicalDriver, ExternalRecord, Source


@pytest.fixture
def drivers():
    """Small registry hired around mid January 2024."""
    return [
        CanonicalDriver("D001", "Juan Pérez López", "0991234567", date(2024, 1, 10)),
        CanonicalDriver("D002", "María José Fernández", "0987654321", date(2024, 1, 12)),
        CanonicalDriver("D003", "Carlos Alberto Mendoza Rojas", "0971112233", date(2024, 1, 10)),
        CanonicalDriver("D004", "Ana de la Cruz", "0965554444", date(2024, 1, 15)),
    ]


@pytest.fixture
def make_record():
    """Factory for ExternalRecord with lead defaults."""
    def _make(external_id="L1", source=Source.LEAD, name=None, phone=None,
              reference_date=date(2024, 1, 8), claimant_id=None, **kwargs):
        return ExternalRecord(
            external_id=external_id,
            source=source,
            candidate_name=name,
            candidate_phone=phone,
            reference_date=reference_date,
            claimant_id=claimant_id,
            **kwargs,
        )
    return _make


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test."""
    factory = database.init_db("sqlite://")
    database.create_tables()
    yield factory
    database.engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_db(db, drivers):
    """Database session with the driver registry loaded."""
    for d in drivers:
        db.add(Driver(driver_id=d.driver_id, full_name=d.full_name, phone=d.phone, hire_date=d.hire_date))
    db.commit()
    return db
