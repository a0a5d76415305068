"""
Tests for MatchResolver and MatchingEngine

Tests cover:
- Exact name + phone in window scores 1.0
- Temporal gate rejects strong matches outside the margin
- Deterministic tie-break (score, day_diff, driver_id)
- Typo scenario (exact phone, misspelled first name)
- Exact-only mode, adaptive thresholds, ledger hire-before-reference
- Idempotence and batch summary
- Index build failure raises MatchingUnavailableError
"""

from datetime import date

import pytest

from driver_matcher.exceptions import MatchingUnavailableError
from driver_matcher.services.driver_source import StaticDriverSource
from driver_matcher.services.matching import DriverIndex, MatchRules
from driver_matcher.services.matching.types import CanonicalDriver, Source
from driver_matcher.services.matching_engine import MatchingEngine, MatchResolver


@pytest.fixture
def engine(drivers):
    return MatchingEngine(StaticDriverSource(drivers))


def resolver_for(drivers, **rules):
    return MatchResolver(DriverIndex.build(drivers), MatchRules(**rules))


class TestMatchResolver:

    def test_exact_match_scores_one(self, drivers, make_record):
        record = make_record(name="Juan Pérez López", phone="0991234567", reference_date=date(2024, 1, 8))
        result = resolver_for(drivers).resolve(record)

        assert result.driver_id == "D001"
        assert result.score == 1.0
        assert result.day_diff == 2
        assert result.hire_date == date(2024, 1, 10)
        assert result.is_manual is False
        assert result.scoring_details["match_status"] == "auto_matched"
        assert result.scoring_details["decision_row"] == "exact_phone_exact_name"

    def test_temporal_gate_rejects_exact_name(self, make_record):
        drivers = [CanonicalDriver("D001", "Juan Pérez López", None, date(2024, 2, 17))]
        record = make_record(name="Juan Pérez López", reference_date=date(2024, 1, 8))
        result = resolver_for(drivers, margin_days=14).resolve(record)

        assert result.driver_id is None
        assert result.score == 0.0
        assert result.scoring_details["match_status"] == "rejected"

    def test_margin_boundary_is_inclusive(self, make_record):
        drivers = [CanonicalDriver("D001", "Juan Pérez López", None, date(2024, 1, 22))]
        record = make_record(name="Juan Pérez López", reference_date=date(2024, 1, 8))
        assert resolver_for(drivers, margin_days=14).resolve(record).day_diff == 14

    def test_tie_broken_by_day_diff(self, make_record):
        drivers = [
            CanonicalDriver("D001", "Juan Pérez López", "0991234567", date(2024, 1, 11)),
            CanonicalDriver("D002", "Juan Pérez López", "0965554444", date(2024, 1, 9)),
        ]
        record = make_record(name="Juan Pérez López", reference_date=date(2024, 1, 8))
        result = resolver_for(drivers).resolve(record)

        assert result.driver_id == "D002"
        assert result.score == 0.6
        assert result.scoring_details["candidates_in_window"] == 2

    def test_tie_broken_by_driver_id(self, make_record):
        drivers = [
            CanonicalDriver("D002", "Juan Pérez López", None, date(2024, 1, 10)),
            CanonicalDriver("D001", "Juan Pérez López", None, date(2024, 1, 6)),
        ]
        record = make_record(name="Juan Pérez López", reference_date=date(2024, 1, 8))
        assert resolver_for(drivers).resolve(record).driver_id == "D001"

    def test_higher_score_beats_closer_date(self, make_record):
        drivers = [
            CanonicalDriver("D001", "Juan Pérez López", "0991234567", date(2024, 1, 11)),
            CanonicalDriver("D002", "Juan Pérez López", None, date(2024, 1, 8)),
        ]
        record = make_record(name="Juan Pérez López", phone="0991234567", reference_date=date(2024, 1, 8))
        result = resolver_for(drivers).resolve(record)

        assert result.driver_id == "D001"
        assert result.score == 1.0

    def test_typo_in_first_name_with_exact_phone(self, make_record):
        drivers = [CanonicalDriver("D003", "Carlos Alberto Mendoza Rojas", "0971112233", date(2024, 1, 10))]
        record = make_record(
            name="Carlso Alberto Mendoza Rojas",
            phone="0971112233",
            reference_date=date(2024, 1, 8),
        )
        result = resolver_for(drivers).resolve(record)

        assert result.driver_id == "D003"
        assert result.day_diff == 2
        assert result.score in (0.8, 0.9)
        assert result.name_similarity == pytest.approx(0.8)
        assert result.phone_similarity == 1.0

    def test_exact_only_mode(self, drivers, make_record):
        record = make_record(phone="0991234568", reference_date=date(2024, 1, 8))

        fuzzy = resolver_for(drivers).resolve(record)
        assert fuzzy.driver_id == "D001"
        assert fuzzy.score == 0.5
        assert fuzzy.candidate_tier == "phone_scan"

        exact = resolver_for(drivers, enable_fuzzy_matching=False).resolve(record)
        assert exact.driver_id is None

    def test_adaptive_name_threshold(self, make_record):
        drivers = [CanonicalDriver("D001", "Juan Pérez Gómez", None, date(2024, 1, 10))]
        record = make_record(name="Juan Pérez", reference_date=date(2024, 1, 8))

        # Jaccard 2/3 fails a fixed 0.7 threshold but passes the 3-word adaptive 0.5
        assert resolver_for(drivers, name_threshold=0.7).resolve(record).driver_id is None

        result = resolver_for(drivers, name_threshold=0.7, adaptive_name_threshold=True).resolve(record)
        assert result.driver_id == "D001"
        assert result.score == 0.6
        assert result.scoring_details["thresholds"]["name"] == 0.5

    def test_hire_before_reference(self, make_record):
        drivers = [CanonicalDriver("D001", "Juan Pérez López", "0991234567", date(2024, 1, 10))]
        record = make_record(
            source=Source.LEDGER_TRANSACTION,
            name="Juan Pérez López",
            phone="0991234567",
            reference_date=date(2024, 1, 8),
        )

        assert resolver_for(drivers, margin_days=30).resolve(record).driver_id == "D001"
        assert resolver_for(drivers, margin_days=30, hire_before_reference=True).resolve(record).driver_id is None

    def test_record_without_reference_date_is_unmatched(self, drivers, make_record):
        record = make_record(name="Juan Pérez López", phone="0991234567", reference_date=None)
        result = resolver_for(drivers).resolve(record)
        assert result.driver_id is None
        assert result.score == 0.0

    def test_record_without_attributes_is_unmatched(self, drivers, make_record):
        result = resolver_for(drivers).resolve(make_record())
        assert result.driver_id is None
        assert result.scoring_details["match_status"] == "no_candidates"


class TestMatchingEngine:

    def test_batch_summary(self, engine, make_record):
        records = [
            make_record("L1", name="Juan Pérez López", phone="0991234567", reference_date=date(2024, 1, 8)),
            make_record("L2", name="Ana de la Cruz", reference_date=date(2024, 1, 14)),
            make_record("L3", name="Nadie Conocido", reference_date=date(2024, 1, 20)),
        ]
        outcome = engine.match_records(records, MatchRules())

        assert [r.external_id for r in outcome.results] == ["L1", "L2", "L3"]
        assert [r.driver_id for r in outcome.results] == ["D001", "D004", None]
        assert outcome.summary.total == 3
        assert outcome.summary.matched_count == 2
        assert outcome.summary.unmatched_count == 1
        assert outcome.summary.date_range_from == date(2024, 1, 8)
        assert outcome.summary.date_range_to == date(2024, 1, 20)

    def test_idempotent(self, engine, make_record):
        records = [
            make_record("L1", name="Juan Pérez López", phone="0991234567"),
            make_record("L2", name="Carlso Alberto Mendoza Rojas", phone="0971112233"),
            make_record("L3", phone="0987654320", reference_date=date(2024, 1, 12)),
        ]
        rules = MatchRules()

        first = engine.match_records(records, rules)
        second = engine.match_records(records, rules)

        assert first.results == second.results
        assert first.summary == second.summary

    def test_progress_callback(self, engine, make_record):
        calls = []
        records = [make_record("L1", name="Juan Pérez López"), make_record("L2", name="Nadie")]
        engine.match_records(records, MatchRules(), on_progress=lambda *args: calls.append(args))
        assert calls == [(1, 1, 0), (2, 1, 1)]

    def test_empty_batch(self, engine):
        outcome = engine.match_records([], MatchRules())
        assert outcome.results == []
        assert outcome.summary.total == 0

    def test_driver_source_failure_raises_unavailable(self, make_record):
        class BrokenSource:
            def drivers_hired_between(self, date_from, date_to):
                raise ConnectionError("registry offline")

            def get_driver(self, driver_id):
                return None

        engine = MatchingEngine(BrokenSource())
        with pytest.raises(MatchingUnavailableError):
            engine.match_records([make_record(name="Juan Pérez López")], MatchRules())

    def test_window_limits_loaded_drivers(self, make_record):
        drivers = [CanonicalDriver("D001", "Juan Pérez López", None, date(2024, 3, 1))]
        outcome = MatchingEngine(StaticDriverSource(drivers)).match_records(
            [make_record(name="Juan Pérez López", reference_date=date(2024, 1, 8))],
            MatchRules(margin_days=14),
        )
        assert outcome.results[0].driver_id is None
        assert outcome.results[0].scoring_details["match_status"] == "no_candidates"
