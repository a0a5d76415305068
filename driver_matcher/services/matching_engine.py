"""
Matching Engine

Resolves external records (leads, field-agent registrations, ledger
transactions) to canonical drivers:
- Driver index built once per batch over the hire-date window
- Tiered candidate generation (exact keys, word index, phone scan)
- Threshold and temporal gates, composite decision-table score
- Deterministic winner: highest score, then smallest day_diff, then driver_id

Absence of a match is a normal outcome (unmatched MatchResult); only an
index build failure raises MatchingUnavailableError.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional
import structlog

from driver_matcher.config import settings
from driver_matcher.exceptions import MatchingUnavailableError
from driver_matcher.services.driver_source import DriverSource
from driver_matcher.services.matching import (
    CandidateGenerator,
    DriverIndex,
    ExplainabilityBuilder,
    IndexedDriver,
    MatchRules,
    adaptive_name_threshold,
    name_similarity,
    normalize_name_for_comparison,
    normalize_phone,
    phone_similarity,
)
from driver_matcher.services.matching.scoring import composite_row
from driver_matcher.services.matching.types import BatchSummary, ExternalRecord, MatchResult

logger = structlog.get_logger(__name__)


@dataclass
class ScoredCandidate:
    """A driver that cleared both gates, with its scores."""
    driver: IndexedDriver
    phone_similarity: float
    name_similarity: float
    name_threshold: float
    decision_row: str
    score: float
    day_diff: int

    @property
    def sort_key(self):
        return (-self.score, self.day_diff, self.driver.driver_id)


@dataclass
class BatchOutcome:
    """Results of a pure matching pass (nothing persisted)."""
    results: List[MatchResult] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)


class MatchResolver:
    """
    Scores the candidates of one record and picks the winner.

    Holds only the read-only index and frozen rules, so one resolver can be
    shared across worker threads.

    Usage:
        resolver = MatchResolver(DriverIndex.build(drivers), MatchRules())
        result = resolver.resolve(record)
        if result.is_matched:
            print(result.driver_id, result.score)
    """

    def __init__(self, index: DriverIndex, rules: MatchRules):
        self.index = index
        self.rules = rules
        self.generator = CandidateGenerator(index, rules)

    def resolve(self, record: ExternalRecord) -> MatchResult:
        rules = self.rules
        log = logger.bind(external_id=record.external_id, source=record.source.value)

        candidates = self.generator.generate(record)
        if not candidates:
            log.debug("no_candidates")
            return MatchResult.unmatched(
                record,
                ExplainabilityBuilder.build(record, rules, match_status="no_candidates"),
            )

        record_phone = normalize_phone(record.candidate_phone) if rules.match_by_phone else ""
        record_name = record.display_name if rules.match_by_name else None

        scored: List[ScoredCandidate] = []
        for driver_id in candidates.driver_ids:
            driver = self.index.get(driver_id)
            if driver is None:
                continue
            candidate = self._score(record, record_phone, record_name, driver)
            if candidate is not None:
                scored.append(candidate)

        if not scored:
            log.debug("no_candidate_cleared_gates",
                      tier=candidates.tier,
                      considered=len(candidates))
            return MatchResult.unmatched(
                record,
                ExplainabilityBuilder.build(
                    record, rules,
                    match_status="rejected",
                    candidate_tier=candidates.tier,
                    candidates_considered=len(candidates),
                ),
            )

        scored.sort(key=lambda c: c.sort_key)
        best = scored[0]

        if 0.0 < best.name_similarity < 1.0 or 0.0 < best.phone_similarity < 1.0:
            log.info("fuzzy_match_selected",
                     driver_id=best.driver.driver_id,
                     record_name=record_name,
                     driver_name=best.driver.full_name,
                     name_similarity=round(best.name_similarity, 4),
                     phone_similarity=round(best.phone_similarity, 4),
                     score=best.score,
                     day_diff=best.day_diff)

        return MatchResult(
            external_id=record.external_id,
            source=record.source,
            driver_id=best.driver.driver_id,
            score=best.score,
            day_diff=best.day_diff,
            hire_date=best.driver.hire_date,
            phone_similarity=best.phone_similarity,
            name_similarity=best.name_similarity,
            candidate_tier=candidates.tier,
            scoring_details=ExplainabilityBuilder.build(
                record, rules,
                match_status="auto_matched",
                candidate_tier=candidates.tier,
                candidates_considered=len(candidates),
                candidates_in_window=len(scored),
                driver=best.driver,
                phone_similarity=best.phone_similarity,
                name_similarity=best.name_similarity,
                decision_row=best.decision_row,
                final_score=best.score,
                day_diff=best.day_diff,
                name_threshold=best.name_threshold,
            ),
        )

    def _score(
        self,
        record: ExternalRecord,
        record_phone: str,
        record_name: Optional[str],
        driver: IndexedDriver,
    ) -> Optional[ScoredCandidate]:
        rules = self.rules
        phone_threshold = rules.effective_phone_threshold
        name_threshold = self._name_threshold(record_name, driver.full_name)

        phone_sim = 0.0
        if record_phone and driver.phone:
            phone_sim = phone_similarity(record_phone, driver.phone)

        name_sim = 0.0
        if record_name and driver.full_name:
            name_sim = name_similarity(
                record_name,
                driver.full_name,
                threshold=name_threshold,
                min_words_match=rules.min_words_match,
                ignore_trailing_surname=rules.ignore_trailing_surname,
            )

        if not (phone_sim >= phone_threshold or name_sim >= name_threshold):
            return None

        day_diff = self._day_diff(record, driver)
        if day_diff is None:
            return None

        row, score = composite_row(phone_sim, name_sim)
        return ScoredCandidate(
            driver=driver,
            phone_similarity=phone_sim,
            name_similarity=name_sim,
            name_threshold=name_threshold,
            decision_row=row,
            score=score,
            day_diff=day_diff,
        )

    def _name_threshold(self, record_name: Optional[str], driver_name: Optional[str]) -> float:
        rules = self.rules
        if not rules.enable_fuzzy_matching or not rules.adaptive_name_threshold:
            return rules.effective_name_threshold

        word_count = max(
            len(normalize_name_for_comparison(record_name).split()),
            len(normalize_name_for_comparison(driver_name).split()),
        )
        return adaptive_name_threshold(word_count)

    def _day_diff(self, record: ExternalRecord, driver: IndexedDriver) -> Optional[int]:
        """Absolute days between reference and hire date, None when outside the gate."""
        if record.reference_date is None or driver.hire_date is None:
            return None

        signed = (record.reference_date - driver.hire_date).days
        if self.rules.hire_before_reference and signed < 0:
            return None

        day_diff = abs(signed)
        if day_diff > self.rules.margin_days:
            return None
        return day_diff


class MatchingEngine:
    """
    Batch front-end: builds the index from a DriverSource and resolves records.

    Usage:
        engine = MatchingEngine(SqlDriverSource(db))
        outcome = engine.match_records(records, MatchRules.for_source("lead"))
        print(outcome.summary.matched_count)
    """

    def __init__(self, driver_source: DriverSource, fallback_window_days: Optional[int] = None):
        self.driver_source = driver_source
        self.fallback_window_days = (
            fallback_window_days if fallback_window_days is not None else settings.fallback_window_days
        )

    def prepare(self, records: List[ExternalRecord], rules: MatchRules) -> MatchResolver:
        """Build the per-batch index and return a resolver over it."""
        date_from, date_to = DriverIndex.window(
            (r.reference_date for r in records),
            rules.margin_days,
            fallback_days=self.fallback_window_days,
        )

        try:
            drivers = self.driver_source.drivers_hired_between(date_from, date_to)
            index = DriverIndex.build(drivers)
        except Exception as e:
            logger.error("driver_index_build_failed",
                         date_from=date_from.isoformat(),
                         date_to=date_to.isoformat(),
                         error=str(e))
            raise MatchingUnavailableError(f"Could not build driver index: {e}") from e

        logger.info("matching_batch_prepared",
                    records=len(records),
                    drivers=len(index),
                    date_from=date_from.isoformat(),
                    date_to=date_to.isoformat(),
                    margin_days=rules.margin_days)
        return MatchResolver(index, rules)

    def match_records(
        self,
        records: Iterable[ExternalRecord],
        rules: MatchRules,
        on_progress: Optional[Callable[[int, int, int], None]] = None,
    ) -> BatchOutcome:
        """
        Resolve every record against a freshly built index.

        Args:
            records: External records, any order
            rules: Rules in force for the batch
            on_progress: Called as (processed, matched, unmatched) after each record

        Returns:
            BatchOutcome with one MatchResult per record and the summary
        """
        records = list(records)
        outcome = BatchOutcome()
        outcome.summary.add_dates([r.reference_date for r in records])

        if not records:
            return outcome

        resolver = self.prepare(records, rules)
        summary = outcome.summary

        for processed, record in enumerate(records, 1):
            result = resolver.resolve(record)
            outcome.results.append(result)

            summary.total += 1
            if result.is_matched:
                summary.matched_count += 1
            else:
                summary.unmatched_count += 1

            if on_progress is not None:
                on_progress(processed, summary.matched_count, summary.unmatched_count)

            if processed % settings.progress_log_every == 0:
                logger.info("matching_progress",
                            processed=processed,
                            total=len(records),
                            matched=summary.matched_count,
                            unmatched=summary.unmatched_count)

        logger.info("matching_batch_completed", **summary.to_dict())
        return outcome


__all__ = ["MatchingEngine", "MatchResolver", "BatchOutcome", "ScoredCandidate"]
