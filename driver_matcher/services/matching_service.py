"""
Matching Service
Ingests external record batches, matches them and persists results in committed chunks
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional
import structlog
from sqlalchemy.orm import Session, sessionmaker

from driver_matcher.services.driver_source import DriverSource, SqlDriverSource
from driver_matcher.services.jobs import JobHandle, JobRegistry, job_registry
from driver_matcher.services.match_store import MatchStore, chunked
from driver_matcher.services.matching import MatchRules
from driver_matcher.services.matching.types import BatchSummary, ExternalRecord, Source
from driver_matcher.services.matching_engine import MatchingEngine

logger = structlog.get_logger(__name__)

SCOPE_UNMATCHED = "unmatched"
SCOPE_ALL = "all"
REPROCESS_SCOPES = (SCOPE_UNMATCHED, SCOPE_ALL)


class MatchingService:
    """
    Batch entry point used by collaborators (loaders, scripts, job runners).

    Manual and discarded results are never re-matched: they are counted in
    BatchSummary.skipped_count and left exactly as they are.

    When no rules are given, each source is matched with
    MatchRules.for_source(source, **rule_overrides), so overrides keep the
    per-source margin and hire_before_reference. Explicit rules apply to
    every source as given.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        driver_source: Optional[DriverSource] = None,
        batch_size: Optional[int] = None,
    ):
        """
        Args:
            session_factory: SQLAlchemy sessionmaker (one session per call)
            driver_source: Canonical driver accessor; defaults to the drivers table
            batch_size: Rows per committed chunk (defaults to settings)
        """
        self.session_factory = session_factory
        self.driver_source = driver_source
        self.batch_size = batch_size

    def process_batch(
        self,
        records: Iterable[ExternalRecord],
        rules: Optional[MatchRules] = None,
        job: Optional[JobHandle] = None,
    ) -> BatchSummary:
        """
        Ingest and match one batch of external records.

        Re-ingesting an external_id updates the stored record in place and
        refreshes its (non-manual, non-discarded) match result.
        """
        records = list(records)
        session: Session = self.session_factory()
        try:
            store = MatchStore(session, batch_size=self.batch_size)
            store.upsert_records(records)

            # Batch-internal duplicates collapse to the last occurrence
            unique = list({r.key: r for r in records}.values())
            summary = self._match_and_persist(session, store, unique, rules, job)

            logger.info("batch_processed", **summary.to_dict())
            return summary
        finally:
            session.close()

    def reprocess_with_rules(
        self,
        rules: Optional[MatchRules] = None,
        scope: str = SCOPE_UNMATCHED,
        source: Optional[Source] = None,
        job: Optional[JobHandle] = None,
        rule_overrides: Optional[Dict[str, Any]] = None,
    ) -> BatchSummary:
        """
        Re-match stored external records under (possibly new) rules.

        Args:
            rules: Rules for every source, or None for per-source defaults
            rule_overrides: Fields replaced on each per-source default
            scope: "unmatched" (records without a driver) or "all"
            source: Restrict to one source
            job: Optional handle receiving progress and cancel requests

        Returns:
            BatchSummary for the records in scope

        Running twice with the same rules and driver population yields
        identical results.
        """
        if scope not in REPROCESS_SCOPES:
            raise ValueError(f"Unknown reprocess scope {scope!r}; expected one of {REPROCESS_SCOPES}")
        if rules is not None and rule_overrides:
            raise ValueError("Pass either explicit rules or rule_overrides, not both")

        session: Session = self.session_factory()
        try:
            store = MatchStore(session, batch_size=self.batch_size)
            records = store.load_records(source=source)

            if scope == SCOPE_UNMATCHED:
                existing = store.results_for([r.key for r in records])
                records = [
                    r for r in records
                    if existing.get(r.key) is None or existing[r.key].driver_id is None
                ]

            logger.info("reprocess_started",
                        scope=scope,
                        source=Source(source).value if source else None,
                        records=len(records),
                        custom_rules=rules is not None,
                        rule_overrides=rule_overrides or None)

            summary = self._match_and_persist(session, store, records, rules, job, rule_overrides)

            logger.info("reprocess_completed", scope=scope, **summary.to_dict())
            return summary
        finally:
            session.close()

    def start_batch_job(
        self,
        records: Iterable[ExternalRecord],
        rules: Optional[MatchRules] = None,
        registry: Optional[JobRegistry] = None,
    ) -> JobHandle:
        registry = registry or job_registry
        return registry.submit("batch", self.process_batch, list(records), rules=rules)

    def start_rematch_job(
        self,
        rules: Optional[MatchRules] = None,
        scope: str = SCOPE_UNMATCHED,
        source: Optional[Source] = None,
        registry: Optional[JobRegistry] = None,
        rule_overrides: Optional[Dict[str, Any]] = None,
    ) -> JobHandle:
        """Run reprocess_with_rules on the worker pool and return its handle."""
        if scope not in REPROCESS_SCOPES:
            raise ValueError(f"Unknown reprocess scope {scope!r}; expected one of {REPROCESS_SCOPES}")

        registry = registry or job_registry
        return registry.submit("rematch", self.reprocess_with_rules,
                               rules=rules, scope=scope, source=source, rule_overrides=rule_overrides)

    def _match_and_persist(
        self,
        session: Session,
        store: MatchStore,
        records: List[ExternalRecord],
        rules: Optional[MatchRules],
        job: Optional[JobHandle],
        rule_overrides: Optional[Dict[str, Any]] = None,
    ) -> BatchSummary:
        summary = BatchSummary(total=len(records))
        summary.add_dates([r.reference_date for r in records])
        if job is not None:
            job.set_total(len(records))

        existing = store.results_for([r.key for r in records])
        pending: Dict[Source, List[ExternalRecord]] = defaultdict(list)
        for record in records:
            row = existing.get(record.key)
            if row is not None and (row.is_manual or row.is_discarded):
                summary.skipped_count += 1
                continue
            pending[record.source].append(record)

        if job is not None and summary.skipped_count:
            job.advance(processed=summary.skipped_count)

        engine = MatchingEngine(self.driver_source or SqlDriverSource(session))
        batch_size = store.batch_size

        for source in sorted(pending, key=lambda s: s.value):
            source_records = pending[source]
            source_rules = rules or MatchRules.for_source(source, **(rule_overrides or {}))
            resolver = engine.prepare(source_records, source_rules)

            for chunk in chunked(source_records, batch_size):
                if job is not None:
                    job.raise_if_cancelled()

                results = [resolver.resolve(record) for record in chunk]
                store.save_results(results)

                matched = sum(1 for r in results if r.is_matched)
                summary.matched_count += matched
                summary.unmatched_count += len(results) - matched
                if job is not None:
                    job.advance(processed=len(results), matched=matched, unmatched=len(results) - matched)

                logger.info("match_chunk_committed",
                            source=source.value,
                            rows=len(results),
                            matched=matched,
                            processed=summary.matched_count + summary.unmatched_count + summary.skipped_count,
                            total=summary.total)

        return summary


__all__ = ["MatchingService", "REPROCESS_SCOPES", "SCOPE_UNMATCHED", "SCOPE_ALL"]
