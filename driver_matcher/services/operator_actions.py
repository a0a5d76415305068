"""
Operator Actions
Synchronous single-record overrides: manual match, clear override, discard, undiscard
"""

from typing import List, Optional
import structlog
from sqlalchemy.orm import Session

from driver_matcher.exceptions import AmbiguousRecordError, DriverNotFoundError, RecordNotFoundError
from driver_matcher.models.external_record import ExternalRecordEntry
from driver_matcher.models.match_result import MatchResultRecord
from driver_matcher.services.driver_source import DriverSource, SqlDriverSource
from driver_matcher.services.match_store import MatchStore
from driver_matcher.services.matching import ExplainabilityBuilder
from driver_matcher.services.matching.types import MatchResult, Source

logger = structlog.get_logger(__name__)


class OperatorActions:
    """
    Operator decisions on individual match results.

    Every action commits before returning and fails loudly on unknown ids.
    When an external_id exists in more than one source the caller must pass
    source=, otherwise AmbiguousRecordError is raised.
    """

    def __init__(self, db: Session, driver_source: Optional[DriverSource] = None):
        self.db = db
        self.store = MatchStore(db)
        self.driver_source = driver_source or SqlDriverSource(db)

    def assign_manual_match(
        self,
        external_id: str,
        driver_id: str,
        source: Optional[Source] = None,
        operator: Optional[str] = None,
    ) -> MatchResult:
        """
        Assert that an external record belongs to a driver.

        Bypasses scoring: score=1.0, is_manual=True, and clears any discard.
        Automatic re-matching never touches the result afterwards.

        Raises:
            RecordNotFoundError: Unknown external_id (in the given source)
            AmbiguousRecordError: external_id in several sources, none given
            DriverNotFoundError: Unknown driver_id
        """
        record = self._resolve_record(external_id, source)
        driver = self.driver_source.get_driver(driver_id)
        if driver is None:
            raise DriverNotFoundError(driver_id)

        day_diff = None
        if record.reference_date is not None and driver.hire_date is not None:
            day_diff = abs((record.reference_date - driver.hire_date).days)

        previous = self.store.get_result(record.source, record.external_id)
        result = MatchResult(
            external_id=record.external_id,
            source=record.source,
            driver_id=driver.driver_id,
            score=1.0,
            day_diff=day_diff,
            hire_date=driver.hire_date,
            is_manual=True,
            is_discarded=False,
            scoring_details=ExplainabilityBuilder.manual(driver.driver_id, day_diff),
        )
        self.store.save_results([result], allow_manual_overwrite=True)

        logger.info("manual_match_assigned",
                    source=record.source,
                    external_id=record.external_id,
                    driver_id=driver.driver_id,
                    previous_driver_id=previous.driver_id if previous else None,
                    operator=operator)
        return result

    def clear_manual_match(self, external_id: str, source: Optional[Source] = None) -> MatchResult:
        """
        Remove a manual override, leaving the record unmatched.

        The next re-match pass (scope "unmatched" or "all") resolves it
        automatically again.
        """
        row = self._resolve_result(external_id, source)
        if not row.is_manual:
            logger.info("manual_match_not_set", source=row.source, external_id=row.external_id)
            return row.to_result()

        previous_driver_id = row.driver_id
        row.apply(MatchResult(external_id=row.external_id, source=row.source))
        row.matched_at = None
        row.reconciliation_status = None
        row.is_reconciled = False
        self.store.commit("clear_manual_match", external_id=row.external_id)

        logger.info("manual_match_cleared",
                    source=row.source,
                    external_id=row.external_id,
                    previous_driver_id=previous_driver_id)
        return row.to_result()

    def discard(self, external_id: str, source: Optional[Source] = None) -> MatchResult:
        """Exclude a record from reconciliation and re-matching; kept for audit."""
        record = self._resolve_record(external_id, source)
        row = self.store.get_result(record.source, record.external_id)
        if row is None:
            row = MatchResultRecord(
                source=record.source,
                external_id=record.external_id,
                claimant_id=record.claimant_id,
                score=0.0,
            )
            self.db.add(row)

        row.is_discarded = True
        row.reconciliation_status = None
        row.is_reconciled = False
        self.store.commit("discard", external_id=record.external_id)

        logger.info("match_result_discarded",
                    source=record.source,
                    external_id=record.external_id,
                    driver_id=row.driver_id)
        return row.to_result()

    def undiscard(self, external_id: str, source: Optional[Source] = None) -> MatchResult:
        row = self._resolve_result(external_id, source)
        row.is_discarded = False
        self.store.commit("undiscard", external_id=row.external_id)

        logger.info("match_result_undiscarded", source=row.source, external_id=row.external_id)
        return row.to_result()

    def list_unmatched(self, source: Optional[Source] = None) -> List[MatchResult]:
        """Unmatched, non-discarded results ordered by (source, external_id)."""
        rows = self.store.list_results(source=source, unmatched_only=True, include_discarded=False)
        return [row.to_result() for row in rows]

    def _resolve_record(self, external_id: str, source: Optional[Source]) -> ExternalRecordEntry:
        if source is not None:
            source = Source(source).value
            record = self.store.get_record(source, external_id)
            if record is None:
                raise RecordNotFoundError(external_id, source)
            return record

        sources = self.store.sources_for(external_id)
        if not sources:
            raise RecordNotFoundError(external_id)
        if len(sources) > 1:
            raise AmbiguousRecordError(external_id, sources)
        return self.store.get_record(sources[0], external_id)

    def _resolve_result(self, external_id: str, source: Optional[Source]) -> MatchResultRecord:
        record = self._resolve_record(external_id, source)
        row = self.store.get_result(record.source, record.external_id)
        if row is None:
            raise RecordNotFoundError(external_id, record.source)
        return row


__all__ = ["OperatorActions"]
