"""
ReconciliationService
Cross-checks driver claims made by different sources for the same claimant
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
import structlog

from driver_matcher.exceptions import ClaimNotFoundError
from driver_matcher.models.external_record import ExternalRecordEntry
from driver_matcher.models.match_result import MatchResultRecord
from driver_matcher.models.reconciliation_report import ReconciliationReport
from driver_matcher.services.jobs import JobHandle, JobRegistry, job_registry
from driver_matcher.services.matching import normalize_name_for_comparison
from driver_matcher.services.matching.types import ReconciliationStatus, Source

logger = structlog.get_logger(__name__)

ClaimKey = Tuple[str, str]


@dataclass
class ReconciliationClaim:
    """One source's assertion: claimant X's identity Y is driver Z (or nobody)."""
    source: str
    external_id: str
    claimant_id: Optional[str]
    driver_id: Optional[str]
    identity_name: Optional[str] = None
    is_discarded: bool = False

    @property
    def key(self) -> ClaimKey:
        return (self.source, self.external_id)


@dataclass
class ReconciliationOutcome:
    """Per-claim statuses plus the conflicts that need an operator."""
    statuses: Dict[ClaimKey, ReconciliationStatus] = field(default_factory=dict)
    reconciled: Set[ClaimKey] = field(default_factory=set)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)

    def count(self, status: ReconciliationStatus) -> int:
        return sum(1 for s in self.statuses.values() if s == status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claims_checked": len(self.statuses),
            "matched_both_sources": self.count(ReconciliationStatus.MATCHED_BOTH_SOURCES),
            "single_source_pending": self.count(ReconciliationStatus.SINGLE_SOURCE_PENDING),
            "conflicting": self.count(ReconciliationStatus.CONFLICTING),
            "unmatched": self.count(ReconciliationStatus.UNMATCHED),
            "conflicts": self.conflicts,
        }


class ReconciliationTracker:
    """
    Classifies claims; pure, no database access.

    Rules:
    1. Only claims with a claimant and not discarded take part.
    2. Claims of one identity (claimant + comparison-normalized name) that
       resolve to two or more drivers conflict; their matched claims are all
       marked conflicting and none is preferred. This holds whatever the
       sources are: two records from the same source, same claimant and
       same name that resolve to different drivers conflict as well.
    3. Remaining matched claims are grouped by (claimant, driver): two or
       more sources agree -> matched_both_sources, else single_source_pending.
    4. Claims without a driver are unmatched.
    """

    @staticmethod
    def identity_key(claim: ReconciliationClaim) -> Tuple[str, str]:
        name = normalize_name_for_comparison(claim.identity_name)
        if not name:
            # No name: the claim is its own identity
            return (claim.claimant_id, f"#{claim.source}:{claim.external_id}")
        return (claim.claimant_id, name)

    def classify(self, claims: List[ReconciliationClaim]) -> ReconciliationOutcome:
        outcome = ReconciliationOutcome()
        active = sorted(
            (c for c in claims if c.claimant_id and not c.is_discarded),
            key=lambda c: c.key,
        )

        identities: Dict[Tuple[str, str], List[ReconciliationClaim]] = defaultdict(list)
        for claim in active:
            identities[self.identity_key(claim)].append(claim)

        conflicting: Set[ClaimKey] = set()
        for (claimant_id, identity), group in sorted(identities.items()):
            driver_ids = sorted({c.driver_id for c in group if c.driver_id})
            if len(driver_ids) < 2:
                continue

            matched = [c for c in group if c.driver_id]
            conflicting.update(c.key for c in matched)
            outcome.conflicts.append({
                "claimant_id": claimant_id,
                "identity_name": identity if not identity.startswith("#") else None,
                "driver_ids": driver_ids,
                "claims": [
                    {"source": c.source, "external_id": c.external_id, "driver_id": c.driver_id}
                    for c in matched
                ],
            })
            logger.warning("reconciliation_conflict_detected",
                           claimant_id=claimant_id,
                           identity_name=identity,
                           driver_ids=driver_ids,
                           claims=len(matched))

        by_driver: Dict[Tuple[str, str], List[ReconciliationClaim]] = defaultdict(list)
        for claim in active:
            if claim.key in conflicting:
                outcome.statuses[claim.key] = ReconciliationStatus.CONFLICTING
            elif claim.driver_id is None:
                outcome.statuses[claim.key] = ReconciliationStatus.UNMATCHED
            else:
                by_driver[(claim.claimant_id, claim.driver_id)].append(claim)

        for group in by_driver.values():
            sources = {c.source for c in group}
            if len(sources) >= 2:
                for claim in group:
                    outcome.statuses[claim.key] = ReconciliationStatus.MATCHED_BOTH_SOURCES
                    outcome.reconciled.add(claim.key)
            else:
                for claim in group:
                    outcome.statuses[claim.key] = ReconciliationStatus.SINGLE_SOURCE_PENDING

        return outcome


class ReconciliationService:
    """
    Persists reconciliation statuses on match_results.

    Each run writes a ReconciliationReport row (running -> completed | failed)
    so conflicts stay visible after the run.
    """

    def __init__(self, session_factory: sessionmaker, tracker: Optional[ReconciliationTracker] = None):
        """
        Initialize ReconciliationService.

        Args:
            session_factory: SQLAlchemy sessionmaker for creating sessions
            tracker: Classifier (defaults to ReconciliationTracker)
        """
        self.session_factory = session_factory
        self.tracker = tracker or ReconciliationTracker()

    def run(self, job=None) -> Dict[str, Any]:
        """
        Classify every claim and store the statuses.

        Returns:
            dict: Summary with report id, counts and conflict groups
        """
        session = self.session_factory()
        report = None

        try:
            report = ReconciliationReport(status='running', run_at=datetime.now(timezone.utc))
            session.add(report)
            session.commit()
            session.refresh(report)

            run_id = report.id
            logger.info("reconciliation_started", run_id=run_id)

            rows = self._load_rows(session)
            claims = [self._to_claim(result, record) for result, record in rows]
            if job is not None:
                job.set_total(len(claims))

            outcome = self.tracker.classify(claims)

            for result, _record in rows:
                status = outcome.statuses.get((result.source, result.external_id))
                result.reconciliation_status = status.value if status else None
                result.is_reconciled = (result.source, result.external_id) in outcome.reconciled

            counts = outcome.to_dict()
            report.completed_at = datetime.now(timezone.utc)
            report.claims_checked = counts["claims_checked"]
            report.matched_both_sources = counts["matched_both_sources"]
            report.single_source_pending = counts["single_source_pending"]
            report.conflicting = counts["conflicting"]
            report.unmatched = counts["unmatched"]
            report.details = outcome.conflicts
            report.status = 'completed'

            session.commit()

            if job is not None:
                job.advance(processed=len(claims))

            summary = {'run_id': run_id, 'status': 'completed', **counts}
            logger.info("reconciliation_completed",
                        run_id=run_id,
                        claims_checked=counts["claims_checked"],
                        matched_both_sources=counts["matched_both_sources"],
                        single_source_pending=counts["single_source_pending"],
                        conflicting=counts["conflicting"],
                        unmatched=counts["unmatched"])
            return summary

        except Exception as e:
            logger.error("reconciliation_crashed", error=str(e), exc_info=True)
            session.rollback()

            if report is not None and report.id is not None:
                try:
                    report.status = 'failed'
                    report.error_message = str(e)
                    report.completed_at = datetime.now(timezone.utc)
                    session.commit()
                except Exception as report_error:
                    logger.error("failed_to_update_report", error=str(report_error))

            raise

        finally:
            session.close()

    def start_job(self, registry: Optional[JobRegistry] = None) -> JobHandle:
        registry = registry or job_registry
        return registry.submit("reconciliation", self.run)

    def delete_claim(self, claimant_id: str, driver_id: str, source: Source) -> int:
        """
        Delete one side of a double claim once an operator picked the authoritative source.

        Removes the match results (and their external records) of the given
        source that tie claimant_id to driver_id.

        Returns:
            Number of claims deleted

        Raises:
            ClaimNotFoundError: No such claim exists
        """
        source = Source(source).value
        session: Session = self.session_factory()
        try:
            results = session.query(MatchResultRecord).filter(
                MatchResultRecord.claimant_id == claimant_id,
                MatchResultRecord.driver_id == driver_id,
                MatchResultRecord.source == source
            ).all()

            if not results:
                raise ClaimNotFoundError(claimant_id, driver_id, source)

            for result in results:
                session.query(ExternalRecordEntry).filter(
                    ExternalRecordEntry.source == result.source,
                    ExternalRecordEntry.external_id == result.external_id
                ).delete(synchronize_session=False)
                session.delete(result)

            session.commit()
            logger.info("reconciliation_claim_deleted",
                        claimant_id=claimant_id,
                        driver_id=driver_id,
                        source=source,
                        deleted=len(results))
            return len(results)

        except SQLAlchemyError as e:
            session.rollback()
            logger.error("reconciliation_claim_delete_failed",
                         claimant_id=claimant_id, driver_id=driver_id, source=source, error=str(e))
            raise
        finally:
            session.close()

    def list_conflicts(self) -> List[MatchResultRecord]:
        session: Session = self.session_factory()
        try:
            return session.query(MatchResultRecord).filter(
                MatchResultRecord.reconciliation_status == ReconciliationStatus.CONFLICTING.value
            ).order_by(
                MatchResultRecord.claimant_id, MatchResultRecord.source, MatchResultRecord.external_id
            ).all()
        finally:
            session.close()

    def _load_rows(self, session: Session):
        return session.query(MatchResultRecord, ExternalRecordEntry).outerjoin(
            ExternalRecordEntry,
            and_(
                ExternalRecordEntry.source == MatchResultRecord.source,
                ExternalRecordEntry.external_id == MatchResultRecord.external_id,
            )
        ).order_by(MatchResultRecord.source, MatchResultRecord.external_id).all()

    @staticmethod
    def _to_claim(result: MatchResultRecord, record: Optional[ExternalRecordEntry]) -> ReconciliationClaim:
        return ReconciliationClaim(
            source=result.source,
            external_id=result.external_id,
            claimant_id=result.claimant_id or (record.claimant_id if record else None),
            driver_id=result.driver_id,
            identity_name=record.to_record().display_name if record else None,
            is_discarded=bool(result.is_discarded),
        )


__all__ = [
    "ReconciliationClaim",
    "ReconciliationOutcome",
    "ReconciliationTracker",
    "ReconciliationService",
]
