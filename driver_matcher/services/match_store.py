"""
Match Store
Bulk persistence of external records and match results, idempotent on (source, external_id)
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from driver_matcher.config import settings
from driver_matcher.exceptions import ManualOverrideError, MatchingUnavailableError
from driver_matcher.models.external_record import ExternalRecordEntry
from driver_matcher.models.match_result import MatchResultRecord
from driver_matcher.services.matching.types import ExternalRecord, MatchResult, Source

logger = structlog.get_logger(__name__)

RecordKey = Tuple[str, str]

# Keeps IN (...) lists well below database parameter limits
KEY_QUERY_CHUNK = 500


def chunked(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class MatchStore:
    """
    Reads and writes external_records / match_results for one session.

    Writes are committed per chunk of batch_size rows, so a failure partway
    through a large batch keeps every chunk committed before it.
    """

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or settings.match_persist_batch_size

    # ------------------------------------------------------------------ #
    # External records
    # ------------------------------------------------------------------ #

    def upsert_records(self, records: Iterable[ExternalRecord]) -> int:
        """
        Insert new external records and update mutable fields of known ones.

        Returns:
            Number of rows newly inserted
        """
        unique: Dict[RecordKey, ExternalRecord] = {}
        for record in records:
            unique[record.key] = record  # last occurrence wins within one batch

        inserted = 0
        for chunk in chunked(list(unique.values()), self.batch_size):
            existing = self._rows_by_key(ExternalRecordEntry, [r.key for r in chunk])
            for record in chunk:
                row = existing.get(record.key)
                if row is None:
                    self.db.add(ExternalRecordEntry.from_record(record))
                    inserted += 1
                else:
                    row.update_from(record)
            self._commit("external_records_upsert", rows=len(chunk))

        logger.info("external_records_upserted",
                    received=len(unique),
                    inserted=inserted,
                    updated=len(unique) - inserted)
        return inserted

    def load_records(self, source: Optional[Source] = None) -> List[ExternalRecord]:
        """Rebuild ExternalRecord values, ordered by (source, external_id)."""
        query = self.db.query(ExternalRecordEntry)
        if source is not None:
            query = query.filter(ExternalRecordEntry.source == Source(source).value)
        rows = query.order_by(ExternalRecordEntry.source, ExternalRecordEntry.external_id).all()
        return [row.to_record() for row in rows]

    def sources_for(self, external_id: str) -> List[str]:
        rows = self.db.query(ExternalRecordEntry.source).filter(
            ExternalRecordEntry.external_id == external_id
        ).all()
        return sorted(row[0] for row in rows)

    def get_record(self, source: str, external_id: str) -> Optional[ExternalRecordEntry]:
        return self.db.query(ExternalRecordEntry).filter(
            ExternalRecordEntry.source == source,
            ExternalRecordEntry.external_id == external_id
        ).first()

    # ------------------------------------------------------------------ #
    # Match results
    # ------------------------------------------------------------------ #

    def results_for(self, keys: Iterable[RecordKey]) -> Dict[RecordKey, MatchResultRecord]:
        return self._rows_by_key(MatchResultRecord, list(keys))

    def get_result(self, source: str, external_id: str) -> Optional[MatchResultRecord]:
        return self.db.query(MatchResultRecord).filter(
            MatchResultRecord.source == source,
            MatchResultRecord.external_id == external_id
        ).first()

    def list_results(
        self,
        source: Optional[Source] = None,
        unmatched_only: bool = False,
        include_discarded: bool = True,
    ) -> List[MatchResultRecord]:
        query = self.db.query(MatchResultRecord)
        if source is not None:
            query = query.filter(MatchResultRecord.source == Source(source).value)
        if unmatched_only:
            query = query.filter(MatchResultRecord.driver_id.is_(None))
        if not include_discarded:
            query = query.filter(MatchResultRecord.is_discarded.is_(False))
        return query.order_by(MatchResultRecord.source, MatchResultRecord.external_id).all()

    def save_results(
        self,
        results: Sequence[MatchResult],
        allow_manual_overwrite: bool = False,
    ) -> int:
        """
        Upsert match results in committed chunks.

        Args:
            results: Engine output, one per external record
            allow_manual_overwrite: Permit replacing rows with is_manual=True

        Returns:
            Number of rows written

        Raises:
            ManualOverrideError: An automatic result targets a manual row
            MatchingUnavailableError: A chunk could not be committed
        """
        written = 0
        for chunk in chunked(list(results), self.batch_size):
            keys = [r.key for r in chunk]
            existing = self._rows_by_key(MatchResultRecord, keys)
            claimants = {
                key: row.claimant_id
                for key, row in self._rows_by_key(ExternalRecordEntry, keys).items()
            }
            now = datetime.now(timezone.utc)

            for result in chunk:
                row = existing.get(result.key)
                if row is None:
                    row = MatchResultRecord(source=result.source.value, external_id=result.external_id)
                    self.db.add(row)
                elif row.is_manual and not result.is_manual and not allow_manual_overwrite:
                    self.db.rollback()
                    logger.warning("manual_override_protected",
                                   source=row.source,
                                   external_id=row.external_id,
                                   driver_id=row.driver_id)
                    raise ManualOverrideError(row.external_id, row.source)

                if row.driver_id != result.driver_id:
                    row.reconciliation_status = None
                    row.is_reconciled = False

                row.apply(result)
                row.claimant_id = claimants.get(result.key)
                row.matched_at = now if result.is_matched else None
                written += 1

            self._commit("match_results_upsert", rows=len(chunk))

        return written

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def commit(self, action: str, **context) -> None:
        self._commit(action, **context)

    def _commit(self, action: str, **context) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("match_store_commit_failed", action=action, error=str(e), **context)
            raise MatchingUnavailableError(f"Could not persist {action}: {e}") from e

    def _rows_by_key(self, model, keys: List[RecordKey]) -> dict:
        """Fetch rows of a (source, external_id)-keyed model, one IN query per source and chunk."""
        by_source = defaultdict(list)
        for source, external_id in keys:
            by_source[source].append(external_id)

        rows = {}
        for source, external_ids in by_source.items():
            for ids in chunked(sorted(set(external_ids)), KEY_QUERY_CHUNK):
                for row in self.db.query(model).filter(
                    model.source == source,
                    model.external_id.in_(ids)
                ).all():
                    rows[(row.source, row.external_id)] = row
        return rows


__all__ = ["MatchStore", "chunked"]
