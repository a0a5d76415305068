"""
Job Handles
Process-scoped registry of long-running batch / re-match / reconciliation jobs
"""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import structlog

from driver_matcher.config import settings
from driver_matcher.exceptions import InvalidJobTransitionError, JobCancelledError, JobNotFoundError
from driver_matcher.services.monitoring.logging import current_job_id

logger = structlog.get_logger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# pending -> running -> {completed | failed}; pending may also fail (cancelled before start)
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

CANCELLED = "cancelled"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobHandle:
    """
    Progress and state of one job. All mutators are thread-safe.

    The job body reports progress with set_total() / advance() and polls
    cancel_requested between persistence chunks; callers poll snapshot().
    """

    def __init__(self, kind: str, job_id: Optional[str] = None):
        self.job_id = job_id or uuid.uuid4().hex
        self.kind = kind
        self.status = JobStatus.PENDING
        self.total: Optional[int] = None
        self.processed = 0
        self.matched = 0
        self.unmatched = 0
        self.error: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None
        self.created_at = _now()
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self._lock = threading.Lock()
        self._cancel = threading.Event()

    def _transition(self, target: JobStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidJobTransitionError(
                f"Job {self.job_id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def start(self, total: Optional[int] = None) -> None:
        with self._lock:
            self._transition(JobStatus.RUNNING)
            self.started_at = _now()
            if total is not None:
                self.total = total
        logger.info("job_started", job_id=self.job_id, kind=self.kind, total=total)

    def set_total(self, total: int) -> None:
        with self._lock:
            self.total = total

    def advance(self, processed: int = 0, matched: int = 0, unmatched: int = 0) -> None:
        """Add to the running tallies."""
        with self._lock:
            self.processed += processed
            self.matched += matched
            self.unmatched += unmatched

    def complete(self, result: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self._transition(JobStatus.COMPLETED)
            self.result = result
            self.completed_at = _now()
        logger.info("job_completed", job_id=self.job_id, kind=self.kind,
                    processed=self.processed, matched=self.matched, unmatched=self.unmatched)

    def fail(self, error: str) -> None:
        with self._lock:
            self._transition(JobStatus.FAILED)
            self.error = error
            self.completed_at = _now()
        logger.warning("job_failed", job_id=self.job_id, kind=self.kind,
                       error=error, processed=self.processed)

    def cancel(self) -> None:
        """
        Request cancellation.

        A pending job fails immediately; a running job stops at its next
        chunk boundary, keeping every chunk already committed.
        """
        self._cancel.set()
        with self._lock:
            if self.status != JobStatus.PENDING:
                return
            # Same critical section as the check, so start() cannot slip in between
            self._transition(JobStatus.FAILED)
            self.error = CANCELLED
            self.completed_at = _now()
        logger.info("job_cancelled_before_start", job_id=self.job_id, kind=self.kind)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel.is_set():
            raise JobCancelledError(self.job_id)

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def progress_percentage(self) -> Optional[float]:
        with self._lock:
            if not self.total:
                return 100.0 if self.status == JobStatus.COMPLETED else None
            return round(min(self.processed, self.total) * 100.0 / self.total, 1)

    def snapshot(self) -> Dict[str, Any]:
        progress = self.progress_percentage
        with self._lock:
            return {
                "id": self.job_id,
                "kind": self.kind,
                "status": self.status.value,
                "total": self.total,
                "processed": self.processed,
                "matched": self.matched,
                "unmatched": self.unmatched,
                "progress_percentage": progress,
                "error": self.error,
                "result": self.result,
                "created_at": self.created_at.isoformat(),
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            }

    def __repr__(self):
        return f"<JobHandle(id='{self.job_id}', kind='{self.kind}', status='{self.status.value}')>"


class JobRegistry:
    """
    Thread-safe map of job id -> JobHandle, plus a worker pool to run them.

    Usage:
        job = job_registry.submit("rematch", service.reprocess_with_rules, scope="all")
        job_registry.get(job.job_id).snapshot()
    """

    def __init__(self, max_workers: Optional[int] = None, retention: Optional[int] = None):
        self._jobs: Dict[str, JobHandle] = {}
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._max_workers = max_workers or settings.job_workers
        self._retention = settings.job_retention if retention is None else retention
        self._executor: Optional[ThreadPoolExecutor] = None

    def create(self, kind: str) -> JobHandle:
        job = JobHandle(kind)
        with self._lock:
            pruned = self._prune_finished()
            self._jobs[job.job_id] = job
        if pruned:
            logger.info("finished_jobs_pruned", count=pruned, retention=self._retention)
        logger.info("job_created", job_id=job.job_id, kind=kind)
        return job

    def get(self, job_id: str) -> JobHandle:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list(self, status: Optional[JobStatus] = None) -> List[JobHandle]:
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == JobStatus(status)]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def cancel(self, job_id: str) -> JobHandle:
        job = self.get(job_id)
        job.cancel()
        return job

    def future(self, job_id: str) -> Optional[Future]:
        with self._lock:
            return self._futures.get(job_id)

    def remove(self, job_id: str) -> JobHandle:
        """
        Forget a finished job and its future.

        Raises:
            JobNotFoundError: Unknown job id
            InvalidJobTransitionError: The job is still pending or running
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if not job.is_finished:
                raise InvalidJobTransitionError(
                    f"Job {job_id} is {job.status.value}; only finished jobs can be removed"
                )
            del self._jobs[job_id]
            self._futures.pop(job_id, None)
        logger.info("job_removed", job_id=job_id, kind=job.kind, status=job.status.value)
        return job

    def run(self, job: JobHandle, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run fn(*args, job=job, **kwargs) in the current thread under the job.

        The return value (a dict or an object with to_dict()) becomes the
        job result. Exceptions fail the job and propagate, except
        JobCancelledError which ends the job as failed/cancelled. A job that
        can no longer start (cancelled while queued) is skipped.
        """
        token = current_job_id.set(job.job_id)
        try:
            try:
                job.start()
            except InvalidJobTransitionError:
                logger.info("job_start_skipped", job_id=job.job_id, kind=job.kind,
                            status=job.status.value, error=job.error)
                return None

            result = fn(*args, job=job, **kwargs)
            job.complete(result.to_dict() if hasattr(result, "to_dict") else result)
            return result

        except JobCancelledError:
            job.fail(CANCELLED)
            return None

        except Exception as e:
            logger.error("job_crashed", job_id=job.job_id, kind=job.kind, error=str(e), exc_info=True)
            if not job.is_finished:
                job.fail(str(e))
            raise

        finally:
            current_job_id.reset(token)

    def submit(self, kind: str, fn: Callable[..., Any], *args, **kwargs) -> JobHandle:
        """Create a job and run it on the worker pool; returns immediately."""
        job = self.create(kind)
        future = self._get_executor().submit(self.run, job, fn, *args, **kwargs)
        with self._lock:
            self._futures[job.job_id] = future
        return job

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def _prune_finished(self) -> int:
        """Drop the oldest finished jobs beyond the retention limit. Caller holds _lock."""
        finished = sorted(
            (j for j in self._jobs.values() if j.is_finished),
            key=lambda j: j.completed_at or j.created_at,
        )
        excess = finished[:max(len(finished) - self._retention, 0)]
        for job in excess:
            del self._jobs[job.job_id]
            self._futures.pop(job.job_id, None)
        return len(excess)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="driver-matcher-job",
                )
            return self._executor


# Process-wide registry
job_registry = JobRegistry()


__all__ = ["JobStatus", "JobHandle", "JobRegistry", "job_registry", "CANCELLED"]
