"""
Tests for JobHandle state machine and JobRegistry
"""

import threading

import pytest
from structlog.testing import capture_logs

from driver_matcher.exceptions import InvalidJobTransitionError, JobCancelledError, JobNotFoundError
from driver_matcher.services.jobs import JobHandle, JobRegistry, JobStatus
from driver_matcher.services.monitoring.logging import current_job_id


@pytest.fixture
def registry():
    registry = JobRegistry(max_workers=1)
    yield registry
    registry.shutdown()


class InterleavingLock:
    """Lock that runs a callback once, right after its first release."""

    def __init__(self, on_first_release):
        self._lock = threading.Lock()
        self._on_first_release = on_first_release

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()
        callback, self._on_first_release = self._on_first_release, None
        if callback is not None:
            callback()


class TestJobHandle:

    def test_happy_path(self):
        job = JobHandle("batch")
        assert job.status == JobStatus.PENDING

        job.start(total=4)
        job.advance(processed=2, matched=1, unmatched=1)
        assert job.progress_percentage == 50.0

        job.complete({"total": 4})
        snapshot = job.snapshot()
        assert snapshot["status"] == "completed"
        assert snapshot["processed"] == 2
        assert snapshot["result"] == {"total": 4}
        assert snapshot["completed_at"] is not None

    def test_completed_job_cannot_fail(self):
        job = JobHandle("batch")
        job.start()
        job.complete()
        with pytest.raises(InvalidJobTransitionError):
            job.fail("late error")

    def test_pending_job_cannot_complete(self):
        with pytest.raises(InvalidJobTransitionError):
            JobHandle("batch").complete()

    def test_cannot_start_twice(self):
        job = JobHandle("batch")
        job.start()
        with pytest.raises(InvalidJobTransitionError):
            job.start()

    def test_cancel_pending_fails_immediately(self):
        job = JobHandle("batch")
        job.cancel()
        assert job.status == JobStatus.FAILED
        assert job.error == "cancelled"

    def test_cancel_running_is_cooperative(self):
        job = JobHandle("batch")
        job.start()
        job.cancel()

        assert job.status == JobStatus.RUNNING
        assert job.cancel_requested is True
        with pytest.raises(JobCancelledError):
            job.raise_if_cancelled()

    def test_progress_unknown_without_total(self):
        job = JobHandle("batch")
        job.start()
        assert job.progress_percentage is None

    def test_start_cannot_interleave_with_cancel(self):
        job = JobHandle("batch")
        outcome = {}

        def worker_starts():
            try:
                job.start()
                outcome["started"] = True
            except InvalidJobTransitionError:
                outcome["started"] = False

        # Runs a worker's start() the moment cancel() first releases the lock
        job._lock = InterleavingLock(worker_starts)
        job.cancel()

        assert outcome == {"started": False}
        assert job.status == JobStatus.FAILED
        assert job.error == "cancelled"


class TestJobRegistry:

    def test_get_unknown_job(self, registry):
        with pytest.raises(JobNotFoundError):
            registry.get("missing")

    def test_submit_runs_to_completion(self, registry):
        seen = {}

        def work(value, job=None):
            seen["job_id"] = current_job_id.get()
            job.set_total(1)
            job.advance(processed=1, matched=1)
            return {"value": value}

        job = registry.submit("batch", work, 42)
        registry.future(job.job_id).result(timeout=30)

        assert registry.get(job.job_id).status == JobStatus.COMPLETED
        assert job.result == {"value": 42}
        assert seen["job_id"] == job.job_id
        assert job.progress_percentage == 100.0

    def test_failure_recorded_and_raised(self, registry):
        def work(job=None):
            raise RuntimeError("boom")

        job = registry.submit("batch", work)
        with pytest.raises(RuntimeError):
            registry.future(job.job_id).result(timeout=30)

        assert job.status == JobStatus.FAILED
        assert job.error == "boom"

    def test_run_skips_job_cancelled_before_start(self, registry):
        job = registry.create("batch")
        registry.cancel(job.job_id)

        assert registry.run(job, lambda job=None: pytest.fail("should not run")) is None
        assert job.status == JobStatus.FAILED

    def test_list_filters_by_status(self, registry):
        done = registry.create("batch")
        registry.run(done, lambda job=None: None)
        pending = registry.create("rematch")

        assert registry.list(JobStatus.PENDING) == [pending]
        assert registry.list(JobStatus.COMPLETED) == [done]
        assert len(registry.list()) == 2

    def test_start_after_cancel_is_skipped_not_crashed(self, registry):
        job = registry.create("batch")
        job.cancel()

        with capture_logs() as logs:
            assert registry.run(job, lambda job=None: pytest.fail("should not run")) is None

        events = [entry["event"] for entry in logs]
        assert "job_start_skipped" in events
        assert "job_crashed" not in events
        assert job.status == JobStatus.FAILED
        assert job.error == "cancelled"

    def test_cancel_racing_start_never_raises(self, registry):
        for _ in range(100):
            job = registry.create("batch")
            ran = []

            def work(job=None):
                ran.append(True)
                job.raise_if_cancelled()

            canceller = threading.Thread(target=job.cancel)
            canceller.start()
            registry.run(job, work)
            canceller.join()

            assert job.is_finished
            if job.status == JobStatus.FAILED:
                assert job.error == "cancelled"
            if not ran:
                assert job.status == JobStatus.FAILED

    def test_remove_finished_job(self, registry):
        job = registry.submit("batch", lambda job=None: None)
        registry.future(job.job_id).result(timeout=30)

        assert registry.remove(job.job_id) is job
        assert registry.future(job.job_id) is None
        with pytest.raises(JobNotFoundError):
            registry.get(job.job_id)

    def test_remove_rejects_unfinished_job(self, registry):
        job = registry.create("batch")
        with pytest.raises(InvalidJobTransitionError):
            registry.remove(job.job_id)

        job.start()
        with pytest.raises(InvalidJobTransitionError):
            registry.remove(job.job_id)
        assert registry.get(job.job_id) is job

    def test_remove_unknown_job(self, registry):
        with pytest.raises(JobNotFoundError):
            registry.remove("missing")

    def test_finished_jobs_pruned_past_retention(self):
        registry = JobRegistry(max_workers=1, retention=3)
        try:
            jobs, futures = [], []
            for _ in range(10):
                job = registry.submit("batch", lambda job=None: None)
                jobs.append(job)
                futures.append(registry.future(job.job_id))
            for future in futures:
                future.result(timeout=30)
            running = registry.create("rematch")
            running.start()
            registry.create("rematch")
        finally:
            registry.shutdown()

        kept = registry.list()
        finished = [j for j in kept if j.is_finished]
        assert len(finished) == 3
        assert set(finished) == set(jobs[-3:])
        assert running in kept
        assert len(kept) == 5
