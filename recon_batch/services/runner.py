"""
JobRunner -- submit / poll / cancel for long-running jobs.

Contract:
    ``submit()`` records a PENDING job and hands it to a worker pool; it
    never waits for the work.  ``poll()`` returns the current snapshot.
    ``cancel()`` stops a PENDING job at once and asks a PROCESSING job to
    stop; the worker checks the flag before every item and finishes the
    job as CANCELLED instead of completing it.

Failure handling:
    Nothing a task does is raised to the poller.  A failing item is
    recorded (code and message, capped at ``max_item_errors``) and the job
    goes on; a job with failed items ends FAILED with "N item(s) failed".
    An exception from ``prepare_items``, ``finalize`` or the runner itself
    ends the job FAILED with the captured message.  Counters are progress,
    not a transaction: whatever was processed stays recorded.

Invariants enforced:
    - Status changes are compare-and-set against ``JOB_WORKFLOW`` source
      states, so a cancel racing the worker has exactly one winner.
    - All timestamps come from the injected clock.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from recon_batch.config import JobConfig
from recon_batch.domain.lifecycle import source_states
from recon_batch.domain.types import ItemStatus, Job, JobItemError, JobStatus
from recon_batch.services.store import JobStore
from recon_batch.tasks.base import JobContext, JobItem, JobItemResult, TaskRegistry
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.exceptions import (
    NotFoundError,
    PreconditionError,
    ReconciliationError,
    ValidationError,
)
from recon_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.runner")

ENTITY = "job"


class JobRunner:
    """Runs jobs on a worker pool and tracks them in a ``JobStore``.

    Non-goals:
        - No retries and no hard kill; cancellation is cooperative.
        - No scheduling; callers submit.
    """

    def __init__(
        self,
        store: JobStore,
        registry: TaskRegistry,
        context: JobContext,
        clock: Clock | None = None,
        config: JobConfig | None = None,
        executor: Executor | None = None,
    ):
        self._store = store
        self._registry = registry
        self._context = context
        self._clock = clock or context.clock or SystemClock()
        self._config = config or JobConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="recon-job",
        )
        self._futures: dict[UUID, Future] = {}
        self._futures_lock = threading.Lock()

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    # -------------------------------------------------------------------------
    # Submit / poll / cancel
    # -------------------------------------------------------------------------

    def submit(
        self,
        kind: str,
        parameters: dict[str, Any] | None = None,
        actor_id: str = "system",
    ) -> Job:
        """Create a PENDING job and queue it.  Returns without waiting.

        If the executor refuses the job (it has been shut down) the job is
        stored as FAILED and returned; it never stays PENDING.
        """
        if kind not in self._registry:
            raise ValidationError(
                f"Unknown job kind '{kind}'. Available: {', '.join(self._registry.list_tasks())}",
                field="kind",
                value=kind,
                rule="registered_job_kind",
            )
        if parameters is not None and not isinstance(parameters, dict):
            raise ValidationError(
                "job parameters must be a mapping", field="parameters", rule="mapping_required",
            )
        job = Job(
            id=uuid4(),
            kind=kind,
            status=JobStatus.PENDING,
            parameters=dict(parameters or {}),
            created_by=actor_id,
            created_at=self._clock.now(),
        )
        self._store.add(job)
        logger.info(
            "job_submitted",
            extra={"job_id": str(job.id), "kind": kind, "actor_id": actor_id},
        )
        try:
            future = self._executor.submit(self._work, job.id)
        except RuntimeError as exc:
            # Executor shut down: no worker will ever claim this job.
            failed = self._store.compare_and_set(
                job.id,
                source_states("abandon", JobStatus.FAILED),
                status=JobStatus.FAILED,
                error_message=f"Job could not be scheduled: {exc}",
                completed_at=self._clock.now(),
            )
            logger.error(
                "job_schedule_failed",
                extra={"job_id": str(job.id), "kind": kind, "error": str(exc)},
            )
            return failed or self.poll(job.id)
        with self._futures_lock:
            self._futures[job.id] = future
        future.add_done_callback(lambda _f, job_id=job.id: self._forget(job_id))
        return job

    def poll(self, job_id: UUID) -> Job:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError(ENTITY, job_id)
        return job

    def cancel(self, job_id: UUID, actor_id: str = "system") -> Job:
        """Cancel a PENDING job, or flag a PROCESSING job to stop.

        Raises:
            NotFoundError: Unknown job.
            PreconditionError: The job is already terminal.
        """
        job = self.poll(job_id)
        if not job.is_terminal:
            updated = self._store.compare_and_set(
                job_id,
                source_states("cancel", JobStatus.CANCELLED),
                status=JobStatus.CANCELLED,
                cancel_requested=True,
                completed_at=self._clock.now(),
            ) or self._store.compare_and_set(
                job_id,
                source_states("cancel", JobStatus.PROCESSING),
                cancel_requested=True,
            )
            if updated is not None:
                logger.info(
                    "job_cancelled" if updated.is_terminal else "job_cancel_requested",
                    extra={
                        "job_id": str(job_id),
                        "actor_id": actor_id,
                        "status": updated.status.value,
                    },
                )
                return updated
            job = self.poll(job_id)
        raise PreconditionError(
            ENTITY,
            job_id,
            "job_not_terminal",
            f"Job {job_id} is already {job.status.value}",
        )

    def wait(self, job_id: UUID, timeout: float | None = None) -> Job:
        """Block until the job's worker has returned, then poll."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.poll(job_id)

    def recover_stuck(self, older_than: timedelta) -> tuple[Job, ...]:
        """Fail PROCESSING jobs started before ``now - older_than`` with no live worker."""
        cutoff = self._clock.now() - older_than
        with self._futures_lock:
            live = {job_id for job_id, f in self._futures.items() if not f.done()}
        recovered = []
        for job in self._store.list_jobs(JobStatus.PROCESSING):
            if job.id in live or job.started_at is None or job.started_at > cutoff:
                continue
            updated = self._store.compare_and_set(
                job.id,
                source_states("recover"),
                status=JobStatus.FAILED,
                error_message="Worker lost: job did not finish",
                completed_at=self._clock.now(),
            )
            if updated is not None:
                recovered.append(updated)
                logger.warning(
                    "job_recovered_as_failed",
                    extra={"job_id": str(job.id), "started_at": job.started_at},
                )
        return tuple(recovered)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _forget(self, job_id: UUID) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _work(self, job_id: UUID) -> None:
        with LogContext.bind(job_id=str(job_id)):
            try:
                self.run(job_id)
            except Exception as exc:
                logger.exception("job_worker_crashed", extra={"job_id": str(job_id)})
                self._finish(job_id, JobStatus.FAILED, error_message=f"{type(exc).__name__}: {exc}")

    def run(self, job_id: UUID) -> Job:
        """Execute a PENDING job on the calling thread."""
        t0 = time.monotonic()
        job = self._store.compare_and_set(
            job_id,
            source_states("claim"),
            status=JobStatus.PROCESSING,
            started_at=self._clock.now(),
        )
        if job is None:
            # Cancelled before a worker picked it up.
            logger.info("job_claim_skipped", extra={"job_id": str(job_id)})
            return self.poll(job_id)

        task = self._registry.get(job.kind)
        logger.info("job_started", extra={"job_id": str(job_id), "kind": job.kind})

        try:
            items = task.prepare_items(job, self._context)
        except Exception as exc:
            logger.warning(
                "job_prepare_failed", extra={"job_id": str(job_id), "error": str(exc)},
            )
            return self._finish(job_id, JobStatus.FAILED, error_message=f"prepare_items failed: {exc}")

        job = self._store.compare_and_set(
            job_id, {JobStatus.PROCESSING}, total_items=len(items),
        ) or job

        results: list[tuple[JobItem, JobItemResult]] = []
        errors: list[JobItemError] = []
        counts = {ItemStatus.SUCCEEDED: 0, ItemStatus.FAILED: 0, ItemStatus.SKIPPED: 0}

        for item in items:
            if self._cancel_requested(job_id):
                return self._finish(job_id, JobStatus.CANCELLED)
            result = self._execute_item(task, item, job)
            results.append((item, result))
            counts[result.status] += 1
            if result.status == ItemStatus.FAILED and len(errors) < self._config.max_item_errors:
                errors.append(JobItemError(
                    item_key=item.key,
                    error_code=result.error_code or "UNKNOWN",
                    message=result.error_message or "",
                ))
            progressed = self._store.compare_and_set(
                job_id,
                {JobStatus.PROCESSING},
                processed_items=len(results),
                succeeded_items=counts[ItemStatus.SUCCEEDED],
                failed_items=counts[ItemStatus.FAILED],
                skipped_items=counts[ItemStatus.SKIPPED],
                item_errors=tuple(errors),
            )
            if progressed is None:
                # Closed by another writer (stuck-job recovery).
                return self.poll(job_id)
            job = progressed

        if self._cancel_requested(job_id):
            return self._finish(job_id, JobStatus.CANCELLED)

        try:
            output_ref = task.finalize(job, tuple(results), self._context)
        except Exception as exc:
            logger.warning(
                "job_finalize_failed", extra={"job_id": str(job_id), "error": str(exc)},
            )
            return self._finish(job_id, JobStatus.FAILED, error_message=f"finalize failed: {exc}")

        failed = counts[ItemStatus.FAILED]
        finished = self._finish(
            job_id,
            JobStatus.FAILED if failed else JobStatus.COMPLETED,
            error_message=f"{failed} item(s) failed" if failed else None,
            output_ref=output_ref,
        )
        logger.info(
            "job_run_summary",
            extra={
                "job_id": str(job_id),
                "kind": job.kind,
                "status": finished.status.value,
                "total_items": len(items),
                "succeeded": counts[ItemStatus.SUCCEEDED],
                "failed": failed,
                "skipped": counts[ItemStatus.SKIPPED],
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return finished

    def _execute_item(self, task, item: JobItem, job: Job) -> JobItemResult:
        try:
            return task.execute_item(item, job, self._context)
        except ReconciliationError as exc:
            return JobItemResult.failed(exc.code, str(exc))
        except Exception as exc:
            logger.warning(
                "job_item_raised",
                extra={"job_id": str(job.id), "item_key": item.key, "error": str(exc)},
            )
            return JobItemResult.failed("UNHANDLED_EXCEPTION", f"{type(exc).__name__}: {exc}")

    def _cancel_requested(self, job_id: UUID) -> bool:
        current = self._store.get(job_id)
        return current is None or current.cancel_requested

    def _finish(self, job_id: UUID, status: JobStatus, **changes: Any) -> Job:
        finished = self._store.compare_and_set(
            job_id,
            source_states("finish", status),
            status=status,
            completed_at=self._clock.now(),
            **changes,
        )
        if finished is None:
            # Another writer (recovery) already closed the job.
            return self.poll(job_id)
        log = logger.warning if status == JobStatus.FAILED else logger.info
        log(
            f"job_{status.value.lower()}",
            extra={
                "job_id": str(job_id),
                "processed_items": finished.processed_items,
                "total_items": finished.total_items,
                "error_message": finished.error_message,
            },
        )
        return finished
