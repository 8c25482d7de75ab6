"""
Job stores.

Contract:
    A ``JobStore`` persists ``Job`` snapshots.  Every change goes through
    ``compare_and_set``: the update is applied only when the job's current
    status is one of the expected statuses, and the stored snapshot is
    returned (``None`` when the guard did not hold).  The runner, the
    canceller and stuck-job recovery can therefore race freely; at most one
    of them wins each transition.

Implementations:
    ``InMemoryJobStore`` -- dict under a lock, for tests and embedded use.
    ``SqlJobStore`` -- ``JobModel`` rows, ``SELECT ... FOR UPDATE`` guard.
"""

from __future__ import annotations

import threading
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from recon_batch.domain.types import Job, JobStatus
from recon_batch.models.job import JobModel
from recon_kernel.db.engine import session_scope
from recon_kernel.exceptions import ValidationError
from recon_kernel.logging_config import get_logger

logger = get_logger("batch.store")


@runtime_checkable
class JobStore(Protocol):
    def add(self, job: Job) -> None: ...

    def get(self, job_id: UUID) -> Job | None: ...

    def compare_and_set(
        self, job_id: UUID, expected: Collection[JobStatus], **changes: Any
    ) -> Job | None: ...

    def list_jobs(self, status: JobStatus | None = None) -> tuple[Job, ...]: ...


class InMemoryJobStore:
    """Thread-safe in-memory ``JobStore``."""

    def __init__(self) -> None:
        self._jobs: dict[UUID, Job] = {}
        self._lock = threading.Lock()

    def add(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValidationError(
                    f"job {job.id} already exists", field="id", value=job.id, rule="unique_id",
                )
            self._jobs[job.id] = job

    def get(self, job_id: UUID) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def compare_and_set(
        self, job_id: UUID, expected: Collection[JobStatus], **changes: Any
    ) -> Job | None:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.status not in expected:
                return None
            updated = replace(current, **changes)
            self._jobs[job_id] = updated
            return updated

    def list_jobs(self, status: JobStatus | None = None) -> tuple[Job, ...]:
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return tuple(sorted(jobs, key=lambda j: (j.created_at is None, j.created_at)))


class SqlJobStore:
    """``JobStore`` over the ``recon_jobs`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with session_scope(self._session_factory) as session:
            yield session

    def add(self, job: Job) -> None:
        with self._session() as session:
            if session.get(JobModel, job.id) is not None:
                raise ValidationError(
                    f"job {job.id} already exists", field="id", value=job.id, rule="unique_id",
                )
            session.add(JobModel.from_dto(job))

    def get(self, job_id: UUID) -> Job | None:
        with self._session() as session:
            model = session.get(JobModel, job_id)
            return None if model is None else model.to_dto()

    def compare_and_set(
        self, job_id: UUID, expected: Collection[JobStatus], **changes: Any
    ) -> Job | None:
        allowed = [s.value for s in expected]
        with self._session() as session:
            model = session.execute(
                select(JobModel).where(JobModel.id == job_id).with_for_update()
            ).scalar_one_or_none()
            if model is None or model.status not in allowed:
                return None
            updated = replace(model.to_dto(), **changes)
            model.apply(updated)
            model.updated_by = updated.created_by
            return updated

    def list_jobs(self, status: JobStatus | None = None) -> tuple[Job, ...]:
        with self._session() as session:
            query = select(JobModel).order_by(JobModel.created_at)
            if status is not None:
                query = query.where(JobModel.status == status.value)
            return tuple(model.to_dto() for model in session.scalars(query))
