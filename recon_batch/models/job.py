"""
ORM model for job persistence.

Contract:
    ``JobModel`` persists job state, counters and captured item errors.
    ``to_dto()`` / ``from_dto()`` convert to and from the frozen ``Job``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import TrackedBase, as_utc

if TYPE_CHECKING:
    from recon_batch.domain.types import Job


class JobModel(TrackedBase):
    """Persistent job record."""

    __tablename__ = "recon_jobs"

    __table_args__ = (
        Index("ix_recon_jobs_status", "status"),
        Index("ix_recon_jobs_kind", "kind"),
    )

    kind: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    output_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    item_errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> Job:
        from recon_batch.domain.types import Job, JobItemError, JobStatus

        return Job(
            id=self.id,
            kind=self.kind,
            status=JobStatus(self.status),
            parameters=dict(self.parameters or {}),
            total_items=self.total_items,
            processed_items=self.processed_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            output_ref=self.output_ref,
            error_message=self.error_message,
            item_errors=tuple(JobItemError.from_dict(e) for e in self.item_errors or ()),
            cancel_requested=self.cancel_requested,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            started_at=as_utc(self.started_at),
            completed_at=as_utc(self.completed_at),
        )

    @classmethod
    def from_dto(cls, dto: Job) -> JobModel:
        model = cls(id=dto.id, kind=dto.kind, created_by=dto.created_by, updated_by=None)
        model.apply(dto)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        return model

    def apply(self, dto: Job) -> None:
        """Copy the mutable job fields from ``dto``."""
        self.status = dto.status.value
        self.parameters = dict(dto.parameters) or None
        self.total_items = dto.total_items
        self.processed_items = dto.processed_items
        self.succeeded_items = dto.succeeded_items
        self.failed_items = dto.failed_items
        self.skipped_items = dto.skipped_items
        self.output_ref = dto.output_ref
        self.error_message = dto.error_message
        self.item_errors = [e.to_dict() for e in dto.item_errors] or None
        self.cancel_requested = dto.cancel_requested
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at
