"""
recon_batch.domain.types -- Pure frozen dataclasses for the job runner.

Frozen dataclasses with enum status fields and tuples for immutable
collections.  A ``Job`` is a snapshot: every state change produces a new
instance through ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class JobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "PENDING"  # Submitted, worker not started
    PROCESSING = "PROCESSING"  # Worker running
    COMPLETED = "COMPLETED"  # Every item succeeded
    FAILED = "FAILED"  # Work raised, or at least one item failed
    CANCELLED = "CANCELLED"  # Stopped on request


TERMINAL_JOB_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
})


class ItemStatus(str, Enum):
    """Outcome of one unit of work inside a job."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"  # Nothing to do (e.g. status already current)


@dataclass(frozen=True)
class JobItemError:
    """A failed item, kept on the job for diagnostics."""

    item_key: str
    error_code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "item_key": self.item_key,
            "error_code": self.error_code,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobItemError:
        return cls(
            item_key=str(data["item_key"]),
            error_code=str(data["error_code"]),
            message=str(data["message"]),
        )


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a job.

    Counters are progress, not a transaction: a job that fails or is
    cancelled keeps whatever it had processed.
    """

    id: UUID
    kind: str  # Registered task key (e.g., "csv.export.invoices")
    status: JobStatus
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    processed_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    output_ref: str | None = None  # e.g. path of the written file
    error_message: str | None = None
    item_errors: tuple[JobItemError, ...] = ()
    cancel_requested: bool = False
    created_by: str = "system"
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def progress_percent(self) -> float:
        if self.total_items == 0:
            return 100.0 if self.status == JobStatus.COMPLETED else 0.0
        return round(self.processed_items * 100.0 / self.total_items, 2)
