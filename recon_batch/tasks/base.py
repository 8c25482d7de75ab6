"""
JobTask protocol, supporting types, and TaskRegistry.

Contract:
    ``JobTask`` defines the interface every job kind implements.
    ``TaskRegistry`` stores registered tasks keyed by ``task_type``.

    The runner calls ``prepare_items`` once, ``execute_item`` for each item
    (checking the cancellation flag before every call), then ``finalize``
    with the results of the items that ran.  Tasks hold no per-job state;
    anything ``finalize`` needs travels in ``JobItemResult.data``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from recon_batch.domain.types import ItemStatus, Job
from recon_kernel.domain.clock import Clock, SystemClock

if TYPE_CHECKING:
    from recon_modules.ap.service import InvoiceService
    from recon_modules.storage.ports import LedgerStore


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class JobItem:
    """Input for a single unit of work.  Created by ``JobTask.prepare_items()``."""

    index: int
    key: str  # Business identifier (e.g., invoice id, CSV row)
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobItemResult:
    """Result returned by ``JobTask.execute_item()``."""

    status: ItemStatus
    data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, **data: Any) -> JobItemResult:
        return cls(status=ItemStatus.SUCCEEDED, data=data or None)

    @classmethod
    def skipped(cls, **data: Any) -> JobItemResult:
        return cls(status=ItemStatus.SKIPPED, data=data or None)

    @classmethod
    def failed(cls, error_code: str, error_message: str) -> JobItemResult:
        return cls(status=ItemStatus.FAILED, error_code=error_code, error_message=error_message)


@dataclass
class JobContext:
    """Collaborators handed to every task call."""

    store: LedgerStore
    invoices: InvoiceService
    output_dir: Path
    clock: Clock = field(default_factory=SystemClock)

    def output_path(self, name: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir / name


# =============================================================================
# JobTask Protocol
# =============================================================================


@runtime_checkable
class JobTask(Protocol):
    """Protocol defining the interface for job kinds.

    Contract:
        - ``task_type``: unique string key registered in TaskRegistry.
        - ``description``: human-readable label.
        - ``prepare_items()``: selects the work; raising fails the job.
        - ``execute_item()``: processes ONE item; an exception or a FAILED
          result is recorded as an item error and the job carries on.
        - ``finalize()``: writes the job output and returns a reference
          to it (a path), or None.

    Non-goals:
        - Does NOT check cancellation -- the runner does, between items.
        - Does NOT retry.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(self, job: Job, context: JobContext) -> tuple[JobItem, ...]: ...

    def execute_item(self, item: JobItem, job: Job, context: JobContext) -> JobItemResult: ...

    def finalize(
        self,
        job: Job,
        results: tuple[tuple[JobItem, JobItemResult], ...],
        context: JobContext,
    ) -> str | None: ...


# =============================================================================
# TaskRegistry
# =============================================================================


class TaskRegistry:
    """Registry mapping task_type strings to JobTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by task_type; raises KeyError if missing.
        - ``list_tasks()`` returns all registered task_type strings.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, JobTask] = {}

    def register(self, task: JobTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(
                f"Task type '{task.task_type}' is already registered"
            )
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> JobTask:
        try:
            return self._tasks[task_type]
        except KeyError:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {sorted(self._tasks.keys())}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Return all registered task_type strings, sorted."""
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
