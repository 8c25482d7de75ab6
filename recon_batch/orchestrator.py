"""
Job runner wiring.

Contract:
    ``default_task_registry()`` returns a registry holding every job kind.
    ``build_job_runner()`` composes a ``JobRunner`` from a ledger store and
    invoice service, picking the job store that matches the ledger store
    (SQL ledger -> ``SqlJobStore`` on the same database).

Architecture: recon_batch (top-level).  This is the canonical entry point
    for configuring job execution.
"""

from __future__ import annotations

from concurrent.futures import Executor
from pathlib import Path
from typing import TYPE_CHECKING

from recon_batch.config import JobConfig
from recon_batch.services.runner import JobRunner
from recon_batch.services.store import InMemoryJobStore, JobStore, SqlJobStore
from recon_batch.tasks.ap_tasks import OverdueSweepTask
from recon_batch.tasks.audit_tasks import AuditPackageTask
from recon_batch.tasks.base import JobContext, TaskRegistry
from recon_batch.tasks.csv_tasks import InvoiceExportTask, PaymentImportTask
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from recon_modules.ap.service import InvoiceService
    from recon_modules.storage.ports import LedgerStore

logger = get_logger("batch.orchestrator")


def default_task_registry() -> TaskRegistry:
    """Create a TaskRegistry pre-loaded with all job kinds."""
    registry = TaskRegistry()
    registry.register(InvoiceExportTask())
    registry.register(PaymentImportTask())
    registry.register(AuditPackageTask())
    registry.register(OverdueSweepTask())
    return registry


def job_store_for(ledger_store: LedgerStore) -> JobStore:
    """The job store that lives next to ``ledger_store``."""
    from recon_modules.storage.sql import SqlLedgerStore

    if isinstance(ledger_store, SqlLedgerStore):
        return SqlJobStore(ledger_store.session_factory)
    return InMemoryJobStore()


def build_job_runner(
    ledger_store: LedgerStore,
    invoices: InvoiceService,
    output_dir: Path | str,
    clock: Clock | None = None,
    config: JobConfig | None = None,
    job_store: JobStore | None = None,
    registry: TaskRegistry | None = None,
    executor: Executor | None = None,
) -> JobRunner:
    effective_clock = clock or SystemClock()
    context = JobContext(
        store=ledger_store,
        invoices=invoices,
        output_dir=Path(output_dir),
        clock=effective_clock,
    )
    store = job_store if job_store is not None else job_store_for(ledger_store)
    runner = JobRunner(
        store=store,
        registry=registry if registry is not None else default_task_registry(),
        context=context,
        clock=effective_clock,
        config=config,
        executor=executor,
    )
    logger.info(
        "job_runner_built",
        extra={
            "job_store": type(store).__name__,
            "kinds": list(runner.registry.list_tasks()),
            "output_dir": str(context.output_dir),
        },
    )
    return runner
