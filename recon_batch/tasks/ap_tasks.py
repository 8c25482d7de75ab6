"""
Jobs: AP module (overdue sweep) and invoice selection shared by the
export and audit jobs.
"""

from __future__ import annotations

from uuid import UUID

from recon_batch.domain.types import Job
from recon_batch.tasks.base import JobContext, JobItem, JobItemResult
from recon_kernel.exceptions import ReconciliationError


def invoice_items(job: Job, context: JobContext) -> tuple[JobItem, ...]:
    """One item per invoice: ``parameters["invoice_ids"]`` or every invoice.

    Without explicit ids the invoices are taken in invoice-number order, so
    exports are stable from run to run.
    """
    requested = job.parameters.get("invoice_ids")
    if requested is not None:
        ids = [UUID(str(value)) for value in requested]
    else:
        with context.store.unit_of_work() as uow:
            invoices = sorted(
                uow.invoices.list_all(), key=lambda inv: (inv.vendor_id, inv.invoice_number)
            )
        ids = [inv.id for inv in invoices]
    return tuple(
        JobItem(index=i, key=str(invoice_id), payload={"invoice_id": str(invoice_id)})
        for i, invoice_id in enumerate(ids)
    )


class OverdueSweepTask:
    """Recompute the payment status of every open invoice against the clock."""

    @property
    def task_type(self) -> str:
        return "ap.overdue_sweep"

    @property
    def description(self) -> str:
        return "Mark open invoices past their due date as overdue"

    def prepare_items(self, job: Job, context: JobContext) -> tuple[JobItem, ...]:
        return tuple(
            JobItem(index=i, key=str(invoice_id), payload={"invoice_id": str(invoice_id)})
            for i, invoice_id in enumerate(context.invoices.open_invoice_ids())
        )

    def execute_item(self, item: JobItem, job: Job, context: JobContext) -> JobItemResult:
        invoice_id = UUID(item.payload["invoice_id"])
        try:
            before = context.invoices.get(invoice_id).payment_status
            after = context.invoices.refresh_payment_status(invoice_id, job.created_by)
        except ReconciliationError as exc:
            return JobItemResult.failed(exc.code, str(exc))
        if after.payment_status == before:
            return JobItemResult.skipped(payment_status=after.payment_status.value)
        return JobItemResult.succeeded(
            from_status=before.value, payment_status=after.payment_status.value,
        )

    def finalize(self, job, results, context) -> str | None:
        return None
