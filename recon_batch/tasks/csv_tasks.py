"""
Jobs: CSV invoice export and CSV payment import.

Export writes one row per invoice with money as plain decimal strings.
Import applies one payment per row through ``InvoiceService.pay``, so every
row goes through the same approval and overpayment checks as an
interactive payment; a rejected row is an item error, not a job crash.

Payment CSV columns: ``invoice_id``, ``amount`` (required), ``payment_date``
(ISO date, defaults to today), ``method`` (defaults to BANK_TRANSFER),
``reference``, ``notes``.
"""

from __future__ import annotations

import csv
from datetime import date
from pathlib import Path
from uuid import UUID

from recon_batch.domain.types import ItemStatus, Job
from recon_batch.tasks.ap_tasks import invoice_items
from recon_batch.tasks.base import JobContext, JobItem, JobItemResult
from recon_kernel.domain.values import decimal_to_str
from recon_kernel.exceptions import ReconciliationError
from recon_kernel.logging_config import get_logger

logger = get_logger("batch.tasks.csv")

INVOICE_EXPORT_COLUMNS = (
    "invoice_id",
    "invoice_number",
    "vendor_id",
    "invoice_date",
    "due_date",
    "currency",
    "subtotal",
    "tax_amount",
    "total_amount",
    "paid_amount",
    "remaining_balance",
    "match_status",
    "price_variance",
    "quantity_variance",
    "approved_for_payment",
    "payment_status",
    "is_disputed",
    "is_voided",
)

PAYMENT_IMPORT_REQUIRED = ("invoice_id", "amount")


def _encoding(parameters: dict) -> str:
    enc = parameters.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


class InvoiceExportTask:
    """Export invoices to a CSV file in the job output directory."""

    @property
    def task_type(self) -> str:
        return "csv.export.invoices"

    @property
    def description(self) -> str:
        return "Export vendor invoices to CSV"

    def prepare_items(self, job: Job, context: JobContext) -> tuple[JobItem, ...]:
        return invoice_items(job, context)

    def execute_item(self, item: JobItem, job: Job, context: JobContext) -> JobItemResult:
        try:
            invoice = context.invoices.get(UUID(item.payload["invoice_id"]))
        except ReconciliationError as exc:
            return JobItemResult.failed(exc.code, str(exc))
        row = {
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "vendor_id": invoice.vendor_id,
            "invoice_date": invoice.invoice_date.isoformat(),
            "due_date": invoice.due_date.isoformat(),
            "currency": invoice.currency,
            "subtotal": decimal_to_str(invoice.subtotal),
            "tax_amount": decimal_to_str(invoice.tax_amount),
            "total_amount": decimal_to_str(invoice.total_amount),
            "paid_amount": decimal_to_str(invoice.paid_amount),
            "remaining_balance": decimal_to_str(invoice.remaining_balance),
            "match_status": invoice.match_status.value,
            "price_variance": decimal_to_str(invoice.price_variance) or "",
            "quantity_variance": decimal_to_str(invoice.quantity_variance) or "",
            "approved_for_payment": "true" if invoice.approved_for_payment else "false",
            "payment_status": invoice.payment_status.value,
            "is_disputed": "true" if invoice.is_disputed else "false",
            "is_voided": "true" if invoice.is_voided else "false",
        }
        return JobItemResult.succeeded(row=row)

    def finalize(self, job, results, context) -> str | None:
        name = job.parameters.get("output_name") or f"invoices-{job.id}.csv"
        path = context.output_path(name)
        rows = [
            result.data["row"]
            for _, result in results
            if result.status == ItemStatus.SUCCEEDED
        ]
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=INVOICE_EXPORT_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
        logger.info(
            "invoice_export_written",
            extra={"job_id": str(job.id), "path": str(path), "rows": len(rows)},
        )
        return str(path)


class PaymentImportTask:
    """Apply payments listed in a CSV file."""

    @property
    def task_type(self) -> str:
        return "csv.import.payments"

    @property
    def description(self) -> str:
        return "Import vendor payments from CSV"

    def prepare_items(self, job: Job, context: JobContext) -> tuple[JobItem, ...]:
        source = job.parameters.get("path")
        if not source:
            raise ValueError("parameter 'path' is required")
        source_path = Path(source)
        delimiter = job.parameters.get("delimiter", ",")
        with source_path.open("r", encoding=_encoding(job.parameters), newline="") as f:
            reader = csv.DictReader(f, delimiter=delimiter)
            missing = [c for c in PAYMENT_IMPORT_REQUIRED if c not in (reader.fieldnames or ())]
            if missing:
                raise ValueError(f"missing columns: {', '.join(missing)}")
            rows = [dict(row) for row in reader]
        # Header is line 1.
        return tuple(
            JobItem(index=i, key=f"row-{i + 2}", payload=row)
            for i, row in enumerate(rows)
        )

    def execute_item(self, item: JobItem, job: Job, context: JobContext) -> JobItemResult:
        row = {k: (v or "").strip() for k, v in item.payload.items() if k is not None}
        try:
            invoice_id = UUID(row["invoice_id"])
            paid_on = date.fromisoformat(row["payment_date"]) if row.get("payment_date") else None
        except ValueError as exc:
            return JobItemResult.failed("VALIDATION_ERROR", f"{item.key}: {exc}")
        try:
            invoice = context.invoices.pay(
                invoice_id,
                row["amount"],
                paid_on,
                row.get("method") or "BANK_TRANSFER",
                actor_id=job.created_by,
                reference=row.get("reference") or None,
                notes=row.get("notes") or None,
            )
        except ReconciliationError as exc:
            return JobItemResult.failed(exc.code, f"{item.key}: {exc}")
        return JobItemResult.succeeded(
            invoice_id=str(invoice_id),
            paid_amount=decimal_to_str(invoice.paid_amount),
            payment_status=invoice.payment_status.value,
        )

    def finalize(self, job, results, context) -> str | None:
        return None
