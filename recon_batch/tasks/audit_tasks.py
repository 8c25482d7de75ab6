"""
Job: audit package.

Builds a zip archive holding one JSON document per invoice (the invoice,
its payments, the purchase order lines it bills and the goods receipts
against that order, inspections included) plus ``manifest.json`` listing
every document with its SHA-256 checksum.
"""

from __future__ import annotations

import hashlib
import json
import zipfile
from uuid import UUID

from recon_batch.domain.types import ItemStatus, Job
from recon_batch.tasks.ap_tasks import invoice_items
from recon_batch.tasks.base import JobContext, JobItem, JobItemResult
from recon_kernel.logging_config import get_logger
from recon_modules.serialization import to_wire

logger = get_logger("batch.tasks.audit")

MANIFEST_NAME = "manifest.json"


def _dumps(document: dict) -> bytes:
    return json.dumps(document, indent=2, sort_keys=True).encode("utf-8")


class AuditPackageTask:
    """Assemble the audit trail of a set of invoices into one archive."""

    @property
    def task_type(self) -> str:
        return "audit.package"

    @property
    def description(self) -> str:
        return "Assemble invoice audit package (zip of JSON documents)"

    def prepare_items(self, job: Job, context: JobContext) -> tuple[JobItem, ...]:
        return invoice_items(job, context)

    def execute_item(self, item: JobItem, job: Job, context: JobContext) -> JobItemResult:
        invoice_id = UUID(item.payload["invoice_id"])
        with context.store.unit_of_work() as uow:
            invoice = uow.invoices.get(invoice_id)
            if invoice is None:
                return JobItemResult.failed("NOT_FOUND", f"vendor_invoice {invoice_id} not found")
            payments = uow.payments.for_invoice(invoice_id)
            line_ids = {i.po_line_id for i in invoice.items if i.po_line_id is not None}
            po_lines = dict(uow.purchase_orders.get_lines(line_ids))
            receipts = ()
            if invoice.purchase_order_id is not None:
                for line in uow.purchase_orders.lines_for_order(invoice.purchase_order_id):
                    po_lines.setdefault(line.id, line)
                receipts = uow.goods_receipts.for_purchase_order(invoice.purchase_order_id)

        document = {
            "invoice": to_wire(invoice),
            "payments": to_wire(payments),
            "purchase_order_lines": to_wire(
                sorted(po_lines.values(), key=lambda line: (line.line_number, str(line.id)))
            ),
            "goods_receipts": [to_wire(grn) for grn in receipts],
        }
        name = f"invoices/{invoice.vendor_id}-{invoice.invoice_number}.json".replace(" ", "_")
        return JobItemResult.succeeded(name=name, document=document)

    def finalize(self, job, results, context) -> str | None:
        archive_name = job.parameters.get("output_name") or f"audit-{job.id}.zip"
        path = context.output_path(archive_name)
        entries = []
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for item, result in results:
                if result.status != ItemStatus.SUCCEEDED:
                    continue
                payload = _dumps(result.data["document"])
                archive.writestr(result.data["name"], payload)
                entries.append({
                    "name": result.data["name"],
                    "invoice_id": item.payload["invoice_id"],
                    "sha256": hashlib.sha256(payload).hexdigest(),
                })
            manifest = {
                "job_id": str(job.id),
                "generated_at": context.clock.now().isoformat(),
                "generated_by": job.created_by,
                "document_count": len(entries),
                "documents": entries,
            }
            archive.writestr(MANIFEST_NAME, _dumps(manifest))
        logger.info(
            "audit_package_written",
            extra={"job_id": str(job.id), "path": str(path), "documents": len(entries)},
        )
        return str(path)
