"""
recon_services.core -- ReconciliationCore, the operation surface.

Responsibility:
    One object exposing every core operation to the outer layer (REST
    handlers, CLIs, scripts): GRN inspection and acceptance, invoice
    matching, approval, dispute, payment and void, and the job runner.

Architecture position:
    Services layer.  Composes ``ReceivingService``, ``InvoiceService`` and
    ``JobRunner`` over one ``LedgerStore``, one clock and one
    ``KeyedLockTable``, so per-entity serialization holds across every
    entry point.

Contract:
    - The injected ``Authorizer`` is called with (actor_id, action,
      resource_id) before each operation and raises ``AuthorizationError``
      to deny; nothing is read or written for a denied call.
    - Every operation returns the committed entity snapshot.
    - Errors from the modules propagate unchanged (see
      ``recon_kernel.exceptions``); job failures are stored on the job.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from concurrent.futures import Executor
from datetime import date, datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from recon_batch.domain.types import Job
from recon_batch.orchestrator import build_job_runner
from recon_batch.services.store import JobStore
from recon_config import get_active_config
from recon_config.schema import ReconciliationConfig
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.exceptions import ValidationError
from recon_kernel.locks import KeyedLockTable
from recon_kernel.logging_config import LogContext, get_logger
from recon_modules.ap.models import Payment, PaymentMethod, VendorInvoice
from recon_modules.ap.service import DuePayment, InvoiceService
from recon_modules.procurement.models import GoodsReceiptNote, InspectionInput, LineAcceptance
from recon_modules.procurement.service import ReceivingService
from recon_modules.storage.memory import InMemoryLedgerStore
from recon_modules.storage.ports import LedgerStore
from recon_modules.storage.sql import SqlLedgerStore
from recon_services.authorization import Authorizer, allow_all

logger = get_logger("services.core")


def _inspection(payload: InspectionInput | Mapping[str, Any]) -> InspectionInput:
    if isinstance(payload, InspectionInput):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError(
            "inspection must be a mapping", field="inspection", rule="mapping_required",
        )
    data = dict(payload)
    if "photos" in data and data["photos"] is not None:
        data["photos"] = tuple(data["photos"])
    try:
        return InspectionInput(**data)
    except TypeError as exc:
        raise ValidationError(
            f"invalid inspection payload: {exc}", field="inspection", rule="known_fields",
        ) from exc


class ReconciliationCore:
    """Facade over receiving, invoice and job services."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        authorizer: Authorizer | None = None,
        config: ReconciliationConfig | None = None,
        output_dir: Path | str = "recon-output",
        job_store: JobStore | None = None,
        executor: Executor | None = None,
    ):
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._authorize = authorizer or allow_all
        self._locks = KeyedLockTable()
        self._store = store
        self.receiving = ReceivingService(
            store, self._clock, self._locks, self._config.receiving,
        )
        self.invoices = InvoiceService(
            store, self._clock, self._locks, self._config.matching, self._config.payments,
        )
        self.jobs = build_job_runner(
            store,
            self.invoices,
            output_dir,
            clock=self._clock,
            config=self._config.jobs,
            job_store=job_store,
            executor=executor,
        )

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def config(self) -> ReconciliationConfig:
        return self._config

    def _check(self, actor_id: str, action: str, resource_id: Any) -> None:
        with LogContext.bind(actor_id=actor_id):
            self._authorize(actor_id, action, resource_id)

    # -----------------------------------------------------------------
    # Goods receipt
    # -----------------------------------------------------------------

    def inspect_grn(
        self,
        grn_id: UUID,
        inspection: InspectionInput | Mapping[str, Any],
        actor_id: str,
    ) -> GoodsReceiptNote:
        self._check(actor_id, "inspect_grn", grn_id)
        return self.receiving.record_inspection(grn_id, _inspection(inspection), actor_id)

    def accept_grn(
        self,
        grn_id: UUID,
        lines: Iterable[LineAcceptance | Mapping[str, Any]],
        actor_id: str,
    ) -> GoodsReceiptNote:
        self._check(actor_id, "accept_grn", grn_id)
        return self.receiving.accept_lines(grn_id, lines, actor_id)

    def reject_grn(self, grn_id: UUID, reason: str, actor_id: str) -> GoodsReceiptNote:
        self._check(actor_id, "reject_grn", grn_id)
        return self.receiving.reject_all(grn_id, reason, actor_id)

    def get_grn(self, grn_id: UUID) -> GoodsReceiptNote:
        return self.receiving.get(grn_id)

    # -----------------------------------------------------------------
    # Invoices
    # -----------------------------------------------------------------

    def match_invoice(
        self,
        invoice_id: UUID,
        actor_id: str,
        tolerance_percent: Any = None,
        three_way: bool | None = None,
    ) -> VendorInvoice:
        self._check(actor_id, "match_invoice", invoice_id)
        return self.invoices.match(invoice_id, tolerance_percent, actor_id, three_way=three_way)

    def approve_invoice(self, invoice_id: UUID, actor_id: str) -> VendorInvoice:
        self._check(actor_id, "approve_invoice", invoice_id)
        return self.invoices.approve(invoice_id, actor_id)

    def dispute_invoice(self, invoice_id: UUID, notes: str, actor_id: str) -> VendorInvoice:
        self._check(actor_id, "dispute_invoice", invoice_id)
        return self.invoices.dispute(invoice_id, notes, actor_id)

    def pay_invoice(
        self,
        invoice_id: UUID,
        amount: Any,
        payment_date: date | datetime | None,
        method: PaymentMethod | str,
        actor_id: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> VendorInvoice:
        self._check(actor_id, "pay_invoice", invoice_id)
        return self.invoices.pay(
            invoice_id, amount, payment_date, method, actor_id,
            reference=reference, notes=notes,
        )

    def void_invoice(self, invoice_id: UUID, reason: str, actor_id: str) -> VendorInvoice:
        self._check(actor_id, "void_invoice", invoice_id)
        return self.invoices.void(invoice_id, reason, actor_id)

    def refresh_overdue(self, actor_id: str = "system") -> tuple[VendorInvoice, ...]:
        """Recompute payment status of every open invoice; return those that changed."""
        self._check(actor_id, "refresh_overdue", None)
        changed = []
        for invoice_id in self.invoices.open_invoice_ids():
            before = self.invoices.get(invoice_id).payment_status
            after = self.invoices.refresh_payment_status(invoice_id, actor_id)
            if after.payment_status != before:
                changed.append(after)
        logger.info("overdue_refresh_completed", extra={"changed": len(changed)})
        return tuple(changed)

    def get_invoice(self, invoice_id: UUID) -> VendorInvoice:
        return self.invoices.get(invoice_id)

    def payments_for(self, invoice_id: UUID) -> tuple[Payment, ...]:
        return self.invoices.payments_for(invoice_id)

    def due_payments(self, within_days: int | None = None) -> tuple[DuePayment, ...]:
        return self.invoices.due_payments(within_days)

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def submit_job(
        self,
        kind: str,
        parameters: Mapping[str, Any] | None,
        actor_id: str,
    ) -> Job:
        self._check(actor_id, "submit_job", kind)
        return self.jobs.submit(kind, dict(parameters) if parameters is not None else None, actor_id)

    def poll_job(self, job_id: UUID, actor_id: str) -> Job:
        self._check(actor_id, "poll_job", job_id)
        return self.jobs.poll(job_id)

    def cancel_job(self, job_id: UUID, actor_id: str) -> Job:
        self._check(actor_id, "cancel_job", job_id)
        return self.jobs.cancel(job_id, actor_id)

    def close(self) -> None:
        self.jobs.shutdown(wait=True)


def build_core(
    database_url: str | None = None,
    config_path: Path | str | None = None,
    clock: Clock | None = None,
    authorizer: Authorizer | None = None,
    output_dir: Path | str = "recon-output",
) -> ReconciliationCore:
    """Wire a core from a database URL (in-memory ledger when None)."""
    config = get_active_config(config_path)
    store: LedgerStore = (
        SqlLedgerStore.from_url(database_url) if database_url else InMemoryLedgerStore()
    )
    core = ReconciliationCore(
        store,
        clock=clock,
        authorizer=authorizer,
        config=config,
        output_dir=output_dir,
    )
    logger.info(
        "reconciliation_core_built",
        extra={
            "store": type(store).__name__,
            "config_id": config.config_id,
            "config_checksum": config.checksum,
        },
    )
    return core
