"""
Accounts Payable Invoice Service (``recon_modules.ap.service``).

Responsibility
--------------
Drives vendor invoices through match -> approve -> pay, with dispute as an
annotation and void as a hard stop.  Matching and settlement arithmetic
are delegated to ``recon_engines``.

Architecture position
---------------------
**Modules layer** -- ``InvoiceService`` is the sole entry point for invoice
mutations.  It composes ``InvoiceMatchingEngine`` and the settlement
functions, checks transitions against ``INVOICE_MATCH_WORKFLOW`` and
``INVOICE_PAYMENT_WORKFLOW``, and persists through a ``LedgerStore``.

Invariants enforced
-------------------
* Each mutating call holds the invoice lock for its whole unit of work.
* paid_amount never exceeds total_amount; a payment that would breach it
  fails with ``OverpaymentError`` and changes nothing.
* paid_amount only increases, by exactly the payment amount.
* Payment status moves forward only: PENDING -> PARTIAL -> PAID, with
  OVERDUE reachable from PENDING or PARTIAL and left only by full payment.
* Re-matching overwrites every match field and never touches approval.

Failure modes
-------------
* ``NotFoundError`` -- unknown invoice.
* ``InvalidStateError`` -- voided invoice; dispute of a paid invoice.
* ``PreconditionError`` -- approval without an acceptable match; payment
  of an unapproved invoice.
* ``ValidationError`` / ``OverpaymentError`` -- bad amount, method,
  tolerance or notes.

Audit relevance
---------------
``invoice_matched``, ``invoice_approved``, ``invoice_disputed``,
``invoice_paid`` and ``invoice_voided`` log records carry the invoice id,
actor and resulting state.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from recon_engines.matching import (
    InvoiceLineInput,
    InvoiceMatchingEngine,
    MatchOutcome,
    PurchaseOrderLineInput,
)
from recon_engines.settlement import compute_payment_status, validate_payment
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.domain.values import ZERO, to_decimal
from recon_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from recon_kernel.locks import KeyedLockTable
from recon_kernel.logging_config import LogContext, get_logger
from recon_modules.ap.config import MatchingConfig, PaymentConfig
from recon_modules.ap.models import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    VendorInvoice,
)
from recon_modules.ap.workflows import INVOICE_MATCH_WORKFLOW, INVOICE_PAYMENT_WORKFLOW
from recon_modules.procurement.models import TERMINAL_GRN_STATUSES, GRNStatus, PurchaseOrderLine

if TYPE_CHECKING:
    from recon_modules.storage.ports import LedgerStore, UnitOfWork

logger = get_logger("modules.ap.service")

ENTITY = "vendor_invoice"

# Receipts whose accepted quantities count toward a three-way match.
_RECEIVED_STATUSES = TERMINAL_GRN_STATUSES - {GRNStatus.REJECTED}


@dataclass(frozen=True)
class DuePayment:
    """An approved invoice with an outstanding balance due soon or overdue."""
    invoice_id: UUID
    invoice_number: str
    vendor_id: str
    due_date: date
    remaining_balance: Decimal
    currency: str
    days_until_due: int

    @property
    def is_overdue(self) -> bool:
        return self.days_until_due < 0


def _required_text(value: Any, field: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field, rule="field_required")
    return text


def _payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError as exc:
        raise ValidationError(
            f"method must be one of {', '.join(m.value for m in PaymentMethod)}, got {value!r}",
            field="method",
            value=value,
            rule="known_payment_method",
        ) from exc


class InvoiceService:
    """
    Matching, approval, dispute, void and payment of vendor invoices.

    Contract:
        Each public mutating method runs as one unit of work under the
        invoice lock and returns the invoice as committed.
    Non-goals:
        Does not create invoices, issue credit notes or move money.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        locks: KeyedLockTable | None = None,
        matching: MatchingConfig | None = None,
        payments: PaymentConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockTable()
        self._matching = matching or MatchingConfig()
        self._payments = payments or PaymentConfig()
        self._engine = InvoiceMatchingEngine(
            variance_places=self._matching.variance_places,
            description_fallback=self._matching.description_fallback,
        )

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def get(self, invoice_id: UUID) -> VendorInvoice:
        with self._store.unit_of_work() as uow:
            invoice = uow.invoices.get(invoice_id)
        if invoice is None:
            raise NotFoundError(ENTITY, invoice_id)
        return invoice

    def payments_for(self, invoice_id: UUID) -> tuple[Payment, ...]:
        with self._store.unit_of_work() as uow:
            if uow.invoices.get(invoice_id) is None:
                raise NotFoundError(ENTITY, invoice_id)
            return uow.payments.for_invoice(invoice_id)

    def due_payments(self, within_days: int | None = None) -> tuple[DuePayment, ...]:
        """Approved invoices with a balance due within the window, or overdue."""
        days = self._payments.due_soon_days if within_days is None else within_days
        if days < 0:
            raise ValidationError(
                "within_days cannot be negative", field="within_days",
                value=days, rule="non_negative_window",
            )
        today = self._clock.today()
        with self._store.unit_of_work() as uow:
            invoices = uow.invoices.list_open(due_on_or_before=today + timedelta(days=days))
        return tuple(
            DuePayment(
                invoice_id=inv.id,
                invoice_number=inv.invoice_number,
                vendor_id=inv.vendor_id,
                due_date=inv.due_date,
                remaining_balance=inv.remaining_balance,
                currency=inv.currency,
                days_until_due=(inv.due_date - today).days,
            )
            for inv in invoices
            if inv.approved_for_payment and inv.remaining_balance > ZERO
        )

    def _load(self, uow: UnitOfWork, invoice_id: UUID, action: str) -> VendorInvoice:
        invoice = uow.invoices.get(invoice_id, for_update=True)
        if invoice is None:
            raise NotFoundError(ENTITY, invoice_id)
        if invoice.is_voided:
            raise InvalidStateError(ENTITY, invoice_id, "VOIDED", action)
        return invoice

    # -----------------------------------------------------------------
    # Matching
    # -----------------------------------------------------------------

    def match(
        self,
        invoice_id: UUID,
        tolerance_percent: Any = None,
        actor_id: str = "system",
        three_way: bool | None = None,
    ) -> VendorInvoice:
        """Match the invoice against its PO lines and record the outcome."""
        tolerance = (
            self._matching.default_tolerance_percent
            if tolerance_percent is None
            else to_decimal(tolerance_percent, "tolerance_percent")
        )
        use_three_way = self._matching.three_way if three_way is None else three_way

        with LogContext.bind(entity_id=invoice_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = self._load(uow, invoice_id, "match")
            po_lines = self._po_lines_for(uow, invoice)
            accepted = self._accepted_quantities(uow, po_lines) if use_three_way else None

            outcome = self._engine.match(
                invoice_lines=[
                    InvoiceLineInput(
                        line_id=item.id,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        po_line_id=item.po_line_id,
                        description=item.description,
                    )
                    for item in invoice.items
                ],
                po_lines=[
                    PurchaseOrderLineInput(
                        line_id=line.id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        description=line.description,
                    )
                    for line in po_lines
                ],
                tolerance_percent=tolerance,
                accepted_quantities=accepted,
            )
            INVOICE_MATCH_WORKFLOW.require(
                invoice.match_status.value, "match", invoice_id, to_state=outcome.status.value
            )
            updated = self._apply_outcome(invoice, outcome)
            uow.invoices.save(updated)

            logger.info(
                "invoice_matched",
                extra={
                    "invoice_id": str(invoice_id),
                    "from_status": invoice.match_status.value,
                    "match_status": updated.match_status.value,
                    "price_variance": updated.price_variance,
                    "quantity_variance": updated.quantity_variance,
                    "tolerance_percent": tolerance,
                    "three_way": use_three_way,
                },
            )
        return updated

    def _apply_outcome(self, invoice: VendorInvoice, outcome: MatchOutcome) -> VendorInvoice:
        return replace(
            invoice,
            match_status=outcome.status,
            price_variance=outcome.price_variance,
            quantity_variance=outcome.quantity_variance,
            discrepancy_notes=outcome.notes,
            matched_at=self._clock.now(),
        )

    @staticmethod
    def _po_lines_for(uow: UnitOfWork, invoice: VendorInvoice) -> list[PurchaseOrderLine]:
        linked_ids = {item.po_line_id for item in invoice.items if item.po_line_id is not None}
        lines = dict(uow.purchase_orders.get_lines(linked_ids))
        if invoice.purchase_order_id is not None:
            for line in uow.purchase_orders.lines_for_order(invoice.purchase_order_id):
                lines.setdefault(line.id, line)
        return list(lines.values())

    @staticmethod
    def _accepted_quantities(
        uow: UnitOfWork, po_lines: list[PurchaseOrderLine]
    ) -> dict[UUID, Decimal]:
        accepted: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for po_id in {line.purchase_order_id for line in po_lines}:
            for grn in uow.goods_receipts.for_purchase_order(po_id):
                if grn.status not in _RECEIVED_STATUSES:
                    continue
                for item in grn.items:
                    if item.po_line_id is not None:
                        accepted[item.po_line_id] += item.accepted_quantity
        return {line.id: accepted[line.id] for line in po_lines}

    # -----------------------------------------------------------------
    # Approval / dispute / void
    # -----------------------------------------------------------------

    def approve(self, invoice_id: UUID, actor_id: str) -> VendorInvoice:
        """Approve for payment.  Requires MATCHED or PARTIAL_MATCH."""
        with LogContext.bind(entity_id=invoice_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = self._load(uow, invoice_id, "approve")
            if invoice.approved_for_payment:
                return invoice
            if INVOICE_MATCH_WORKFLOW.transition_for(invoice.match_status.value, "approve") is None:
                raise PreconditionError(
                    ENTITY,
                    invoice_id,
                    "match_status in (MATCHED, PARTIAL_MATCH)",
                    f"Invoice {invoice.invoice_number} cannot be approved with match "
                    f"status {invoice.match_status.value}; dispute it or re-match "
                    f"after correction",
                )
            updated = replace(
                invoice,
                approved_for_payment=True,
                approved_at=self._clock.now(),
                approved_by=actor_id,
            )
            uow.invoices.save(updated)
            logger.info(
                "invoice_approved",
                extra={
                    "invoice_id": str(invoice_id),
                    "match_status": invoice.match_status.value,
                    "is_disputed": invoice.is_disputed,
                },
            )
        return updated

    def dispute(self, invoice_id: UUID, notes: str, actor_id: str) -> VendorInvoice:
        """Mark the invoice disputed and append notes.  Refused once paid."""
        text = _required_text(notes, "notes")
        with LogContext.bind(entity_id=invoice_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = self._load(uow, invoice_id, "dispute")
            if invoice.payment_status == PaymentStatus.PAID:
                raise InvalidStateError(
                    ENTITY, invoice_id, PaymentStatus.PAID.value, "dispute",
                    "invoice is fully paid",
                )
            now = self._clock.now()
            entry = f"[{now.isoformat()} {actor_id}] {text}"
            updated = replace(
                invoice,
                is_disputed=True,
                dispute_notes=f"{invoice.dispute_notes}\n{entry}" if invoice.dispute_notes else entry,
                disputed_at=now,
            )
            uow.invoices.save(updated)
            logger.info(
                "invoice_disputed",
                extra={
                    "invoice_id": str(invoice_id),
                    "match_status": invoice.match_status.value,
                    "approved_for_payment": invoice.approved_for_payment,
                },
            )
        return updated

    def void(self, invoice_id: UUID, reason: str, actor_id: str) -> VendorInvoice:
        """Void an unpaid invoice.  Its lines go with it; no further actions."""
        text = _required_text(reason, "reason")
        with LogContext.bind(entity_id=invoice_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = self._load(uow, invoice_id, "void")
            if invoice.paid_amount > ZERO or uow.payments.for_invoice(invoice_id):
                raise InvalidStateError(
                    ENTITY, invoice_id, invoice.payment_status.value, "void",
                    "payments have been recorded",
                )
            updated = replace(
                invoice,
                is_voided=True,
                voided_at=self._clock.now(),
                void_reason=text,
                approved_for_payment=False,
            )
            uow.invoices.save(updated)
            logger.info("invoice_voided", extra={"invoice_id": str(invoice_id), "reason": text})
        return updated

    # -----------------------------------------------------------------
    # Payment
    # -----------------------------------------------------------------

    def pay(
        self,
        invoice_id: UUID,
        amount: Any,
        payment_date: date | datetime | None,
        method: PaymentMethod | str,
        actor_id: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> VendorInvoice:
        """Apply a payment.

        Checks, in order: invoice exists, not voided, approved for payment,
        amount > 0, amount within the remaining balance.
        """
        t0 = time.monotonic()
        value = to_decimal(amount, "amount")
        pay_method = _payment_method(method)
        if isinstance(payment_date, datetime):
            payment_date = payment_date.date()
        paid_on = payment_date or self._clock.today()

        with LogContext.bind(entity_id=invoice_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = self._load(uow, invoice_id, "pay")
            if not invoice.approved_for_payment:
                raise PreconditionError(
                    ENTITY,
                    invoice_id,
                    "approved_for_payment",
                    f"Invoice {invoice.invoice_number} is not approved for payment",
                )
            validate_payment(invoice_id, invoice.total_amount, invoice.paid_amount, value)

            now = self._clock.now()
            paid = invoice.paid_amount + value
            status = self._next_status(invoice, paid)
            INVOICE_PAYMENT_WORKFLOW.require(
                invoice.payment_status.value, "pay", invoice_id, to_state=status.value
            )

            payment = Payment(
                id=uuid4(),
                invoice_id=invoice_id,
                amount=value,
                payment_date=paid_on,
                method=pay_method,
                recorded_by=actor_id,
                recorded_at=now,
                reference=reference,
                notes=notes,
            )
            updated = replace(
                invoice,
                paid_amount=paid,
                payment_status=status,
                paid_at=now if status == PaymentStatus.PAID else invoice.paid_at,
            )
            uow.payments.add(payment)
            uow.invoices.save(updated)

            logger.info(
                "invoice_paid",
                extra={
                    "invoice_id": str(invoice_id),
                    "payment_id": str(payment.id),
                    "amount": value,
                    "paid_amount": paid,
                    "remaining_balance": updated.remaining_balance,
                    "from_status": invoice.payment_status.value,
                    "payment_status": status.value,
                    "method": pay_method.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
        return updated

    def _next_status(self, invoice: VendorInvoice, paid: Decimal) -> PaymentStatus:
        status = compute_payment_status(
            invoice.total_amount, paid, invoice.due_date, self._clock.today()
        )
        # OVERDUE is only left by paying in full.
        if invoice.payment_status == PaymentStatus.OVERDUE and status != PaymentStatus.PAID:
            return PaymentStatus.OVERDUE
        return status

    def refresh_payment_status(self, invoice_id: UUID, actor_id: str = "system") -> VendorInvoice:
        """Recompute payment status against the clock (marks overdue)."""
        with self._locks.hold((ENTITY, invoice_id)), \
                self._store.unit_of_work(actor_id) as uow:
            invoice = uow.invoices.get(invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError(ENTITY, invoice_id)
            status = self._next_status(invoice, invoice.paid_amount)
            if status == invoice.payment_status or invoice.is_voided:
                return invoice
            INVOICE_PAYMENT_WORKFLOW.require(
                invoice.payment_status.value, "refresh", invoice_id, to_state=status.value
            )
            updated = replace(invoice, payment_status=status)
            uow.invoices.save(updated)
            logger.info(
                "invoice_payment_status_refreshed",
                extra={
                    "invoice_id": str(invoice_id),
                    "from_status": invoice.payment_status.value,
                    "payment_status": status.value,
                },
            )
        return updated

    def open_invoice_ids(self) -> tuple[UUID, ...]:
        with self._store.unit_of_work() as uow:
            return tuple(inv.id for inv in uow.invoices.list_open())
