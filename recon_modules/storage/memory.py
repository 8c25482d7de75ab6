"""
In-memory ledger store.

Responsibility:
    A ``LedgerStore`` over plain dictionaries for tests, tooling and
    embedded use.  Entities are frozen dataclasses, so a committed
    snapshot can be handed out without copying.

Invariants enforced:
    - Writes made through a unit of work are staged and applied to the
      committed maps in one step under the store lock; a concurrent reader
      sees either none or all of them.
    - A unit of work that raises discards its staged writes.
    - Payments are append-only.

Non-goals:
    - No isolation between two writers of the same entity; callers hold
      the entity lock (``KeyedLockTable``) around read-modify-write.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any
from uuid import UUID

from recon_kernel.exceptions import ValidationError
from recon_kernel.logging_config import get_logger
from recon_modules.ap.models import Payment, VendorInvoice
from recon_modules.procurement.models import GoodsReceiptNote, PurchaseOrderLine

logger = get_logger("modules.storage.memory")


def _duplicate(kind: str, entity_id: Any) -> ValidationError:
    return ValidationError(
        f"{kind} {entity_id} already exists",
        field="id",
        value=entity_id,
        rule="unique_id",
    )


class _PurchaseOrders:
    def __init__(self, uow: "_MemoryUnitOfWork"):
        self._uow = uow

    def add_lines(self, lines: Iterable[PurchaseOrderLine]) -> None:
        for line in lines:
            if self._uow._read("po_lines", line.id) is not None:
                raise _duplicate("purchase_order_line", line.id)
            self._uow._staged["po_lines"][line.id] = line

    def get_lines(self, line_ids: Iterable[UUID]) -> dict[UUID, PurchaseOrderLine]:
        found = {}
        for line_id in line_ids:
            line = self._uow._read("po_lines", line_id)
            if line is not None:
                found[line_id] = line
        return found

    def lines_for_order(self, purchase_order_id: UUID) -> tuple[PurchaseOrderLine, ...]:
        lines = [
            line for line in self._uow._values("po_lines")
            if line.purchase_order_id == purchase_order_id
        ]
        return tuple(sorted(lines, key=lambda line: line.line_number))


class _GoodsReceipts:
    def __init__(self, uow: "_MemoryUnitOfWork"):
        self._uow = uow

    def add(self, grn: GoodsReceiptNote) -> None:
        if self._uow._read("grns", grn.id) is not None:
            raise _duplicate("goods_receipt", grn.id)
        self._uow._staged["grns"][grn.id] = grn

    def get(self, grn_id: UUID, *, for_update: bool = False) -> GoodsReceiptNote | None:
        return self._uow._read("grns", grn_id)

    def save(self, grn: GoodsReceiptNote) -> None:
        self._uow._staged["grns"][grn.id] = grn

    def for_purchase_order(self, purchase_order_id: UUID) -> tuple[GoodsReceiptNote, ...]:
        return tuple(
            grn for grn in self._uow._values("grns")
            if grn.purchase_order_id == purchase_order_id
        )


class _Invoices:
    def __init__(self, uow: "_MemoryUnitOfWork"):
        self._uow = uow

    def add(self, invoice: VendorInvoice) -> None:
        if self._uow._read("invoices", invoice.id) is not None:
            raise _duplicate("vendor_invoice", invoice.id)
        self._uow._staged["invoices"][invoice.id] = invoice

    def get(self, invoice_id: UUID, *, for_update: bool = False) -> VendorInvoice | None:
        return self._uow._read("invoices", invoice_id)

    def save(self, invoice: VendorInvoice) -> None:
        self._uow._staged["invoices"][invoice.id] = invoice

    def list_open(self, due_on_or_before: date | None = None) -> tuple[VendorInvoice, ...]:
        return tuple(
            inv for inv in self.list_all()
            if not inv.is_voided
            and not inv.is_fully_paid
            and (due_on_or_before is None or inv.due_date <= due_on_or_before)
        )

    def list_all(self) -> tuple[VendorInvoice, ...]:
        return tuple(
            sorted(self._uow._values("invoices"), key=lambda inv: (inv.due_date, inv.invoice_number))
        )


class _Payments:
    def __init__(self, uow: "_MemoryUnitOfWork"):
        self._uow = uow

    def add(self, payment: Payment) -> None:
        self._uow._staged_payments.append(payment)

    def for_invoice(self, invoice_id: UUID) -> tuple[Payment, ...]:
        with self._uow._store._guard:
            committed = self._uow._store._payments.get(invoice_id, ())
        staged = tuple(p for p in self._uow._staged_payments if p.invoice_id == invoice_id)
        return committed + staged


class _MemoryUnitOfWork:
    def __init__(self, store: "InMemoryLedgerStore"):
        self._store = store
        self._staged: dict[str, dict[UUID, Any]] = {
            "po_lines": {},
            "grns": {},
            "invoices": {},
        }
        self._staged_payments: list[Payment] = []
        self.purchase_orders = _PurchaseOrders(self)
        self.goods_receipts = _GoodsReceipts(self)
        self.invoices = _Invoices(self)
        self.payments = _Payments(self)

    def _read(self, table: str, entity_id: UUID) -> Any:
        staged = self._staged[table].get(entity_id)
        if staged is not None:
            return staged
        with self._store._guard:
            return self._store._tables[table].get(entity_id)

    def _values(self, table: str) -> list[Any]:
        with self._store._guard:
            merged = dict(self._store._tables[table])
        merged.update(self._staged[table])
        return list(merged.values())

    def _commit(self) -> None:
        with self._store._guard:
            for table, staged in self._staged.items():
                self._store._tables[table].update(staged)
            for payment in self._staged_payments:
                existing = self._store._payments.get(payment.invoice_id, ())
                self._store._payments[payment.invoice_id] = existing + (payment,)


class InMemoryLedgerStore:
    """Dictionary-backed ``LedgerStore``."""

    def __init__(self) -> None:
        self._guard = threading.RLock()
        self._tables: dict[str, dict[UUID, Any]] = {
            "po_lines": {},
            "grns": {},
            "invoices": {},
        }
        self._payments: dict[UUID, tuple[Payment, ...]] = {}

    @contextmanager
    def unit_of_work(self, actor_id: str = "system") -> Iterator[_MemoryUnitOfWork]:
        uow = _MemoryUnitOfWork(self)
        yield uow
        uow._commit()
        logger.debug(
            "memory_unit_of_work_committed",
            extra={
                "actor_id": actor_id,
                "writes": sum(len(s) for s in uow._staged.values())
                + len(uow._staged_payments),
            },
        )

    # Seeding helpers for callers that create records outside the core.

    def add_purchase_order_lines(self, *lines: PurchaseOrderLine) -> None:
        with self.unit_of_work() as uow:
            uow.purchase_orders.add_lines(lines)

    def add_goods_receipt(self, grn: GoodsReceiptNote) -> None:
        with self.unit_of_work() as uow:
            uow.goods_receipts.add(grn)

    def add_invoice(self, invoice: VendorInvoice) -> None:
        with self.unit_of_work() as uow:
            uow.invoices.add(invoice)
