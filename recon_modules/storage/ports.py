"""
Storage ports for the ledger entities.

Responsibility:
    Define what the services need from persistence, and nothing about how
    it is done.  A ``LedgerStore`` hands out units of work; a unit of work
    exposes one repository per entity and is atomic: everything written
    through it becomes visible together on commit, or not at all.

Architecture position:
    Modules > storage.  Services depend on these protocols only; concrete
    stores (``memory``, ``sql``) are chosen by whoever wires the core.

Invariants enforced:
    - ``unit_of_work()`` commits on normal exit and rolls back when the
      block raises.
    - ``get(..., for_update=True)`` marks the read as the start of a
      read-modify-write; SQL stores take a row lock for it.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import date
from typing import Protocol, runtime_checkable
from uuid import UUID

from recon_modules.ap.models import Payment, VendorInvoice
from recon_modules.procurement.models import GoodsReceiptNote, PurchaseOrderLine


class PurchaseOrderRepository(Protocol):
    def add_lines(self, lines: Iterable[PurchaseOrderLine]) -> None: ...

    def get_lines(self, line_ids: Iterable[UUID]) -> dict[UUID, PurchaseOrderLine]:
        """Lines found among ``line_ids``; unknown ids are absent."""
        ...

    def lines_for_order(self, purchase_order_id: UUID) -> tuple[PurchaseOrderLine, ...]: ...


class GoodsReceiptRepository(Protocol):
    def add(self, grn: GoodsReceiptNote) -> None: ...

    def get(self, grn_id: UUID, *, for_update: bool = False) -> GoodsReceiptNote | None: ...

    def save(self, grn: GoodsReceiptNote) -> None: ...

    def for_purchase_order(self, purchase_order_id: UUID) -> tuple[GoodsReceiptNote, ...]: ...


class InvoiceRepository(Protocol):
    def add(self, invoice: VendorInvoice) -> None: ...

    def get(self, invoice_id: UUID, *, for_update: bool = False) -> VendorInvoice | None: ...

    def save(self, invoice: VendorInvoice) -> None: ...

    def list_open(self, due_on_or_before: date | None = None) -> tuple[VendorInvoice, ...]:
        """Not voided, not fully paid, optionally due by the given date."""
        ...

    def list_all(self) -> tuple[VendorInvoice, ...]: ...


class PaymentRepository(Protocol):
    def add(self, payment: Payment) -> None: ...

    def for_invoice(self, invoice_id: UUID) -> tuple[Payment, ...]: ...


@runtime_checkable
class UnitOfWork(Protocol):
    purchase_orders: PurchaseOrderRepository
    goods_receipts: GoodsReceiptRepository
    invoices: InvoiceRepository
    payments: PaymentRepository


@runtime_checkable
class LedgerStore(Protocol):
    def unit_of_work(self, actor_id: str = "system") -> AbstractContextManager[UnitOfWork]: ...
