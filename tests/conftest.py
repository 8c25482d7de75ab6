"""
Pytest fixtures for the reconciliation test suite.

Provides:
- Structured logging configured once per session, context cleared per test
- ``captured_logs`` for asserting on JSON log records
- Deterministic clock
- In-memory and SQLite (in-memory) ledger stores
- ``LedgerBuilder`` for seeding PO lines, goods receipts and invoices
- A fully wired ``ReconciliationCore`` over the in-memory store
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from recon_config import get_active_config
from recon_kernel.domain.clock import DeterministicClock
from recon_kernel.locks import KeyedLockTable
from recon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recon_modules.ap.models import MatchStatus, VendorInvoice, VendorInvoiceItem
from recon_modules.ap.service import InvoiceService
from recon_modules.procurement.models import (
    GoodsReceiptItem,
    GoodsReceiptNote,
    GRNStatus,
    PurchaseOrderLine,
)
from recon_modules.procurement.service import ReceivingService
from recon_modules.storage.memory import InMemoryLedgerStore
from recon_modules.storage.sql import SqlLedgerStore
from recon_services.core import ReconciliationCore

TEST_ACTOR_ID = "user-7f3a"
TEST_NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recon logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, receiving):
            receiving.reject_all(...)
            logs = captured_logs()
            assert any(r["message"] == "grn_rejected" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recon")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Clock and stores
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def sql_store() -> SqlLedgerStore:
    store = SqlLedgerStore.from_url("sqlite:///:memory:")
    yield store
    bind = store.session_factory.kw.get("bind")
    if bind is not None:
        bind.dispose()


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def locks() -> KeyedLockTable:
    return KeyedLockTable()


# =============================================================================
# Builders
# =============================================================================


class LedgerBuilder:
    """Seeds reference data through a store's seeding helpers."""

    def __init__(self, store, clock):
        self.store = store
        self.clock = clock
        self.purchase_order_id = uuid4()
        self._line_numbers = 0
        self._grn_numbers = 0
        self._invoice_numbers = 0

    def po_line(
        self,
        quantity="100",
        unit_price="10.00",
        description="Drill bit 45mm",
        purchase_order_id=None,
    ) -> PurchaseOrderLine:
        self._line_numbers += 1
        line = PurchaseOrderLine(
            id=uuid4(),
            purchase_order_id=purchase_order_id or self.purchase_order_id,
            quantity=Decimal(quantity),
            unit_price=Decimal(unit_price),
            description=description,
            item_ref=f"ITM-{self._line_numbers:03d}",
            line_number=self._line_numbers,
        )
        self.store.add_purchase_order_lines(line)
        return line

    def grn(self, *received, status=GRNStatus.PENDING_INSPECTION, notes=None) -> GoodsReceiptNote:
        """``received``: (PurchaseOrderLine, quantity) pairs."""
        self._grn_numbers += 1
        grn = GoodsReceiptNote(
            id=uuid4(),
            grn_number=f"GRN-2024-{self._grn_numbers:04d}",
            purchase_order_id=self.purchase_order_id,
            status=status,
            items=tuple(
                GoodsReceiptItem(
                    id=uuid4(),
                    po_line_id=line.id,
                    received_quantity=Decimal(qty),
                    description=line.description,
                )
                for line, qty in received
            ),
            site="Tarkwa",
            received_at=self.clock.now(),
            received_by="storekeeper-1",
            notes=notes,
        )
        self.store.add_goods_receipt(grn)
        return grn

    def invoice(
        self,
        *lines,
        tax="0",
        due_date=None,
        link_order=False,
        **overrides,
    ) -> VendorInvoice:
        """``lines``: (PurchaseOrderLine or None, quantity, unit_price[, description])."""
        self._invoice_numbers += 1
        items = []
        for line, qty, price, *description in lines:
            if not description:
                description = [line.description if line is not None else "Freight"]
            items.append(
                VendorInvoiceItem(
                    id=uuid4(),
                    description=description[0],
                    quantity=Decimal(qty),
                    unit_price=Decimal(price),
                    po_line_id=line.id if line is not None else None,
                )
            )
        subtotal = sum((item.total_price for item in items), Decimal("0"))
        fields = dict(
            id=uuid4(),
            invoice_number=f"INV-{self._invoice_numbers:05d}",
            vendor_id="vendor-ashanti-supplies",
            invoice_date=self.clock.today(),
            due_date=due_date or self.clock.today() + timedelta(days=30),
            subtotal=subtotal,
            tax_amount=Decimal(tax),
            total_amount=subtotal + Decimal(tax),
            items=items,
            purchase_order_id=self.purchase_order_id if link_order else None,
        )
        fields.update(overrides)
        invoice = VendorInvoice(**fields)
        self.store.add_invoice(invoice)
        return invoice

    def approved_invoice(self, total="1000", due_date=None) -> VendorInvoice:
        """A matched, approved invoice for ``total`` (one line, qty 1)."""
        line = self.po_line(quantity="1", unit_price=total)
        return self.invoice(
            (line, "1", total),
            due_date=due_date,
            match_status=MatchStatus.MATCHED,
            approved_for_payment=True,
            approved_by="approver-1",
            approved_at=self.clock.now(),
        )


@pytest.fixture
def ledger(memory_store, clock) -> LedgerBuilder:
    return LedgerBuilder(memory_store, clock)


@pytest.fixture
def sql_ledger(sql_store, clock) -> LedgerBuilder:
    return LedgerBuilder(sql_store, clock)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def receiving(memory_store, clock, locks, config) -> ReceivingService:
    return ReceivingService(memory_store, clock, locks, config.receiving)


@pytest.fixture
def invoices(memory_store, clock, locks, config) -> InvoiceService:
    return InvoiceService(memory_store, clock, locks, config.matching, config.payments)


@pytest.fixture
def core(memory_store, clock, config, tmp_path) -> ReconciliationCore:
    facade = ReconciliationCore(
        memory_store, clock=clock, config=config, output_dir=tmp_path / "out",
    )
    yield facade
    facade.close()


@pytest.fixture
def today(clock) -> date:
    return clock.today()
