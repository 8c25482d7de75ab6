"""
Tests for recon_modules.storage.sql.SqlLedgerStore.

Runs the receiving and invoice services over SQLite (in-memory) to check
DTO round-trips, rollback on failure and the open-invoice query.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from recon_kernel.exceptions import OverpaymentError, QuantityMismatchError, ValidationError
from recon_kernel.locks import KeyedLockTable
from recon_modules.ap.models import MatchStatus, PaymentMethod, PaymentStatus
from recon_modules.ap.service import InvoiceService
from recon_modules.procurement.models import GRNStatus, InspectionInput, ItemCondition
from recon_modules.procurement.service import ReceivingService
from recon_modules.storage.sql import SqlLedgerStore

ACTOR = "user-sql"


@pytest.fixture
def sql_receiving(sql_store, clock) -> ReceivingService:
    return ReceivingService(sql_store, clock, KeyedLockTable())


@pytest.fixture
def sql_invoices(sql_store, clock) -> InvoiceService:
    return InvoiceService(sql_store, clock, KeyedLockTable())


class TestGoodsReceiptPersistence:
    def test_round_trip(self, sql_receiving, sql_ledger):
        line = sql_ledger.po_line(quantity="100", unit_price="10")
        grn = sql_ledger.grn((line, "100"))

        loaded = sql_receiving.get(grn.id)
        assert loaded.grn_number == grn.grn_number
        assert loaded.status == GRNStatus.PENDING_INSPECTION
        assert loaded.items[0].received_quantity == Decimal("100")
        assert loaded.items[0].po_line_id == line.id
        assert loaded.received_at == grn.received_at
        assert loaded.items[0].condition == ItemCondition.GOOD

    def test_inspection_and_acceptance_persist(self, sql_receiving, sql_ledger, clock):
        line = sql_ledger.po_line(quantity="100", unit_price="10")
        grn = sql_ledger.grn((line, "100"))
        sql_receiving.record_inspection(
            grn.id, InspectionInput("PASS", quality_score="88.5", photos=["a.jpg"]), ACTOR,
        )
        sql_receiving.accept_lines(
            grn.id,
            [{"goods_receipt_item_id": grn.items[0].id, "accepted_quantity": "90", "rejected_quantity": "10",
              "notes": "10 cracked in transit"}],
            ACTOR,
        )

        loaded = sql_receiving.get(grn.id)
        assert loaded.status == GRNStatus.PARTIALLY_ACCEPTED
        assert loaded.items[0].accepted_quantity == Decimal("90")
        assert loaded.items[0].rejected_quantity == Decimal("10")
        assert loaded.items[0].notes == "10 cracked in transit"
        assert loaded.finalized_by == ACTOR
        assert loaded.finalized_at == clock.now()
        (inspection,) = loaded.inspections
        assert inspection.quality_score == Decimal("88.5")
        assert inspection.photos == ("a.jpg",)

    def test_failed_acceptance_rolls_back(self, sql_receiving, sql_ledger):
        first = sql_ledger.po_line()
        second = sql_ledger.po_line()
        grn = sql_ledger.grn((first, "10"), (second, "5"))
        with pytest.raises(QuantityMismatchError):
            sql_receiving.accept_lines(
                grn.id,
                [
                    {"goods_receipt_item_id": grn.items[0].id, "accepted_quantity": "10", "rejected_quantity": "0"},
                    {"goods_receipt_item_id": grn.items[1].id, "accepted_quantity": "5", "rejected_quantity": "1"},
                ],
                ACTOR,
            )
        loaded = sql_receiving.get(grn.id)
        assert loaded.status == GRNStatus.PENDING_INSPECTION
        assert all(item.accepted_quantity == Decimal("0") for item in loaded.items)

    def test_duplicate_grn_rejected(self, sql_store, sql_ledger):
        line = sql_ledger.po_line()
        grn = sql_ledger.grn((line, "1"))
        with pytest.raises(ValidationError) as exc_info:
            sql_store.add_goods_receipt(grn)
        assert exc_info.value.rule == "unique_id"


class TestInvoicePersistence:
    def test_match_approve_pay(self, sql_invoices, sql_ledger, clock):
        line = sql_ledger.po_line(quantity="100", unit_price="10.00")
        invoice = sql_ledger.invoice((line, "100", "10.20"))

        matched = sql_invoices.match(invoice.id, "2", ACTOR)
        assert matched.match_status == MatchStatus.MATCHED
        assert sql_invoices.get(invoice.id).price_variance == Decimal("2")

        sql_invoices.approve(invoice.id, ACTOR)
        sql_invoices.pay(invoice.id, "400", None, PaymentMethod.CHEQUE, ACTOR, reference="CHQ-1")
        clock.advance(seconds=1)
        paid = sql_invoices.pay(invoice.id, "620", None, "CASH", ACTOR)

        assert paid.payment_status == PaymentStatus.PAID
        loaded = sql_invoices.get(invoice.id)
        assert loaded.paid_amount == Decimal("1020")
        assert loaded.approved_for_payment is True
        payments = sql_invoices.payments_for(invoice.id)
        assert [p.amount for p in payments] == [Decimal("400"), Decimal("620")]
        assert payments[0].reference == "CHQ-1"

    def test_overpayment_rolls_back(self, sql_invoices, sql_ledger):
        invoice = sql_ledger.approved_invoice("500")
        with pytest.raises(OverpaymentError):
            sql_invoices.pay(invoice.id, "500.01", None, "CASH", ACTOR)
        assert sql_invoices.get(invoice.id).paid_amount == Decimal("0")
        assert sql_invoices.payments_for(invoice.id) == ()

    def test_items_round_trip(self, sql_invoices, sql_ledger):
        line = sql_ledger.po_line()
        invoice = sql_ledger.invoice((line, "3", "2.50"), (None, "1", "7.25"), tax="1.75")
        loaded = sql_invoices.get(invoice.id)
        assert loaded.total_amount == Decimal("16.5")
        assert loaded.tax_amount == Decimal("1.75")
        assert [i.total_price for i in loaded.items] == [Decimal("7.5"), Decimal("7.25")]
        assert loaded.items[0].po_line_id == line.id
        assert loaded.items[1].po_line_id is None

    def test_open_invoices_exclude_paid_and_voided(self, sql_invoices, sql_ledger, today):
        open_invoice = sql_ledger.approved_invoice("100", due_date=today + timedelta(days=3))
        paid = sql_ledger.approved_invoice("100")
        voided = sql_ledger.approved_invoice("100")
        sql_invoices.pay(paid.id, "100", None, "CASH", ACTOR)
        sql_invoices.void(voided.id, "Duplicate", ACTOR)

        assert sql_invoices.open_invoice_ids() == (open_invoice.id,)
        assert [d.invoice_id for d in sql_invoices.due_payments(7)] == [open_invoice.id]


class TestBackendNotice:
    def test_sqlite_flagged_as_test_only(self, captured_logs):
        store = SqlLedgerStore.from_url("sqlite:///:memory:")
        store.session_factory.kw["bind"].dispose()
        (record,) = [r for r in captured_logs() if r["message"] == "sqlite_store_for_tests_only"]
        assert record["level"] == "WARNING"
        assert "precision" in record["reason"]
