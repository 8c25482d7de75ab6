"""
Property-based fuzzing with Hypothesis.

Boundaries fuzzed here:
- Acceptance: accepted + rejected == received for every finalized line;
  the disposition follows from the split alone
- Matching: the decision rule, idempotency, aggregate is the line maximum
- Settlement: paid never exceeds total, status never moves backwards
- Wire format: decimal strings parse back to the same value

Services are built inside each example; Hypothesis reruns a test body many
times and function-scoped fixtures would leak state between runs.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from uuid import uuid4

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from recon_engines.acceptance import (
    AcceptanceDisposition,
    LineQuantities,
    derive_disposition,
    reconcile,
)
from recon_engines.matching import (
    InvoiceLineInput,
    InvoiceMatchingEngine,
    MatchStatus,
    PurchaseOrderLineInput,
)
from recon_engines.settlement import compute_payment_status, remaining_balance
from recon_engines.variance import percent_variance
from recon_kernel.domain.clock import DeterministicClock
from recon_kernel.domain.values import decimal_to_str, to_decimal
from recon_kernel.exceptions import OverpaymentError, QuantityMismatchError, ValidationError
from recon_kernel.locks import KeyedLockTable
from recon_modules.ap.models import MatchStatus as InvoiceMatchStatus
from recon_modules.ap.models import PaymentStatus, VendorInvoice, VendorInvoiceItem
from recon_modules.ap.service import InvoiceService
from recon_modules.storage.memory import InMemoryLedgerStore

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

quantities = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=3,
    allow_nan=False, allow_infinity=False,
)
prices = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("10000"), places=2,
    allow_nan=False, allow_infinity=False,
)
amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2,
    allow_nan=False, allow_infinity=False,
)
tolerances = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("50"), places=2,
    allow_nan=False, allow_infinity=False,
)


@composite
def split_line(draw, line_id="L"):
    """A received quantity split exactly into accepted and rejected."""
    received = draw(quantities)
    accepted = draw(st.decimals(
        min_value=Decimal("0"), max_value=received, places=3,
        allow_nan=False, allow_infinity=False,
    ))
    return LineQuantities(line_id, received, accepted, received - accepted)


@composite
def linked_invoice(draw):
    """PO lines and invoice lines each referencing one of them."""
    count = draw(st.integers(min_value=1, max_value=6))
    po_lines = [
        PurchaseOrderLineInput(f"po-{i}", draw(quantities.filter(lambda q: q > 0)), draw(prices))
        for i in range(count)
    ]
    invoice_lines = [
        InvoiceLineInput(
            f"inv-{i}",
            po.quantity,
            draw(prices),
            po_line_id=po.line_id,
        )
        for i, po in enumerate(po_lines)
    ]
    return invoice_lines, po_lines


class TestAcceptanceProperties:
    @given(st.lists(split_line(), min_size=1, max_size=8))
    def test_valid_splits_always_reconcile(self, lines):
        disposition = reconcile(lines)
        if all(line.rejected == 0 for line in lines):
            assert disposition == AcceptanceDisposition.ACCEPTED
        elif all(line.accepted == 0 for line in lines):
            assert disposition == AcceptanceDisposition.REJECTED
        else:
            assert disposition == AcceptanceDisposition.PARTIALLY_ACCEPTED

    @given(split_line(), st.decimals(
        min_value=Decimal("0.001"), max_value=Decimal("1000"), places=3,
        allow_nan=False, allow_infinity=False,
    ))
    def test_any_excess_is_a_mismatch(self, line, excess):
        broken = LineQuantities(line.line_id, line.received, line.accepted, line.rejected + excess)
        with pytest.raises(QuantityMismatchError):
            reconcile([broken])

    @given(st.lists(split_line(), min_size=1, max_size=8))
    def test_disposition_ignores_line_order(self, lines):
        assert derive_disposition(lines) == derive_disposition(list(reversed(lines)))


class TestMatchingProperties:
    @given(linked_invoice(), tolerances)
    @settings(max_examples=75, deadline=None)
    def test_decision_rule(self, invoice, tolerance):
        invoice_lines, po_lines = invoice
        outcome = InvoiceMatchingEngine().match(invoice_lines, po_lines, tolerance)

        worst = max(
            percent_variance(po.unit_price, line.unit_price)
            for line, po in zip(invoice_lines, po_lines)
        )
        if worst <= tolerance:
            assert outcome.status == MatchStatus.MATCHED
        else:
            assert outcome.status == MatchStatus.DISCREPANCY

    @given(linked_invoice(), tolerances)
    @settings(max_examples=50, deadline=None)
    def test_aggregate_is_line_maximum(self, invoice, tolerance):
        invoice_lines, po_lines = invoice
        outcome = InvoiceMatchingEngine(variance_places=9).match(invoice_lines, po_lines, tolerance)
        line_max = max(r.price.variance_percent for r in outcome.lines)
        assert abs(outcome.price_variance - line_max) < Decimal("1e-8")

    @given(linked_invoice(), tolerances)
    @settings(max_examples=50, deadline=None)
    def test_idempotent(self, invoice, tolerance):
        invoice_lines, po_lines = invoice
        engine = InvoiceMatchingEngine()
        first = engine.match(invoice_lines, po_lines, tolerance)
        second = engine.match(invoice_lines, po_lines, tolerance)
        assert first.status == second.status
        assert first.price_variance == second.price_variance
        assert first.notes == second.notes

    @given(prices, tolerances)
    def test_unlinked_lines_never_match(self, price, tolerance):
        outcome = InvoiceMatchingEngine().match(
            [InvoiceLineInput("inv-1", Decimal("1"), price)], [], tolerance,
        )
        assert outcome.status == MatchStatus.DISCREPANCY


class TestSettlementProperties:
    @given(amounts, st.lists(amounts, min_size=1, max_size=12))
    @settings(max_examples=60, deadline=None)
    def test_paid_never_exceeds_total(self, total, payments):
        store = InMemoryLedgerStore()
        clock = DeterministicClock(NOW)
        service = InvoiceService(store, clock, KeyedLockTable())
        invoice = VendorInvoice(
            id=uuid4(),
            invoice_number="INV-F",
            vendor_id="vendor-f",
            invoice_date=clock.today(),
            due_date=clock.today(),
            subtotal=total,
            tax_amount=Decimal("0"),
            total_amount=total,
            items=[VendorInvoiceItem(id=uuid4(), description="Goods", quantity=Decimal("1"), unit_price=total)],
            match_status=InvoiceMatchStatus.MATCHED,
            approved_for_payment=True,
        )
        store.add_invoice(invoice)

        rank = {PaymentStatus.PENDING: 0, PaymentStatus.PARTIAL: 1, PaymentStatus.PAID: 2}
        previous = invoice
        for amount in payments:
            try:
                current = service.pay(invoice.id, amount, None, "CASH", "fuzz")
            except OverpaymentError:
                current = service.get(invoice.id)
                assert current.paid_amount == previous.paid_amount
            assert current.paid_amount <= current.total_amount
            assert rank[current.payment_status] >= rank[previous.payment_status]
            previous = current

        recorded = sum((p.amount for p in service.payments_for(invoice.id)), Decimal("0"))
        assert recorded == previous.paid_amount

    @given(amounts, amounts)
    def test_remaining_balance_never_negative(self, total, paid):
        assert remaining_balance(total, paid) >= 0

    @given(amounts, amounts)
    def test_paid_in_full_is_paid_whatever_the_date(self, total, extra):
        status = compute_payment_status(total, total + extra, NOW.date(), NOW.date().replace(year=2030))
        assert status.value == "PAID"


class TestWireFormat:
    @given(st.decimals(allow_nan=False, allow_infinity=False, places=6,
                       min_value=Decimal("-1e9"), max_value=Decimal("1e9")))
    def test_decimal_string_round_trip(self, value):
        text = decimal_to_str(value)
        assert "e" not in text.lower()
        assert to_decimal(text) == value

    @given(st.text(max_size=12))
    def test_garbage_is_validation_error(self, text):
        try:
            value = Decimal(text.strip())
        except (InvalidOperation, ValueError):
            value = None
        assume(value is None or not value.is_finite())
        with pytest.raises(ValidationError):
            to_decimal(text)
