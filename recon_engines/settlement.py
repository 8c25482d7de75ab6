"""
recon_engines.settlement -- Payment status and balance arithmetic.

Responsibility:
    Derive an invoice's payment status from its total, the amount paid so
    far, its due date and the current date; validate a proposed payment.

Architecture position:
    Engines -- pure, zero I/O.  The current date is a parameter; services
    obtain it from the injected ``Clock``.

Invariants enforced:
    - Remaining balance is ``max(0, total - paid)``, always derived.
    - A payment must be > 0 and may not take paid above total.
    - Status: PAID when paid == total; OVERDUE when paid < total and the
      as-of date is past the due date; PARTIAL when 0 < paid < total;
      PENDING otherwise.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from recon_kernel.domain.values import ZERO
from recon_kernel.exceptions import OverpaymentError, ValidationError


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


def remaining_balance(total: Decimal, paid: Decimal) -> Decimal:
    return max(ZERO, total - paid)


def compute_payment_status(
    total: Decimal,
    paid: Decimal,
    due_date: date | None,
    as_of: date,
) -> PaymentStatus:
    if paid >= total:
        return PaymentStatus.PAID
    if due_date is not None and as_of > due_date:
        return PaymentStatus.OVERDUE
    if paid > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def validate_payment(
    invoice_id: Any,
    total: Decimal,
    paid: Decimal,
    amount: Decimal,
) -> None:
    """Raise if ``amount`` cannot be applied to the invoice."""
    if amount <= ZERO:
        raise ValidationError(
            f"Payment amount must be greater than zero, got {amount}",
            field="amount",
            value=amount,
            rule="positive_amount",
        )
    if paid + amount > total:
        raise OverpaymentError(invoice_id, total, paid, amount)
