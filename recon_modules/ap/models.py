"""
Accounts Payable Domain Models (``recon_modules.ap.models``).

Responsibility
--------------
Frozen value objects for vendor invoices, their lines and the payments
applied to them.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  These objects flow into and
out of ``InvoiceService`` as immutable snapshots; every change produces a
new instance via ``dataclasses.replace``.

Invariants enforced
-------------------
* All monetary fields are ``Decimal``.
* ``VendorInvoice.__post_init__`` enforces ``total == subtotal + tax`` and
  ``0 <= paid_amount <= total_amount``.
* ``VendorInvoiceItem.total_price`` defaults to ``quantity * unit_price``.
* ``remaining_balance`` is derived from ``paid_amount`` on every read and
  is never stored.

Failure modes
-------------
* ``ValidationError`` raised in ``__post_init__`` when a constraint fails.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from recon_engines.matching import MatchStatus
from recon_engines.settlement import PaymentStatus, remaining_balance
from recon_kernel.domain.values import ZERO, to_decimal
from recon_kernel.exceptions import ValidationError
from recon_kernel.logging_config import get_logger

logger = get_logger("modules.ap.models")

__all__ = [
    "MatchStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Payment",
    "VendorInvoice",
    "VendorInvoiceItem",
]


class PaymentMethod(str, Enum):
    """How a vendor was paid."""
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CASH = "CASH"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"
    OTHER = "OTHER"


def _amount(obj: Any, name: str) -> Decimal:
    value = getattr(obj, name)
    if not isinstance(value, Decimal):
        value = to_decimal(value, name)
        object.__setattr__(obj, name, value)
    return value


@dataclass(frozen=True)
class VendorInvoiceItem:
    """A line on a vendor invoice, optionally linked to a PO line."""
    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    po_line_id: UUID | None = None

    def __post_init__(self):
        quantity = _amount(self, "quantity")
        unit_price = _amount(self, "unit_price")
        if quantity < ZERO or unit_price < ZERO:
            raise ValidationError(
                f"Invoice line {self.id}: quantity and unit_price must be >= 0",
                field="quantity" if quantity < ZERO else "unit_price",
                value=quantity if quantity < ZERO else unit_price,
                line_id=self.id,
                rule="non_negative_line",
            )
        if self.total_price is None:
            object.__setattr__(self, "total_price", quantity * unit_price)
        else:
            _amount(self, "total_price")


@dataclass(frozen=True)
class VendorInvoice:
    """A vendor invoice moving through match, approval and payment.

    Contract: frozen, validated at construction via ``__post_init__``.
    Guarantees: ``total_amount == subtotal + tax_amount``;
    ``0 <= paid_amount <= total_amount``.
    Non-goals: does not check that line totals add up to the subtotal
    (vendor invoices arrive with rounding and freight lines).
    """
    id: UUID
    invoice_number: str
    vendor_id: str
    invoice_date: date
    due_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    items: tuple[VendorInvoiceItem, ...] = field(default_factory=tuple)
    purchase_order_id: UUID | None = None
    currency: str = "GHS"
    # match annotation
    match_status: MatchStatus = MatchStatus.PENDING
    price_variance: Decimal | None = None
    quantity_variance: Decimal | None = None
    discrepancy_notes: str | None = None
    matched_at: datetime | None = None
    # approval
    approved_for_payment: bool = False
    approved_at: datetime | None = None
    approved_by: str | None = None
    # settlement
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_amount: Decimal = ZERO
    paid_at: datetime | None = None
    # dispute annotation
    is_disputed: bool = False
    dispute_notes: str | None = None
    disputed_at: datetime | None = None
    # void
    is_voided: bool = False
    voided_at: datetime | None = None
    void_reason: str | None = None
    created_by: str = "system"

    def __post_init__(self):
        subtotal = _amount(self, "subtotal")
        tax = _amount(self, "tax_amount")
        total = _amount(self, "total_amount")
        paid = _amount(self, "paid_amount")
        for name in ("price_variance", "quantity_variance"):
            if getattr(self, name) is not None:
                _amount(self, name)
        if not isinstance(self.match_status, MatchStatus):
            object.__setattr__(self, "match_status", MatchStatus(self.match_status))
        if not isinstance(self.payment_status, PaymentStatus):
            object.__setattr__(self, "payment_status", PaymentStatus(self.payment_status))
        object.__setattr__(self, "items", tuple(self.items))

        # INVARIANT: total_amount == subtotal + tax_amount
        if total != subtotal + tax:
            logger.warning(
                "invoice_total_mismatch",
                extra={
                    "invoice_id": str(self.id),
                    "subtotal": str(subtotal),
                    "tax_amount": str(tax),
                    "total_amount": str(total),
                },
            )
            raise ValidationError(
                f"Invoice {self.invoice_number}: total_amount ({total}) must equal "
                f"subtotal ({subtotal}) + tax_amount ({tax})",
                field="total_amount",
                value=total,
                rule="total_equals_subtotal_plus_tax",
            )
        if total < ZERO:
            raise ValidationError(
                f"Invoice {self.invoice_number}: total_amount must be >= 0",
                field="total_amount", value=total, rule="non_negative_total",
            )
        if paid < ZERO or paid > total:
            raise ValidationError(
                f"Invoice {self.invoice_number}: paid_amount ({paid}) must be "
                f"between 0 and total_amount ({total})",
                field="paid_amount", value=paid, rule="paid_amount_not_above_total",
            )

    @property
    def remaining_balance(self) -> Decimal:
        return remaining_balance(self.total_amount, self.paid_amount)

    @property
    def is_fully_paid(self) -> bool:
        return self.paid_amount >= self.total_amount

    def item(self, item_id: UUID) -> VendorInvoiceItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass(frozen=True)
class Payment:
    """A payment applied to a vendor invoice. Append-only."""
    id: UUID
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    recorded_by: str
    recorded_at: datetime
    reference: str | None = None
    notes: str | None = None

    def __post_init__(self):
        _amount(self, "amount")
        if not isinstance(self.method, PaymentMethod):
            object.__setattr__(self, "method", PaymentMethod(self.method))
