"""
Accounts Payable ORM Models (``recon_modules.ap.orm``).

Responsibility
--------------
SQLAlchemy persistence for vendor invoices, their lines and payments.
Maps the frozen dataclasses in ``models.py`` to tables and back.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``recon_kernel.db.base``
and sibling ``models.py``.  Only ``recon_modules.storage.sql`` and
``create_tables`` import this module.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recon_kernel.db.base import TrackedBase, as_utc


# ---------------------------------------------------------------------------
# 1. VendorInvoiceModel
# ---------------------------------------------------------------------------


class VendorInvoiceModel(TrackedBase):
    """
    ORM model for vendor invoices.

    Guarantees:
        - (vendor_id, invoice_number) is unique.
        - match_status and payment_status stored as enum value strings.
        - Remaining balance is not a column; it is derived from paid_amount.
    """

    __tablename__ = "recon_vendor_invoices"

    __table_args__ = (
        UniqueConstraint("vendor_id", "invoice_number", name="uq_recon_invoices_vendor_number"),
        Index("idx_recon_invoices_po_id", "purchase_order_id"),
        Index("idx_recon_invoices_payment_status", "payment_status"),
        Index("idx_recon_invoices_due_date", "due_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    purchase_order_id: Mapped[UUID | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    match_status: Mapped[str] = mapped_column(String(20), nullable=False)
    price_variance: Mapped[Decimal | None] = mapped_column(nullable=True)
    quantity_variance: Mapped[Decimal | None] = mapped_column(nullable=True)
    discrepancy_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_for_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_disputed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dispute_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["VendorInvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="VendorInvoiceItemModel.position",
    )

    def to_dto(self):
        from recon_modules.ap.models import MatchStatus, PaymentStatus, VendorInvoice

        return VendorInvoice(
            id=self.id,
            invoice_number=self.invoice_number,
            vendor_id=self.vendor_id,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            items=tuple(item.to_dto() for item in self.items),
            purchase_order_id=self.purchase_order_id,
            currency=self.currency,
            match_status=MatchStatus(self.match_status),
            price_variance=self.price_variance,
            quantity_variance=self.quantity_variance,
            discrepancy_notes=self.discrepancy_notes,
            matched_at=as_utc(self.matched_at),
            approved_for_payment=self.approved_for_payment,
            approved_at=as_utc(self.approved_at),
            approved_by=self.approved_by,
            payment_status=PaymentStatus(self.payment_status),
            paid_amount=self.paid_amount,
            paid_at=as_utc(self.paid_at),
            is_disputed=self.is_disputed,
            dispute_notes=self.dispute_notes,
            disputed_at=as_utc(self.disputed_at),
            is_voided=self.is_voided,
            voided_at=as_utc(self.voided_at),
            void_reason=self.void_reason,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str) -> "VendorInvoiceModel":
        model = cls(
            id=dto.id,
            invoice_number=dto.invoice_number,
            vendor_id=dto.vendor_id,
            purchase_order_id=dto.purchase_order_id,
            currency=dto.currency,
            invoice_date=dto.invoice_date,
            due_date=dto.due_date,
            subtotal=dto.subtotal,
            tax_amount=dto.tax_amount,
            total_amount=dto.total_amount,
            created_by=created_by,
        )
        model.items = [
            VendorInvoiceItemModel.from_dto(item, position, created_by)
            for position, item in enumerate(dto.items)
        ]
        model.apply(dto, None)
        return model

    def apply(self, dto, updated_by: str | None) -> None:
        """Copy workflow state from ``dto``.  Lines are immutable."""
        self.match_status = dto.match_status.value
        self.price_variance = dto.price_variance
        self.quantity_variance = dto.quantity_variance
        self.discrepancy_notes = dto.discrepancy_notes
        self.matched_at = dto.matched_at
        self.approved_for_payment = dto.approved_for_payment
        self.approved_at = dto.approved_at
        self.approved_by = dto.approved_by
        self.payment_status = dto.payment_status.value
        self.paid_amount = dto.paid_amount
        self.paid_at = dto.paid_at
        self.is_disputed = dto.is_disputed
        self.dispute_notes = dto.dispute_notes
        self.disputed_at = dto.disputed_at
        self.is_voided = dto.is_voided
        self.voided_at = dto.voided_at
        self.void_reason = dto.void_reason
        if updated_by is not None:
            self.updated_by = updated_by


# ---------------------------------------------------------------------------
# 2. VendorInvoiceItemModel
# ---------------------------------------------------------------------------


class VendorInvoiceItemModel(TrackedBase):
    """A line of a vendor invoice."""

    __tablename__ = "recon_vendor_invoice_items"

    __table_args__ = (
        Index("idx_recon_invoice_items_invoice_id", "invoice_id"),
        Index("idx_recon_invoice_items_po_line_id", "po_line_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("recon_vendor_invoices.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    po_line_id: Mapped[UUID | None] = mapped_column(nullable=True)

    invoice: Mapped["VendorInvoiceModel"] = relationship(back_populates="items")

    def to_dto(self):
        from recon_modules.ap.models import VendorInvoiceItem

        return VendorInvoiceItem(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            po_line_id=self.po_line_id,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by: str) -> "VendorInvoiceItemModel":
        return cls(
            id=dto.id,
            position=position,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
            po_line_id=dto.po_line_id,
            created_by=created_by,
        )


# ---------------------------------------------------------------------------
# 3. PaymentModel
# ---------------------------------------------------------------------------


class PaymentModel(TrackedBase):
    """A payment against a vendor invoice. Insert-only."""

    __tablename__ = "recon_payments"

    __table_args__ = (
        Index("idx_recon_payments_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("recon_vendor_invoices.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(100), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from recon_modules.ap.models import Payment, PaymentMethod

        return Payment(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            payment_date=self.payment_date,
            method=PaymentMethod(self.method),
            recorded_by=self.recorded_by,
            recorded_at=as_utc(self.recorded_at),
            reference=self.reference,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto) -> "PaymentModel":
        return cls(
            id=dto.id,
            invoice_id=dto.invoice_id,
            amount=dto.amount,
            payment_date=dto.payment_date,
            method=dto.method.value,
            reference=dto.reference,
            notes=dto.notes,
            recorded_by=dto.recorded_by,
            recorded_at=dto.recorded_at,
            created_by=dto.recorded_by,
        )
