"""
Procurement ORM Models (``recon_modules.procurement.orm``).

Responsibility
--------------
SQLAlchemy persistence for purchase order lines, goods receipt notes,
their lines and inspections.  Maps the frozen dataclasses in
``models.py`` to tables and back.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``recon_kernel.db.base``
and sibling ``models.py``.  Only ``recon_modules.storage.sql`` and
``create_tables`` import this module.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recon_kernel.db.base import TrackedBase, as_utc


# ---------------------------------------------------------------------------
# 1. PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderLineModel(TrackedBase):
    """Read-only reference copy of an approved PO line."""

    __tablename__ = "recon_po_lines"

    __table_args__ = (
        Index("idx_recon_po_lines_po_id", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GHS")

    def to_dto(self):
        from recon_modules.procurement.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            item_ref=self.item_ref,
            description=self.description,
            currency=self.currency,
            line_number=self.line_number,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str) -> "PurchaseOrderLineModel":
        return cls(
            id=dto.id,
            purchase_order_id=dto.purchase_order_id,
            line_number=dto.line_number,
            item_ref=dto.item_ref,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            currency=dto.currency,
            created_by=created_by,
        )


# ---------------------------------------------------------------------------
# 2. GoodsReceiptNoteModel
# ---------------------------------------------------------------------------


class GoodsReceiptNoteModel(TrackedBase):
    """
    ORM model for goods receipt notes.

    Guarantees:
        - grn_number is unique (uq_recon_grns_number).
        - status stored as the ``GRNStatus`` value string.
        - items and inspections load in insertion order (``position``).
    """

    __tablename__ = "recon_grns"

    __table_args__ = (
        UniqueConstraint("grn_number", name="uq_recon_grns_number"),
        Index("idx_recon_grns_po_id", "purchase_order_id"),
        Index("idx_recon_grns_status", "status"),
    )

    grn_number: Mapped[str] = mapped_column(String(50), nullable=False)
    purchase_order_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    site: Mapped[str | None] = mapped_column(String(100), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    items: Mapped[list["GoodsReceiptItemModel"]] = relationship(
        back_populates="grn",
        cascade="all, delete-orphan",
        order_by="GoodsReceiptItemModel.position",
    )
    inspections: Mapped[list["InspectionModel"]] = relationship(
        back_populates="grn",
        cascade="all, delete-orphan",
        order_by="InspectionModel.position",
    )

    def to_dto(self):
        from recon_modules.procurement.models import GoodsReceiptNote, GRNStatus

        return GoodsReceiptNote(
            id=self.id,
            grn_number=self.grn_number,
            purchase_order_id=self.purchase_order_id,
            status=GRNStatus(self.status),
            items=tuple(item.to_dto() for item in self.items),
            inspections=tuple(i.to_dto() for i in self.inspections),
            site=self.site,
            received_at=as_utc(self.received_at),
            received_by=self.received_by,
            notes=self.notes,
            finalized_at=as_utc(self.finalized_at),
            finalized_by=self.finalized_by,
        )

    @classmethod
    def from_dto(cls, dto, created_by: str) -> "GoodsReceiptNoteModel":
        model = cls(
            id=dto.id,
            grn_number=dto.grn_number,
            purchase_order_id=dto.purchase_order_id,
            status=dto.status.value,
            site=dto.site,
            received_at=dto.received_at,
            received_by=dto.received_by,
            notes=dto.notes,
            finalized_at=dto.finalized_at,
            finalized_by=dto.finalized_by,
            created_by=created_by,
        )
        model.items = [
            GoodsReceiptItemModel.from_dto(item, position, created_by)
            for position, item in enumerate(dto.items)
        ]
        model.inspections = [
            InspectionModel.from_dto(insp, position, created_by)
            for position, insp in enumerate(dto.inspections)
        ]
        return model

    def apply(self, dto, updated_by: str) -> None:
        """Copy mutable state from ``dto``; inspections are append-only."""
        self.status = dto.status.value
        self.notes = dto.notes
        self.finalized_at = dto.finalized_at
        self.finalized_by = dto.finalized_by
        self.updated_by = updated_by

        by_id = {item.id: item for item in dto.items}
        for item_model in self.items:
            item = by_id.get(item_model.id)
            if item is not None:
                item_model.accepted_quantity = item.accepted_quantity
                item_model.rejected_quantity = item.rejected_quantity
                item_model.condition = item.condition.value
                item_model.notes = item.notes
                item_model.updated_by = updated_by

        known = {i.id for i in self.inspections}
        for position, inspection in enumerate(dto.inspections):
            if inspection.id not in known:
                self.inspections.append(
                    InspectionModel.from_dto(inspection, position, updated_by)
                )


# ---------------------------------------------------------------------------
# 3. GoodsReceiptItemModel
# ---------------------------------------------------------------------------


class GoodsReceiptItemModel(TrackedBase):
    """A received line of a GRN."""

    __tablename__ = "recon_grn_items"

    __table_args__ = (
        Index("idx_recon_grn_items_grn_id", "grn_id"),
        Index("idx_recon_grn_items_po_line_id", "po_line_id"),
    )

    grn_id: Mapped[UUID] = mapped_column(ForeignKey("recon_grns.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    po_line_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    received_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    accepted_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    rejected_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="GOOD")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    grn: Mapped["GoodsReceiptNoteModel"] = relationship(back_populates="items")

    def to_dto(self):
        from recon_modules.procurement.models import GoodsReceiptItem, ItemCondition

        return GoodsReceiptItem(
            id=self.id,
            po_line_id=self.po_line_id,
            received_quantity=self.received_quantity,
            accepted_quantity=self.accepted_quantity,
            rejected_quantity=self.rejected_quantity,
            condition=ItemCondition(self.condition),
            description=self.description,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by: str) -> "GoodsReceiptItemModel":
        return cls(
            id=dto.id,
            position=position,
            po_line_id=dto.po_line_id,
            description=dto.description,
            received_quantity=dto.received_quantity,
            accepted_quantity=dto.accepted_quantity,
            rejected_quantity=dto.rejected_quantity,
            condition=dto.condition.value,
            notes=dto.notes,
            created_by=created_by,
        )


# ---------------------------------------------------------------------------
# 4. InspectionModel
# ---------------------------------------------------------------------------


class InspectionModel(TrackedBase):
    """An inspection of a GRN. Rows are inserted, never updated."""

    __tablename__ = "recon_grn_inspections"

    __table_args__ = (
        Index("idx_recon_grn_inspections_grn_id", "grn_id"),
    )

    grn_id: Mapped[UUID] = mapped_column(ForeignKey("recon_grns.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    inspector_id: Mapped[str] = mapped_column(String(100), nullable=False)
    overall_result: Mapped[str] = mapped_column(String(20), nullable=False)
    inspected_at: Mapped[datetime] = mapped_column(nullable=False)
    quality_score: Mapped[Decimal | None] = mapped_column(nullable=True)
    findings: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    visual_check: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    quantity_check: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    specification_check: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    document_check: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    safety_check: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    grn: Mapped["GoodsReceiptNoteModel"] = relationship(back_populates="inspections")

    def to_dto(self):
        from recon_modules.procurement.models import Inspection, InspectionResult

        return Inspection(
            id=self.id,
            grn_id=self.grn_id,
            inspector_id=self.inspector_id,
            overall_result=InspectionResult(self.overall_result),
            inspected_at=as_utc(self.inspected_at),
            quality_score=self.quality_score,
            findings=self.findings,
            recommendations=self.recommendations,
            visual_check=self.visual_check,
            quantity_check=self.quantity_check,
            specification_check=self.specification_check,
            document_check=self.document_check,
            safety_check=self.safety_check,
            photos=tuple(self.photos or ()),
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by: str) -> "InspectionModel":
        return cls(
            id=dto.id,
            grn_id=dto.grn_id,
            position=position,
            inspector_id=dto.inspector_id,
            overall_result=dto.overall_result.value,
            inspected_at=dto.inspected_at,
            quality_score=dto.quality_score,
            findings=dto.findings,
            recommendations=dto.recommendations,
            visual_check=dto.visual_check,
            quantity_check=dto.quantity_check,
            specification_check=dto.specification_check,
            document_check=dto.document_check,
            safety_check=dto.safety_check,
            photos=list(dto.photos),
            created_by=created_by,
        )
