"""
Procurement Domain Models.

The nouns of receiving: purchase order lines (read-only reference data),
goods receipt notes with their lines, and inspections.  All quantities and
prices are ``Decimal``; inputs are coerced through ``to_decimal`` so a
float never leaks its binary representation into the ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from recon_kernel.domain.values import QUANTITY_TOLERANCE, ZERO, quantities_equal, to_decimal
from recon_kernel.exceptions import ValidationError


class GRNStatus(str, Enum):
    """Goods receipt lifecycle states."""
    PENDING_INSPECTION = "PENDING_INSPECTION"
    INSPECTING = "INSPECTING"
    ACCEPTED = "ACCEPTED"
    PARTIALLY_ACCEPTED = "PARTIALLY_ACCEPTED"
    REJECTED = "REJECTED"


TERMINAL_GRN_STATUSES = frozenset({
    GRNStatus.ACCEPTED,
    GRNStatus.PARTIALLY_ACCEPTED,
    GRNStatus.REJECTED,
})


class ItemCondition(str, Enum):
    """Physical condition of received goods."""
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"
    WRONG_ITEM = "WRONG_ITEM"
    SHORT = "SHORT"


class InspectionResult(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    CONDITIONAL = "CONDITIONAL"


def _coerce(obj: Any, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if not isinstance(value, Decimal):
            object.__setattr__(obj, name, to_decimal(value, name))


@dataclass(frozen=True)
class PurchaseOrderLine:
    """An ordered line on an approved purchase order. Read-only to the core."""
    id: UUID
    purchase_order_id: UUID
    quantity: Decimal
    unit_price: Decimal
    item_ref: str | None = None
    description: str = ""
    currency: str = "GHS"
    line_number: int = 1

    def __post_init__(self):
        _coerce(self, "quantity", "unit_price")
        if self.quantity < ZERO:
            raise ValidationError(
                f"PO line {self.id}: quantity must be >= 0",
                field="quantity", value=self.quantity, line_id=self.id,
                rule="non_negative_quantity",
            )
        if self.unit_price < ZERO:
            raise ValidationError(
                f"PO line {self.id}: unit_price must be >= 0",
                field="unit_price", value=self.unit_price, line_id=self.id,
                rule="non_negative_price",
            )


@dataclass(frozen=True)
class GoodsReceiptItem:
    """A received line on a GRN, referencing the PO line it fulfils."""
    id: UUID
    po_line_id: UUID | None
    received_quantity: Decimal
    accepted_quantity: Decimal = ZERO
    rejected_quantity: Decimal = ZERO
    condition: ItemCondition = ItemCondition.GOOD
    description: str = ""
    notes: str | None = None

    def __post_init__(self):
        _coerce(self, "received_quantity", "accepted_quantity", "rejected_quantity")
        if not isinstance(self.condition, ItemCondition):
            object.__setattr__(self, "condition", ItemCondition(self.condition))
        if self.received_quantity < ZERO:
            raise ValidationError(
                f"GRN item {self.id}: received_quantity must be >= 0",
                field="received_quantity", value=self.received_quantity,
                line_id=self.id, rule="non_negative_quantity",
            )

    @property
    def is_reconciled(self) -> bool:
        return quantities_equal(
            self.accepted_quantity + self.rejected_quantity,
            self.received_quantity,
            QUANTITY_TOLERANCE,
        )


@dataclass(frozen=True)
class Inspection:
    """A recorded inspection. Append-only history on the GRN."""
    id: UUID
    grn_id: UUID
    inspector_id: str
    overall_result: InspectionResult
    inspected_at: datetime
    quality_score: Decimal | None = None
    findings: str | None = None
    recommendations: str | None = None
    visual_check: bool | None = None
    quantity_check: bool | None = None
    specification_check: bool | None = None
    document_check: bool | None = None
    safety_check: bool | None = None
    photos: tuple[str, ...] = ()


@dataclass(frozen=True)
class GoodsReceiptNote:
    """
    A goods receipt against a purchase order.

    The PO link is a lookup reference only; the PO lifecycle is independent.
    """
    id: UUID
    grn_number: str
    purchase_order_id: UUID
    status: GRNStatus = GRNStatus.PENDING_INSPECTION
    items: tuple[GoodsReceiptItem, ...] = ()
    inspections: tuple[Inspection, ...] = ()
    site: str | None = None
    received_at: datetime | None = None
    received_by: str | None = None
    notes: str | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None

    def __post_init__(self):
        if not isinstance(self.status, GRNStatus):
            object.__setattr__(self, "status", GRNStatus(self.status))
        ids = [item.id for item in self.items]
        if len(set(ids)) != len(ids):
            raise ValidationError(
                f"GRN {self.id}: duplicate item ids",
                field="items", rule="unique_item_ids",
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_GRN_STATUSES

    def item(self, item_id: UUID) -> GoodsReceiptItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def total_received(self) -> Decimal:
        return sum((i.received_quantity for i in self.items), ZERO)

    @property
    def total_accepted(self) -> Decimal:
        return sum((i.accepted_quantity for i in self.items), ZERO)


@dataclass(frozen=True)
class InspectionInput:
    """Caller payload for ``record_inspection``."""
    overall_result: InspectionResult
    quality_score: Decimal | None = None
    findings: str | None = None
    recommendations: str | None = None
    inspector_id: str | None = None
    visual_check: bool | None = None
    quantity_check: bool | None = None
    specification_check: bool | None = None
    document_check: bool | None = None
    safety_check: bool | None = None
    photos: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.overall_result, InspectionResult):
            try:
                object.__setattr__(
                    self, "overall_result", InspectionResult(self.overall_result)
                )
            except ValueError as exc:
                raise ValidationError(
                    f"overall_result must be one of "
                    f"{', '.join(r.value for r in InspectionResult)}, "
                    f"got {self.overall_result!r}",
                    field="overall_result", value=self.overall_result,
                    rule="known_inspection_result",
                ) from exc
        if self.quality_score is not None:
            score = to_decimal(self.quality_score, "quality_score")
            if score < ZERO or score > Decimal("100"):
                raise ValidationError(
                    f"quality_score must be between 0 and 100, got {score}",
                    field="quality_score", value=score, rule="score_range",
                )
            object.__setattr__(self, "quality_score", score)
        object.__setattr__(self, "photos", tuple(self.photos))


@dataclass(frozen=True)
class LineAcceptance:
    """Caller-supplied final quantities for one GRN line."""
    goods_receipt_item_id: UUID
    accepted_quantity: Decimal
    rejected_quantity: Decimal
    notes: str | None = None

    def __post_init__(self):
        if not isinstance(self.goods_receipt_item_id, UUID):
            try:
                object.__setattr__(
                    self, "goods_receipt_item_id", UUID(str(self.goods_receipt_item_id))
                )
            except ValueError as exc:
                raise ValidationError(
                    f"goods_receipt_item_id is not a valid id: {self.goods_receipt_item_id!r}",
                    field="goods_receipt_item_id",
                    value=self.goods_receipt_item_id,
                    rule="valid_id",
                ) from exc
        _coerce(self, "accepted_quantity", "rejected_quantity")
