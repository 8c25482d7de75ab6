"""
recon_engines.matching -- Invoice to purchase order (and receipt) matching.

Responsibility:
    Compare each vendor invoice line against the purchase order line it is
    linked to, compute price and quantity variance percentages, and decide
    the match status of the invoice as a whole.  Optionally compare
    invoiced quantities against accepted receipt quantities (three-way).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``InvoiceService.match``
    loads the invoice and PO lines under the invoice lock, calls
    ``InvoiceMatchingEngine.match``, and writes the outcome back.

Invariants enforced:
    - Aggregate price and quantity variance are the MAXIMUM single-line
      variance, never an average; one bad line is never diluted.
    - A variance equal to the tolerance passes (inclusive boundary).
    - An invoice line with no PO link, or a link to a PO line that was not
      supplied, counts as unlinked and is always a discrepancy of that line.
    - Decision rule, in order:
        * no lines at all, no linked line, or any linked line outside
          tolerance -> DISCREPANCY
        * every line linked and within tolerance -> MATCHED
        * otherwise (linked lines all within tolerance, some lines
          unlinked) -> PARTIAL_MATCH
    - Deterministic: identical inputs give identical outcomes.

Failure modes:
    - ``ValidationError`` for a negative tolerance.

Audit relevance:
    Every call emits RECON_ENGINE_TRACE with a fingerprint of the invoice
    lines, PO lines and tolerance, and an ``invoice_match_evaluated``
    record with the resulting status and aggregates.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from recon_engines.tracer import traced_engine
from recon_engines.variance import VarianceResult, VarianceType
from recon_kernel.domain.values import ZERO, quantize, to_decimal
from recon_kernel.exceptions import ValidationError
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

DEFAULT_TOLERANCE_PERCENT = Decimal("2")


class MatchStatus(str, Enum):
    """Match state written onto a vendor invoice."""

    PENDING = "PENDING"  # no match attempted yet
    MATCHED = "MATCHED"
    PARTIAL_MATCH = "PARTIAL_MATCH"
    DISCREPANCY = "DISCREPANCY"


class LinkSource(str, Enum):
    """How an invoice line was tied to a PO line."""

    PO_LINE = "po_line"
    DESCRIPTION = "description"


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    line_id: Any
    quantity: Decimal
    unit_price: Decimal
    description: str | None = None


@dataclass(frozen=True)
class InvoiceLineInput:
    line_id: Any
    quantity: Decimal
    unit_price: Decimal
    po_line_id: Any = None
    description: str | None = None


@dataclass(frozen=True)
class LineMatchResult:
    """Comparison of one invoice line."""

    invoice_line_id: Any
    po_line_id: Any
    link_source: LinkSource | None
    price: VarianceResult | None
    quantity: VarianceResult | None
    receipt: VarianceResult | None
    within_tolerance: bool
    note: str | None

    @property
    def is_linked(self) -> bool:
        return self.link_source is not None


@dataclass(frozen=True)
class MatchOutcome:
    """
    Result of matching one invoice.

    ``price_variance`` / ``quantity_variance`` are the largest finite line
    percentages (None when no linked line has a finite percentage),
    rounded to ``variance_places``.  ``notes`` is None for a clean match.
    """

    status: MatchStatus
    price_variance: Decimal | None
    quantity_variance: Decimal | None
    lines: tuple[LineMatchResult, ...]
    notes: str | None
    tolerance_percent: Decimal

    @property
    def linked_count(self) -> int:
        return sum(1 for line in self.lines if line.is_linked)

    @property
    def discrepancy_count(self) -> int:
        return sum(1 for line in self.lines if not line.within_tolerance)


def _max_percent(results: Sequence[VarianceResult | None]) -> Decimal | None:
    finite = [
        r.variance_percent for r in results
        if r is not None and r.variance_percent is not None
    ]
    return max(finite) if finite else None


class InvoiceMatchingEngine:
    """
    Pure matching engine.

    Contract:
        No I/O, no clock, no storage.  Reference data is passed in.
    Guarantees:
        - ``match`` is idempotent over its inputs.
        - Line results keep the order of ``invoice_lines``.
    Non-goals:
        - Does not persist anything or decide approval.
    """

    def __init__(self, variance_places: int = 4, description_fallback: bool = False):
        self._places = variance_places
        self._description_fallback = description_fallback

    @traced_engine(
        "matching",
        "1.0",
        fingerprint_fields=(
            "invoice_lines",
            "po_lines",
            "tolerance_percent",
            "accepted_quantities",
        ),
    )
    def match(
        self,
        invoice_lines: Sequence[InvoiceLineInput],
        po_lines: Sequence[PurchaseOrderLineInput],
        tolerance_percent: Any = DEFAULT_TOLERANCE_PERCENT,
        accepted_quantities: Mapping[Any, Decimal] | None = None,
    ) -> MatchOutcome:
        """
        Match invoice lines against PO lines.

        Args:
            invoice_lines: Lines of the invoice being matched.
            po_lines: PO lines the invoice may reference.
            tolerance_percent: Allowed variance in percent (default 2).
            accepted_quantities: When given, enables the three-way check:
                PO line id -> quantity accepted across finalized receipts.
        """
        t0 = time.monotonic()
        tolerance = to_decimal(tolerance_percent, "tolerance_percent")
        if tolerance < ZERO:
            raise ValidationError(
                f"tolerance_percent must be >= 0, got {tolerance}",
                field="tolerance_percent",
                value=tolerance,
                rule="non_negative_tolerance",
            )

        po_by_id = {str(line.line_id): line for line in po_lines}
        po_by_description: dict[str, PurchaseOrderLineInput] = {}
        if self._description_fallback:
            for line in po_lines:
                key = (line.description or "").strip().lower()
                if key:
                    po_by_description.setdefault(key, line)

        results = tuple(
            self._match_line(line, po_by_id, po_by_description, tolerance, accepted_quantities)
            for line in invoice_lines
        )
        status = self._decide(results)

        price_variance = _max_percent([r.price for r in results])
        quantity_variance = _max_percent(
            [r.quantity for r in results] + [r.receipt for r in results]
        )
        if price_variance is not None:
            price_variance = quantize(price_variance, self._places)
        if quantity_variance is not None:
            quantity_variance = quantize(quantity_variance, self._places)

        notes: str | None = None
        if status != MatchStatus.MATCHED:
            line_notes = [r.note for r in results if r.note]
            if not results:
                line_notes = ["Invoice has no lines to match"]
            notes = f"{status.value}: " + "; ".join(line_notes)

        outcome = MatchOutcome(
            status=status,
            price_variance=price_variance,
            quantity_variance=quantity_variance,
            lines=results,
            notes=notes,
            tolerance_percent=tolerance,
        )

        logger.info(
            "invoice_match_evaluated",
            extra={
                "status": status.value,
                "line_count": len(results),
                "linked_count": outcome.linked_count,
                "discrepancy_count": outcome.discrepancy_count,
                "price_variance": price_variance,
                "quantity_variance": quantity_variance,
                "tolerance_percent": tolerance,
                "three_way": accepted_quantities is not None,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return outcome

    def _match_line(
        self,
        line: InvoiceLineInput,
        po_by_id: Mapping[str, PurchaseOrderLineInput],
        po_by_description: Mapping[str, PurchaseOrderLineInput],
        tolerance: Decimal,
        accepted_quantities: Mapping[Any, Decimal] | None,
    ) -> LineMatchResult:
        label = f"Line {line.line_id}"
        if line.description:
            label = f"{label} ({line.description})"

        po_line = None
        source = None
        if line.po_line_id is not None:
            po_line = po_by_id.get(str(line.po_line_id))
            if po_line is not None:
                source = LinkSource.PO_LINE
        elif po_by_description:
            po_line = po_by_description.get((line.description or "").strip().lower())
            if po_line is not None:
                source = LinkSource.DESCRIPTION

        if po_line is None:
            reason = (
                f"references unknown PO line {line.po_line_id}"
                if line.po_line_id is not None
                else "is not linked to a PO line"
            )
            return LineMatchResult(
                invoice_line_id=line.line_id,
                po_line_id=line.po_line_id,
                link_source=None,
                price=None,
                quantity=None,
                receipt=None,
                within_tolerance=False,
                note=f"{label} {reason}",
            )

        price = VarianceResult(VarianceType.PRICE, po_line.unit_price, line.unit_price)
        quantity = VarianceResult(VarianceType.QUANTITY, po_line.quantity, line.quantity)
        receipt = None
        if accepted_quantities is not None:
            accepted = accepted_quantities.get(po_line.line_id)
            if accepted is None:
                accepted = accepted_quantities.get(str(po_line.line_id), ZERO)
            receipt = VarianceResult(VarianceType.RECEIPT_QUANTITY, accepted, line.quantity)

        failures = [
            v.describe()
            for v in (price, quantity, receipt)
            if v is not None and not v.within(tolerance)
        ]
        note = None
        if failures:
            note = f"{label}: " + ", ".join(failures) + f" exceeds tolerance {tolerance}%"

        return LineMatchResult(
            invoice_line_id=line.line_id,
            po_line_id=po_line.line_id,
            link_source=source,
            price=price,
            quantity=quantity,
            receipt=receipt,
            within_tolerance=not failures,
            note=note,
        )

    @staticmethod
    def _decide(results: Sequence[LineMatchResult]) -> MatchStatus:
        linked = [r for r in results if r.is_linked]
        if not linked:
            return MatchStatus.DISCREPANCY
        if any(not r.within_tolerance for r in linked):
            return MatchStatus.DISCREPANCY
        if len(linked) == len(results):
            return MatchStatus.MATCHED
        return MatchStatus.PARTIAL_MATCH
