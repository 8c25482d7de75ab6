"""
recon_engines.variance -- Percentage variance between ordered and invoiced values.

Responsibility:
    Compute the percentage deviation of an invoiced price or quantity from
    the ordered (or received) reference value, and decide whether it sits
    inside a tolerance band.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumed by the matching
    engine.

Invariants enforced:
    - Decimal arithmetic only.
    - A zero reference with a non-zero actual has no finite percentage;
      ``variance_percent`` is None and the result never passes tolerance.
    - Boundary is inclusive: a variance equal to the tolerance passes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from recon_kernel.domain.values import HUNDRED, ZERO, quantize


class VarianceType(str, Enum):
    """What is being compared."""

    PRICE = "price"
    QUANTITY = "quantity"
    RECEIPT_QUANTITY = "receipt_quantity"  # invoice qty vs accepted GRN qty


def percent_variance(expected: Decimal, actual: Decimal) -> Decimal | None:
    """``|actual - expected| / expected * 100``; None when unbounded."""
    if expected == ZERO:
        return ZERO if actual == ZERO else None
    return abs(actual - expected) / abs(expected) * HUNDRED


@dataclass(frozen=True)
class VarianceResult:
    """
    One price or quantity comparison.

    All fields are immutable. Use properties for derived values.
    """

    variance_type: VarianceType
    expected: Decimal
    actual: Decimal

    @property
    def variance(self) -> Decimal:
        """Signed difference, positive when actual exceeds expected."""
        return self.actual - self.expected

    @property
    def absolute_variance(self) -> Decimal:
        return abs(self.variance)

    @property
    def variance_percent(self) -> Decimal | None:
        return percent_variance(self.expected, self.actual)

    @property
    def is_favorable(self) -> bool:
        """Invoiced at or below the reference value."""
        return self.actual <= self.expected

    def within(self, tolerance_percent: Decimal) -> bool:
        pct = self.variance_percent
        return pct is not None and pct <= tolerance_percent

    def describe(self) -> str:
        pct = self.variance_percent
        pct_text = "unbounded" if pct is None else f"{quantize(pct, 2)}%"
        return (
            f"{self.variance_type.value} variance {pct_text} "
            f"(expected {self.expected}, actual {self.actual})"
        )
