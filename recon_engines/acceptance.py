"""
recon_engines.acceptance -- GRN line reconciliation.

Responsibility:
    Validate accepted/rejected quantities against the received quantity of
    each goods receipt line and derive the resulting disposition of the
    whole receipt.

Architecture position:
    Engines -- pure, zero I/O.  ``ReceivingService`` loads the GRN, calls
    ``validate_line_quantities`` for every line *before* writing anything,
    then persists the disposition returned by ``derive_disposition``.

Invariants enforced:
    - accepted >= 0 and rejected >= 0.
    - accepted + rejected == received within ``QUANTITY_TOLERANCE``.
    - Disposition is a pure function of line data: every line rejected-free
      is ACCEPTED, every line accepted-free is REJECTED, anything else is
      PARTIALLY_ACCEPTED.

Failure modes:
    - ``ValidationError`` (rule ``non_negative_quantity``) for a negative
      quantity.
    - ``QuantityMismatchError`` when a line does not reconcile.
    - ``ValidationError`` (rule ``lines_required``) for an empty line set.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from recon_kernel.domain.values import QUANTITY_TOLERANCE, ZERO, quantities_equal
from recon_kernel.exceptions import QuantityMismatchError, ValidationError


class AcceptanceDisposition(str, Enum):
    """Outcome of reconciling every line of a receipt."""

    ACCEPTED = "ACCEPTED"
    PARTIALLY_ACCEPTED = "PARTIALLY_ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class LineQuantities:
    """Received/accepted/rejected quantities of one receipt line."""

    line_id: Any
    received: Decimal
    accepted: Decimal
    rejected: Decimal


def validate_line_quantities(
    line: LineQuantities,
    tolerance: Decimal = QUANTITY_TOLERANCE,
) -> None:
    """Raise if ``line`` is not a valid final reconciliation."""
    for field, value in (
        ("accepted_quantity", line.accepted),
        ("rejected_quantity", line.rejected),
    ):
        if value < ZERO:
            raise ValidationError(
                f"Line {line.line_id}: {field} must be >= 0, got {value}",
                field=field,
                value=value,
                line_id=line.line_id,
                rule="non_negative_quantity",
            )
    if not quantities_equal(line.accepted + line.rejected, line.received, tolerance):
        raise QuantityMismatchError(
            line.line_id, line.received, line.accepted, line.rejected
        )


def derive_disposition(
    lines: Iterable[LineQuantities],
    tolerance: Decimal = QUANTITY_TOLERANCE,
) -> AcceptanceDisposition:
    """Disposition of a receipt from its (already validated) lines."""
    lines = tuple(lines)
    if not lines:
        raise ValidationError(
            "A receipt needs at least one line to be finalized",
            field="lines",
            rule="lines_required",
        )
    if all(quantities_equal(line.rejected, ZERO, tolerance) for line in lines):
        return AcceptanceDisposition.ACCEPTED
    if all(quantities_equal(line.accepted, ZERO, tolerance) for line in lines):
        return AcceptanceDisposition.REJECTED
    return AcceptanceDisposition.PARTIALLY_ACCEPTED


def reconcile(
    lines: Sequence[LineQuantities],
    tolerance: Decimal = QUANTITY_TOLERANCE,
) -> AcceptanceDisposition:
    """Validate every line, then derive the disposition.

    Validation completes for the whole set before a disposition exists, so
    a caller that writes only on success never writes a partial result.
    """
    for line in lines:
        validate_line_quantities(line, tolerance)
    return derive_disposition(lines, tolerance)
