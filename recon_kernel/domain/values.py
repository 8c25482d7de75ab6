"""
Decimal value helpers.

Every money and quantity field in the core is a ``Decimal``.  Input from
callers (strings, ints, Decimals, and floats for convenience) is converted
through ``str`` so a float never contributes its binary representation.

Invariants enforced:
    - ``bool`` is rejected even though it is an ``int`` subclass.
    - NaN and infinities are rejected.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from recon_kernel.exceptions import ValidationError

# Quantities reconcile when they differ by no more than this.
QUANTITY_TOLERANCE = Decimal("1e-9")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Convert caller input to ``Decimal`` or raise ``ValidationError``."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(
            f"{field} must be a decimal number, got {value!r}",
            field=field,
            value=value,
            rule="decimal_required",
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(
                f"{field} must be a decimal number, got {value!r}",
                field=field,
                value=value,
                rule="decimal_required",
            ) from exc
    if not result.is_finite():
        raise ValidationError(
            f"{field} must be finite, got {value!r}",
            field=field,
            value=value,
            rule="decimal_finite",
        )
    return result


def quantities_equal(
    left: Decimal, right: Decimal, tolerance: Decimal = QUANTITY_TOLERANCE
) -> bool:
    return abs(left - right) <= tolerance


def quantize(value: Decimal, places: int) -> Decimal:
    """Round half-up to ``places`` decimal places.

    Precision is widened to hold every integer digit, so a very large
    variance percentage rounds rather than raising ``InvalidOperation``.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def decimal_to_str(value: Decimal | None) -> str | None:
    """Plain (non-exponent) decimal string for the wire."""
    if value is None:
        return None
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text
