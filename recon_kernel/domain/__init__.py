"""Pure domain helpers shared by every layer: clock and decimal values."""

from recon_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from recon_kernel.domain.values import (
    QUANTITY_TOLERANCE,
    decimal_to_str,
    quantities_equal,
    to_decimal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "QUANTITY_TOLERANCE",
    "decimal_to_str",
    "quantities_equal",
    "to_decimal",
]
