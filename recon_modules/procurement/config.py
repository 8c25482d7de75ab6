"""
Receiving Configuration Schema.

Defines the structure and sensible defaults for goods receipt settings.
Actual values are loaded from company configuration through
``recon_config.get_active_config()``.
"""

from dataclasses import dataclass
from decimal import Decimal

from recon_kernel.domain.values import QUANTITY_TOLERANCE
from recon_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass(frozen=True)
class ReceivingConfig:
    """Goods receipt settings."""

    quantity_tolerance: Decimal = QUANTITY_TOLERANCE
    min_rejection_reason_length: int = 2

    def __post_init__(self):
        if self.quantity_tolerance < 0:
            raise ValueError("quantity_tolerance cannot be negative")
        if self.min_rejection_reason_length < 1:
            raise ValueError("min_rejection_reason_length must be at least 1")
        logger.debug(
            "receiving_config_created",
            extra={
                "quantity_tolerance": self.quantity_tolerance,
                "min_rejection_reason_length": self.min_rejection_reason_length,
            },
        )
