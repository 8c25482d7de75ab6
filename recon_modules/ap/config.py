"""
Accounts Payable Configuration Schema.

Matching tolerances and payment settings.  Actual values are loaded from
company configuration through ``recon_config.get_active_config()``.
"""

from dataclasses import dataclass
from decimal import Decimal

from recon_kernel.logging_config import get_logger

logger = get_logger("modules.ap.config")


@dataclass(frozen=True)
class MatchingConfig:
    """Tolerance and linking rules for invoice matching."""

    default_tolerance_percent: Decimal = Decimal("2")
    three_way: bool = False
    description_fallback: bool = False
    variance_places: int = 4

    def __post_init__(self):
        if self.default_tolerance_percent < 0:
            raise ValueError("default_tolerance_percent cannot be negative")
        if not 0 <= self.variance_places <= 9:
            raise ValueError("variance_places must be between 0 and 9")
        logger.debug(
            "matching_config_created",
            extra={
                "default_tolerance_percent": str(self.default_tolerance_percent),
                "three_way": self.three_way,
                "description_fallback": self.description_fallback,
            },
        )


@dataclass(frozen=True)
class PaymentConfig:
    """Payment settings."""

    due_soon_days: int = 7

    def __post_init__(self):
        if self.due_soon_days < 0:
            raise ValueError("due_soon_days cannot be negative")
