"""
recon_engines -- pure reconciliation engines.

No engine touches storage, locks or the system clock.  Services load the
entities, call an engine, and persist what it returns.
"""

from recon_engines.acceptance import (
    AcceptanceDisposition,
    LineQuantities,
    derive_disposition,
    validate_line_quantities,
)
from recon_engines.matching import (
    InvoiceLineInput,
    InvoiceMatchingEngine,
    LineMatchResult,
    MatchOutcome,
    MatchStatus,
    PurchaseOrderLineInput,
)
from recon_engines.settlement import (
    PaymentStatus,
    compute_payment_status,
    remaining_balance,
)
from recon_engines.variance import VarianceResult, VarianceType, percent_variance

__all__ = [
    "AcceptanceDisposition",
    "LineQuantities",
    "derive_disposition",
    "validate_line_quantities",
    "InvoiceLineInput",
    "InvoiceMatchingEngine",
    "LineMatchResult",
    "MatchOutcome",
    "MatchStatus",
    "PurchaseOrderLineInput",
    "PaymentStatus",
    "compute_payment_status",
    "remaining_balance",
    "VarianceResult",
    "VarianceType",
    "percent_variance",
]
