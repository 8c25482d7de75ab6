"""
Wire serialization for the facade: ledger entities plus jobs.

Ledger DTOs are encoded by ``recon_modules.serialization``; this module
adds the job terminal flag, which only exists above the batch layer.
"""

from __future__ import annotations

from typing import Any

from recon_batch.domain.types import Job
from recon_modules import serialization as ledger_wire


def to_wire(entity: Any) -> Any:
    """Serialize a DTO or job (or a collection of them) for the wire."""
    data = ledger_wire.to_wire(entity)
    if isinstance(entity, Job):
        data["is_terminal"] = entity.is_terminal
    return data
