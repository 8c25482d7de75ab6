"""
Wire serialization for ledger entities.

``to_wire`` turns the frozen DTOs into plain JSON-compatible dicts:

* ``Decimal`` -> plain decimal string ("10.2", never a float)
* ``UUID`` -> canonical string
* ``datetime`` / ``date`` -> ISO-8601
* ``Enum`` -> its value
* nested dataclasses, tuples and dicts recursively

Derived values that callers need but which are never stored (the invoice
remaining balance, GRN totals) are added to the output.  Lives beside the
models so batch tasks and the service facade share one encoding.
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from recon_kernel.domain.values import decimal_to_str
from recon_modules.ap.models import VendorInvoice
from recon_modules.procurement.models import GoodsReceiptNote


def plain_value(value: Any) -> Any:
    """Recursively convert ``value`` to JSON-compatible primitives."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return decimal_to_str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: plain_value(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): plain_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [plain_value(v) for v in value]
    raise TypeError(f"cannot serialize {type(value).__name__}")


def to_wire(entity: Any) -> Any:
    """Serialize a ledger DTO (or collection of DTOs) for the wire."""
    data = plain_value(entity)
    if isinstance(entity, VendorInvoice):
        data["remaining_balance"] = decimal_to_str(entity.remaining_balance)
    elif isinstance(entity, GoodsReceiptNote):
        data["total_received"] = decimal_to_str(entity.total_received)
        data["total_accepted"] = decimal_to_str(entity.total_accepted)
    return data
