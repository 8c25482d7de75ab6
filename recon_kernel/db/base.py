"""
Module: recon_kernel.db.base
Responsibility: Declarative base for the SQL-backed ledger and job tables.
    UUID primary keys, decimal-precision column mapping, and the audit
    columns shared by every tracked row.
Architecture position: Kernel > DB.  ORM model modules import from here;
    this module imports nothing from the rest of the project.
Invariants enforced:
    - Decimal maps to Numeric(38, 9).  Money and quantities are never float.
    - Timestamps are timezone-aware; ``as_utc`` re-attaches UTC to values
      returned naive by backends (SQLite) that drop the offset.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    Guarantees:
        - ``id`` is a uuid4 UUID stored as String(36).
        - Decimal -> Numeric(38, 9), datetime -> DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    ``created_by`` is the acting user id supplied by the caller (not a
    UUID: identities come from the surrounding application).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes loaded from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
