"""
SQLAlchemy ledger store.

Responsibility:
    A ``LedgerStore`` over the ORM models in ``procurement.orm`` and
    ``ap.orm``.  Each unit of work is one database transaction opened by
    ``session_scope``; reads for mutation take ``SELECT ... FOR UPDATE``
    row locks on backends that support them.

Invariants enforced:
    - Repositories return frozen DTOs; ORM objects never leave the unit of
      work.
    - A unit of work that raises is rolled back.

Backends:
    PostgreSQL (psycopg 3) is the production backend.  SQLite is for tests
    only: it stores ``Numeric(38, 9)`` columns with REAL affinity, so money
    and quantities beyond about 15 significant digits come back rounded.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from recon_kernel.db.engine import build_engine, create_tables, session_scope
from recon_kernel.exceptions import ValidationError
from recon_kernel.logging_config import get_logger
from recon_modules.ap.models import Payment, PaymentStatus, VendorInvoice
from recon_modules.ap.orm import PaymentModel, VendorInvoiceModel
from recon_modules.procurement.models import GoodsReceiptNote, PurchaseOrderLine
from recon_modules.procurement.orm import GoodsReceiptNoteModel, PurchaseOrderLineModel

logger = get_logger("modules.storage.sql")


class _PurchaseOrders:
    def __init__(self, session: Session, actor_id: str):
        self._session = session
        self._actor_id = actor_id

    def add_lines(self, lines: Iterable[PurchaseOrderLine]) -> None:
        for line in lines:
            if self._session.get(PurchaseOrderLineModel, line.id) is not None:
                raise ValidationError(
                    f"purchase_order_line {line.id} already exists",
                    field="id", value=line.id, rule="unique_id",
                )
            self._session.add(PurchaseOrderLineModel.from_dto(line, self._actor_id))
        self._session.flush()

    def get_lines(self, line_ids: Iterable[UUID]) -> dict[UUID, PurchaseOrderLine]:
        ids = list(line_ids)
        if not ids:
            return {}
        rows = self._session.scalars(
            select(PurchaseOrderLineModel).where(PurchaseOrderLineModel.id.in_(ids))
        )
        return {row.id: row.to_dto() for row in rows}

    def lines_for_order(self, purchase_order_id: UUID) -> tuple[PurchaseOrderLine, ...]:
        rows = self._session.scalars(
            select(PurchaseOrderLineModel)
            .where(PurchaseOrderLineModel.purchase_order_id == purchase_order_id)
            .order_by(PurchaseOrderLineModel.line_number)
        )
        return tuple(row.to_dto() for row in rows)


class _GoodsReceipts:
    def __init__(self, session: Session, actor_id: str):
        self._session = session
        self._actor_id = actor_id

    def _load(self, grn_id: UUID, for_update: bool) -> GoodsReceiptNoteModel | None:
        stmt = (
            select(GoodsReceiptNoteModel)
            .where(GoodsReceiptNoteModel.id == grn_id)
            .options(
                selectinload(GoodsReceiptNoteModel.items),
                selectinload(GoodsReceiptNoteModel.inspections),
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt).one_or_none()

    def add(self, grn: GoodsReceiptNote) -> None:
        if self._session.get(GoodsReceiptNoteModel, grn.id) is not None:
            raise ValidationError(
                f"goods_receipt {grn.id} already exists",
                field="id", value=grn.id, rule="unique_id",
            )
        self._session.add(GoodsReceiptNoteModel.from_dto(grn, self._actor_id))
        self._session.flush()

    def get(self, grn_id: UUID, *, for_update: bool = False) -> GoodsReceiptNote | None:
        model = self._load(grn_id, for_update)
        return None if model is None else model.to_dto()

    def save(self, grn: GoodsReceiptNote) -> None:
        model = self._load(grn.id, for_update=False)
        if model is None:
            self.add(grn)
            return
        model.apply(grn, self._actor_id)
        self._session.flush()

    def for_purchase_order(self, purchase_order_id: UUID) -> tuple[GoodsReceiptNote, ...]:
        rows = self._session.scalars(
            select(GoodsReceiptNoteModel)
            .where(GoodsReceiptNoteModel.purchase_order_id == purchase_order_id)
            .options(
                selectinload(GoodsReceiptNoteModel.items),
                selectinload(GoodsReceiptNoteModel.inspections),
            )
            .order_by(GoodsReceiptNoteModel.grn_number)
        )
        return tuple(row.to_dto() for row in rows)


class _Invoices:
    def __init__(self, session: Session, actor_id: str):
        self._session = session
        self._actor_id = actor_id

    def _load(self, invoice_id: UUID, for_update: bool) -> VendorInvoiceModel | None:
        stmt = (
            select(VendorInvoiceModel)
            .where(VendorInvoiceModel.id == invoice_id)
            .options(selectinload(VendorInvoiceModel.items))
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt).one_or_none()

    def add(self, invoice: VendorInvoice) -> None:
        if self._session.get(VendorInvoiceModel, invoice.id) is not None:
            raise ValidationError(
                f"vendor_invoice {invoice.id} already exists",
                field="id", value=invoice.id, rule="unique_id",
            )
        self._session.add(VendorInvoiceModel.from_dto(invoice, self._actor_id))
        self._session.flush()

    def get(self, invoice_id: UUID, *, for_update: bool = False) -> VendorInvoice | None:
        model = self._load(invoice_id, for_update)
        return None if model is None else model.to_dto()

    def save(self, invoice: VendorInvoice) -> None:
        model = self._load(invoice.id, for_update=False)
        if model is None:
            self.add(invoice)
            return
        model.apply(invoice, self._actor_id)
        self._session.flush()

    def list_open(self, due_on_or_before: date | None = None) -> tuple[VendorInvoice, ...]:
        stmt = (
            select(VendorInvoiceModel)
            .where(
                VendorInvoiceModel.is_voided.is_(False),
                VendorInvoiceModel.payment_status != PaymentStatus.PAID.value,
            )
            .options(selectinload(VendorInvoiceModel.items))
            .order_by(VendorInvoiceModel.due_date, VendorInvoiceModel.invoice_number)
        )
        if due_on_or_before is not None:
            stmt = stmt.where(VendorInvoiceModel.due_date <= due_on_or_before)
        return tuple(row.to_dto() for row in self._session.scalars(stmt))

    def list_all(self) -> tuple[VendorInvoice, ...]:
        stmt = (
            select(VendorInvoiceModel)
            .options(selectinload(VendorInvoiceModel.items))
            .order_by(VendorInvoiceModel.due_date, VendorInvoiceModel.invoice_number)
        )
        return tuple(row.to_dto() for row in self._session.scalars(stmt))


class _Payments:
    def __init__(self, session: Session):
        self._session = session

    def add(self, payment: Payment) -> None:
        self._session.add(PaymentModel.from_dto(payment))
        self._session.flush()

    def for_invoice(self, invoice_id: UUID) -> tuple[Payment, ...]:
        rows = self._session.scalars(
            select(PaymentModel)
            .where(PaymentModel.invoice_id == invoice_id)
            .order_by(PaymentModel.recorded_at, PaymentModel.created_at)
        )
        return tuple(row.to_dto() for row in rows)


class _SqlUnitOfWork:
    def __init__(self, session: Session, actor_id: str):
        self.session = session
        self.purchase_orders = _PurchaseOrders(session, actor_id)
        self.goods_receipts = _GoodsReceipts(session, actor_id)
        self.invoices = _Invoices(session, actor_id)
        self.payments = _Payments(session)


class SqlLedgerStore:
    """``LedgerStore`` backed by a SQLAlchemy session factory.

    Use PostgreSQL outside tests; see the module notes on SQLite precision.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, create_schema: bool = True) -> "SqlLedgerStore":
        engine = build_engine(database_url)
        if create_schema:
            create_tables(engine)
        if engine.dialect.name == "sqlite":
            logger.warning(
                "sqlite_store_for_tests_only",
                extra={"reason": "Numeric columns lose precision beyond ~15 digits"},
            )
        logger.info("sql_ledger_store_opened", extra={"dialect": engine.dialect.name})
        return cls(sessionmaker(bind=engine, expire_on_commit=False))

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @contextmanager
    def unit_of_work(self, actor_id: str = "system") -> Iterator[_SqlUnitOfWork]:
        with session_scope(self._session_factory) as session:
            yield _SqlUnitOfWork(session, actor_id)

    # Seeding helpers for callers that create records outside the core.

    def add_purchase_order_lines(self, *lines: PurchaseOrderLine) -> None:
        with self.unit_of_work() as uow:
            uow.purchase_orders.add_lines(lines)

    def add_goods_receipt(self, grn: GoodsReceiptNote) -> None:
        with self.unit_of_work() as uow:
            uow.goods_receipts.add(grn)

    def add_invoice(self, invoice: VendorInvoice) -> None:
        with self.unit_of_work() as uow:
            uow.invoices.add(invoice)
