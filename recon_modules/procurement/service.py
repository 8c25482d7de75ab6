"""
Procurement Receiving Service (``recon_modules.procurement.service``).

Responsibility
--------------
Records inspections against goods receipt notes and finalizes them by
per-line acceptance or wholesale rejection.

Architecture position
---------------------
**Modules layer** -- ``ReceivingService`` is the sole entry point for GRN
mutations.  Quantity reconciliation is delegated to
``recon_engines.acceptance``; transitions are checked against
``GOODS_RECEIPT_WORKFLOW``; persistence goes through a ``LedgerStore``.

Invariants enforced
-------------------
* Every mutating call holds the GRN's entity lock for the whole unit of
  work, so concurrent calls on one GRN are serialized while calls on
  different GRNs proceed in parallel.
* Every check completes before the first write; a rejected call leaves
  the GRN untouched.
* A finalized GRN (ACCEPTED, PARTIALLY_ACCEPTED, REJECTED) is never
  mutated again.
* Inspections are append-only.

Failure modes
-------------
* ``NotFoundError`` -- unknown GRN.
* ``InvalidStateError`` -- GRN already finalized.
* ``ValidationError`` / ``QuantityMismatchError`` -- malformed or
  non-reconciling line input, short rejection reason.

Audit relevance
---------------
``grn_inspection_recorded``, ``grn_lines_accepted`` and ``grn_rejected``
log records carry the GRN id, actor and resulting status.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from recon_engines.acceptance import LineQuantities, reconcile
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.domain.values import ZERO
from recon_kernel.exceptions import NotFoundError, ValidationError
from recon_kernel.locks import KeyedLockTable
from recon_kernel.logging_config import LogContext, get_logger
from recon_modules.procurement.config import ReceivingConfig
from recon_modules.procurement.models import (
    GoodsReceiptItem,
    GoodsReceiptNote,
    GRNStatus,
    Inspection,
    InspectionInput,
    LineAcceptance,
)
from recon_modules.procurement.workflows import GOODS_RECEIPT_WORKFLOW

if TYPE_CHECKING:
    from recon_modules.storage.ports import LedgerStore, UnitOfWork

logger = get_logger("modules.procurement.service")

ENTITY = "goods_receipt"


def _as_acceptance(line: LineAcceptance | Mapping[str, Any]) -> LineAcceptance:
    if isinstance(line, LineAcceptance):
        return line
    try:
        return LineAcceptance(
            goods_receipt_item_id=line["goods_receipt_item_id"],
            accepted_quantity=line["accepted_quantity"],
            rejected_quantity=line["rejected_quantity"],
            notes=line.get("notes"),
        )
    except KeyError as exc:
        raise ValidationError(
            f"Acceptance line is missing {exc.args[0]}",
            field=str(exc.args[0]),
            rule="field_required",
        ) from exc


def _apply_acceptance(item: GoodsReceiptItem, acceptance: LineAcceptance) -> GoodsReceiptItem:
    # Line notes are kept when the caller sends none.
    return replace(
        item,
        accepted_quantity=acceptance.accepted_quantity,
        rejected_quantity=acceptance.rejected_quantity,
        notes=acceptance.notes if acceptance.notes is not None else item.notes,
    )


class ReceivingService:
    """
    Inspection and acceptance of goods receipt notes.

    Contract:
        Each public method runs as one unit of work under the GRN lock and
        returns the GRN as committed.
    Non-goals:
        Does not create GRNs or touch purchase orders.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        locks: KeyedLockTable | None = None,
        config: ReceivingConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLockTable()
        self._config = config or ReceivingConfig()

    def _load(self, uow: UnitOfWork, grn_id: UUID) -> GoodsReceiptNote:
        grn = uow.goods_receipts.get(grn_id, for_update=True)
        if grn is None:
            raise NotFoundError(ENTITY, grn_id)
        return grn

    def get(self, grn_id: UUID) -> GoodsReceiptNote:
        with self._store.unit_of_work() as uow:
            grn = uow.goods_receipts.get(grn_id)
        if grn is None:
            raise NotFoundError(ENTITY, grn_id)
        return grn

    # -----------------------------------------------------------------
    # Inspection
    # -----------------------------------------------------------------

    def record_inspection(
        self,
        grn_id: UUID,
        payload: InspectionInput,
        actor_id: str,
    ) -> GoodsReceiptNote:
        """Append an inspection; PENDING_INSPECTION moves to INSPECTING.

        Never finalizes the GRN, whatever the inspection result.
        """
        with LogContext.bind(entity_id=grn_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, grn_id)), \
                self._store.unit_of_work(actor_id) as uow:
            grn = self._load(uow, grn_id)
            transition = GOODS_RECEIPT_WORKFLOW.require(grn.status.value, "inspect", grn_id)

            inspection = Inspection(
                id=uuid4(),
                grn_id=grn.id,
                inspector_id=payload.inspector_id or actor_id,
                overall_result=payload.overall_result,
                inspected_at=self._clock.now(),
                quality_score=payload.quality_score,
                findings=payload.findings,
                recommendations=payload.recommendations,
                visual_check=payload.visual_check,
                quantity_check=payload.quantity_check,
                specification_check=payload.specification_check,
                document_check=payload.document_check,
                safety_check=payload.safety_check,
                photos=payload.photos,
            )
            updated = replace(
                grn,
                status=GRNStatus(transition.to_state),
                inspections=grn.inspections + (inspection,),
            )
            uow.goods_receipts.save(updated)

            logger.info(
                "grn_inspection_recorded",
                extra={
                    "grn_id": str(grn_id),
                    "inspection_id": str(inspection.id),
                    "overall_result": inspection.overall_result.value,
                    "from_status": grn.status.value,
                    "to_status": updated.status.value,
                    "inspection_count": len(updated.inspections),
                },
            )
        return updated

    # -----------------------------------------------------------------
    # Acceptance
    # -----------------------------------------------------------------

    def accept_lines(
        self,
        grn_id: UUID,
        lines: Iterable[LineAcceptance | Mapping[str, Any]],
        actor_id: str,
    ) -> GoodsReceiptNote:
        """Set final accepted/rejected quantities for every GRN line.

        The call must cover each line of the GRN exactly once.  All lines
        are validated before anything is written.
        """
        t0 = time.monotonic()
        acceptances = [_as_acceptance(line) for line in lines]

        with LogContext.bind(entity_id=grn_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, grn_id)), \
                self._store.unit_of_work(actor_id) as uow:
            grn = self._load(uow, grn_id)
            if grn.is_terminal:
                GOODS_RECEIPT_WORKFLOW.require(grn.status.value, "accept", grn_id)

            by_item = self._index_acceptances(grn, acceptances)
            quantities = [
                LineQuantities(
                    line_id=item.id,
                    received=item.received_quantity,
                    accepted=by_item[item.id].accepted_quantity,
                    rejected=by_item[item.id].rejected_quantity,
                )
                for item in grn.items
            ]
            disposition = reconcile(quantities, self._config.quantity_tolerance)
            transition = GOODS_RECEIPT_WORKFLOW.require(
                grn.status.value, "accept", grn_id, to_state=disposition.value
            )

            now = self._clock.now()
            updated = replace(
                grn,
                status=GRNStatus(transition.to_state),
                items=tuple(
                    _apply_acceptance(item, by_item[item.id]) for item in grn.items
                ),
                finalized_at=now,
                finalized_by=actor_id,
            )
            uow.goods_receipts.save(updated)

            logger.info(
                "grn_lines_accepted",
                extra={
                    "grn_id": str(grn_id),
                    "status": updated.status.value,
                    "line_count": len(updated.items),
                    "total_received": updated.total_received,
                    "total_accepted": updated.total_accepted,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
        return updated

    @staticmethod
    def _index_acceptances(
        grn: GoodsReceiptNote,
        acceptances: list[LineAcceptance],
    ) -> dict[UUID, LineAcceptance]:
        if not acceptances:
            raise ValidationError(
                f"GRN {grn.id}: at least one acceptance line is required",
                field="lines",
                rule="lines_required",
            )
        by_item: dict[UUID, LineAcceptance] = {}
        for acceptance in acceptances:
            item_id = acceptance.goods_receipt_item_id
            if grn.item(item_id) is None:
                raise ValidationError(
                    f"GRN {grn.id} has no line {item_id}",
                    field="goods_receipt_item_id",
                    value=item_id,
                    line_id=item_id,
                    rule="known_line",
                )
            if item_id in by_item:
                raise ValidationError(
                    f"GRN {grn.id}: line {item_id} appears more than once",
                    field="goods_receipt_item_id",
                    value=item_id,
                    line_id=item_id,
                    rule="unique_line",
                )
            by_item[item_id] = acceptance
        missing = [str(item.id) for item in grn.items if item.id not in by_item]
        if missing:
            raise ValidationError(
                f"GRN {grn.id}: lines without acceptance: {', '.join(missing)}",
                field="lines",
                value=",".join(missing),
                rule="all_lines_required",
            )
        return by_item

    # -----------------------------------------------------------------
    # Rejection
    # -----------------------------------------------------------------

    def reject_all(self, grn_id: UUID, reason: str, actor_id: str) -> GoodsReceiptNote:
        """Reject every line in full and finalize the GRN as REJECTED."""
        with LogContext.bind(entity_id=grn_id, actor_id=actor_id), \
                self._locks.hold((ENTITY, grn_id)), \
                self._store.unit_of_work(actor_id) as uow:
            grn = self._load(uow, grn_id)
            GOODS_RECEIPT_WORKFLOW.require(
                grn.status.value, "reject", grn_id, to_state=GRNStatus.REJECTED.value
            )

            reason = (reason or "").strip()
            if len(reason) < self._config.min_rejection_reason_length:
                raise ValidationError(
                    f"Rejection reason must be at least "
                    f"{self._config.min_rejection_reason_length} characters",
                    field="reason",
                    value=reason,
                    rule="reason_min_length",
                )

            now = self._clock.now()
            note = f"Rejected: {reason}"
            updated = replace(
                grn,
                status=GRNStatus.REJECTED,
                items=tuple(
                    replace(
                        item,
                        accepted_quantity=ZERO,
                        rejected_quantity=item.received_quantity,
                    )
                    for item in grn.items
                ),
                notes=f"{grn.notes}\n{note}" if grn.notes else note,
                finalized_at=now,
                finalized_by=actor_id,
            )
            uow.goods_receipts.save(updated)

            logger.info(
                "grn_rejected",
                extra={
                    "grn_id": str(grn_id),
                    "from_status": grn.status.value,
                    "line_count": len(updated.items),
                    "reason": reason,
                },
            )
        return updated
