"""
Procurement Workflows.

State machine for goods receipt notes:
PENDING_INSPECTION -> INSPECTING -> {ACCEPTED, PARTIALLY_ACCEPTED, REJECTED}.
The three outcomes are terminal.  Acceptance may also be recorded without
a prior inspection.
"""

from recon_kernel.logging_config import get_logger
from recon_modules._workflow import Guard, Transition, Workflow
from recon_modules.procurement.models import GRNStatus

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

LINES_RECONCILED = Guard(
    name="lines_reconciled",
    description="Every line has accepted + rejected == received, none negative",
)

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="Rejection reason of at least the configured length",
)


# -----------------------------------------------------------------------------
# Goods Receipt Workflow
# -----------------------------------------------------------------------------

_PENDING = GRNStatus.PENDING_INSPECTION.value
_INSPECTING = GRNStatus.INSPECTING.value
_ACCEPTED = GRNStatus.ACCEPTED.value
_PARTIAL = GRNStatus.PARTIALLY_ACCEPTED.value
_REJECTED = GRNStatus.REJECTED.value

GOODS_RECEIPT_WORKFLOW = Workflow(
    name="goods_receipt",
    description="Goods receipt inspection and acceptance",
    initial_state=_PENDING,
    states=(_PENDING, _INSPECTING, _ACCEPTED, _PARTIAL, _REJECTED),
    transitions=tuple(
        [
            Transition(_PENDING, _INSPECTING, action="inspect"),
            Transition(_INSPECTING, _INSPECTING, action="inspect"),
        ]
        + [
            Transition(source, outcome, action="accept", guard=LINES_RECONCILED)
            for source in (_PENDING, _INSPECTING)
            for outcome in (_ACCEPTED, _PARTIAL, _REJECTED)
        ]
        + [
            Transition(source, _REJECTED, action="reject", guard=REASON_PROVIDED)
            for source in (_PENDING, _INSPECTING)
        ]
    ),
    terminal_states=(_ACCEPTED, _PARTIAL, _REJECTED),
)

logger.info(
    "procurement_goods_receipt_workflow_registered",
    extra={
        "workflow_name": GOODS_RECEIPT_WORKFLOW.name,
        "state_count": len(GOODS_RECEIPT_WORKFLOW.states),
        "transition_count": len(GOODS_RECEIPT_WORKFLOW.transitions),
        "initial_state": GOODS_RECEIPT_WORKFLOW.initial_state,
    },
)
