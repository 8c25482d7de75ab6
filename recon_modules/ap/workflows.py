"""
Accounts Payable Workflows.

Two state machines describe a vendor invoice:

* ``INVOICE_MATCH_WORKFLOW`` -- the match annotation.  ``match`` may be
  re-run from any state; ``approve`` is only defined from MATCHED and
  PARTIAL_MATCH.
* ``INVOICE_PAYMENT_WORKFLOW`` -- settlement.  Status only moves forward
  (PENDING -> PARTIAL -> PAID); OVERDUE can be entered from PENDING or
  PARTIAL and is left only by paying in full.

Dispute is an annotation layered on either machine, not a state.
"""

from recon_engines.matching import MatchStatus
from recon_engines.settlement import PaymentStatus
from recon_kernel.logging_config import get_logger
from recon_modules._workflow import Guard, Transition, Workflow

logger = get_logger("modules.ap.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

MATCH_ACCEPTABLE = Guard(
    name="match_acceptable",
    description="Invoice matched or partially matched within tolerance",
)

APPROVED_FOR_PAYMENT = Guard(
    name="approved_for_payment",
    description="Invoice approved for payment",
)

WITHIN_BALANCE = Guard(
    name="within_balance",
    description="Payment amount positive and not above remaining balance",
)


# -----------------------------------------------------------------------------
# Match Workflow
# -----------------------------------------------------------------------------

_MATCH_STATES = tuple(s.value for s in MatchStatus)
_MATCH_RESULTS = (
    MatchStatus.MATCHED.value,
    MatchStatus.PARTIAL_MATCH.value,
    MatchStatus.DISCREPANCY.value,
)

INVOICE_MATCH_WORKFLOW = Workflow(
    name="vendor_invoice",
    description="Vendor invoice matching and approval",
    initial_state=MatchStatus.PENDING.value,
    states=_MATCH_STATES,
    transitions=tuple(
        [
            Transition(source, result, action="match")
            for source in _MATCH_STATES
            for result in _MATCH_RESULTS
        ]
        + [
            Transition(state, state, action="approve", guard=MATCH_ACCEPTABLE)
            for state in (MatchStatus.MATCHED.value, MatchStatus.PARTIAL_MATCH.value)
        ]
    ),
)


# -----------------------------------------------------------------------------
# Payment Workflow
# -----------------------------------------------------------------------------

_PENDING = PaymentStatus.PENDING.value
_PARTIAL = PaymentStatus.PARTIAL.value
_PAID = PaymentStatus.PAID.value
_OVERDUE = PaymentStatus.OVERDUE.value

INVOICE_PAYMENT_WORKFLOW = Workflow(
    name="vendor_invoice_payment",
    description="Vendor invoice settlement",
    initial_state=_PENDING,
    states=(_PENDING, _PARTIAL, _PAID, _OVERDUE),
    transitions=(
        Transition(_PENDING, _PARTIAL, action="pay", guard=WITHIN_BALANCE),
        Transition(_PENDING, _PAID, action="pay", guard=WITHIN_BALANCE),
        Transition(_PENDING, _OVERDUE, action="pay", guard=WITHIN_BALANCE),
        Transition(_PARTIAL, _PARTIAL, action="pay", guard=WITHIN_BALANCE),
        Transition(_PARTIAL, _PAID, action="pay", guard=WITHIN_BALANCE),
        Transition(_PARTIAL, _OVERDUE, action="pay", guard=WITHIN_BALANCE),
        Transition(_OVERDUE, _OVERDUE, action="pay", guard=WITHIN_BALANCE),
        Transition(_OVERDUE, _PAID, action="pay", guard=WITHIN_BALANCE),
        Transition(_PENDING, _PENDING, action="refresh"),
        Transition(_PENDING, _OVERDUE, action="refresh"),
        Transition(_PARTIAL, _PARTIAL, action="refresh"),
        Transition(_PARTIAL, _OVERDUE, action="refresh"),
        Transition(_OVERDUE, _OVERDUE, action="refresh"),
        Transition(_PAID, _PAID, action="refresh"),
    ),
    terminal_states=(_PAID,),
)

for _workflow in (INVOICE_MATCH_WORKFLOW, INVOICE_PAYMENT_WORKFLOW):
    logger.info(
        "ap_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )
