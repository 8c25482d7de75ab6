"""
Typed exception hierarchy for the reconciliation core.

Every error the core raises is a ``ReconciliationError`` subclass with a
machine-readable ``code`` class attribute and the structured data a caller
needs to correct its input (which entity, which line, which quantity,
which rule).  Callers catch by type, never by message text.

    ReconciliationError (base)
    |
    +-- NotFoundError
    |
    +-- ValidationError
    |   +-- QuantityMismatchError
    |   +-- OverpaymentError
    |
    +-- InvalidStateError
    |
    +-- PreconditionError
    |
    +-- AuthorizationError

Code                 | When raised
---------------------|------------------------------------------------------
NOT_FOUND            | Entity id unknown to the store
VALIDATION_ERROR     | Malformed or out-of-range input
QUANTITY_MISMATCH    | accepted + rejected != received on a GRN line
OVERPAYMENT          | Payment would push paid amount past the invoice total
INVALID_STATE        | Operation on a terminal or wrong-state entity
PRECONDITION_FAILED  | Workflow gate not satisfied (unapproved, unmatched)
NOT_AUTHORIZED       | Injected authorizer refused the actor

Nothing here is retried automatically.  Job failures are stored on the job
record; they are never raised to the poller.
"""

from __future__ import annotations

from typing import Any


class ReconciliationError(Exception):
    """
    Base exception for all reconciliation core errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "RECONCILIATION_ERROR"


class NotFoundError(ReconciliationError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class ValidationError(ReconciliationError):
    """Input is malformed or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        line_id: Any = None,
        rule: str | None = None,
    ):
        self.field = field
        self.value = None if value is None else str(value)
        self.line_id = None if line_id is None else str(line_id)
        self.rule = rule
        super().__init__(message)


class QuantityMismatchError(ValidationError):
    """accepted + rejected does not reconcile to the received quantity."""

    code: str = "QUANTITY_MISMATCH"

    def __init__(self, line_id: Any, received: Any, accepted: Any, rejected: Any):
        self.received = str(received)
        self.accepted = str(accepted)
        self.rejected = str(rejected)
        super().__init__(
            f"Line {line_id}: accepted ({accepted}) + rejected ({rejected}) "
            f"must equal received ({received})",
            field="accepted_quantity",
            line_id=line_id,
            rule="accepted_plus_rejected_equals_received",
        )


class OverpaymentError(ValidationError):
    """Payment would take the paid amount above the invoice total."""

    code: str = "OVERPAYMENT"

    def __init__(
        self,
        invoice_id: Any,
        total_amount: Any,
        paid_amount: Any,
        attempted_amount: Any,
    ):
        self.invoice_id = str(invoice_id)
        self.total_amount = str(total_amount)
        self.paid_amount = str(paid_amount)
        self.attempted_amount = str(attempted_amount)
        super().__init__(
            f"Payment of {attempted_amount} on invoice {invoice_id} exceeds "
            f"remaining balance (total {total_amount}, paid {paid_amount})",
            field="amount",
            value=attempted_amount,
            rule="paid_amount_not_above_total",
        )


class InvalidStateError(ReconciliationError):
    """Operation attempted on an entity whose state does not allow it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_state: str,
        action: str,
        detail: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.action = action
        message = (
            f"Cannot {action} {entity_type} {entity_id} in state {current_state}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PreconditionError(ReconciliationError):
    """A workflow gate is not satisfied."""

    code: str = "PRECONDITION_FAILED"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        requirement: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.requirement = requirement
        super().__init__(
            message or f"{entity_type} {entity_id} does not satisfy: {requirement}"
        )


class AuthorizationError(ReconciliationError):
    """Actor is not allowed to perform the action."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: Any, action: str, reason: str = ""):
        self.actor_id = None if actor_id is None else str(actor_id)
        self.action = action
        self.reason = reason
        message = f"Actor {actor_id} is not authorized to {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
