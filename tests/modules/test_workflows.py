"""
Tests for the declarative workflows of the procurement and AP modules.
"""

import pytest

from recon_kernel.exceptions import InvalidStateError
from recon_modules.ap.workflows import INVOICE_MATCH_WORKFLOW, INVOICE_PAYMENT_WORKFLOW
from recon_modules.procurement.workflows import GOODS_RECEIPT_WORKFLOW


class TestGoodsReceiptWorkflow:
    def test_initial_state(self):
        assert GOODS_RECEIPT_WORKFLOW.initial_state == "PENDING_INSPECTION"

    @pytest.mark.parametrize("state", ["ACCEPTED", "PARTIALLY_ACCEPTED", "REJECTED"])
    def test_outcomes_are_terminal(self, state):
        assert GOODS_RECEIPT_WORKFLOW.is_terminal(state)
        assert GOODS_RECEIPT_WORKFLOW.allowed_actions(state) == ()

    def test_inspect_keeps_inspecting(self):
        transition = GOODS_RECEIPT_WORKFLOW.require("INSPECTING", "inspect", "grn-1")
        assert transition.to_state == "INSPECTING"

    def test_acceptance_without_inspection_allowed(self):
        transition = GOODS_RECEIPT_WORKFLOW.require(
            "PENDING_INSPECTION", "accept", "grn-1", to_state="ACCEPTED",
        )
        assert transition.guard.name == "lines_reconciled"

    def test_terminal_require_raises(self):
        with pytest.raises(InvalidStateError) as exc_info:
            GOODS_RECEIPT_WORKFLOW.require("REJECTED", "accept", "grn-1")
        err = exc_info.value
        assert err.entity_type == "goods_receipt"
        assert err.current_state == "REJECTED"
        assert "terminal state" in str(err)


class TestInvoiceMatchWorkflow:
    @pytest.mark.parametrize("state", ["PENDING", "MATCHED", "PARTIAL_MATCH", "DISCREPANCY"])
    def test_match_from_any_state(self, state):
        assert "match" in INVOICE_MATCH_WORKFLOW.allowed_actions(state)

    def test_approve_only_from_acceptable_match(self):
        assert INVOICE_MATCH_WORKFLOW.transition_for("MATCHED", "approve") is not None
        assert INVOICE_MATCH_WORKFLOW.transition_for("PARTIAL_MATCH", "approve") is not None
        assert INVOICE_MATCH_WORKFLOW.transition_for("DISCREPANCY", "approve") is None
        assert INVOICE_MATCH_WORKFLOW.transition_for("PENDING", "approve") is None


class TestInvoicePaymentWorkflow:
    def test_paid_is_terminal(self):
        assert INVOICE_PAYMENT_WORKFLOW.is_terminal("PAID")
        assert INVOICE_PAYMENT_WORKFLOW.transition_for("PAID", "pay") is None

    def test_overdue_left_only_by_full_payment(self):
        targets = {
            t.to_state for t in INVOICE_PAYMENT_WORKFLOW.transitions
            if t.from_state == "OVERDUE"
        }
        assert targets == {"OVERDUE", "PAID"}

    def test_never_moves_backwards(self):
        order = {"PENDING": 0, "PARTIAL": 1, "OVERDUE": 1, "PAID": 2}
        for t in INVOICE_PAYMENT_WORKFLOW.transitions:
            assert order[t.to_state] >= order[t.from_state]
