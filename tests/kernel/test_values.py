"""
Tests for recon_kernel.domain.values and the error hierarchy.
"""

from decimal import Decimal

import pytest

from recon_kernel.domain.values import decimal_to_str, quantities_equal, quantize, to_decimal
from recon_kernel.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    PreconditionError,
    QuantityMismatchError,
    ReconciliationError,
    ValidationError,
)


class TestToDecimal:
    @pytest.mark.parametrize("raw, expected", [
        ("10.20", Decimal("10.20")),
        (" 7 ", Decimal("7")),
        (3, Decimal("3")),
        (0.1, Decimal("0.1")),
        (Decimal("1.5"), Decimal("1.5")),
    ])
    def test_accepted_inputs(self, raw, expected):
        assert to_decimal(raw) == expected

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(0.1) != Decimal(0.1)

    @pytest.mark.parametrize("raw", [True, None, "ten", "", "1,000"])
    def test_rejected_inputs(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            to_decimal(raw, "amount")
        assert exc_info.value.rule == "decimal_required"
        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-inf"])
    def test_non_finite_rejected(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            to_decimal(raw)
        assert exc_info.value.rule == "decimal_finite"


class TestDecimalHelpers:
    @pytest.mark.parametrize("value, text", [
        (Decimal("10.20"), "10.2"),
        (Decimal("1000"), "1000"),
        (Decimal("1E+3"), "1000"),
        (Decimal("0.000"), "0"),
        (Decimal("-0.00"), "0"),
        (Decimal("1.5E-7"), "0.00000015"),
    ])
    def test_decimal_to_str(self, value, text):
        assert decimal_to_str(value) == text

    def test_decimal_to_str_none(self):
        assert decimal_to_str(None) is None

    def test_quantize_half_up(self):
        assert quantize(Decimal("2.00005"), 4) == Decimal("2.0001")
        assert quantize(Decimal("57.142857"), 2) == Decimal("57.14")

    def test_quantize_beyond_context_precision(self):
        value = Decimal("999999999999999999999999900.123456")
        assert quantize(value, 4) == Decimal("999999999999999999999999900.1235")

    def test_quantities_equal_within_tolerance(self):
        assert quantities_equal(Decimal("10"), Decimal("10.0000000001"))
        assert not quantities_equal(Decimal("10"), Decimal("10.001"))


class TestErrorHierarchy:
    @pytest.mark.parametrize("error, code", [
        (NotFoundError("vendor_invoice", "inv-1"), "NOT_FOUND"),
        (ValidationError("bad"), "VALIDATION_ERROR"),
        (QuantityMismatchError("L1", Decimal("10"), Decimal("8"), Decimal("3")), "QUANTITY_MISMATCH"),
        (OverpaymentError("inv-1", Decimal("10"), Decimal("5"), Decimal("6")), "OVERPAYMENT"),
        (PreconditionError("vendor_invoice", "inv-1", "approved_for_payment"), "PRECONDITION_FAILED"),
        (AuthorizationError("user-1", "pay_invoice"), "NOT_AUTHORIZED"),
    ])
    def test_codes(self, error, code):
        assert isinstance(error, ReconciliationError)
        assert error.code == code

    def test_overpayment_is_a_validation_error(self):
        err = OverpaymentError("inv-1", Decimal("1000"), Decimal("1000"), Decimal("0.01"))
        assert isinstance(err, ValidationError)
        assert err.paid_amount == "1000"
        assert err.rule == "paid_amount_not_above_total"

    def test_invalid_state_names_entity(self):
        err = InvalidStateError("goods_receipt", "grn-1", "REJECTED", "accept")
        assert err.entity_type == "goods_receipt"
        assert err.current_state == "REJECTED"
        assert "REJECTED" in str(err)
