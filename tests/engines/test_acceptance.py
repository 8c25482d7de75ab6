"""
Tests for recon_engines.acceptance.

Validates per-line quantity reconciliation and the derived disposition of
a goods receipt.
"""

from decimal import Decimal

import pytest

from recon_engines.acceptance import (
    AcceptanceDisposition,
    LineQuantities,
    derive_disposition,
    reconcile,
    validate_line_quantities,
)
from recon_kernel.exceptions import QuantityMismatchError, ValidationError


def _line(line_id, received, accepted, rejected) -> LineQuantities:
    return LineQuantities(
        line_id=line_id,
        received=Decimal(received),
        accepted=Decimal(accepted),
        rejected=Decimal(rejected),
    )


class TestValidateLineQuantities:
    def test_exact_split_passes(self):
        validate_line_quantities(_line("L1", "10", "8", "2"))

    def test_fractional_quantities_reconcile(self):
        validate_line_quantities(_line("L1", "2.5", "1.25", "1.25"))

    def test_mismatch_raises_with_line_detail(self):
        with pytest.raises(QuantityMismatchError) as exc_info:
            validate_line_quantities(_line("L1", "10", "8", "3"))
        err = exc_info.value
        assert err.code == "QUANTITY_MISMATCH"
        assert err.line_id == "L1"
        assert err.received == "10"
        assert err.rule == "accepted_plus_rejected_equals_received"

    def test_negative_accepted_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_line_quantities(_line("L1", "10", "-1", "11"))
        assert exc_info.value.rule == "non_negative_quantity"
        assert exc_info.value.field == "accepted_quantity"

    def test_negative_rejected_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_line_quantities(_line("L1", "10", "11", "-1"))
        assert exc_info.value.field == "rejected_quantity"

    def test_difference_inside_tolerance_passes(self):
        validate_line_quantities(_line("L1", "10", "9.9999999999", "0"))


class TestDeriveDisposition:
    def test_all_accepted(self):
        lines = [_line("L1", "10", "10", "0"), _line("L2", "5", "5", "0")]
        assert derive_disposition(lines) == AcceptanceDisposition.ACCEPTED

    def test_all_rejected(self):
        lines = [_line("L1", "10", "0", "10"), _line("L2", "5", "0", "5")]
        assert derive_disposition(lines) == AcceptanceDisposition.REJECTED

    def test_mixed_lines_partially_accepted(self):
        lines = [_line("L1", "10", "10", "0"), _line("L2", "5", "0", "5")]
        assert derive_disposition(lines) == AcceptanceDisposition.PARTIALLY_ACCEPTED

    def test_single_split_line_partially_accepted(self):
        assert (
            derive_disposition([_line("L1", "10", "8", "2")])
            == AcceptanceDisposition.PARTIALLY_ACCEPTED
        )

    def test_empty_lines_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            derive_disposition([])
        assert exc_info.value.rule == "lines_required"


class TestReconcile:
    def test_validates_every_line_before_deciding(self):
        """A bad second line fails the whole set."""
        lines = [_line("L1", "10", "10", "0"), _line("L2", "5", "4", "0")]
        with pytest.raises(QuantityMismatchError) as exc_info:
            reconcile(lines)
        assert exc_info.value.line_id == "L2"

    def test_returns_disposition(self):
        lines = [_line("L1", "10", "8", "2")]
        assert reconcile(lines) == AcceptanceDisposition.PARTIALLY_ACCEPTED
