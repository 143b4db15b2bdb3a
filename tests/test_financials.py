"""
Test suite for the loan financial model

Tests installment count derivation, flat and per-installment interest,
rounding, and input validation.
"""

import pytest
from decimal import Decimal

from loan_servicing.errors import ValidationError
from loan_servicing.financials import (
    DEFAULT_INSTALLMENTS, compute_financials, derive_installment_count
)
from loan_servicing.models import Frequency, InterestType


class TestInstallmentCount:
    """Test installment count derivation"""

    def test_frequency_defaults(self):
        assert derive_installment_count(Frequency.WEEKLY) == 16
        assert derive_installment_count(Frequency.BI_WEEKLY) == 8
        assert derive_installment_count(Frequency.MONTHLY) == 4

    def test_duration_weeks(self):
        assert derive_installment_count(Frequency.WEEKLY, duration_weeks=10) == 10
        assert derive_installment_count(Frequency.BI_WEEKLY, duration_weeks=10) == 5
        assert derive_installment_count(Frequency.BI_WEEKLY, duration_weeks=11) == 5
        assert derive_installment_count(Frequency.MONTHLY, duration_weeks=10) == 2

    def test_tenure_wins_over_duration(self):
        assert derive_installment_count(Frequency.MONTHLY, tenure=6, duration_weeks=52) == 6

    def test_clamped_to_one(self):
        """Durations shorter than one period still produce one installment"""
        assert derive_installment_count(Frequency.MONTHLY, duration_weeks=3) == 1
        assert derive_installment_count(Frequency.WEEKLY, tenure=0) == 1

    def test_string_tenure_accepted(self):
        assert derive_installment_count(Frequency.WEEKLY, tenure="12") == 12

    @pytest.mark.parametrize("bad_value", ["2.5", "abc", -3, True])
    def test_invalid_tenure(self, bad_value):
        with pytest.raises(ValidationError):
            derive_installment_count(Frequency.WEEKLY, tenure=bad_value)


class TestComputeFinancials:
    """Test interest and total payable computation"""

    def test_per_installment_interest(self):
        """P=10000, R=5%, 16 weekly installments"""
        financials = compute_financials(10000, 5, "Weekly", "Installment", tenure=16)

        assert financials.installment_count == 16
        assert financials.total_interest == Decimal('8000.00')
        assert financials.total_payable == Decimal('18000.00')
        assert financials.installment_amount == Decimal('1125.00')
        assert financials.frequency == Frequency.WEEKLY
        assert financials.interest_type == InterestType.INSTALLMENT

    def test_flat_interest(self):
        financials = compute_financials(Decimal('10000'), Decimal('10'), Frequency.MONTHLY, InterestType.FLAT)

        assert financials.installment_count == DEFAULT_INSTALLMENTS[Frequency.MONTHLY]
        assert financials.total_interest == Decimal('1000.00')
        assert financials.total_payable == Decimal('11000.00')
        assert financials.installment_amount == Decimal('2750.00')

    def test_zero_rate(self):
        financials = compute_financials("1000", "0", "Bi-Weekly")

        assert financials.total_interest == Decimal('0.00')
        assert financials.total_payable == Decimal('1000.00')
        assert financials.installment_amount == Decimal('125.00')

    def test_missing_rate_is_zero(self):
        assert compute_financials(500, None, "Monthly").total_interest == Decimal('0.00')

    def test_round_half_up(self):
        """Rounding only on output, half away from zero"""
        financials = compute_financials("1", "12.5", "Weekly", "Flat", tenure=1)

        assert financials.total_interest == Decimal('0.13')
        assert financials.total_payable == Decimal('1.13')

    @pytest.mark.parametrize("principal,rate,count", [
        (1000, 0, 3),
        (9999.99, 3.3, 7),
        (250, 12.75, 11),
        (100000, 1.5, 52),
    ])
    def test_installment_amount_times_count_close_to_total(self, principal, rate, count):
        financials = compute_financials(principal, rate, "Weekly", tenure=count)
        drift = abs(financials.installment_amount * count - financials.total_payable)
        assert drift <= Decimal('0.01') * count

    def test_duration_weeks_drives_count(self):
        financials = compute_financials(1200, 2, "Monthly", duration_weeks=24)

        assert financials.installment_count == 6
        assert financials.total_interest == Decimal('144.00')


class TestValidation:
    """Test input validation"""

    @pytest.mark.parametrize("principal", [0, -100, "abc", None, "NaN", "1e30"])
    def test_invalid_principal(self, principal):
        with pytest.raises(ValidationError):
            compute_financials(principal, 5, "Weekly")

    def test_negative_rate(self):
        with pytest.raises(ValidationError, match="interest_rate"):
            compute_financials(1000, -1, "Weekly")

    def test_unknown_frequency(self):
        with pytest.raises(ValidationError, match="Invalid frequency"):
            compute_financials(1000, 5, "Daily")

    def test_unknown_interest_type(self):
        with pytest.raises(ValidationError, match="Invalid interest type"):
            compute_financials(1000, 5, "Weekly", "Compound")

    def test_validation_error_status(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_financials("lots", 5, "Weekly")
        assert exc_info.value.status_code == 400
        assert exc_info.value.to_dict() == {"detail": "loan_amount must be a number"}
