"""
Loan Financial Model

Derives installment count, interest, total payable and installment amount
from loan terms. Intermediate values keep full Decimal precision; outputs
are rounded to cents.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import ValidationError
from .models import Frequency, InterestType
from .money import ZERO, round_money, to_decimal


DEFAULT_INSTALLMENTS = {
    Frequency.WEEKLY: 16,
    Frequency.BI_WEEKLY: 8,
    Frequency.MONTHLY: 4,
}

# Weeks covered by one installment period
WEEKS_PER_PERIOD = {
    Frequency.WEEKLY: 1,
    Frequency.BI_WEEKLY: 2,
    Frequency.MONTHLY: 4,
}


@dataclass(frozen=True)
class LoanFinancials:
    """Rounded financial outputs for a loan"""
    principal: Decimal
    interest_rate: Decimal
    frequency: Frequency
    interest_type: InterestType
    installment_count: int
    total_interest: Decimal
    total_payable: Decimal
    installment_amount: Decimal


def parse_frequency(value: Union[str, Frequency, None]) -> Frequency:
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(value)
    except ValueError:
        raise ValidationError(
            f"Invalid frequency '{value}'. Expected one of: {', '.join(f.value for f in Frequency)}"
        )


def parse_interest_type(value: Union[str, InterestType, None]) -> InterestType:
    if isinstance(value, InterestType):
        return value
    try:
        return InterestType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid interest type '{value}'. Expected one of: {', '.join(t.value for t in InterestType)}"
        )


def _parse_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number")
    try:
        number = Decimal(str(value).strip())
    except Exception:
        raise ValidationError(f"{field_name} must be a whole number")
    if not number.is_finite() or number != number.to_integral_value() or number < 0:
        raise ValidationError(f"{field_name} must be a non-negative whole number")
    return int(number)


def derive_installment_count(
    frequency: Frequency,
    tenure: Optional[Any] = None,
    duration_weeks: Optional[Any] = None
) -> int:
    """
    Number of installments for a loan.

    An explicit tenure wins; otherwise the count is derived from a duration
    in weeks; otherwise the frequency default applies. Never less than 1.
    """
    if tenure is not None:
        count = _parse_positive_int(tenure, "tenure")
    elif duration_weeks is not None:
        weeks = _parse_positive_int(duration_weeks, "duration_weeks")
        count = weeks // WEEKS_PER_PERIOD[frequency]
    else:
        count = DEFAULT_INSTALLMENTS[frequency]
    return max(count, 1)


def calculate_total_interest(principal: Decimal, rate: Decimal,
                             interest_type: InterestType, installment_count: int) -> Decimal:
    """Unrounded total interest"""
    if interest_type == InterestType.FLAT:
        return principal * (rate / Decimal('100'))
    return principal * (rate / Decimal('100')) * Decimal(installment_count)


def compute_financials(
    principal: Any,
    interest_rate: Any,
    frequency: Union[str, Frequency],
    interest_type: Union[str, InterestType] = InterestType.INSTALLMENT,
    tenure: Optional[Any] = None,
    duration_weeks: Optional[Any] = None
) -> LoanFinancials:
    """
    Compute loan financials.

    Args:
        principal: Loan amount (> 0)
        interest_rate: Percent rate (>= 0); per period for Installment type
        frequency: Weekly, Bi-Weekly or Monthly
        interest_type: Installment or Flat
        tenure: Explicit installment count
        duration_weeks: Loan duration in weeks, used when tenure is absent

    Returns:
        LoanFinancials with every money value rounded to cents

    Raises:
        ValidationError: on non-numeric or out-of-range input
    """
    principal_value = to_decimal(principal, "loan_amount")
    rate_value = to_decimal(interest_rate if interest_rate is not None else 0, "interest_rate")
    if principal_value <= ZERO:
        raise ValidationError("loan_amount must be greater than zero")
    if rate_value < ZERO:
        raise ValidationError("interest_rate cannot be negative")

    frequency_value = parse_frequency(frequency)
    interest_type_value = parse_interest_type(interest_type)
    count = derive_installment_count(frequency_value, tenure, duration_weeks)

    total_interest = calculate_total_interest(principal_value, rate_value, interest_type_value, count)
    total_payable = principal_value + total_interest
    installment_amount = total_payable / Decimal(count)

    return LoanFinancials(
        principal=round_money(principal_value),
        interest_rate=rate_value,
        frequency=frequency_value,
        interest_type=interest_type_value,
        installment_count=count,
        total_interest=round_money(total_interest),
        total_payable=round_money(total_payable),
        installment_amount=round_money(installment_amount)
    )
