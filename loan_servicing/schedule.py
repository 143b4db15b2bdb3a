"""
Schedule Generator

Pure, deterministic installment schedule generation. The same function
serves loan creation, bulk import and regeneration after term edits.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Any, List, Union
import calendar

from .errors import ValidationError
from .financials import parse_frequency
from .models import Frequency, InstallmentStatus
from .money import round_money, sum_money, to_decimal


RECONCILE_THRESHOLD = Decimal('0.001')

PERIOD_DAYS = {
    Frequency.WEEKLY: 7,
    Frequency.BI_WEEKLY: 14,
}


@dataclass(frozen=True)
class ScheduledInstallment:
    """Single entry of a generated schedule"""
    installment_no: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, rolling years and clamping to month end"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date_for(start_date: date, frequency: Frequency, installment_no: int) -> date:
    """Due date of the n-th installment, always offset from the start date"""
    if frequency == Frequency.MONTHLY:
        return add_months(start_date, installment_no)
    return start_date + timedelta(days=PERIOD_DAYS[frequency] * installment_no)


def generate_schedule(
    total_payable: Any,
    start_date: date,
    frequency: Union[str, Frequency],
    installment_count: int
) -> List[ScheduledInstallment]:
    """
    Generate an installment schedule.

    Every installment gets total_payable / count rounded to cents; the
    rounding difference is folded into the last installment so the schedule
    sums exactly to total_payable.
    """
    total = to_decimal(total_payable, "total_payable")
    frequency_value = parse_frequency(frequency)
    if isinstance(installment_count, bool) or not isinstance(installment_count, int) or installment_count < 1:
        raise ValidationError("installment_count must be a positive integer")
    if not isinstance(start_date, date):
        raise ValidationError("start_date must be a date")

    nominal = round_money(total / Decimal(installment_count))
    amounts = [nominal] * installment_count

    diff = total - sum_money(amounts)
    if abs(diff) > RECONCILE_THRESHOLD:
        amounts[-1] = round_money(amounts[-1] + diff)

    return [
        ScheduledInstallment(
            installment_no=number,
            amount=amounts[number - 1],
            due_date=due_date_for(start_date, frequency_value, number)
        )
        for number in range(1, installment_count + 1)
    ]
