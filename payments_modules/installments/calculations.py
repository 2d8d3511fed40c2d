"""
Installment Plan Pure Calculation Functions.

Schedule arithmetic with no I/O:
- Month increment per frequency
- Calendar month addition with day-of-month rollover
- Installment amount and schedule generation
"""

from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal

from payments_kernel.domain.amounts import split_evenly
from payments_kernel.exceptions import InvalidScheduleError
from payments_modules.installments.models import (
    Installment,
    InstallmentFrequency,
)

_MONTHS_PER_PERIOD: dict[InstallmentFrequency, int] = {
    InstallmentFrequency.MONTHLY: 1,
    InstallmentFrequency.QUARTERLY: 3,
    InstallmentFrequency.SEMI_ANNUAL: 6,
    InstallmentFrequency.ANNUAL: 12,
}


def months_increment(frequency: InstallmentFrequency) -> int:
    """Months between consecutive due dates (1, 3, 6 or 12)."""
    return _MONTHS_PER_PERIOD[InstallmentFrequency(frequency)]


def add_months(start: date, months: int) -> date:
    """
    Add calendar months to ``start``.

    When the day of month does not exist in the target month, the excess
    days roll into the following month: Jan 31 + 1 month is Mar 3 (Mar 2
    in a leap year), and Aug 31 + 1 month is Oct 1.
    """
    if months < 0:
        raise ValueError(f"months must be >= 0, got {months}")
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = monthrange(year, month)[1]
    if start.day <= days_in_month:
        return date(year, month, start.day)
    return date(year, month, days_in_month) + timedelta(days=start.day - days_in_month)


def installment_amount(
    total_amount: Decimal,
    down_payment_amount: Decimal,
    installment_count: int,
) -> Decimal:
    """``round2((total - down) / count)``, half-up.  No remainder redistribution."""
    if installment_count < 1:
        raise InvalidScheduleError(f"installment_count must be >= 1, got {installment_count}")
    return split_evenly(total_amount - down_payment_amount, installment_count)


def calculate_installments(
    amount: Decimal,
    count: int,
    frequency: InstallmentFrequency,
    start_date: date,
) -> tuple[Installment, ...]:
    """
    Build ``count`` pending installments of ``amount``.

    Installment ``k`` (1-based) is due ``(k - 1) * months_increment``
    months after ``start_date``, always measured from ``start_date`` so
    that rollover on one date does not drift into the next.
    """
    if count < 1:
        raise InvalidScheduleError(f"installment_count must be >= 1, got {count}")
    step = months_increment(frequency)
    return tuple(
        Installment(
            number=number,
            amount=amount,
            due_date=add_months(start_date, (number - 1) * step),
        )
        for number in range(1, count + 1)
    )
