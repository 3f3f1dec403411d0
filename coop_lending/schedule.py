"""
Payment Schedule Module

Turns an amortization schedule and a release date into dated payment
records, and re-anchors existing records when the release date is corrected.
"""

from datetime import datetime, date, timezone
from typing import List, Optional, Union
import calendar
import uuid

from .amortization import AmortizationCalculator
from .loans import Loan, Payment, PaymentStatus


def add_months(start_date: date, months: int) -> date:
    """Add calendar months to a date, clamping to the end of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


class PaymentScheduleGenerator:
    """Builds payment records for a released loan"""

    def __init__(self, calculator: Optional[AmortizationCalculator] = None):
        self.calculator = calculator or AmortizationCalculator()

    def generate(self, loan: Loan, released_at: Optional[Union[date, datetime]]) -> List[Payment]:
        """
        Create one pending payment per month of the loan's term.

        Due dates fall on the release day-of-month, clamped to month end.
        Returns an empty list when the term is not positive or there is no
        release date; the caller is responsible for not generating twice.
        """
        if not loan.payment_term or loan.payment_term <= 0 or released_at is None:
            return []

        anchor = _as_date(released_at)
        result = self.calculator.calculate(loan.amount, loan.payment_term)
        now = datetime.now(timezone.utc)

        payments = []
        for row in result.schedule:
            payments.append(Payment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                payment_number=row.period,
                due_date=add_months(anchor, row.period),
                principal_component=row.principal,
                interest_component=row.interest,
                amount=row.amount,
                status=PaymentStatus.PENDING,
            ))
        return payments

    def reanchor(self, payments: List[Payment], released_at: Union[date, datetime]) -> List[Payment]:
        """
        Recompute due dates of existing payments from a corrected release date.

        The same records come back (ordered by payment number) with only
        ``due_date`` and ``updated_at`` changed; nothing is created.
        """
        anchor = _as_date(released_at)
        now = datetime.now(timezone.utc)
        updated = []
        for payment in sorted(payments, key=lambda p: p.payment_number):
            payment.due_date = add_months(anchor, payment.payment_number)
            payment.updated_at = now
            updated.append(payment)
        return updated
