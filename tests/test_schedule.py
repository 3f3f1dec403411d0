"""
Tests for payment schedule generation and re-anchoring
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from coop_lending.loans import Loan, LoanPurpose, LoanType, PaymentStatus
from coop_lending.schedule import PaymentScheduleGenerator, add_months


def make_loan(amount="10000", term=6):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Loan(
        id="loan-1",
        created_at=now,
        updated_at=now,
        loan_number=1,
        applicant_name="Maria Santos",
        amount=Decimal(amount),
        payment_term=term,
        loan_type=LoanType.MULTI_PURPOSE,
        purpose=LoanPurpose.BILLS_PAYMENT,
    )


class TestAddMonths:

    def test_same_day_next_month(self):
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)

    def test_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 3, 31), 1) == date(2024, 4, 30)

    def test_crosses_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_negative_months(self):
        assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)


class TestPaymentScheduleGenerator:

    def setup_method(self):
        self.generator = PaymentScheduleGenerator()

    def test_generates_one_payment_per_month(self):
        payments = self.generator.generate(make_loan(), datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))

        assert [p.payment_number for p in payments] == [1, 2, 3, 4, 5, 6]
        assert [p.due_date for p in payments] == [
            date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15),
            date(2024, 5, 15), date(2024, 6, 15), date(2024, 7, 15),
        ]
        assert all(p.status == PaymentStatus.PENDING for p in payments)
        assert all(p.loan_id == "loan-1" for p in payments)

    def test_amounts_follow_amortization(self):
        payments = self.generator.generate(make_loan(), date(2024, 1, 15))

        assert [p.principal_component for p in payments] == [Decimal("1666")] * 5 + [Decimal("1670")]
        assert payments[0].interest_component == Decimal("150.00")
        assert payments[0].amount == Decimal("1816.00")

    def test_month_end_release(self):
        payments = self.generator.generate(make_loan(term=3), date(2024, 1, 31))
        assert [p.due_date for p in payments] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]

    def test_no_release_date_means_no_payments(self):
        assert self.generator.generate(make_loan(), None) == []

    def test_non_positive_term_means_no_payments(self):
        assert self.generator.generate(make_loan(term=0), date(2024, 1, 15)) == []

    def test_payment_ids_are_unique(self):
        payments = self.generator.generate(make_loan(term=12), date(2024, 1, 15))
        assert len({p.id for p in payments}) == 12


class TestReanchor:

    def setup_method(self):
        self.generator = PaymentScheduleGenerator()

    def test_moves_due_dates_in_place(self):
        payments = self.generator.generate(make_loan(term=3), date(2024, 1, 15))
        ids = [p.id for p in payments]
        amounts = [p.amount for p in payments]

        moved = self.generator.reanchor(list(reversed(payments)), date(2024, 1, 20))

        assert [p.id for p in moved] == ids
        assert [p.amount for p in moved] == amounts
        assert [p.due_date for p in moved] == [date(2024, 2, 20), date(2024, 3, 20), date(2024, 4, 20)]
