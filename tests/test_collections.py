"""
Tests for collection worklists and applicant compliance lookups
"""

import pytest
from datetime import date
from decimal import Decimal

from conftest import approved_loan, released_loan, submit
from coop_lending.collections import CollectionsManager
from coop_lending.compliance import RiskTier
from coop_lending.loans import LoanStatus


@pytest.fixture
def manager(repository, settings_store, clock):
    return CollectionsManager(repository, settings_store, clock=clock)


class TestPastDue:

    def test_nothing_due_on_release_day(self, machine, manager):
        released_loan(machine)
        assert manager.past_due_payments() == []

    def test_lists_unpaid_installments_past_due(self, machine, manager):
        loan = released_loan(machine)

        items = manager.past_due_payments(as_of=date(2024, 4, 1))

        assert [item.payment.payment_number for item in items] == [1, 2]
        assert items[0].days_overdue == 46
        assert items[0].loan.id == loan.id

    def test_most_overdue_first_across_loans(self, machine, manager):
        first = released_loan(machine)
        second = released_loan(machine, name="Jose Rizal")

        items = manager.past_due_payments(as_of=date(2024, 3, 20))
        assert [(item.loan.id, item.payment.payment_number) for item in items] == [
            (first.id, 1), (second.id, 1), (first.id, 2), (second.id, 2),
        ]

    def test_paid_installments_are_excluded(self, machine, manager, repository):
        loan = released_loan(machine)
        first = repository.payments_for(loan.id)[0]
        machine.mark_payment_paid(loan.id, first.id, "bk", payment_date=date(2024, 2, 15))

        items = manager.past_due_payments(as_of=date(2024, 3, 1))
        assert items == []

    def test_to_dict(self, machine, manager):
        released_loan(machine)
        data = manager.past_due_payments(as_of=date(2024, 2, 20))[0].to_dict()
        assert data["payment_number"] == 1
        assert data["days_overdue"] == 5
        assert data["penalty"] == "500"


class TestActivePenalties:

    def test_penalties_after_grace(self, machine, manager):
        released_loan(machine)

        assert manager.active_penalties(as_of=date(2024, 2, 18)) == []
        items = manager.active_penalties(as_of=date(2024, 2, 19))
        assert len(items) == 1
        assert manager.penalty_total(as_of=date(2024, 3, 19)) == Decimal("1000")

    def test_late_paid_installment_keeps_penalty(self, machine, manager, repository):
        loan = released_loan(machine)
        first = repository.payments_for(loan.id)[0]
        machine.mark_payment_paid(loan.id, first.id, "bk", payment_date=date(2024, 2, 25))

        items = manager.active_penalties(as_of=date(2024, 3, 1))
        assert [item.payment.id for item in items] == [first.id]

    def test_waived_penalty_disappears(self, machine, manager, repository):
        loan = released_loan(machine)
        first = repository.payments_for(loan.id)[0]
        machine.waive_penalty(loan.id, first.id, "ap")

        assert manager.active_penalties(as_of=date(2024, 3, 1)) == []

    def test_uses_current_settings(self, machine, manager, settings_store):
        released_loan(machine)
        settings_store.update(Decimal("200"), 10, "admin")

        assert manager.active_penalties(as_of=date(2024, 2, 25)) == []
        assert manager.penalty_total(as_of=date(2024, 2, 26)) == Decimal("200")


class TestApplicantHistory:

    def test_other_active_loans(self, machine, manager):
        current = submit(machine, name="Maria Santos")
        approved = approved_loan(machine, name="maria  santos")
        submit(machine, name="Maria Santos")           # pending, not active
        submit(machine, name="Jose Rizal")

        others = manager.other_active_loans(current.id)
        assert [loan.id for loan in others] == [approved.id]

    def test_compliance_excludes_the_loan_under_review(self, machine, manager, repository):
        previous = released_loan(machine)
        for payment in repository.payments_for(previous.id)[:2]:
            machine.mark_payment_paid(loan_id=previous.id, payment_id=payment.id,
                                      acting_user="bk", payment_date=payment.due_date)
        current = submit(machine)

        report = manager.applicant_compliance(current.id, as_of=date(2024, 3, 20))

        assert report.paid_on_time == 2
        assert report.compliance_rate == 100
        assert report.risk_tier == RiskTier.LOW

    def test_past_due_history_is_critical(self, machine, manager):
        released_loan(machine)
        current = submit(machine)

        report = manager.applicant_compliance(current.id, as_of=date(2024, 3, 1))

        assert report.past_due == 1
        assert report.risk_tier == RiskTier.CRITICAL

    def test_first_time_applicant(self, machine, manager):
        current = submit(machine)
        report = manager.applicant_compliance(current.id)
        assert report.evaluated_count == 0
        assert report.risk_tier == RiskTier.LOW

    def test_fully_paid_loans_still_count(self, machine, manager, repository):
        previous = released_loan(machine, term=1)
        only = repository.payments_for(previous.id)[0]
        result = machine.mark_payment_paid(previous.id, only.id, "bk", payment_date=date(2024, 2, 25))
        assert result.loan.status == LoanStatus.FULLY_PAID

        current = submit(machine)
        report = manager.applicant_compliance(current.id, as_of=date(2024, 3, 1))
        assert report.late == 1
        assert report.compliance_rate == 0
        assert report.risk_tier == RiskTier.HIGH
