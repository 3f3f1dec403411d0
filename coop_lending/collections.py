"""
Collections Module

Read-side views used by bookkeepers and approvers: past-due installments,
payments carrying active penalties, an applicant's other open loans and
their repayment compliance.

Penalties are evaluated fresh on every call against the supplied date.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .compliance import ComplianceAggregator, ComplianceReport
from .loans import ACTIVE_STATUSES, Loan, LoanRepository, LoanStatus, Payment
from .penalties import PenaltyAssessment, PenaltyEvaluator, PenaltySettingsStore


@dataclass
class CollectionItem:
    """One installment together with its loan and current penalty"""
    loan: Loan
    payment: Payment
    assessment: PenaltyAssessment

    @property
    def days_overdue(self) -> int:
        return self.assessment.days_past_due

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan.id,
            "loan_number": self.loan.loan_number,
            "applicant_name": self.loan.applicant_name,
            "payment_id": self.payment.id,
            "payment_number": self.payment.payment_number,
            "due_date": self.payment.due_date.isoformat(),
            "amount": str(self.payment.amount),
            "status": self.payment.status.value,
            "days_overdue": self.days_overdue,
            "penalty": str(self.assessment.penalty),
            "penalty_waived": self.payment.penalty_waived,
            "penalty_deferred": self.payment.penalty_deferred,
        }


class CollectionsManager:
    """Builds collection worklists from loans and payments"""

    def __init__(
        self,
        repository: LoanRepository,
        settings_store: PenaltySettingsStore,
        evaluator: Optional[PenaltyEvaluator] = None,
        aggregator: Optional[ComplianceAggregator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.settings_store = settings_store
        self.evaluator = evaluator or PenaltyEvaluator()
        self.aggregator = aggregator or ComplianceAggregator(self.evaluator)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _today(self, as_of: Optional[date]) -> date:
        return as_of if as_of is not None else self.clock().date()

    def _collectible(self):
        for status in (LoanStatus.RELEASED, LoanStatus.FULLY_PAID):
            for loan in self.repository.list_loans(status):
                yield loan, self.repository.payments_for(loan.id)

    def past_due_payments(self, as_of: Optional[date] = None) -> List[CollectionItem]:
        """
        Unpaid installments of released loans whose due date has passed,
        most overdue first.
        """
        today = self._today(as_of)
        settings = self.settings_store.get()
        items = []
        for loan in self.repository.list_loans(LoanStatus.RELEASED):
            for payment in self.repository.payments_for(loan.id):
                if payment.is_paid or payment.due_date >= today:
                    continue
                items.append(CollectionItem(loan, payment, self.evaluator.evaluate(payment, today, settings)))
        items.sort(key=lambda item: (-item.days_overdue, item.loan.loan_number, item.payment.payment_number))
        return items

    def active_penalties(self, as_of: Optional[date] = None) -> List[CollectionItem]:
        """Installments whose penalty is currently owed (not waived or deferred)"""
        today = self._today(as_of)
        settings = self.settings_store.get()
        items = []
        for loan, payments in self._collectible():
            for payment in payments:
                assessment = self.evaluator.evaluate(payment, today, settings)
                if assessment.penalty > 0:
                    items.append(CollectionItem(loan, payment, assessment))
        items.sort(key=lambda item: (item.loan.loan_number, item.payment.payment_number))
        return items

    def penalty_total(self, as_of: Optional[date] = None) -> Decimal:
        return sum((item.assessment.penalty for item in self.active_penalties(as_of)), Decimal("0"))

    def other_active_loans(self, loan_id: str) -> List[Loan]:
        """The applicant's approved or released loans other than this one"""
        loan = self.repository.require(loan_id)
        return [
            other for other in self.repository.find_by_applicant(loan.applicant_name)
            if other.id != loan.id and other.status in ACTIVE_STATUSES
        ]

    def applicant_compliance(self, loan_id: str, as_of: Optional[date] = None) -> ComplianceReport:
        """
        Repayment compliance of the applicant across their other loans,
        excluding the loan being evaluated.
        """
        loan = self.repository.require(loan_id)
        payments = []
        for other in self.repository.find_by_applicant(loan.applicant_name):
            if other.id != loan.id:
                payments.extend(self.repository.payments_for(other.id))
        return self.aggregator.aggregate(payments, self._today(as_of), self.settings_store.get())
