"""
Pydantic schemas for API requests, plus response serializers
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..loans import Loan, Payment
from ..penalties import PenaltyAssessment


# Loan schemas
class CreateLoanRequest(BaseModel):
    applicant_name: str
    amount: Decimal = Field(..., description="Principal amount")
    payment_term: int = Field(..., description="Months: 1, 3, 4, 6, 9, 12, 18 or 24")
    loan_type: str = Field(..., description="Cash Advance, Multi-Purpose or Emergency")
    purpose: str
    remarks: str = ""


class EditLoanRequest(BaseModel):
    applicant_name: Optional[str] = None
    amount: Optional[Decimal] = None
    payment_term: Optional[int] = None
    loan_type: Optional[str] = None
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    expected_version: Optional[int] = None

    def changes(self) -> Dict[str, Any]:
        return {
            key: value for key, value in self.model_dump(exclude={"expected_version"}).items()
            if value is not None
        }


class VersionedRequest(BaseModel):
    expected_version: Optional[int] = None


class DenyRequest(VersionedRequest):
    remarks: str


class SalaryRequest(VersionedRequest):
    salary: Decimal


class ReleaseDateRequest(VersionedRequest):
    released_at: datetime


class TransitionRequest(BaseModel):
    transition: str = Field(..., description="approve, deny, release, set_salary, mark_payment_paid, ...")
    payload: Dict[str, Any] = Field(default_factory=dict)


class MarkPaidRequest(BaseModel):
    payment_date: Optional[date] = None
    amount_paid: Optional[Decimal] = None


# Settings / users
class PenaltySettingsRequest(BaseModel):
    penalty_amount: Decimal
    grace_period_days: int


class CreateUserRequest(BaseModel):
    user_id: str
    username: str
    role: str = "user"


class SetRoleRequest(BaseModel):
    role: str


# Computations
class AmortizationRequest(BaseModel):
    principal: Decimal
    term: int


class SchedulePreviewRequest(AmortizationRequest):
    released_at: date


class PenaltyEvaluationRequest(BaseModel):
    due_date: date
    amount: Decimal = Decimal("0")
    status: str = "pending"
    payment_date: Optional[date] = None
    penalty_waived: bool = False
    penalty_deferred: bool = False
    as_of: Optional[date] = None


class CompliancePaymentModel(PenaltyEvaluationRequest):
    amount_paid: Optional[Decimal] = None


class ComplianceRequest(BaseModel):
    payments: List[CompliancePaymentModel]
    as_of: Optional[date] = None


# Serializers
def loan_to_response(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "loan_number": loan.loan_number,
        "applicant_name": loan.applicant_name,
        "amount": str(loan.amount),
        "payment_term": loan.payment_term,
        "loan_type": loan.loan_type.value,
        "purpose": loan.purpose.value,
        "remarks": loan.remarks,
        "salary": str(loan.salary),
        "bookkeeper_checked": loan.bookkeeper_checked,
        "payroll_checked": loan.payroll_checked,
        "status": loan.status.value,
        "denial_remarks": loan.denial_remarks,
        "created_at": loan.created_at.isoformat(),
        "updated_at": loan.updated_at.isoformat(),
        "released_at": loan.released_at.isoformat() if loan.released_at else None,
        "version": loan.version,
    }


def payment_to_response(payment: Payment, assessment: Optional[PenaltyAssessment] = None) -> Dict[str, Any]:
    result = {
        "id": payment.id,
        "loan_id": payment.loan_id,
        "payment_number": payment.payment_number,
        "due_date": payment.due_date.isoformat(),
        "principal_component": str(payment.principal_component),
        "interest_component": str(payment.interest_component),
        "amount": str(payment.amount),
        "status": payment.status.value,
        "payment_date": payment.payment_date.isoformat() if payment.payment_date else None,
        "amount_paid": str(payment.amount_paid) if payment.amount_paid is not None else None,
        "penalty_waived": payment.penalty_waived,
        "penalty_deferred": payment.penalty_deferred,
    }
    if assessment is not None:
        result["penalty"] = assessment_to_response(assessment)
    return result


def assessment_to_response(assessment: PenaltyAssessment) -> Dict[str, Any]:
    return {
        "days_past_due": assessment.days_past_due,
        "is_late": assessment.is_late,
        "is_overdue": assessment.is_overdue,
        "penalty": str(assessment.penalty),
        "waived_amount": str(assessment.waived_amount),
        "deferred_amount": str(assessment.deferred_amount),
    }
