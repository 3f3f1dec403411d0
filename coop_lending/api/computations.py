"""
Stateless computation endpoints: amortization, schedule preview, penalty and
compliance evaluation
"""

from datetime import datetime, time, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends

from .dependencies import LendingSystem, get_lending_system
from .schemas import (
    AmortizationRequest, ComplianceRequest, PenaltyEvaluationRequest, SchedulePreviewRequest,
    assessment_to_response,
)
from ..exceptions import ValidationError
from ..loans import Loan, LoanPurpose, LoanType, Payment, PaymentStatus


router = APIRouter()


def _payment_from_request(request: PenaltyEvaluationRequest, number: int = 1) -> Payment:
    try:
        payment_status = PaymentStatus(request.status)
    except ValueError:
        raise ValidationError(f"Unknown payment status {request.status!r}") from None
    now = datetime.now(timezone.utc)
    return Payment(
        id=f"preview-{number}",
        created_at=now,
        updated_at=now,
        loan_id="preview",
        payment_number=number,
        due_date=request.due_date,
        principal_component=request.amount,
        interest_component=Decimal("0"),
        amount=request.amount,
        status=payment_status,
        payment_date=request.payment_date,
        amount_paid=getattr(request, "amount_paid", None),
        penalty_waived=request.penalty_waived,
        penalty_deferred=request.penalty_deferred,
    )


@router.post("/amortization")
async def compute_amortization(
    request: AmortizationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Schedule, deductions and net proceeds for a principal and term"""
    return system.calculator.calculate(request.principal, request.term).to_dict()


@router.post("/schedule")
async def preview_schedule(
    request: SchedulePreviewRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installments and due dates a loan would get if released on a date"""
    principal = system.calculator.validate(request.principal, request.term)
    released_at = datetime.combine(request.released_at, time.min, tzinfo=timezone.utc)
    loan = Loan(
        id="preview",
        created_at=released_at,
        updated_at=released_at,
        loan_number=0,
        applicant_name="preview",
        amount=principal,
        payment_term=request.term,
        loan_type=LoanType.CASH_ADVANCE,
        purpose=LoanPurpose.BILLS_PAYMENT,
    )
    payments = system.schedule_generator.generate(loan, released_at)
    return {
        "released_at": request.released_at.isoformat(),
        "payments": [
            {
                "payment_number": p.payment_number,
                "due_date": p.due_date.isoformat(),
                "principal_component": str(p.principal_component),
                "interest_component": str(p.interest_component),
                "amount": str(p.amount),
            }
            for p in payments
        ],
    }


@router.post("/penalty")
async def evaluate_penalty(
    request: PenaltyEvaluationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Penalty owed on one installment under the current settings"""
    settings = system.settings_store.get()
    as_of = request.as_of or system.collections_manager.clock().date()
    assessment = system.penalty_evaluator.evaluate(_payment_from_request(request), as_of, settings)
    return {
        "assessment": assessment_to_response(assessment),
        "penalty_settings": settings.to_dict(),
    }


@router.post("/compliance")
async def evaluate_compliance(
    request: ComplianceRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Compliance report and risk tier over a list of installments"""
    payments = [
        _payment_from_request(item, number) for number, item in enumerate(request.payments, start=1)
    ]
    as_of = request.as_of or system.collections_manager.clock().date()
    report = system.compliance_aggregator.aggregate(payments, as_of, system.settings_store.get())
    return report.to_dict()
