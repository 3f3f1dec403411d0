"""
Loan endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from .dependencies import LendingSystem, get_acting_user, get_lending_system
from .errors import status_for_code
from .schemas import (
    CreateLoanRequest, DenyRequest, EditLoanRequest, MarkPaidRequest, ReleaseDateRequest,
    SalaryRequest, TransitionRequest, VersionedRequest, loan_to_response, payment_to_response,
)
from ..exceptions import ValidationError
from ..lifecycle import TransitionResult
from ..loans import LoanStatus


router = APIRouter()


def _result_to_response(result: TransitionResult) -> dict:
    body = {
        "success": result.success,
        "changed": result.changed,
        "loan": loan_to_response(result.loan) if result.loan else None,
    }
    if result.payment is not None:
        body["payment"] = payment_to_response(result.payment)
    return body


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Submit a new loan application"""
    loan = system.state_machine.submit_application(
        applicant_name=request.applicant_name,
        amount=request.amount,
        payment_term=request.payment_term,
        loan_type=request.loan_type,
        purpose=request.purpose,
        remarks=request.remarks,
        acting_user=acting_user,
    )
    return loan_to_response(loan)


@router.get("")
async def list_loans(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans, optionally filtered by status"""
    loan_status = None
    if status_filter:
        try:
            loan_status = LoanStatus(status_filter)
        except ValueError:
            raise ValidationError(f"Unknown loan status {status_filter!r}") from None
    loans = system.repository.list_loans(loan_status)
    return {"loans": [loan_to_response(loan) for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Loan details; viewing applies automatic checklist updates"""
    loan = system.state_machine.observe(loan_id, acting_user)
    return loan_to_response(loan)


@router.patch("/{loan_id}")
async def edit_loan(
    loan_id: str,
    request: EditLoanRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Amend a pending application"""
    loan = system.state_machine.edit_application(
        loan_id, acting_user, request.changes(), request.expected_version
    )
    return loan_to_response(loan)


@router.post("/{loan_id}/transitions")
async def request_transition(
    loan_id: str,
    request: TransitionRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Command interface: apply a named transition and report the outcome"""
    result = system.state_machine.request_transition(
        loan_id, request.transition, acting_user, request.payload
    )
    if result.success:
        return _result_to_response(result)
    return JSONResponse(
        status_code=status_for_code(result.error_code),
        content={
            "success": False,
            "error": result.error_code,
            "detail": result.reason,
            "retryable": result.retryable,
            "loan": loan_to_response(result.loan) if result.loan else None,
        },
    )


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: VersionedRequest = VersionedRequest(),
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    loan = system.state_machine.approve(loan_id, acting_user, request.expected_version)
    return loan_to_response(loan)


@router.post("/{loan_id}/deny")
async def deny_loan(
    loan_id: str,
    request: DenyRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    loan = system.state_machine.deny(loan_id, acting_user, request.remarks, request.expected_version)
    return loan_to_response(loan)


@router.post("/{loan_id}/release")
async def release_loan(
    loan_id: str,
    request: VersionedRequest = VersionedRequest(),
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Release funds and create the payment schedule"""
    loan = system.state_machine.release(loan_id, acting_user, request.expected_version)
    payments = system.repository.payments_for(loan.id)
    return {
        "loan": loan_to_response(loan),
        "payments": [payment_to_response(p) for p in payments],
    }


@router.put("/{loan_id}/salary")
async def set_salary(
    loan_id: str,
    request: SalaryRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    loan = system.state_machine.set_salary(loan_id, request.salary, acting_user, request.expected_version)
    return loan_to_response(loan)


@router.put("/{loan_id}/release-date")
async def correct_release_date(
    loan_id: str,
    request: ReleaseDateRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Admin correction of the release date; due dates follow"""
    loan = system.state_machine.correct_release_date(
        loan_id, request.released_at, acting_user, request.expected_version
    )
    payments = system.repository.payments_for(loan.id)
    return {
        "loan": loan_to_response(loan),
        "payments": [payment_to_response(p) for p in payments],
    }


@router.get("/{loan_id}/payments")
async def list_payments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Payment schedule with penalties evaluated as of today"""
    settings = system.settings_store.get()
    today = system.collections_manager.clock().date()
    payments = system.state_machine.payments(loan_id)
    return {
        "payments": [
            payment_to_response(p, system.penalty_evaluator.evaluate(p, today, settings))
            for p in payments
        ],
        "penalty_settings": settings.to_dict(),
    }


@router.post("/{loan_id}/payments/{payment_id}/pay")
async def mark_payment_paid(
    loan_id: str,
    payment_id: str,
    request: MarkPaidRequest = MarkPaidRequest(),
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    result = system.state_machine.mark_payment_paid(
        loan_id, payment_id, acting_user,
        payment_date=request.payment_date,
        amount_paid=request.amount_paid,
    )
    return _result_to_response(result)


@router.post("/{loan_id}/payments/{payment_id}/waive-penalty")
async def waive_penalty(
    loan_id: str,
    payment_id: str,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    return _result_to_response(system.state_machine.waive_penalty(loan_id, payment_id, acting_user))


@router.post("/{loan_id}/payments/{payment_id}/defer-penalty")
async def defer_penalty(
    loan_id: str,
    payment_id: str,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    return _result_to_response(system.state_machine.defer_penalty(loan_id, payment_id, acting_user))


@router.get("/{loan_id}/compliance")
async def applicant_compliance(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Repayment compliance of the applicant on their other loans"""
    report = system.collections_manager.applicant_compliance(loan_id)
    return report.to_dict()


@router.get("/{loan_id}/other-loans")
async def other_active_loans(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    loans = system.collections_manager.other_active_loans(loan_id)
    return {"loans": [loan_to_response(loan) for loan in loans]}


@router.get("/{loan_id}/risk-narrative")
def risk_narrative(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Advisory commentary from the remote risk service"""
    loan = system.repository.require(loan_id)
    narrative = system.risk_client.assess(loan.applicant_name, loan.amount, loan.salary)
    return narrative.to_dict()
