"""
Loan Lifecycle Module

The state machine that decides which loan transitions are legal and who may
trigger them:

    pending -> approved -> released -> fully-paid
    pending -> denied

Every guarded mutation runs as one atomic read-check-write against the stored
loan; callers may pass the version they read as ``expected_version`` so a
stale client cannot overwrite a concurrent change. Audit entries and domain
events are written only after the change has committed; a failed audit write
is logged and leaves the committed change in place.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
import uuid

from .amortization import AmortizationCalculator
from .audit import AuditEventType, AuditTrail
from .events import DomainEvent, EventDispatcher, EventPublisherMixin, loan_event_data
from .exceptions import (
    ConflictError, InvalidStateTransition, LendingError, PrerequisiteNotMet,
    StorageError, ValidationError,
)
from .loans import (
    Loan, LoanPurpose, LoanRepository, LoanStatus, LoanType, Payment, PaymentStatus,
)
from .logging_config import get_logger, log_action
from .rbac import ADMINS, APPROVERS, COLLECTORS, PAYROLL, RELEASERS, Role, RolePolicy
from .schedule import PaymentScheduleGenerator


logger = get_logger("coop_lending.lifecycle")

MIN_APPLICANT_NAME_LENGTH = 2


class Transition(Enum):
    """Commands accepted by request_transition"""
    APPROVE = "approve"
    DENY = "deny"
    RELEASE = "release"
    SET_SALARY = "set_salary"
    MARK_PAYMENT_PAID = "mark_payment_paid"
    WAIVE_PENALTY = "waive_penalty"
    DEFER_PENALTY = "defer_penalty"
    CORRECT_RELEASE_DATE = "correct_release_date"
    EDIT_APPLICATION = "edit_application"


@dataclass
class TransitionResult:
    """Outcome of a command: success, or a rejection stating the unmet condition"""
    success: bool
    loan: Optional[Loan] = None
    payment: Optional[Payment] = None
    changed: bool = True
    reason: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False

    @classmethod
    def rejected(cls, error: LendingError, loan: Optional[Loan] = None) -> 'TransitionResult':
        return cls(
            success=False,
            loan=loan,
            changed=False,
            reason=error.message,
            error_code=error.code,
            retryable=getattr(error, "retryable", False),
        )


def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}") from e


def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    else:
        try:
            result = datetime.fromisoformat(str(value))
        except ValueError as e:
            raise ValidationError(f"{field_name} must be an ISO timestamp, got {value!r}") from e
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _parse_amount(value: Any, field_name: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number, got {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return amount


class LoanStateMachine(EventPublisherMixin):
    """
    Gatekeeper for every loan mutation.

    Role checks go through the injected RolePolicy; checklist flags and
    source states are read from the stored loan inside the same atomic
    block that writes the change.
    """

    def __init__(
        self,
        repository: LoanRepository,
        policy: RolePolicy,
        calculator: Optional[AmortizationCalculator] = None,
        schedule_generator: Optional[PaymentScheduleGenerator] = None,
        audit: Optional[AuditTrail] = None,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.storage = repository.storage
        self.policy = policy
        self.calculator = calculator or AmortizationCalculator()
        self.schedule_generator = schedule_generator or PaymentScheduleGenerator(self.calculator)
        self.audit = audit
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        if dispatcher is not None:
            self.set_event_dispatcher(dispatcher)

    # ------------------------------------------------------------------
    # Command interface

    def request_transition(self, loan_id: str, transition: Union[Transition, str],
                           acting_user: Optional[str],
                           payload: Optional[Dict[str, Any]] = None) -> TransitionResult:
        """
        Apply a named transition and report the outcome instead of raising.

        Args:
            loan_id: Target loan
            transition: Transition or its string value
            acting_user: User id whose role is checked
            payload: Transition arguments; ``expected_version`` is honoured
                by every transition

        Returns:
            TransitionResult; on rejection ``reason`` names the unmet
            condition and ``retryable`` tells the caller whether re-reading
            and retrying can succeed
        """
        payload = dict(payload or {})
        try:
            try:
                transition = Transition(transition)
            except ValueError:
                raise ValidationError(f"Unknown transition {transition!r}")
            return self._dispatch(loan_id, transition, acting_user, payload)
        except LendingError as e:
            logger.warning(
                f"Rejected {getattr(transition, 'value', transition)} on loan {loan_id}: {e.message}"
            )
            return TransitionResult.rejected(e, self.repository.get(loan_id))

    def _dispatch(self, loan_id: str, transition: Transition, acting_user: Optional[str],
                  payload: Dict[str, Any]) -> TransitionResult:
        expected_version = payload.get("expected_version")

        if transition == Transition.APPROVE:
            return TransitionResult(True, self.approve(loan_id, acting_user, expected_version))
        if transition == Transition.DENY:
            loan = self.deny(loan_id, acting_user, payload.get("remarks", ""), expected_version)
            return TransitionResult(True, loan)
        if transition == Transition.RELEASE:
            return TransitionResult(True, self.release(loan_id, acting_user, expected_version))
        if transition == Transition.SET_SALARY:
            if "salary" not in payload:
                raise ValidationError("salary is required")
            loan = self.set_salary(loan_id, payload["salary"], acting_user, expected_version)
            return TransitionResult(True, loan)
        if transition == Transition.CORRECT_RELEASE_DATE:
            if not payload.get("released_at"):
                raise ValidationError("released_at is required")
            loan = self.correct_release_date(loan_id, payload["released_at"], acting_user, expected_version)
            return TransitionResult(True, loan)
        if transition == Transition.EDIT_APPLICATION:
            changes = payload.get("changes") or {}
            loan = self.edit_application(loan_id, acting_user, changes, expected_version)
            return TransitionResult(True, loan)

        payment_id = payload.get("payment_id")
        if not payment_id:
            raise ValidationError("payment_id is required")
        if transition == Transition.MARK_PAYMENT_PAID:
            return self.mark_payment_paid(
                loan_id, payment_id, acting_user,
                payment_date=payload.get("payment_date"),
                amount_paid=payload.get("amount_paid"),
            )
        if transition == Transition.WAIVE_PENALTY:
            return self.waive_penalty(loan_id, payment_id, acting_user)
        return self.defer_penalty(loan_id, payment_id, acting_user)

    # ------------------------------------------------------------------
    # Application

    def _validate_application(self, applicant_name: str, amount: Any, payment_term: Any,
                              loan_type: Any, purpose: Any) -> Dict[str, Any]:
        name = " ".join(str(applicant_name or "").split())
        if len(name) < MIN_APPLICANT_NAME_LENGTH:
            raise ValidationError(
                f"Applicant name must be at least {MIN_APPLICANT_NAME_LENGTH} characters"
            )
        if isinstance(payment_term, str) and payment_term.strip().isdigit():
            payment_term = int(payment_term)
        principal = self.calculator.validate(amount, payment_term)
        try:
            loan_type = LoanType(loan_type)
        except ValueError:
            allowed = ", ".join(t.value for t in LoanType)
            raise ValidationError(f"Loan type must be one of {allowed}, got {loan_type!r}")
        try:
            purpose = LoanPurpose(purpose)
        except ValueError:
            allowed = ", ".join(p.value for p in LoanPurpose)
            raise ValidationError(f"Purpose must be one of {allowed}, got {purpose!r}")
        return {
            "applicant_name": name,
            "amount": principal,
            "payment_term": payment_term,
            "loan_type": loan_type,
            "purpose": purpose,
        }

    def submit_application(self, applicant_name: str, amount: Any, payment_term: Any,
                           loan_type: Any, purpose: Any, remarks: str = "",
                           acting_user: Optional[str] = None) -> Loan:
        """
        Create a pending loan with the next loan number.

        Raises:
            ValidationError: If any field is invalid (InvalidLoanTerms for
                principal/term); nothing is stored in that case
        """
        fields = self._validate_application(applicant_name, amount, payment_term, loan_type, purpose)
        now = self.clock()

        with self.storage.atomic():
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_number=self.repository.next_loan_number(),
                remarks=remarks or "",
                created_by=acting_user,
                **fields
            )
            self.repository.insert(loan)

        self._committed(loan, DomainEvent.LOAN_CREATED, AuditEventType.LOAN_CREATED, acting_user,
                        "create_application", {"amount": str(loan.amount), "term": loan.payment_term})
        return loan

    def edit_application(self, loan_id: str, acting_user: Optional[str],
                         changes: Dict[str, Any], expected_version: Optional[int] = None) -> Loan:
        """
        Change the terms of a pending application (creator or admin only).

        Editing does not reset checklist flags; an approver sees the
        amended terms.
        """
        editable = {"applicant_name", "amount", "payment_term", "loan_type", "purpose", "remarks"}
        unknown = set(changes) - editable
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.PENDING}, "edit")
            if acting_user != loan.created_by and not self.policy.has_role(acting_user, ADMINS):
                raise PrerequisiteNotMet(
                    "Only the applicant's encoder or admin may edit an application",
                    prerequisite="role",
                )
            merged = {
                "applicant_name": changes.get("applicant_name", loan.applicant_name),
                "amount": changes.get("amount", loan.amount),
                "payment_term": changes.get("payment_term", loan.payment_term),
                "loan_type": changes.get("loan_type", loan.loan_type),
                "purpose": changes.get("purpose", loan.purpose),
            }
            fields = self._validate_application(**merged)
            fields["remarks"] = changes.get("remarks", loan.remarks) or ""
            loan = self.repository.update(replace(loan, **fields), loan.version)

        self._committed(loan, DomainEvent.LOAN_UPDATED, AuditEventType.LOAN_UPDATED, acting_user,
                        "edit_application", {"changed": sorted(changes)})
        return loan

    # ------------------------------------------------------------------
    # Auto-verification

    def observe(self, loan_id: str, viewer: Optional[str]) -> Loan:
        """
        Load a loan on behalf of a viewer and apply automatic checklist
        updates: a pending loan seen by a bookkeeper becomes
        bookkeeper-checked. Calling it again changes nothing.
        """
        with self.storage.atomic():
            loan = self.repository.require(loan_id)
            if (loan.status != LoanStatus.PENDING or loan.bookkeeper_checked
                    or not self.policy.has_role(viewer, {Role.BOOKKEEPER})):
                return loan
            loan = self.repository.update(replace(loan, bookkeeper_checked=True), loan.version)

        self._committed(loan, DomainEvent.LOAN_VERIFIED, AuditEventType.LOAN_VERIFIED, viewer,
                        "bookkeeper_verify", {"checklist": "bookkeeper_checked"})
        return loan

    def set_salary(self, loan_id: str, salary: Any, acting_user: Optional[str],
                   expected_version: Optional[int] = None) -> Loan:
        """
        Record the applicant's salary. The first positive salary marks the
        loan payroll-checked; a salary of zero clears the flag again.
        """
        amount = _parse_amount(salary, "salary")
        if amount < 0:
            raise ValidationError("Salary cannot be negative")

        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.PENDING}, "update the salary of")
            self.policy.require(acting_user, PAYROLL, "enter salaries")
            newly_checked = amount > 0 and not loan.payroll_checked
            loan = self.repository.update(
                replace(loan, salary=amount, payroll_checked=amount > 0), loan.version
            )

        event = DomainEvent.LOAN_VERIFIED if newly_checked else DomainEvent.LOAN_UPDATED
        audit_type = AuditEventType.LOAN_VERIFIED if newly_checked else AuditEventType.LOAN_UPDATED
        self._committed(loan, event, audit_type, acting_user, "set_salary",
                        {"salary": str(amount), "payroll_checked": loan.payroll_checked})
        return loan

    # ------------------------------------------------------------------
    # Guarded transitions

    def approve(self, loan_id: str, acting_user: Optional[str],
                expected_version: Optional[int] = None) -> Loan:
        """
        pending -> approved.

        Raises:
            InvalidStateTransition: If the loan is not pending
            PrerequisiteNotMet: If the user is not an approver/admin, or a
                checklist item (bookkeeper, then payroll) is unmet
            ConflictError: If expected_version is stale
        """
        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.PENDING}, "approve")
            self.policy.require(acting_user, APPROVERS, "approve loans")
            if not loan.bookkeeper_checked:
                raise PrerequisiteNotMet(
                    "Bookkeeper must verify the loan before approval.",
                    prerequisite="bookkeeper_checked",
                )
            if not loan.payroll_checked:
                raise PrerequisiteNotMet(
                    "Payroll Checker must verify the salary before approval.",
                    prerequisite="payroll_checked",
                )
            loan = self.repository.update(replace(loan, status=LoanStatus.APPROVED), loan.version)

        self._committed(loan, DomainEvent.LOAN_APPROVED, AuditEventType.LOAN_APPROVED,
                        acting_user, "approve", {})
        return loan

    def deny(self, loan_id: str, acting_user: Optional[str], remarks: str,
             expected_version: Optional[int] = None) -> Loan:
        """pending -> denied; requires payroll verification and a remark"""
        remarks = (remarks or "").strip()

        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.PENDING}, "deny")
            self.policy.require(acting_user, APPROVERS, "deny loans")
            if not loan.payroll_checked:
                raise PrerequisiteNotMet(
                    "Payroll Checker must verify the salary before denial.",
                    prerequisite="payroll_checked",
                )
            if not remarks:
                raise ValidationError("Denial remarks are required")
            loan = self.repository.update(
                replace(loan, status=LoanStatus.DENIED, denial_remarks=remarks), loan.version
            )

        self._committed(loan, DomainEvent.LOAN_DENIED, AuditEventType.LOAN_DENIED,
                        acting_user, "deny", {"remarks": remarks})
        return loan

    def release(self, loan_id: str, acting_user: Optional[str],
                expected_version: Optional[int] = None) -> Loan:
        """
        approved -> released.

        Stamps the release time, flips the status and inserts the complete
        payment schedule in one atomic block; none of it is visible unless
        all of it is.
        """
        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.APPROVED}, "release")
            self.policy.require(acting_user, RELEASERS, "release loans")
            if self.repository.has_payments(loan.id):
                raise InvalidStateTransition(
                    f"Loan {loan.loan_number} already has a payment schedule"
                )

            released_at = self.clock()
            loan = replace(loan, status=LoanStatus.RELEASED, released_at=released_at)
            payments = self.schedule_generator.generate(loan, released_at)
            loan = self.repository.update(loan, loan.version)
            self.repository.save_payments(payments)

        self._committed(loan, DomainEvent.LOAN_RELEASED, AuditEventType.LOAN_RELEASED,
                        acting_user, "release",
                        {"released_at": loan.released_at.isoformat(), "payments": len(payments)})
        return loan

    def correct_release_date(self, loan_id: str, released_at: Any, acting_user: Optional[str],
                             expected_version: Optional[int] = None) -> Loan:
        """
        Admin data fix: move the release date and re-anchor the due dates of
        the existing payments in place.
        """
        new_released_at = _parse_datetime(released_at, "released_at")

        with self.storage.atomic():
            loan = self._load(loan_id, expected_version)
            self._require_status(loan, {LoanStatus.RELEASED, LoanStatus.FULLY_PAID},
                                 "correct the release date of")
            self.policy.require(acting_user, ADMINS, "correct release dates")
            previous = loan.released_at
            payments = self.schedule_generator.reanchor(
                self.repository.payments_for(loan.id), new_released_at
            )
            self.repository.save_payments(payments)
            loan = self.repository.update(replace(loan, released_at=new_released_at), loan.version)

        self._committed(loan, DomainEvent.SCHEDULE_REANCHORED, AuditEventType.RELEASE_DATE_CORRECTED,
                        acting_user, "correct_release_date",
                        {"from": previous.isoformat() if previous else None,
                         "to": new_released_at.isoformat(), "payments": len(payments)})
        return loan

    # ------------------------------------------------------------------
    # Payment operations

    def mark_payment_paid(self, loan_id: str, payment_id: str, acting_user: Optional[str],
                          payment_date: Any = None, amount_paid: Any = None) -> TransitionResult:
        """
        Record collection of one installment.

        Marking an already-paid payment changes nothing. After every
        payment update the loan moves to fully-paid if no pending payment
        is left; the check runs in the same atomic block so two concurrent
        "last" payments cannot both trigger it.
        """
        paid_on = _parse_date(payment_date, "payment_date")
        collected = _parse_amount(amount_paid, "amount_paid") if amount_paid is not None else None
        if collected is not None and collected < 0:
            raise ValidationError("Amount paid cannot be negative")

        settled = False
        with self.storage.atomic():
            loan = self.repository.require(loan_id)
            self._require_status(loan, {LoanStatus.RELEASED, LoanStatus.FULLY_PAID},
                                 "collect payments on")
            self.policy.require(acting_user, COLLECTORS, "mark payments as paid")
            payment = self.repository.get_payment(loan_id, payment_id)
            if payment.is_paid:
                return TransitionResult(True, loan, payment, changed=False)

            payment.status = PaymentStatus.PAID
            payment.payment_date = paid_on or self.clock().date()
            payment.amount_paid = collected if collected is not None else payment.amount
            payment.updated_at = datetime.now(timezone.utc)
            self.repository.save_payment(payment)
            loan, settled = self._settle_if_fully_paid(loan)

        self._audit(AuditEventType.PAYMENT_MARKED_PAID, "payment", payment.id, acting_user, {
            "loan_id": loan.id,
            "payment_number": payment.payment_number,
            "payment_date": payment.payment_date.isoformat(),
            "amount_paid": str(payment.amount_paid),
        })
        log_action(logger, "info", f"Payment {payment.payment_number} of loan {loan.loan_number} paid",
                   user_id=acting_user, action="mark_payment_paid", resource=f"payment:{payment.id}")
        self.publish_event(DomainEvent.PAYMENT_PAID, "payment", payment.id, {
            "loan_id": loan.id,
            "payment_number": payment.payment_number,
            "amount_paid": str(payment.amount_paid),
        })
        if settled:
            self._committed(loan, DomainEvent.LOAN_FULLY_PAID, AuditEventType.LOAN_FULLY_PAID,
                            acting_user, "fully_paid", {"trigger_payment": payment.id})
        return TransitionResult(True, loan, payment)

    def waive_penalty(self, loan_id: str, payment_id: str,
                      acting_user: Optional[str]) -> TransitionResult:
        """Forgive the penalty on one payment permanently"""
        return self._flag_penalty(loan_id, payment_id, acting_user, waive=True)

    def defer_penalty(self, loan_id: str, payment_id: str,
                      acting_user: Optional[str]) -> TransitionResult:
        """Set the penalty aside; it stays visible as a deferred amount"""
        return self._flag_penalty(loan_id, payment_id, acting_user, waive=False)

    def _flag_penalty(self, loan_id: str, payment_id: str, acting_user: Optional[str],
                      waive: bool) -> TransitionResult:
        verb = "waive" if waive else "defer"
        with self.storage.atomic():
            loan = self.repository.require(loan_id)
            self._require_status(loan, {LoanStatus.RELEASED, LoanStatus.FULLY_PAID},
                                 f"{verb} penalties on")
            self.policy.require(acting_user, APPROVERS, f"{verb} penalties")
            payment = self.repository.get_payment(loan_id, payment_id)

            already = payment.penalty_waived if waive else payment.penalty_deferred
            other = payment.penalty_deferred if waive else payment.penalty_waived
            if already:
                return TransitionResult(True, loan, payment, changed=False)
            if other:
                raise ValidationError(
                    f"Penalty on payment {payment.payment_number} is already "
                    f"{'deferred' if waive else 'waived'}; it cannot be both waived and deferred"
                )

            if waive:
                payment.penalty_waived = True
            else:
                payment.penalty_deferred = True
            payment.updated_at = datetime.now(timezone.utc)
            self.repository.save_payment(payment)
            loan, settled = self._settle_if_fully_paid(loan)

        self._audit(
            AuditEventType.PENALTY_WAIVED if waive else AuditEventType.PENALTY_DEFERRED,
            "payment", payment.id, acting_user,
            {"loan_id": loan.id, "payment_number": payment.payment_number},
        )
        log_action(logger, "info", f"Penalty {verb}d on payment {payment.payment_number} of loan {loan.loan_number}",
                   user_id=acting_user, action=f"{verb}_penalty", resource=f"payment:{payment.id}")
        self.publish_event(
            DomainEvent.PENALTY_WAIVED if waive else DomainEvent.PENALTY_DEFERRED,
            "payment", payment.id, {"loan_id": loan.id, "payment_number": payment.payment_number},
        )
        if settled:
            self._committed(loan, DomainEvent.LOAN_FULLY_PAID, AuditEventType.LOAN_FULLY_PAID,
                            acting_user, "fully_paid", {"trigger_payment": payment.id})
        return TransitionResult(True, loan, payment)

    def _settle_if_fully_paid(self, loan: Loan):
        """Move a released loan to fully-paid once no payment is pending"""
        if loan.status != LoanStatus.RELEASED:
            return loan, False
        payments = self.repository.payments_for(loan.id)
        if not payments or not all(p.is_paid for p in payments):
            return loan, False
        loan = self.repository.update(replace(loan, status=LoanStatus.FULLY_PAID), loan.version)
        return loan, True

    # ------------------------------------------------------------------
    # Helpers

    def _load(self, loan_id: str, expected_version: Optional[int]) -> Loan:
        loan = self.repository.require(loan_id)
        if expected_version is not None and int(expected_version) != loan.version:
            raise ConflictError(
                f"Loan {loan.loan_number} changed since it was read "
                f"(expected version {expected_version}, current version {loan.version}); "
                f"reload and retry",
                detail={"expected_version": expected_version, "current_version": loan.version},
            )
        return loan

    def _require_status(self, loan: Loan, allowed: set, verb: str) -> None:
        if loan.status not in allowed:
            names = " or ".join(sorted(s.value for s in allowed))
            raise InvalidStateTransition(
                f"Cannot {verb} loan {loan.loan_number}: it is {loan.status.value}, "
                f"expected {names}",
                detail={"status": loan.status.value},
            )

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               acting_user: Optional[str], metadata: Dict[str, Any]) -> None:
        if not self.audit:
            return
        try:
            self.audit.log_event(event_type, entity_type, entity_id, metadata, acting_user)
        except StorageError as e:
            # the change itself has already committed
            logger.error(f"Audit write {event_type.value} for {entity_type}:{entity_id} failed: {e}")

    def _committed(self, loan: Loan, event: DomainEvent, audit_type: AuditEventType,
                   acting_user: Optional[str], action: str, metadata: Dict[str, Any]) -> None:
        self._audit(audit_type, "loan", loan.id, acting_user,
                    dict(metadata, status=loan.status, version=loan.version))
        log_action(logger, "info", f"Loan {loan.loan_number} {action} -> {loan.status.value}",
                   user_id=acting_user, action=action, resource=f"loan:{loan.id}")
        self.publish_event(event, "loan", loan.id, loan_event_data(loan, action=action))

    def payments(self, loan_id: str) -> List[Payment]:
        """Payments of a loan in installment order"""
        self.repository.require(loan_id)
        return self.repository.payments_for(loan_id)
