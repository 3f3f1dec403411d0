"""
Loan Module

Loan and payment records, their status enums, and the repository that maps
them onto the storage backend (including loan number allocation).
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .exceptions import ConflictError, LoanNotFound, PaymentNotFound
from .logging_config import get_logger


logger = get_logger("coop_lending.loans")


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "pending"            # Application submitted, checklist in progress
    APPROVED = "approved"          # Approved, awaiting release of funds
    DENIED = "denied"              # Terminal
    RELEASED = "released"          # Funds released, payments being collected
    FULLY_PAID = "fully-paid"      # Terminal, every payment collected


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


class LoanType(Enum):
    CASH_ADVANCE = "Cash Advance"
    MULTI_PURPOSE = "Multi-Purpose"
    EMERGENCY = "Emergency"


class LoanPurpose(Enum):
    BUSINESS_CAPITAL = "Business Capital"
    BILLS_PAYMENT = "Bills Payment"
    TUITION_FEE = "Tuition Fee"
    HOUSE_RENOVATION = "House Renovation"
    MEDICAL_EXPENSES = "Medical Expenses"
    TRAVEL_EXPENSES = "Travel Expenses"


TERMINAL_STATUSES = frozenset({LoanStatus.DENIED, LoanStatus.FULLY_PAID})
ACTIVE_STATUSES = frozenset({LoanStatus.APPROVED, LoanStatus.RELEASED})


def normalize_applicant(name: str) -> str:
    """Key used to join an applicant's loans across records"""
    return " ".join(name.split()).casefold()


@dataclass
class Loan(StorageRecord):
    """One loan application through its full life"""
    loan_number: int
    applicant_name: str
    amount: Decimal
    payment_term: int
    loan_type: LoanType
    purpose: LoanPurpose
    remarks: str = ""
    salary: Decimal = Decimal("0")
    bookkeeper_checked: bool = False
    payroll_checked: bool = False
    status: LoanStatus = LoanStatus.PENDING
    denial_remarks: Optional[str] = None
    released_at: Optional[datetime] = None
    created_by: Optional[str] = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def applicant_key(self) -> str:
        return normalize_applicant(self.applicant_name)


@dataclass
class Payment(StorageRecord):
    """One monthly installment of a released loan"""
    loan_id: str
    payment_number: int
    due_date: date
    principal_component: Decimal
    interest_component: Decimal
    amount: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[date] = None
    amount_paid: Optional[Decimal] = None
    penalty_waived: bool = False
    penalty_deferred: bool = False

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    @property
    def shortfall(self) -> Decimal:
        """Amount still missing from a paid installment"""
        if not self.is_paid or self.amount_paid is None:
            return Decimal("0")
        return max(self.amount - self.amount_paid, Decimal("0"))


class LoanRepository:
    """
    Maps loans and their payments onto a storage backend.

    Loans are saved with a version number; ``update`` is a conditional
    write against the version the caller read.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.loans_table = "loans"
        self.payments_table = "loan_payments"
        self.counters_table = "counters"

    # Loan numbers

    def next_loan_number(self) -> int:
        """Allocate the next loan number; numbers are never handed out twice"""
        with self.storage.atomic():
            counter = self.storage.load(self.counters_table, "loan_number")
            value = (counter["value"] if counter else 0) + 1
            self.storage.save(self.counters_table, "loan_number", {"id": "loan_number", "value": value})
            return value

    # Loans

    def insert(self, loan: Loan) -> Loan:
        if self.storage.exists(self.loans_table, loan.id):
            raise ConflictError(f"Loan {loan.id} already exists")
        self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))
        return loan

    def get(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        return self._loan_from_dict(data) if data else None

    def require(self, loan_id: str) -> Loan:
        """Load a loan or raise LoanNotFound"""
        loan = self.get(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        if status is None:
            records = self.storage.load_all(self.loans_table)
        else:
            records = self.storage.find(self.loans_table, {"status": status.value})
        loans = [self._loan_from_dict(r) for r in records]
        loans.sort(key=lambda l: l.loan_number)
        return loans

    def find_by_applicant(self, applicant_name: str) -> List[Loan]:
        key = normalize_applicant(applicant_name)
        return [loan for loan in self.list_loans() if loan.applicant_key == key]

    def update(self, loan: Loan, expected_version: int) -> Loan:
        """
        Conditionally persist a modified loan.

        Args:
            loan: Loan carrying the new field values
            expected_version: Version the caller based its change on

        Returns:
            The stored loan with its version bumped

        Raises:
            ConflictError: If the stored version differs from expected_version
        """
        updated = replace(
            loan,
            version=expected_version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        written = self.storage.compare_and_set(
            self.loans_table, loan.id, {"version": expected_version}, self._loan_to_dict(updated)
        )
        if not written:
            current = self.get(loan.id)
            if current is None:
                raise LoanNotFound(f"Loan {loan.id} not found")
            logger.warning(
                f"Version conflict on loan {loan.id}: expected {expected_version}, "
                f"found {current.version}"
            )
            raise ConflictError(
                f"Loan {loan.id} was modified concurrently "
                f"(expected version {expected_version}, found {current.version})",
                detail={"expected_version": expected_version, "current_version": current.version},
            )
        return updated

    # Payments

    def payments_for(self, loan_id: str) -> List[Payment]:
        """Payments of a loan ordered by ascending payment number"""
        records = self.storage.find(self.payments_table, {"loan_id": loan_id})
        payments = [self._payment_from_dict(r) for r in records]
        payments.sort(key=lambda p: p.payment_number)
        return payments

    def has_payments(self, loan_id: str) -> bool:
        return bool(self.storage.find(self.payments_table, {"loan_id": loan_id}))

    def get_payment(self, loan_id: str, payment_id: str) -> Payment:
        data = self.storage.load(self.payments_table, payment_id)
        if not data or data.get("loan_id") != loan_id:
            raise PaymentNotFound(f"Payment {payment_id} not found on loan {loan_id}")
        return self._payment_from_dict(data)

    def save_payments(self, payments: List[Payment]) -> None:
        """Write several payments as one batch"""
        with self.storage.atomic():
            for payment in payments:
                self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    def save_payment(self, payment: Payment) -> None:
        self.storage.save(self.payments_table, payment.id, self._payment_to_dict(payment))

    # Serialization

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        return loan.to_dict()

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        released_at = data.get("released_at")
        return Loan(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            loan_number=data["loan_number"],
            applicant_name=data["applicant_name"],
            amount=Decimal(data["amount"]),
            payment_term=data["payment_term"],
            loan_type=LoanType(data["loan_type"]),
            purpose=LoanPurpose(data["purpose"]),
            remarks=data.get("remarks", ""),
            salary=Decimal(data.get("salary", "0")),
            bookkeeper_checked=data.get("bookkeeper_checked", False),
            payroll_checked=data.get("payroll_checked", False),
            status=LoanStatus(data["status"]),
            denial_remarks=data.get("denial_remarks"),
            released_at=datetime.fromisoformat(released_at) if released_at else None,
            created_by=data.get("created_by"),
            version=data.get("version", 1),
        )

    def _payment_to_dict(self, payment: Payment) -> Dict[str, Any]:
        return payment.to_dict()

    def _payment_from_dict(self, data: Dict[str, Any]) -> Payment:
        payment_date = data.get("payment_date")
        amount_paid = data.get("amount_paid")
        return Payment(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            loan_id=data["loan_id"],
            payment_number=data["payment_number"],
            due_date=date.fromisoformat(data["due_date"]),
            principal_component=Decimal(data["principal_component"]),
            interest_component=Decimal(data["interest_component"]),
            amount=Decimal(data["amount"]),
            status=PaymentStatus(data["status"]),
            payment_date=date.fromisoformat(payment_date) if payment_date else None,
            amount_paid=Decimal(amount_paid) if amount_paid is not None else None,
            penalty_waived=data.get("penalty_waived", False),
            penalty_deferred=data.get("penalty_deferred", False),
        )
