"""
Amortization Module

Diminishing-balance amortization for cooperative loans: principal is repaid
in equal whole-unit installments (the last one absorbs the remainder) and
interest is charged monthly on the remaining balance. Also computes the
upfront deductions taken from the released amount.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from .exceptions import InvalidLoanTerms


ALLOWED_TERMS: Tuple[int, ...] = (1, 3, 4, 6, 9, 12, 18, 24)

MONTHLY_INTEREST_RATE = Decimal("0.015")
SERVICE_CHARGE_RATE = Decimal("0.06")      # annual, prorated by term / 12
SHARE_CAPITAL_RATE = Decimal("0.01")

CENTAVO = Decimal("0.01")


def to_money(value: Union[Decimal, int, str, float]) -> Decimal:
    """Quantize to centavos using half-up rounding"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTAVO, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class AmortizationRow:
    """One month of the schedule"""
    period: int
    opening_balance: Decimal
    interest: Decimal
    principal: Decimal
    closing_balance: Decimal

    @property
    def amount(self) -> Decimal:
        return self.principal + self.interest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "opening_balance": str(self.opening_balance),
            "interest": str(self.interest),
            "principal": str(self.principal),
            "closing_balance": str(self.closing_balance),
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class Deductions:
    """Amounts withheld from the principal at release"""
    service_charge: Decimal
    share_capital: Decimal
    first_month_amortization: Decimal
    first_month_interest: Decimal

    @property
    def total(self) -> Decimal:
        return (self.service_charge + self.share_capital
                + self.first_month_amortization + self.first_month_interest)

    def to_dict(self) -> Dict[str, str]:
        return {
            "service_charge": str(self.service_charge),
            "share_capital": str(self.share_capital),
            "first_month_amortization": str(self.first_month_amortization),
            "first_month_interest": str(self.first_month_interest),
            "total_deductions": str(self.total),
        }


@dataclass(frozen=True)
class AmortizationResult:
    """Complete computation for one (principal, term) pair"""
    principal: Decimal
    term: int
    monthly_rate: Decimal
    schedule: Tuple[AmortizationRow, ...]
    monthly_principal: Decimal
    deductions: Deductions

    @property
    def total_interest(self) -> Decimal:
        """Interest repaid through the schedule"""
        return sum((row.interest for row in self.schedule), Decimal("0"))

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total

    @property
    def net_proceeds(self) -> Decimal:
        return self.principal - self.deductions.total

    @property
    def total_repayment(self) -> Decimal:
        return sum((row.amount for row in self.schedule), Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "principal": str(self.principal),
            "term": self.term,
            "monthly_rate": str(self.monthly_rate),
            "monthly_principal": str(self.monthly_principal),
            "total_interest": str(self.total_interest),
            "total_repayment": str(self.total_repayment),
            "net_proceeds": str(self.net_proceeds),
            "schedule": [row.to_dict() for row in self.schedule],
        }
        result.update(self.deductions.to_dict())
        return result


class AmortizationCalculator:
    """
    Computes the repayment schedule and release deductions for a loan.

    Rates default to the cooperative's published figures; they are
    constructor arguments so a different fee formula can be signed off
    without touching the algorithm.
    """

    def __init__(
        self,
        monthly_rate: Decimal = MONTHLY_INTEREST_RATE,
        service_charge_rate: Decimal = SERVICE_CHARGE_RATE,
        share_capital_rate: Decimal = SHARE_CAPITAL_RATE,
        allowed_terms: Tuple[int, ...] = ALLOWED_TERMS,
    ):
        self.monthly_rate = Decimal(str(monthly_rate))
        self.service_charge_rate = Decimal(str(service_charge_rate))
        self.share_capital_rate = Decimal(str(share_capital_rate))
        self.allowed_terms = tuple(allowed_terms)

    def validate(self, principal: Union[Decimal, int, str], term: int) -> Decimal:
        """
        Check loan terms and return the principal as a Decimal.

        Raises:
            InvalidLoanTerms: If the principal is not positive or the term
                is not one of the allowed terms
        """
        try:
            amount = principal if isinstance(principal, Decimal) else Decimal(str(principal))
        except ArithmeticError as e:
            raise InvalidLoanTerms(f"Principal {principal!r} is not a number") from e
        if not amount.is_finite() or amount <= 0:
            raise InvalidLoanTerms(f"Principal must be greater than zero, got {principal}")
        if isinstance(term, bool) or not isinstance(term, int) or term not in self.allowed_terms:
            allowed = ", ".join(str(t) for t in self.allowed_terms)
            raise InvalidLoanTerms(f"Payment term must be one of {allowed} months, got {term}")
        return amount

    def calculate(self, principal: Union[Decimal, int, str], term: int) -> AmortizationResult:
        """
        Build the full schedule and deductions summary.

        Args:
            principal: Amount borrowed
            term: Number of monthly installments

        Returns:
            AmortizationResult
        """
        principal = self.validate(principal, term)

        monthly_principal = (principal / term).to_integral_value(rounding=ROUND_FLOOR)
        balance = principal
        rows = []
        paid_so_far = Decimal("0")

        for period in range(1, term + 1):
            interest = to_money(balance * self.monthly_rate)
            if period < term:
                principal_part = monthly_principal
            else:
                principal_part = principal - paid_so_far
            paid_so_far += principal_part
            closing = max(balance - principal_part, Decimal("0"))
            rows.append(AmortizationRow(
                period=period,
                opening_balance=balance,
                interest=interest,
                principal=principal_part,
                closing_balance=closing,
            ))
            balance = closing

        first_month_interest = rows[0].interest
        if term == 1:
            # Single-payment loans: interest is taken upfront, nothing to front-deduct
            first_month_amortization = Decimal("0")
            rows[0] = AmortizationRow(
                period=1,
                opening_balance=rows[0].opening_balance,
                interest=Decimal("0.00"),
                principal=rows[0].principal,
                closing_balance=rows[0].closing_balance,
            )
        else:
            first_month_amortization = rows[0].principal

        deductions = Deductions(
            service_charge=to_money(principal * self.service_charge_rate * Decimal(term) / Decimal(12)),
            share_capital=to_money(principal * self.share_capital_rate),
            first_month_amortization=first_month_amortization,
            first_month_interest=first_month_interest,
        )

        return AmortizationResult(
            principal=principal,
            term=term,
            monthly_rate=self.monthly_rate,
            schedule=tuple(rows),
            monthly_principal=monthly_principal,
            deductions=deductions,
        )
