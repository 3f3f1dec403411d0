"""
Compliance Module

Summarizes an applicant's repayment history into counts, a compliance rate
and a risk tier used by approvers when judging a new application.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from .loans import Payment
from .penalties import PenaltyEvaluator, PenaltySettings


class RiskTier(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


HIGH_LATE_COUNT = 3
HIGH_RATE_FLOOR = 50
MEDIUM_RATE_FLOOR = 80


@dataclass
class ComplianceReport:
    """Repayment behaviour across a set of payments"""
    paid_on_time: int = 0
    late: int = 0
    past_due: int = 0
    upcoming: int = 0
    past_due_amount: Decimal = Decimal("0")
    active_penalty_total: Decimal = Decimal("0")
    waived_penalty_total: Decimal = Decimal("0")
    deferred_penalty_total: Decimal = Decimal("0")
    underpayment_count: int = 0
    underpayment_amount: Decimal = Decimal("0")
    compliance_rate: int = 100
    risk_tier: RiskTier = RiskTier.LOW
    reasons: list = field(default_factory=list)

    @property
    def evaluated_count(self) -> int:
        return self.paid_on_time + self.late + self.past_due

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluated_count": self.evaluated_count,
            "paid_on_time": self.paid_on_time,
            "late": self.late,
            "past_due": self.past_due,
            "upcoming": self.upcoming,
            "past_due_amount": str(self.past_due_amount),
            "active_penalty_total": str(self.active_penalty_total),
            "waived_penalty_total": str(self.waived_penalty_total),
            "deferred_penalty_total": str(self.deferred_penalty_total),
            "underpayment_count": self.underpayment_count,
            "underpayment_amount": str(self.underpayment_amount),
            "compliance_rate": self.compliance_rate,
            "risk_tier": self.risk_tier.value,
            "reasons": list(self.reasons),
        }


def compliance_rate(on_time: int, evaluated: int) -> int:
    """Percentage of evaluated installments paid on time, 100 when none"""
    if evaluated == 0:
        return 100
    rate = Decimal(100 * on_time) / Decimal(evaluated)
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_risk(report: ComplianceReport) -> RiskTier:
    """
    Map a report to a risk tier. Tiers are checked from the most severe down
    and the first match wins, so an open past-due balance is critical even
    with a perfect compliance rate.
    """
    reasons = []
    if report.past_due > 0 or report.past_due_amount > 0:
        reasons.append(f"{report.past_due} payment(s) past due")
        report.reasons = reasons
        return RiskTier.CRITICAL

    if report.late >= HIGH_LATE_COUNT:
        reasons.append(f"{report.late} late payments")
    if report.deferred_penalty_total > 0:
        reasons.append("deferred penalties outstanding")
    if report.compliance_rate < HIGH_RATE_FLOOR:
        reasons.append(f"compliance rate {report.compliance_rate}% below {HIGH_RATE_FLOOR}%")
    if reasons:
        report.reasons = reasons
        return RiskTier.HIGH

    if report.late >= 1:
        reasons.append(f"{report.late} late payment(s)")
    if report.active_penalty_total > 0:
        reasons.append("active penalties")
    if report.compliance_rate < MEDIUM_RATE_FLOOR:
        reasons.append(f"compliance rate {report.compliance_rate}% below {MEDIUM_RATE_FLOOR}%")
    report.reasons = reasons
    return RiskTier.MEDIUM if reasons else RiskTier.LOW


class ComplianceAggregator:
    """Builds a ComplianceReport from payment records"""

    def __init__(self, evaluator: Optional[PenaltyEvaluator] = None):
        self.evaluator = evaluator or PenaltyEvaluator()

    def aggregate(self, payments: Iterable[Payment], as_of: Union[date, datetime],
                  settings: PenaltySettings) -> ComplianceReport:
        """
        Classify every payment that has entered its evaluation window
        (due on or before ``as_of`` plus the grace period).

        Paid payments count as on time or late; unpaid ones past the grace
        period count as past due; unpaid ones still inside it are upcoming
        and excluded from the rate.
        """
        today = as_of.date() if isinstance(as_of, datetime) else as_of
        window_end = today + timedelta(days=settings.grace_period_days)
        report = ComplianceReport()

        for payment in payments:
            if payment.due_date > window_end:
                continue

            assessment = self.evaluator.evaluate(payment, today, settings)
            report.active_penalty_total += assessment.penalty
            report.waived_penalty_total += assessment.waived_amount
            report.deferred_penalty_total += assessment.deferred_amount

            if payment.is_paid:
                if assessment.is_late:
                    report.late += 1
                else:
                    report.paid_on_time += 1
                if payment.shortfall > 0:
                    report.underpayment_count += 1
                    report.underpayment_amount += payment.shortfall
            elif assessment.is_overdue:
                report.past_due += 1
                report.past_due_amount += payment.amount
            else:
                report.upcoming += 1

        report.compliance_rate = compliance_rate(report.paid_on_time, report.evaluated_count)
        report.risk_tier = classify_risk(report)
        return report
