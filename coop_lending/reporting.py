"""
Reporting Engine Module

Portfolio metrics for the lending dashboard: loan counts and principal by
status, by loan type and by month of application, plus the amount still to
be collected on released loans.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import csv
import io
import json

from .loans import LoanRepository, LoanStatus, LoanType
from .schedule import add_months


class ReportFormat(Enum):
    """Output formats for reports"""
    DICT = "dict"
    CSV = "csv"
    JSON = "json"


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    generated_at: datetime
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)


class ReportingEngine:
    """
    Portfolio reporting over the loan repository
    """

    def __init__(self, repository: LoanRepository, months: int = 6):
        self.repository = repository
        self.months = months

    def portfolio_summary(self, as_of: Optional[datetime] = None) -> ReportResult:
        """
        Generate portfolio summary report with key metrics.

        ``data`` holds one row per creation month (oldest first, the last
        ``months`` months up to ``as_of``); ``totals`` holds the portfolio
        figures.
        """
        now = as_of or datetime.now(timezone.utc)
        loans = self.repository.list_loans()

        by_status = {status.value: 0 for status in LoanStatus}
        by_type = {
            loan_type.value: {"count": 0, "amount": Decimal("0")} for loan_type in LoanType
        }
        total_amount = Decimal("0")
        for loan in loans:
            by_status[loan.status.value] += 1
            by_type[loan.loan_type.value]["count"] += 1
            by_type[loan.loan_type.value]["amount"] += loan.amount
            total_amount += loan.amount

        outstanding = Decimal("0")
        collected = Decimal("0")
        for loan in loans:
            if loan.status not in (LoanStatus.RELEASED, LoanStatus.FULLY_PAID):
                continue
            for payment in self.repository.payments_for(loan.id):
                if payment.is_paid:
                    collected += payment.amount_paid if payment.amount_paid is not None else payment.amount
                else:
                    outstanding += payment.amount

        first_month = add_months(now.date().replace(day=1), -(self.months - 1))
        monthly = []
        for offset in range(self.months):
            month_start = add_months(first_month, offset)
            key = month_start.strftime("%Y-%m")
            in_month = [loan for loan in loans if loan.created_at.strftime("%Y-%m") == key]
            monthly.append({
                "month": key,
                "count": len(in_month),
                "amount": str(sum((loan.amount for loan in in_month), Decimal("0"))),
            })

        totals = {
            "total_loans": len(loans),
            "total_amount": str(total_amount),
            "by_status": by_status,
            "by_type": {
                name: {"count": entry["count"], "amount": str(entry["amount"])}
                for name, entry in by_type.items()
            },
            "outstanding_amount": str(outstanding),
            "collected_amount": str(collected),
        }

        return ReportResult(
            report_id="portfolio_summary",
            generated_at=datetime.now(timezone.utc),
            data=monthly,
            totals=totals,
        )

    def export_report(self, result: ReportResult, format: ReportFormat):
        """
        Export report result in specified format
        """
        if format == ReportFormat.DICT:
            return {
                'report_id': result.report_id,
                'generated_at': result.generated_at.isoformat(),
                'data': result.data,
                'totals': result.totals,
            }

        elif format == ReportFormat.JSON:
            return json.dumps(self.export_report(result, ReportFormat.DICT), indent=2, default=str)

        elif format == ReportFormat.CSV:
            output = io.StringIO()
            if result.data:
                writer = csv.DictWriter(output, fieldnames=list(result.data[0].keys()))
                writer.writeheader()
                for row in result.data:
                    writer.writerow(row)
            csv_content = output.getvalue()
            output.close()
            return csv_content

        else:
            raise ValueError(f"Unsupported export format: {format}")
