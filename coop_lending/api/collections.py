"""
Collections worklists and portfolio reports
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from .dependencies import LendingSystem, get_lending_system
from ..exceptions import ValidationError
from ..reporting import ReportFormat


router = APIRouter()


@router.get("/collections/past-due")
async def past_due_payments(
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Unpaid installments past their due date, most overdue first"""
    items = system.collections_manager.past_due_payments(as_of)
    return {
        "count": len(items),
        "items": [item.to_dict() for item in items],
    }


@router.get("/collections/penalties")
async def active_penalties(
    as_of: Optional[date] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installments with a penalty currently owed"""
    items = system.collections_manager.active_penalties(as_of)
    total = sum((item.assessment.penalty for item in items), Decimal("0"))
    return {
        "count": len(items),
        "total_penalty": str(total),
        "items": [item.to_dict() for item in items],
    }


@router.get("/reports/portfolio")
async def portfolio_report(
    format: str = "dict",
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        report_format = ReportFormat(format)
    except ValueError:
        raise ValidationError(f"Unsupported report format {format!r}") from None

    engine = system.reporting_engine
    exported = engine.export_report(engine.portfolio_summary(), report_format)
    if report_format == ReportFormat.CSV:
        return PlainTextResponse(exported, media_type="text/csv")
    if report_format == ReportFormat.JSON:
        return PlainTextResponse(exported, media_type="application/json")
    return exported
