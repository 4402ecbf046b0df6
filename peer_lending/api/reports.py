"""
Dashboard and reporting endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from .deps import LendingSystem, get_lending_system
from .schemas import parse_iso_date, to_json


router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    as_of: Optional[str] = Query(None, description="ISO date; defaults to today"),
    system: LendingSystem = Depends(get_lending_system)
):
    """Totals and the interest to collect as of a day"""
    dashboard = system.reporting_engine.dashboard(as_of=parse_iso_date(as_of, "As-of date"))
    return to_json(dashboard)


@router.get("/reports")
async def get_portfolio_report(
    report_range: str = Query("this_month", alias="range", description="this_month, last_month or quarter"),
    as_of: Optional[str] = Query(None, description="ISO date; defaults to today"),
    system: LendingSystem = Depends(get_lending_system)
):
    """Portfolio report for a time window"""
    report = system.reporting_engine.portfolio_report(
        report_range, as_of=parse_iso_date(as_of, "As-of date")
    )
    return to_json(report)
