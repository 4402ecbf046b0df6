"""
Reporting Module

Dashboard and portfolio views computed from loans, interest cycles and
principal payments. Reports are read-only and take an explicit as-of date.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from enum import Enum
import logging

from .storage import StorageInterface, StorageManager
from .calendar_utils import Clock, utc_now, add_months, days_in_month, to_date
from .principal import PrincipalLedger
from .money import ZERO
from .status import PaymentStatus, classify, paid_on_time
from .models import (
    Borrower, Loan, InterestCycle, PrincipalPayment, PaymentKind,
    BORROWERS_TABLE, LOANS_TABLE, CYCLES_TABLE, PAYMENTS_TABLE
)


logger = logging.getLogger(__name__)

RATE_PLACES = Decimal('0.0001')


class ReportRange(Enum):
    """Reporting windows"""
    THIS_MONTH = "this_month"     # First of the month up to as-of
    LAST_MONTH = "last_month"     # The whole previous calendar month
    QUARTER = "quarter"           # The 90 days ending on as-of

    @classmethod
    def parse(cls, value) -> 'ReportRange':
        """Unknown or missing values fall back to THIS_MONTH"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.THIS_MONTH


@dataclass
class ReportWindow:
    """Inclusive date window"""
    label: str
    start: date
    end: date

    def contains(self, value) -> bool:
        if value is None:
            return False
        return self.start <= to_date(value) <= self.end


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= ZERO:
        return ZERO
    return (numerator / denominator).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def build_window(report_range: ReportRange, as_of: date) -> ReportWindow:
    if report_range == ReportRange.THIS_MONTH:
        return ReportWindow(as_of.strftime("%b %Y"), as_of.replace(day=1), as_of)
    if report_range == ReportRange.LAST_MONTH:
        year, month = add_months(as_of.year, as_of.month, -1)
        start = date(year, month, 1)
        end = date(year, month, days_in_month(year, month))
        return ReportWindow(start.strftime("%b %Y"), start, end)
    return ReportWindow("Last 90 days", as_of - timedelta(days=89), as_of)


def build_buckets(report_range: ReportRange, as_of: date) -> List[ReportWindow]:
    """Chart buckets: three calendar months for a quarter, otherwise four weeks"""
    if report_range == ReportRange.QUARTER:
        buckets = []
        for months_ago in (2, 1, 0):
            year, month = add_months(as_of.year, as_of.month, -months_ago)
            end = as_of if months_ago == 0 else date(year, month, days_in_month(year, month))
            buckets.append(ReportWindow(f"Month {3 - months_ago}", date(year, month, 1), end))
        return buckets

    if report_range == ReportRange.LAST_MONTH:
        year, month = add_months(as_of.year, as_of.month, -1)
    else:
        year, month = as_of.year, as_of.month
    last_day = days_in_month(year, month)

    buckets = []
    for week, (first, last) in enumerate(((1, 7), (8, 14), (15, 21), (22, 31)), start=1):
        start = date(year, month, min(first, last_day))
        end = date(year, month, min(last, last_day))
        if report_range == ReportRange.THIS_MONTH and end > as_of:
            end = as_of
        buckets.append(ReportWindow(f"Week {week}", start, end))
    return buckets


class ReportingEngine:
    """
    Read-only dashboard and portfolio reporting
    """

    def __init__(self, storage: StorageInterface, ledger: PrincipalLedger,
                 clock: Clock = utc_now, top_borrowers_limit: int = 5):
        self.storage = storage
        self.records = StorageManager(storage)
        self.ledger = ledger
        self.clock = clock
        self.top_borrowers_limit = top_borrowers_limit

    def _today(self, as_of: Optional[date]) -> date:
        return to_date(as_of) if as_of else self.clock().date()

    def _snapshot(self):
        loans = self.records.load_all_records(Loan, LOANS_TABLE)
        borrowers = {b.id: b for b in self.records.load_all_records(Borrower, BORROWERS_TABLE)}
        cycles = self.records.load_all_records(InterestCycle, CYCLES_TABLE)
        return loans, borrowers, cycles

    def dashboard(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Collection dashboard as of a day

        Returns totals over all loans, the collection focus (interest due
        today and overdue) and one entry per active loan whose oldest
        unpaid cycle is due on or before as-of.
        """
        today = self._today(as_of)

        with self.storage.atomic():
            loans, borrowers, cycles = self._snapshot()

        earliest_unpaid: Dict[str, InterestCycle] = {}
        for cycle in sorted(cycles, key=lambda c: c.due_date):
            if cycle.is_paid or cycle.due_date > today:
                continue
            earliest_unpaid.setdefault(cycle.loan_id, cycle)

        total_principal = sum((loan.principal_amount for loan in loans), ZERO)
        total_monthly_interest = sum((loan.monthly_interest_amount for loan in loans), ZERO)

        todays_due = []
        for loan in sorted(loans, key=lambda loan: loan.created_at, reverse=True):
            cycle = earliest_unpaid.get(loan.id)
            if cycle is None or loan.is_closed:
                continue
            borrower = borrowers.get(loan.borrower_id)
            todays_due.append({
                "loan_id": loan.id,
                "borrower_id": loan.borrower_id,
                "borrower_name": borrower.name if borrower else "Unknown",
                "borrower_phone": borrower.phone if borrower else None,
                "relationship_type": borrower.relationship_type if borrower else None,
                "principal_amount": loan.principal_amount,
                "monthly_interest_amount": cycle.amount,
                "next_due_date": cycle.due_date,
                "payment_status": classify(cycle.due_date, False, today),
            })

        due_today = [item for item in todays_due if item["next_due_date"] == today]
        overdue = [item for item in todays_due if item["payment_status"] == PaymentStatus.OVERDUE]
        interest_due_today = sum((item["monthly_interest_amount"] for item in due_today), ZERO)
        overdue_interest = sum((item["monthly_interest_amount"] for item in overdue), ZERO)

        return {
            "as_of_date": today,
            "totals": {
                "total_principal": total_principal,
                "total_monthly_interest": total_monthly_interest,
            },
            "collection_focus": {
                "need_to_collect": interest_due_today + overdue_interest,
                "interest_due_today": interest_due_today,
                "overdue_interest": overdue_interest,
                "due_today_count": len(due_today),
                "overdue_count": len(overdue),
            },
            "todays_due": todays_due,
        }

    def portfolio_report(self, report_range=ReportRange.THIS_MONTH,
                         as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Portfolio report for a window ending at as-of

        Args:
            report_range: ReportRange or its string value; unknown values
                fall back to this_month
            as_of: Reference day (defaults to the clock's date)

        Returns:
            Dictionary with the window, metrics, pace buckets and top borrowers
        """
        today = self._today(as_of)
        report_range = ReportRange.parse(report_range)
        window = build_window(report_range, today)

        with self.storage.atomic():
            loans, borrowers, cycles = self._snapshot()
            payments = self.records.load_all_records(PrincipalPayment, PAYMENTS_TABLE)
            active_outstanding = [
                self.ledger.outstanding_principal(loan) for loan in loans if not loan.is_closed
            ]

        loans_by_id = {loan.id: loan for loan in loans}
        due_in_window = [c for c in cycles if window.contains(c.due_date)]
        collected = [c for c in cycles if c.is_paid and window.contains(c.paid_at)]
        repayments = [
            p for p in payments
            if p.kind == PaymentKind.REPAYMENT and window.contains(p.paid_at)
        ]

        collected_interest = sum((c.amount for c in collected), ZERO)
        interest_pipeline = sum((c.amount for c in due_in_window), ZERO)
        principal_returned = sum((p.amount for p in repayments), ZERO)
        principal_disbursed = sum(
            (loan.principal_amount for loan in loans if window.contains(loan.loan_start_date)),
            ZERO
        )
        overdue_interest = sum(
            (c.amount for c in due_in_window
             if classify(c.due_date, c.is_paid, today) == PaymentStatus.OVERDUE),
            ZERO
        )
        paid_amount = sum((c.amount for c in due_in_window if c.is_paid), ZERO)
        paid_on_time_amount = sum(
            (c.amount for c in due_in_window if c.is_paid and paid_on_time(c.due_date, c.paid_at)),
            ZERO
        )

        logger.debug(
            "Portfolio report %s from %s to %s over %d loans",
            report_range.value, window.start, window.end, len(loans)
        )

        pace = []
        for bucket in build_buckets(report_range, today):
            pace.append({
                "label": bucket.label,
                "collected": sum((c.amount for c in collected if bucket.contains(c.paid_at)), ZERO),
                "due": sum((c.amount for c in due_in_window if bucket.contains(c.due_date)), ZERO),
            })

        return {
            "range": report_range,
            "label": window.label,
            "start_date": window.start,
            "end_date": window.end,
            "as_of_date": today,
            "metrics": {
                "collected_interest": collected_interest,
                "interest_pipeline": interest_pipeline,
                "principal_returned": principal_returned,
                "principal_disbursed": principal_disbursed,
                "principal_outstanding": sum(active_outstanding, ZERO),
                "overdue_interest": overdue_interest,
                "collection_rate": _ratio(paid_amount, interest_pipeline),
                "on_time_rate": _ratio(paid_on_time_amount, paid_amount),
            },
            "pace": pace,
            "top_borrowers": self._top_borrowers(due_in_window, loans_by_id, borrowers),
        }

    def _top_borrowers(self, cycles: List[InterestCycle], loans_by_id: Dict[str, Loan],
                       borrowers: Dict[str, Borrower]) -> List[Dict[str, Any]]:
        """Borrowers ranked by interest due in the window"""
        totals: Dict[str, Dict[str, Any]] = {}
        for cycle in cycles:
            loan = loans_by_id.get(cycle.loan_id)
            borrower = borrowers.get(loan.borrower_id) if loan else None
            key = borrower.id if borrower else "unknown"
            entry = totals.setdefault(key, {
                "borrower_id": borrower.id if borrower else None,
                "name": borrower.name if borrower else "Unknown",
                "interest_due": ZERO,
                "pending_interest": ZERO,
                "paid": ZERO,
                "paid_on_time": ZERO,
            })
            entry["interest_due"] += cycle.amount
            if cycle.is_paid:
                entry["paid"] += cycle.amount
                if paid_on_time(cycle.due_date, cycle.paid_at):
                    entry["paid_on_time"] += cycle.amount
            else:
                entry["pending_interest"] += cycle.amount

        ranked = sorted(totals.values(), key=lambda e: e["interest_due"], reverse=True)
        result = []
        for entry in ranked[:self.top_borrowers_limit]:
            paid = entry.pop("paid")
            on_time = entry.pop("paid_on_time")
            entry["on_time_rate"] = _ratio(on_time, paid)
            result.append(entry)
        return result
