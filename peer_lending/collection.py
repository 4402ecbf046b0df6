"""
Interest Collection

Marks a loan's interest as collected and makes sure the following month is
scheduled. The whole operation runs in one storage transaction: a failure in
any step leaves no trace.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
import logging

from .storage import StorageInterface, StorageManager
from .audit import AuditTrail, AuditEventType
from .calendar_utils import Clock, utc_now, month_key, to_date
from .cycles import CycleScheduler, SuccessorResult
from .exceptions import NotFoundError, BusinessRuleError
from .models import Loan, InterestCycle, CycleStatus, LOANS_TABLE, CYCLES_TABLE


logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    """Outcome of a single interest collection"""
    cycle: InterestCycle            # The cycle that is now paid
    synthesized: bool               # True when no cycle existed and one was made paid
    next_cycle: SuccessorResult

    @property
    def loan_id(self) -> str:
        return self.cycle.loan_id


class CollectionEngine:
    """
    Collects monthly interest on loans
    """

    def __init__(self, storage: StorageInterface, scheduler: CycleScheduler,
                 audit_trail: AuditTrail, clock: Clock = utc_now):
        self.storage = storage
        self.records = StorageManager(storage)
        self.scheduler = scheduler
        self.audit_trail = audit_trail
        self.clock = clock

    def collect_interest(
        self,
        loan_id: str,
        as_of: Optional[date] = None,
        paid_at: Optional[datetime] = None
    ) -> CollectionResult:
        """
        Collect the interest that is due on a loan

        The oldest pending cycle due on or before ``as_of`` is paid. When
        nothing is due yet, the as-of month is collected: its pending cycle
        early, or a new cycle created already paid. Either way the month
        after the paid cycle gets a pending successor.

        Args:
            loan_id: Loan to collect on
            as_of: Reference day (defaults to the clock's date)
            paid_at: Payment timestamp (defaults to the clock)

        Returns:
            CollectionResult describing the paid cycle and its successor

        Raises:
            NotFoundError: unknown loan
            BusinessRuleError: loan closed, or the as-of month already paid
        """
        now = self.clock()
        as_of = to_date(as_of) if as_of else now.date()
        paid_at = paid_at or now

        with self.storage.atomic():
            loan = self.records.load_record(Loan, LOANS_TABLE, loan_id)
            if not loan:
                raise NotFoundError("loan", loan_id)
            if loan.is_closed:
                raise BusinessRuleError("Loan is closed")

            synthesized = False
            cycle = self.scheduler.earliest_pending_due_by(loan.id, as_of)

            if cycle is None:
                month_cycle = self.scheduler.get_cycle_for_month(loan.id, month_key(as_of))
                if month_cycle is not None and month_cycle.is_paid:
                    raise BusinessRuleError(
                        f"Interest for {month_cycle.month_year} has already been collected"
                    )
                cycle = month_cycle

            if cycle is None:
                cycle = self.scheduler.insert_cycle(loan, as_of.year, as_of.month, paid_at=paid_at)
                synthesized = True
            else:
                cycle.status = CycleStatus.PAID
                cycle.paid_at = paid_at
                cycle.updated_at = now
                self.records.save_record(cycle, CYCLES_TABLE)

            self.audit_trail.log_event(
                event_type=AuditEventType.INTEREST_COLLECTED,
                entity_type="interest_cycle",
                entity_id=cycle.id,
                metadata={
                    "loan_id": loan.id,
                    "month_year": cycle.month_year,
                    "amount": cycle.amount,
                    "paid_at": paid_at,
                    "synthesized": synthesized
                }
            )

            next_cycle = self.scheduler.ensure_successor(loan, cycle.due_date)

        logger.info(
            "Collected interest %s for loan %s (%s); next cycle %s",
            cycle.amount, loan_id, cycle.month_year, next_cycle.month_year
        )
        return CollectionResult(cycle=cycle, synthesized=synthesized, next_cycle=next_cycle)
