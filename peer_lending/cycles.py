"""
Interest Cycle Scheduler

Decides which month a loan's interest cycles belong to and keeps pending
cycles in step with the loan. Cycles are created reactively: one when the
loan is opened (or first read, for legacy loans) and one successor each time
a cycle is paid. Missed months are never backfilled.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple
import logging
import uuid

from .storage import StorageInterface, StorageManager
from .audit import AuditTrail, AuditEventType
from .calendar_utils import (
    Clock, utc_now, add_months, month_key_for, parse_month_key,
    resolve_due_date, month_index, to_date
)
from .exceptions import ConsistencyError
from .models import Loan, InterestCycle, CycleStatus, CYCLES_TABLE


logger = logging.getLogger(__name__)


@dataclass
class SuccessorResult:
    """The cycle that follows a paid one"""
    month_year: str
    due_date: date
    created: bool
    cycle: InterestCycle


class CycleScheduler:
    """
    Creates interest cycles and keeps pending ones in sync with their loan
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Clock = utc_now):
        self.storage = storage
        self.records = StorageManager(storage)
        self.audit_trail = audit_trail
        self.clock = clock

    # Queries

    def get_cycles(self, loan_id: str) -> List[InterestCycle]:
        """All cycles for a loan, oldest due date first"""
        cycles = self.records.find_records(InterestCycle, CYCLES_TABLE, {"loan_id": loan_id})
        cycles.sort(key=lambda c: (c.due_date, c.month_year))
        return cycles

    def get_cycle_for_month(self, loan_id: str, month_year: str) -> Optional[InterestCycle]:
        """
        The loan's cycle for a month, if any

        Raises:
            ConsistencyError: more than one cycle is stored for the month
        """
        cycles = self.records.find_records(
            InterestCycle, CYCLES_TABLE, {"loan_id": loan_id, "month_year": month_year}
        )
        if len(cycles) > 1:
            raise ConsistencyError(
                f"Loan {loan_id} has {len(cycles)} interest cycles for {month_year}"
            )
        return cycles[0] if cycles else None

    def get_pending_cycles(self, loan_id: str) -> List[InterestCycle]:
        return [c for c in self.get_cycles(loan_id) if not c.is_paid]

    def earliest_pending_due_by(self, loan_id: str, as_of: date) -> Optional[InterestCycle]:
        """Oldest pending cycle whose due date is on or before ``as_of``"""
        as_of = to_date(as_of)
        for cycle in self.get_pending_cycles(loan_id):
            if cycle.due_date <= as_of:
                return cycle
        return None

    def initial_cycle_month(self, loan: Loan, as_of: date) -> Tuple[int, int]:
        """
        Month of a loan's first tracked cycle.

        Normally the month after the start date. A loan whose start month
        lies before the as-of month gets one cycle in the as-of month
        instead; the months in between are not backfilled.
        """
        as_of = to_date(as_of)
        if month_index(loan.loan_start_date) < month_index(as_of):
            return as_of.year, as_of.month
        return add_months(loan.loan_start_date.year, loan.loan_start_date.month, 1)

    def project_next_due_date(self, loan: Loan, as_of: Optional[date] = None) -> date:
        """Where the initial rule would put the next due date; nothing is written"""
        as_of = to_date(as_of) if as_of else self.clock().date()
        year, month = self.initial_cycle_month(loan, as_of)
        return resolve_due_date(loan.interest_due_day, year, month)

    # Writes

    def insert_cycle(
        self,
        loan: Loan,
        year: int,
        month: int,
        paid_at=None
    ) -> InterestCycle:
        """
        Insert a cycle for (loan, month) at the loan's current due day and
        monthly interest. A ``paid_at`` stores it already paid.

        Raises:
            ConsistencyError: the month already has a cycle
        """
        month_year = month_key_for(year, month)
        with self.storage.atomic():
            if self.get_cycle_for_month(loan.id, month_year):
                raise ConsistencyError(
                    f"Loan {loan.id} already has an interest cycle for {month_year}"
                )

            now = self.clock()
            cycle = InterestCycle(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                month_year=month_year,
                due_date=resolve_due_date(loan.interest_due_day, year, month),
                amount=loan.monthly_interest_amount,
                status=CycleStatus.PAID if paid_at is not None else CycleStatus.PENDING,
                paid_at=paid_at
            )
            self.records.save_record(cycle, CYCLES_TABLE)
            self.audit_trail.log_event(
                event_type=AuditEventType.INTEREST_CYCLE_CREATED,
                entity_type="interest_cycle",
                entity_id=cycle.id,
                metadata={
                    "loan_id": loan.id,
                    "month_year": month_year,
                    "due_date": cycle.due_date,
                    "amount": cycle.amount,
                    "status": cycle.status
                }
            )

        logger.debug("Created %s cycle %s for loan %s", cycle.status.value, month_year, loan.id)
        return cycle

    def create_initial_cycle(self, loan: Loan, as_of: Optional[date] = None) -> InterestCycle:
        as_of = to_date(as_of) if as_of else self.clock().date()
        year, month = self.initial_cycle_month(loan, as_of)
        return self.insert_cycle(loan, year, month)

    def ensure_successor(self, loan: Loan, base_due_date: date) -> SuccessorResult:
        """
        Make sure the month after ``base_due_date`` has a cycle.

        Idempotent: an existing cycle for that month is returned untouched.
        """
        year, month = add_months(base_due_date.year, base_due_date.month, 1)
        month_year = month_key_for(year, month)

        with self.storage.atomic():
            existing = self.get_cycle_for_month(loan.id, month_year)
            if existing:
                return SuccessorResult(month_year, existing.due_date, False, existing)
            cycle = self.insert_cycle(loan, year, month)

        return SuccessorResult(month_year, cycle.due_date, True, cycle)

    def ensure_cycle_in_flight(self, loan: Loan, as_of: Optional[date] = None) -> Optional[InterestCycle]:
        """
        Give an active loan without any cycles its first one.

        Returns the created cycle, or None when nothing was needed.
        """
        if loan.is_closed:
            return None
        with self.storage.atomic():
            if self.get_cycles(loan.id):
                return None
            cycle = self.create_initial_cycle(loan, as_of)

        logger.info("Started interest tracking for loan %s at %s", loan.id, cycle.month_year)
        return cycle

    def resync_pending_due_dates(self, loan: Loan) -> int:
        """
        Re-resolve pending due dates after a due-day change.

        Paid cycles keep their historical dates. Returns the number of
        cycles moved.
        """
        moved = 0
        with self.storage.atomic():
            cycles = self.get_cycles(loan.id)
            months = [c.month_year for c in cycles]
            if len(months) != len(set(months)):
                raise ConsistencyError(f"Loan {loan.id} has duplicate interest cycle months")

            for cycle in cycles:
                if cycle.is_paid:
                    continue
                year, month = parse_month_key(cycle.month_year)
                due_date = resolve_due_date(loan.interest_due_day, year, month)
                if due_date != cycle.due_date:
                    cycle.due_date = due_date
                    cycle.updated_at = self.clock()
                    self.records.save_record(cycle, CYCLES_TABLE)
                    moved += 1

            if moved:
                self.audit_trail.log_event(
                    event_type=AuditEventType.DUE_DATES_RESYNCED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"interest_due_day": loan.interest_due_day, "cycles": moved}
                )

        return moved

    def sync_pending_amounts(self, loan: Loan) -> int:
        """Set every pending cycle's amount to the loan's monthly interest"""
        synced = 0
        with self.storage.atomic():
            for cycle in self.get_pending_cycles(loan.id):
                if cycle.amount != loan.monthly_interest_amount:
                    cycle.amount = loan.monthly_interest_amount
                    cycle.updated_at = self.clock()
                    self.records.save_record(cycle, CYCLES_TABLE)
                    synced += 1
        return synced

