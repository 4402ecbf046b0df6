"""
Loan Management Module

Opening, listing, viewing, editing, closing and deleting loans. Every
multi-step change runs inside one storage transaction together with the
cycle and ledger updates it triggers.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from .storage import StorageInterface, StorageManager
from .audit import AuditTrail, AuditEventType
from .borrowers import BorrowerManager
from .calendar_utils import Clock, utc_now, to_date, parse_iso_day, MIN_DUE_DAY, MAX_DUE_DAY
from .cycles import CycleScheduler
from .principal import PrincipalLedger
from .money import ZERO, positive_amount, monthly_interest
from .status import PaymentStatus, classify
from .exceptions import ValidationError, NotFoundError
from .models import (
    Borrower, BorrowerPatch, Loan, LoanPatch, LoanStatus, InterestCycle,
    PrincipalPayment, LOANS_TABLE
)


logger = logging.getLogger(__name__)


def parse_due_day(value) -> int:
    """Strict due-day validation for user input; whole numbers 1..30 only"""
    if isinstance(value, bool):
        raise ValidationError("Interest due day must be between 1 and 30")
    try:
        number = Decimal(str(value).strip())
    except ArithmeticError:
        raise ValidationError("Interest due day must be between 1 and 30")
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError("Interest due day must be between 1 and 30")
    day = int(number)
    if not MIN_DUE_DAY <= day <= MAX_DUE_DAY:
        raise ValidationError("Interest due day must be between 1 and 30")
    return day


def parse_start_date(value) -> date:
    if value is None or value == "":
        raise ValidationError("Loan start date is required")
    if isinstance(value, (date, datetime)):
        return to_date(value)
    try:
        return parse_iso_day(str(value))
    except ValueError:
        raise ValidationError("Loan start date must be a valid YYYY-MM-DD")


def parse_return_months(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("Return months must be a positive whole number")
    return value


def parse_loan_status(value) -> LoanStatus:
    if isinstance(value, LoanStatus):
        return value
    try:
        return LoanStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown loan status: {value}")


@dataclass
class LoanSummary:
    """One row of the loan list"""
    loan: Loan
    borrower_name: str
    outstanding_principal: Decimal
    next_due_date: Optional[date]
    next_amount: Optional[Decimal]
    status: PaymentStatus


@dataclass
class LoanDetail:
    """Everything shown for a single loan"""
    loan: Loan
    borrower: Optional[Borrower]
    outstanding_principal: Decimal
    total_interest_collected: Decimal
    next_due_date: Optional[date]
    status: PaymentStatus
    cycles: List[InterestCycle] = field(default_factory=list)
    payments: List[PrincipalPayment] = field(default_factory=list)


class LoanManager:
    """
    Manages loan lifecycle
    """

    def __init__(
        self,
        storage: StorageInterface,
        borrower_manager: BorrowerManager,
        scheduler: CycleScheduler,
        ledger: PrincipalLedger,
        audit_trail: AuditTrail,
        clock: Clock = utc_now,
        history_limit: int = 24
    ):
        self.storage = storage
        self.records = StorageManager(storage)
        self.borrower_manager = borrower_manager
        self.scheduler = scheduler
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.clock = clock
        self.history_limit = history_limit

    def _today(self, as_of: Optional[date]) -> date:
        return to_date(as_of) if as_of else self.clock().date()

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        return self.records.load_record(Loan, LOANS_TABLE, loan_id)

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError("loan", loan_id)
        return loan

    def create_loan(
        self,
        borrower: Union[str, Dict[str, Any]],
        principal_amount,
        interest_percentage,
        interest_due_day,
        loan_start_date,
        return_months: Optional[int] = None,
        as_of: Optional[date] = None
    ) -> Loan:
        """
        Open a new loan with its first interest cycle

        Args:
            borrower: Existing borrower id, or a dict of new borrower fields
                (name, phone, relationship_type, notes)
            principal_amount: Amount lent, greater than 0
            interest_percentage: Simple monthly rate in percent, greater than 0
            interest_due_day: Day of month interest is payable (1-30)
            loan_start_date: Day the money was handed over
            return_months: Optional expected duration
            as_of: Tracking day used to place the first cycle

        Returns:
            Created Loan object
        """
        new_borrower = None
        if isinstance(borrower, dict):
            name = borrower.get("name")
            if name is None or not str(name).strip():
                raise ValidationError("Borrower name is required")
            new_borrower = borrower
        elif not borrower:
            raise ValidationError("Borrower name is required")

        principal = positive_amount(principal_amount, "Principal amount")
        rate = positive_amount(interest_percentage, "Interest percentage")
        due_day = parse_due_day(interest_due_day)
        start_date = parse_start_date(loan_start_date)
        return_months = parse_return_months(return_months)
        interest = monthly_interest(principal, rate)

        with self.storage.atomic():
            if new_borrower is not None:
                borrower_record = self.borrower_manager.create_borrower(
                    name=new_borrower["name"],
                    phone=new_borrower.get("phone"),
                    relationship_type=new_borrower.get("relationship_type"),
                    notes=new_borrower.get("notes")
                )
            else:
                borrower_record = self.borrower_manager.require_borrower(borrower)

            now = self.clock()
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                borrower_id=borrower_record.id,
                principal_amount=principal,
                interest_percentage=rate,
                monthly_interest_amount=interest,
                interest_due_day=due_day,
                loan_start_date=start_date,
                return_months=return_months
            )
            self.records.save_record(loan, LOANS_TABLE)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "borrower_id": borrower_record.id,
                    "principal_amount": principal,
                    "interest_percentage": rate,
                    "interest_due_day": due_day,
                    "loan_start_date": start_date
                }
            )

            self.scheduler.create_initial_cycle(loan, self._today(as_of))

        logger.info("Created loan %s for borrower %s", loan.id, borrower_record.id)
        return loan

    def _next_due(self, loan: Loan, as_of: date):
        """Next due date and amount: the oldest pending cycle, else a projection"""
        pending = self.scheduler.get_pending_cycles(loan.id)
        if pending:
            return pending[0].due_date, pending[0].amount
        return self.scheduler.project_next_due_date(loan, as_of), loan.monthly_interest_amount

    def list_loans(self, as_of: Optional[date] = None) -> List[LoanSummary]:
        """
        All loans with their next due date and collection status.

        Read-only: loans without cycles get a projected due date.
        """
        today = self._today(as_of)
        borrowers = {b.id: b for b in self.borrower_manager.list_borrowers()}
        loans = self.records.load_all_records(Loan, LOANS_TABLE)
        loans.sort(key=lambda loan: loan.created_at, reverse=True)

        summaries = []
        for loan in loans:
            borrower = borrowers.get(loan.borrower_id)
            if loan.is_closed:
                next_due_date, next_amount = None, None
                status = PaymentStatus.PAID
            else:
                next_due_date, next_amount = self._next_due(loan, today)
                status = classify(next_due_date, False, today)

            summaries.append(LoanSummary(
                loan=loan,
                borrower_name=borrower.name if borrower else "",
                outstanding_principal=self.ledger.outstanding_principal(loan),
                next_due_date=next_due_date,
                next_amount=next_amount,
                status=status
            ))

        return summaries

    def get_loan_detail(self, loan_id: str, as_of: Optional[date] = None) -> LoanDetail:
        """Loan with borrower, outstanding principal and recent history"""
        today = self._today(as_of)

        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            self.scheduler.ensure_cycle_in_flight(loan, today)

        all_cycles = self.scheduler.get_cycles(loan.id)
        collected = sum((c.amount for c in all_cycles if c.is_paid), ZERO)

        if loan.is_closed:
            next_due_date, status = None, PaymentStatus.PAID
        else:
            next_due_date, _ = self._next_due(loan, today)
            status = classify(next_due_date, False, today)

        history = sorted(all_cycles, key=lambda c: c.due_date, reverse=True)
        return LoanDetail(
            loan=loan,
            borrower=self.borrower_manager.get_borrower(loan.borrower_id),
            outstanding_principal=self.ledger.outstanding_principal(loan),
            total_interest_collected=collected,
            next_due_date=next_due_date,
            status=status,
            cycles=history[:self.history_limit],
            payments=self.ledger.get_payments(loan.id, limit=self.history_limit)
        )

    def update_loan(
        self,
        loan_id: str,
        borrower_patch: Optional[BorrowerPatch] = None,
        loan_patch: Optional[LoanPatch] = None,
        as_of: Optional[date] = None
    ) -> Loan:
        """
        Edit a loan and, optionally, its borrower

        Principal or rate changes recompute the monthly interest and every
        pending cycle's amount. A due-day change moves pending due dates.
        Setting the status closes or reopens the loan.
        """
        changes = self._validate_loan_patch(loan_patch) if loan_patch else {}

        with self.storage.atomic():
            loan = self.require_loan(loan_id)

            if borrower_patch and not borrower_patch.is_empty():
                self.borrower_manager.update_borrower(loan.borrower_id, borrower_patch)

            new_status = changes.pop('status', loan.status)
            if changes:
                self._apply_changes(loan, changes)

            if new_status != loan.status:
                self._set_status(loan, new_status, as_of)

        return loan

    def close_loan(self, loan_id: str) -> Loan:
        return self.update_loan(loan_id, loan_patch=LoanPatch(status=LoanStatus.CLOSED))

    def reopen_loan(self, loan_id: str, as_of: Optional[date] = None) -> Loan:
        return self.update_loan(loan_id, loan_patch=LoanPatch(status=LoanStatus.ACTIVE), as_of=as_of)

    def _apply_changes(self, loan: Loan, changes: Dict[str, Any]) -> None:
        old_data = {key: getattr(loan, key) for key in changes}
        for key, value in changes.items():
            setattr(loan, key, value)
        loan.updated_at = self.clock()
        self.records.save_record(loan, LOANS_TABLE)

        if 'principal_amount' in changes or 'interest_percentage' in changes:
            self.ledger.recalculate_interest(loan)
        if 'interest_due_day' in changes:
            self.scheduler.resync_pending_due_dates(loan)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_UPDATED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"old_data": old_data, "new_data": changes}
        )

    def _set_status(self, loan: Loan, status: LoanStatus, as_of: Optional[date]) -> None:
        loan.status = status
        if status == LoanStatus.CLOSED:
            loan.closed_at = self.clock()
            event_type = AuditEventType.LOAN_CLOSED
        else:
            loan.closed_at = None
            event_type = AuditEventType.LOAN_REOPENED
        loan.updated_at = self.clock()
        self.records.save_record(loan, LOANS_TABLE)

        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"closed_at": loan.closed_at}
        )

        if status == LoanStatus.ACTIVE:
            self.scheduler.ensure_cycle_in_flight(loan, self._today(as_of))

        logger.info("Loan %s is now %s", loan.id, status.value)

    def _validate_loan_patch(self, patch: LoanPatch) -> Dict[str, Any]:
        supplied = patch.supplied()
        changes: Dict[str, Any] = {}
        if 'principal_amount' in supplied:
            changes['principal_amount'] = positive_amount(supplied['principal_amount'], "Principal amount")
        if 'interest_percentage' in supplied:
            changes['interest_percentage'] = positive_amount(
                supplied['interest_percentage'], "Interest percentage"
            )
        if 'interest_due_day' in supplied:
            changes['interest_due_day'] = parse_due_day(supplied['interest_due_day'])
        if 'loan_start_date' in supplied:
            changes['loan_start_date'] = parse_start_date(supplied['loan_start_date'])
        if 'return_months' in supplied:
            changes['return_months'] = parse_return_months(supplied['return_months'])
        if 'status' in supplied:
            changes['status'] = parse_loan_status(supplied['status'])
        return changes

    def delete_loan(self, loan_id: str) -> None:
        """
        Delete a loan with its cycles and payments. The borrower goes too
        once it has no loans left.
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            self.borrower_manager.purge_loan_records(loan.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={"borrower_id": loan.borrower_id, "principal_amount": loan.principal_amount}
            )

            borrower = self.borrower_manager.get_borrower(loan.borrower_id)
            if borrower and not self.borrower_manager.get_borrower_loans(borrower.id):
                self.borrower_manager.delete_borrower(borrower.id)

        logger.info("Deleted loan %s", loan_id)
