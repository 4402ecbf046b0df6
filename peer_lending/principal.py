"""
Principal Ledger

Records repayments and top-ups against a loan and keeps the loan's monthly
interest consistent with its outstanding principal:

    outstanding = max(0, principal_amount - sum(repayments))
    monthly_interest_amount = round(outstanding * interest_percentage / 100, 2)

Top-ups raise ``principal_amount`` directly and are kept as payment rows for
the history only; they never count toward the repayment sum.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging
import uuid

from .storage import StorageInterface, StorageManager
from .audit import AuditTrail, AuditEventType
from .calendar_utils import Clock, utc_now, start_of_day_utc, to_date
from .cycles import CycleScheduler
from .money import ZERO, positive_amount, monthly_interest
from .exceptions import NotFoundError, BusinessRuleError, ValidationError
from .models import (
    Loan, PrincipalPayment, PaymentKind, UNSET,
    LOANS_TABLE, PAYMENTS_TABLE
)


logger = logging.getLogger(__name__)


class PrincipalLedger:
    """
    Repayments, top-ups and the interest recomputation that follows them
    """

    def __init__(self, storage: StorageInterface, scheduler: CycleScheduler,
                 audit_trail: AuditTrail, clock: Clock = utc_now):
        self.storage = storage
        self.records = StorageManager(storage)
        self.scheduler = scheduler
        self.audit_trail = audit_trail
        self.clock = clock

    def _require_loan(self, loan_id: str) -> Loan:
        loan = self.records.load_record(Loan, LOANS_TABLE, loan_id)
        if not loan:
            raise NotFoundError("loan", loan_id)
        return loan

    def _require_open_loan(self, loan_id: str) -> Loan:
        loan = self._require_loan(loan_id)
        if loan.is_closed:
            raise BusinessRuleError("Loan is closed")
        return loan

    def _require_top_up(self, payment_id: str, action: str) -> PrincipalPayment:
        payment = self.records.load_record(PrincipalPayment, PAYMENTS_TABLE, payment_id)
        if not payment:
            raise NotFoundError("principal payment", payment_id)
        if not payment.is_top_up:
            raise BusinessRuleError(f"Only top-up entries can be {action}")
        return payment

    def _payment_timestamp(self, on_date: Optional[date]):
        if on_date is None:
            on_date = self.clock().date()
        return start_of_day_utc(to_date(on_date))

    # Queries

    def get_payments(self, loan_id: str, limit: Optional[int] = None) -> List[PrincipalPayment]:
        """Payments for a loan, newest first"""
        payments = self.records.find_records(PrincipalPayment, PAYMENTS_TABLE, {"loan_id": loan_id})
        payments.sort(key=lambda p: (p.paid_at, p.created_at), reverse=True)
        if limit:
            payments = payments[:limit]
        return payments

    def get_payment(self, payment_id: str) -> Optional[PrincipalPayment]:
        return self.records.load_record(PrincipalPayment, PAYMENTS_TABLE, payment_id)

    def total_repaid(self, loan_id: str) -> Decimal:
        return sum(
            (p.amount for p in self.get_payments(loan_id) if p.kind == PaymentKind.REPAYMENT),
            ZERO
        )

    def outstanding_principal(self, loan: Loan) -> Decimal:
        """Principal still owed, never negative"""
        outstanding = loan.principal_amount - self.total_repaid(loan.id)
        return max(ZERO, outstanding)

    # Writes

    def recalculate_interest(self, loan: Loan) -> Loan:
        """
        Recompute the loan's monthly interest from its outstanding principal
        and push it to every pending cycle. Paid cycles are untouched.
        """
        with self.storage.atomic():
            old_amount = loan.monthly_interest_amount
            loan.monthly_interest_amount = monthly_interest(
                self.outstanding_principal(loan), loan.interest_percentage
            )
            loan.updated_at = self.clock()
            self.records.save_record(loan, LOANS_TABLE)
            synced = self.scheduler.sync_pending_amounts(loan)

            if old_amount != loan.monthly_interest_amount:
                self.audit_trail.log_event(
                    event_type=AuditEventType.INTEREST_RECALCULATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "old_amount": old_amount,
                        "new_amount": loan.monthly_interest_amount,
                        "pending_cycles_synced": synced
                    }
                )

        return loan

    def apply_top_up(
        self,
        loan_id: str,
        amount,
        on_date: Optional[date] = None,
        notes: Optional[str] = None
    ) -> PrincipalPayment:
        """
        Lend more money on an existing loan

        Args:
            loan_id: Loan to top up
            amount: Positive amount added to the principal
            on_date: Day of the top-up (defaults to today)
            notes: Optional free text

        Returns:
            The recorded top-up entry
        """
        amount = positive_amount(amount, "Top-up amount")

        with self.storage.atomic():
            loan = self._require_open_loan(loan_id)
            payment = self._record_payment(loan, amount, PaymentKind.TOP_UP, on_date, notes)

            loan.principal_amount = loan.principal_amount + amount
            self.recalculate_interest(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PRINCIPAL_TOP_UP,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "payment_id": payment.id,
                    "amount": amount,
                    "principal_amount": loan.principal_amount,
                    "monthly_interest_amount": loan.monthly_interest_amount
                }
            )

        logger.info("Top-up of %s on loan %s", amount, loan_id)
        return payment

    def apply_repayment(
        self,
        loan_id: str,
        amount,
        on_date: Optional[date] = None,
        notes: Optional[str] = None
    ) -> PrincipalPayment:
        """Record principal paid back; cannot exceed what is outstanding"""
        amount = positive_amount(amount, "Repayment amount")

        with self.storage.atomic():
            loan = self._require_open_loan(loan_id)
            outstanding = self.outstanding_principal(loan)
            if amount > outstanding:
                raise BusinessRuleError(
                    f"Repayment {amount} exceeds outstanding principal {outstanding}"
                )

            payment = self._record_payment(loan, amount, PaymentKind.REPAYMENT, on_date, notes)
            self.recalculate_interest(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PRINCIPAL_REPAYMENT,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "payment_id": payment.id,
                    "amount": amount,
                    "outstanding_principal": outstanding - amount,
                    "monthly_interest_amount": loan.monthly_interest_amount
                }
            )

        logger.info("Repayment of %s on loan %s", amount, loan_id)
        return payment

    def edit_top_up(
        self,
        payment_id: str,
        amount=UNSET,
        on_date=UNSET,
        notes=UNSET
    ) -> PrincipalPayment:
        """
        Correct a top-up entry. The loan's principal moves by the difference
        between the new and old amounts, floored at zero.
        """
        new_amount = positive_amount(amount, "Amount") if amount is not UNSET else UNSET
        if on_date is not UNSET and on_date is None:
            raise ValidationError("Date must be a valid YYYY-MM-DD")

        with self.storage.atomic():
            payment = self._require_top_up(payment_id, "edited")
            loan = self._require_open_loan(payment.loan_id)
            old_amount = payment.amount

            if new_amount is not UNSET:
                payment.amount = new_amount
            if on_date is not UNSET:
                payment.paid_at = self._payment_timestamp(on_date)
            if notes is not UNSET:
                payment.notes = notes.strip() if notes and notes.strip() else None
            payment.updated_at = self.clock()
            self.records.save_record(payment, PAYMENTS_TABLE)

            delta = payment.amount - old_amount
            if delta != ZERO:
                loan.principal_amount = max(ZERO, loan.principal_amount + delta)
            self.recalculate_interest(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PRINCIPAL_PAYMENT_EDITED,
                entity_type="principal_payment",
                entity_id=payment.id,
                metadata={
                    "loan_id": loan.id,
                    "old_amount": old_amount,
                    "new_amount": payment.amount,
                    "principal_amount": loan.principal_amount
                }
            )

        return payment

    def delete_top_up(self, payment_id: str) -> Loan:
        """Remove a top-up and take its amount back off the principal"""
        with self.storage.atomic():
            payment = self._require_top_up(payment_id, "deleted")
            loan = self._require_open_loan(payment.loan_id)

            loan.principal_amount = max(ZERO, loan.principal_amount - payment.amount)
            self.records.delete_record(PAYMENTS_TABLE, payment.id)
            self.recalculate_interest(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PRINCIPAL_PAYMENT_DELETED,
                entity_type="principal_payment",
                entity_id=payment.id,
                metadata={
                    "loan_id": loan.id,
                    "amount": payment.amount,
                    "principal_amount": loan.principal_amount
                }
            )

        logger.info("Deleted top-up %s from loan %s", payment_id, loan.id)
        return loan

    def _record_payment(
        self,
        loan: Loan,
        amount: Decimal,
        kind: PaymentKind,
        on_date: Optional[date],
        notes: Optional[str]
    ) -> PrincipalPayment:
        now = self.clock()
        payment = PrincipalPayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan.id,
            amount=amount,
            paid_at=self._payment_timestamp(on_date),
            kind=kind,
            notes=notes.strip() if notes and notes.strip() else None
        )
        self.records.save_record(payment, PAYMENTS_TABLE)
        return payment
