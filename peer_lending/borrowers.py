"""
Borrower Module

Creates, updates and deletes borrower profiles. A borrower is shared context
for loans: it is only deleted once it has no loans, unless the caller asks
for a cascade.
"""

from typing import List, Optional
import logging
import uuid

from .storage import StorageInterface, StorageManager
from .audit import AuditTrail, AuditEventType
from .calendar_utils import Clock, utc_now
from .exceptions import ValidationError, NotFoundError, BusinessRuleError
from .models import (
    Borrower, BorrowerPatch, Loan, InterestCycle, PrincipalPayment,
    BORROWERS_TABLE, LOANS_TABLE, CYCLES_TABLE, PAYMENTS_TABLE
)


logger = logging.getLogger(__name__)


def _clean_optional(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class BorrowerManager:
    """
    Manages borrower profiles
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Clock = utc_now):
        self.storage = storage
        self.records = StorageManager(storage)
        self.audit_trail = audit_trail
        self.clock = clock

    def create_borrower(
        self,
        name: str,
        phone: Optional[str] = None,
        relationship_type: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Borrower:
        """
        Create a new borrower

        Args:
            name: Borrower's display name (required)
            phone: Optional phone number
            relationship_type: Optional tag such as "friend" or "family"
            notes: Optional free text

        Returns:
            Created Borrower object
        """
        clean_name = str(name).strip() if name is not None else ""
        if not clean_name:
            raise ValidationError("Borrower name is required")

        now = self.clock()
        borrower = Borrower(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=clean_name,
            phone=_clean_optional(phone),
            relationship_type=_clean_optional(relationship_type),
            notes=_clean_optional(notes)
        )

        with self.storage.atomic():
            self.records.save_record(borrower, BORROWERS_TABLE)
            self.audit_trail.log_event(
                event_type=AuditEventType.BORROWER_CREATED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={"name": borrower.name}
            )

        logger.info("Created borrower %s", borrower.id)
        return borrower

    def get_borrower(self, borrower_id: str) -> Optional[Borrower]:
        """Get borrower by ID"""
        return self.records.load_record(Borrower, BORROWERS_TABLE, borrower_id)

    def require_borrower(self, borrower_id: str) -> Borrower:
        borrower = self.get_borrower(borrower_id)
        if not borrower:
            raise NotFoundError("borrower", borrower_id)
        return borrower

    def list_borrowers(self) -> List[Borrower]:
        """All borrowers, sorted by name"""
        borrowers = self.records.load_all_records(Borrower, BORROWERS_TABLE)
        borrowers.sort(key=lambda b: b.name.lower())
        return borrowers

    def get_borrower_loans(self, borrower_id: str) -> List[Loan]:
        return self.records.find_records(Loan, LOANS_TABLE, {"borrower_id": borrower_id})

    def update_borrower(self, borrower_id: str, patch: BorrowerPatch) -> Borrower:
        """Apply the supplied fields of ``patch``; an empty name is rejected"""
        changes = patch.supplied()
        if 'name' in changes:
            name = changes['name']
            if name is None or not str(name).strip():
                raise ValidationError("Borrower name cannot be empty")
            changes['name'] = str(name).strip()
        for key in ('phone', 'relationship_type', 'notes'):
            if key in changes:
                changes[key] = _clean_optional(changes[key])

        with self.storage.atomic():
            borrower = self.require_borrower(borrower_id)
            if not changes:
                return borrower

            old_data = {key: getattr(borrower, key) for key in changes}
            for key, value in changes.items():
                setattr(borrower, key, value)
            borrower.updated_at = self.clock()

            self.records.save_record(borrower, BORROWERS_TABLE)
            self.audit_trail.log_event(
                event_type=AuditEventType.BORROWER_UPDATED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={"old_data": old_data, "new_data": changes}
            )

        return borrower

    def delete_borrower(self, borrower_id: str, cascade: bool = False) -> int:
        """
        Delete a borrower

        Args:
            borrower_id: Borrower to delete
            cascade: Also delete the borrower's loans with their cycles and payments

        Returns:
            Number of loans deleted along with the borrower
        """
        with self.storage.atomic():
            borrower = self.require_borrower(borrower_id)
            loans = self.get_borrower_loans(borrower_id)

            if loans and not cascade:
                raise BusinessRuleError(
                    f"Borrower {borrower_id} still has {len(loans)} loan(s)"
                )

            for loan in loans:
                self.purge_loan_records(loan.id)

            self.records.delete_record(BORROWERS_TABLE, borrower.id)
            self.audit_trail.log_event(
                event_type=AuditEventType.BORROWER_DELETED,
                entity_type="borrower",
                entity_id=borrower.id,
                metadata={"name": borrower.name, "deleted_loans": len(loans)}
            )

        logger.info("Deleted borrower %s with %d loan(s)", borrower_id, len(loans))
        return len(loans)

    def purge_loan_records(self, loan_id: str) -> None:
        """Remove a loan with its cycles and payments"""
        for cycle in self.records.find_records(InterestCycle, CYCLES_TABLE, {"loan_id": loan_id}):
            self.records.delete_record(CYCLES_TABLE, cycle.id)
        for payment in self.records.find_records(PrincipalPayment, PAYMENTS_TABLE, {"loan_id": loan_id}):
            self.records.delete_record(PAYMENTS_TABLE, payment.id)
        self.records.delete_record(LOANS_TABLE, loan_id)
