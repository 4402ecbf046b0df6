"""
Lending Records

Dataclasses for borrowers, loans, interest cycles and principal payments,
plus the partial-update structures used by the update operations.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, Any, Optional
from enum import Enum

from .storage import StorageRecord
from .money import ZERO


BORROWERS_TABLE = "borrowers"
LOANS_TABLE = "loans"
CYCLES_TABLE = "interest_cycles"
PAYMENTS_TABLE = "principal_payments"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    CLOSED = "closed"      # No further collection, top-ups or repayments


class CycleStatus(Enum):
    """Interest cycle states; PAID is terminal"""
    PENDING = "pending"
    PAID = "paid"


class PaymentKind(Enum):
    """Kinds of principal movement"""
    REPAYMENT = "repayment"    # Reduces outstanding principal
    TOP_UP = "top_up"          # Raises the principal baseline


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


@dataclass
class Borrower(StorageRecord):
    """A person money is lent to"""
    name: str
    phone: Optional[str] = None
    relationship_type: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Borrower name is required")


@dataclass
class Loan(StorageRecord):
    """A principal loan with simple monthly interest"""
    borrower_id: str
    principal_amount: Decimal
    interest_percentage: Decimal          # Monthly, e.g. Decimal('2') for 2%
    monthly_interest_amount: Decimal
    interest_due_day: int
    loan_start_date: date
    return_months: Optional[int] = None
    status: LoanStatus = LoanStatus.ACTIVE
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        data = dict(data)
        for key in ('principal_amount', 'interest_percentage', 'monthly_interest_amount'):
            data[key] = Decimal(data[key])
        data['loan_start_date'] = _parse_date(data['loan_start_date'])
        data['status'] = LoanStatus(data.get('status', LoanStatus.ACTIVE.value))
        data['closed_at'] = _parse_datetime(data.get('closed_at'))
        return super().from_dict(data)


@dataclass
class InterestCycle(StorageRecord):
    """One month's interest obligation for a loan"""
    loan_id: str
    month_year: str                 # "YYYY-MM"
    due_date: date
    amount: Decimal                 # Snapshot; frozen once paid
    status: CycleStatus = CycleStatus.PENDING
    paid_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status == CycleStatus.PAID

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestCycle':
        data = dict(data)
        data['due_date'] = _parse_date(data['due_date'])
        data['amount'] = Decimal(data['amount'])
        data['status'] = CycleStatus(data['status'])
        data['paid_at'] = _parse_datetime(data.get('paid_at'))
        return super().from_dict(data)


@dataclass
class PrincipalPayment(StorageRecord):
    """Audit entry for a repayment or a top-up"""
    loan_id: str
    amount: Decimal                 # Always positive; kind decides the direction
    paid_at: datetime
    kind: PaymentKind
    notes: Optional[str] = None

    def __post_init__(self):
        if self.amount <= ZERO:
            raise ValueError("Principal payment amount must be greater than 0")

    @property
    def is_top_up(self) -> bool:
        return self.kind == PaymentKind.TOP_UP

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PrincipalPayment':
        data = dict(data)
        data['amount'] = Decimal(data['amount'])
        data['paid_at'] = _parse_datetime(data['paid_at'])
        data['kind'] = PaymentKind(data['kind'])
        return super().from_dict(data)


class _Unset:
    """Marker for fields a partial update leaves alone"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNSET"


UNSET: Any = _Unset()


class _Patch:
    """Shared helpers for partial-update dataclasses"""

    def supplied(self) -> Dict[str, Any]:
        """Fields that were explicitly provided"""
        return {name: value for name, value in self.__dict__.items() if value is not UNSET}

    def is_empty(self) -> bool:
        return not self.supplied()


@dataclass
class BorrowerPatch(_Patch):
    """Partial update for a borrower; None clears an optional field"""
    name: Any = UNSET
    phone: Any = UNSET
    relationship_type: Any = UNSET
    notes: Any = UNSET


@dataclass
class LoanPatch(_Patch):
    """Partial update for a loan"""
    principal_amount: Any = UNSET
    interest_percentage: Any = UNSET
    interest_due_day: Any = UNSET
    loan_start_date: Any = UNSET
    return_months: Any = UNSET
    status: Any = UNSET
