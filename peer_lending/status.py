"""
Payment Status Classification

Pure functions mapping a due date, a paid flag and an as-of date to a
collection status. Comparisons are by calendar day; times are ignored.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from .calendar_utils import to_date


class PaymentStatus(Enum):
    """Collection status of an interest obligation"""
    DUE = "due"            # Not yet past its due date
    OVERDUE = "overdue"    # As-of is after the due date
    PAID = "paid"


DateLike = Union[date, datetime]


def classify(due_date: DateLike, is_paid: bool, as_of: DateLike) -> PaymentStatus:
    """Classify a single obligation as of a reference date"""
    if is_paid:
        return PaymentStatus.PAID
    if to_date(as_of) > to_date(due_date):
        return PaymentStatus.OVERDUE
    return PaymentStatus.DUE


def paid_on_time(due_date: DateLike, paid_at: Optional[DateLike]) -> bool:
    """True when payment landed on or before the due day"""
    if paid_at is None:
        return False
    return to_date(paid_at) <= to_date(due_date)
