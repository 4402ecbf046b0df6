"""
Pydantic schemas for API requests, plus response serialization helpers
"""

from decimal import Decimal
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from ..calendar_utils import parse_iso_day, parse_iso_timestamp
from ..exceptions import ValidationError
from ..models import (
    Borrower, Loan, InterestCycle, PrincipalPayment, BorrowerPatch, LoanPatch
)
from ..loans import LoanSummary, LoanDetail
from ..collection import CollectionResult


# Borrower schemas
class BorrowerModel(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship_type: Optional[str] = None
    notes: Optional[str] = None


class UpdateBorrowerRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship_type: Optional[str] = None
    notes: Optional[str] = None

    def to_patch(self) -> BorrowerPatch:
        return BorrowerPatch(**self.model_dump(exclude_unset=True))


# Loan schemas
class LoanTermsModel(BaseModel):
    principal_amount: str = Field(..., description="Decimal amount as string")
    interest_percentage: str = Field(..., description="Monthly rate in percent, as string")
    interest_due_day: int = Field(..., description="Day of month interest is due (1-30)")
    loan_start_date: Optional[str] = None  # ISO date string
    return_months: Optional[int] = None


class CreateLoanRequest(BaseModel):
    borrower_id: Optional[str] = None
    borrower: Optional[BorrowerModel] = None
    loan: LoanTermsModel


class UpdateLoanTermsModel(BaseModel):
    principal_amount: Optional[str] = None
    interest_percentage: Optional[str] = None
    interest_due_day: Optional[int] = None
    loan_start_date: Optional[str] = None
    return_months: Optional[int] = None
    status: Optional[str] = Field(None, description="Loan status (active, closed)")

    def to_patch(self) -> LoanPatch:
        return LoanPatch(**self.model_dump(exclude_unset=True))


class UpdateLoanRequest(BaseModel):
    borrower: Optional[UpdateBorrowerRequest] = None
    loan: Optional[UpdateLoanTermsModel] = None


class CollectInterestRequest(BaseModel):
    as_of: Optional[str] = None    # ISO date string
    paid_at: Optional[str] = None  # ISO date or datetime string


# Principal schemas
class PrincipalMovementRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    date: Optional[str] = None  # ISO date string, defaults to today
    notes: Optional[str] = None


class EditTopUpRequest(BaseModel):
    amount: Optional[str] = None
    date: Optional[str] = None
    notes: Optional[str] = None


def parse_iso_date(value: Optional[str], field_name: str = "Date") -> Optional[date]:
    """Parse a YYYY-MM-DD string; None passes through"""
    if value is None:
        return None
    try:
        return parse_iso_day(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be a valid YYYY-MM-DD")


def parse_iso_datetime(value: Optional[str], field_name: str = "Timestamp") -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_iso_timestamp(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date or datetime")


def to_json(value: Any) -> Any:
    """Decimals as strings, dates as ISO strings, enums as their values"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


def borrower_to_dict(borrower: Borrower) -> dict:
    return to_json({
        "id": borrower.id,
        "name": borrower.name,
        "phone": borrower.phone,
        "relationship_type": borrower.relationship_type,
        "notes": borrower.notes,
        "created_at": borrower.created_at,
    })


def loan_to_dict(loan: Loan) -> dict:
    return to_json({
        "id": loan.id,
        "borrower_id": loan.borrower_id,
        "principal_amount": loan.principal_amount,
        "interest_percentage": loan.interest_percentage,
        "monthly_interest_amount": loan.monthly_interest_amount,
        "interest_due_day": loan.interest_due_day,
        "loan_start_date": loan.loan_start_date,
        "return_months": loan.return_months,
        "status": loan.status,
        "closed_at": loan.closed_at,
        "created_at": loan.created_at,
    })


def cycle_to_dict(cycle: InterestCycle) -> dict:
    return to_json({
        "id": cycle.id,
        "loan_id": cycle.loan_id,
        "month_year": cycle.month_year,
        "due_date": cycle.due_date,
        "amount": cycle.amount,
        "status": cycle.status,
        "paid_at": cycle.paid_at,
    })


def payment_to_dict(payment: PrincipalPayment) -> dict:
    return to_json({
        "id": payment.id,
        "loan_id": payment.loan_id,
        "amount": payment.amount,
        "paid_at": payment.paid_at,
        "kind": payment.kind,
        "notes": payment.notes,
    })


def summary_to_dict(summary: LoanSummary) -> dict:
    result = loan_to_dict(summary.loan)
    result.update(to_json({
        "borrower_name": summary.borrower_name,
        "outstanding_principal": summary.outstanding_principal,
        "next_due_date": summary.next_due_date,
        "next_amount": summary.next_amount,
        "payment_status": summary.status,
    }))
    return result


def detail_to_dict(detail: LoanDetail) -> dict:
    return {
        "loan": loan_to_dict(detail.loan),
        "borrower": borrower_to_dict(detail.borrower) if detail.borrower else None,
        "outstanding_principal": to_json(detail.outstanding_principal),
        "total_interest_collected": to_json(detail.total_interest_collected),
        "next_due_date": to_json(detail.next_due_date),
        "payment_status": to_json(detail.status),
        "interest_cycles": [cycle_to_dict(c) for c in detail.cycles],
        "principal_payments": [payment_to_dict(p) for p in detail.payments],
    }


def collection_to_dict(result: CollectionResult) -> dict:
    return {
        "loan_id": result.loan_id,
        "cycle": cycle_to_dict(result.cycle),
        "synthesized": result.synthesized,
        "next_cycle": to_json({
            "month_year": result.next_cycle.month_year,
            "due_date": result.next_cycle.due_date,
            "created": result.next_cycle.created,
        }),
    }
