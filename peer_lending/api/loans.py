"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .deps import LendingSystem, get_lending_system
from .schemas import (
    CreateLoanRequest, UpdateLoanRequest, CollectInterestRequest,
    PrincipalMovementRequest, parse_iso_date, parse_iso_datetime,
    loan_to_dict, summary_to_dict, detail_to_dict, collection_to_dict, payment_to_dict
)
from ..exceptions import ValidationError
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Open a loan for a new or existing borrower"""
    if request.borrower_id:
        borrower = request.borrower_id
    elif request.borrower is not None:
        borrower = request.borrower.model_dump()
    else:
        raise ValidationError("Borrower name is required")

    loan = system.loan_manager.create_loan(
        borrower=borrower,
        principal_amount=request.loan.principal_amount,
        interest_percentage=request.loan.interest_percentage,
        interest_due_day=request.loan.interest_due_day,
        loan_start_date=request.loan.loan_start_date,
        return_months=request.loan.return_months
    )

    log_action(logger, "info", "Loan created", action="create_loan", resource=f"loan:{loan.id}")
    return {
        "loan": loan_to_dict(loan),
        "message": "Loan created successfully"
    }


@router.get("")
async def list_loans(
    as_of: Optional[str] = Query(None, description="ISO date; defaults to today"),
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans with their next due date and payment status"""
    summaries = system.loan_manager.list_loans(as_of=parse_iso_date(as_of, "As-of date"))
    return {
        "loans": [summary_to_dict(s) for s in summaries],
        "count": len(summaries)
    }


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    as_of: Optional[str] = Query(None, description="ISO date; defaults to today"),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details with interest and principal history"""
    detail = system.loan_manager.get_loan_detail(loan_id, as_of=parse_iso_date(as_of, "As-of date"))
    return detail_to_dict(detail)


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Edit a loan and its borrower"""
    loan = system.loan_manager.update_loan(
        loan_id,
        borrower_patch=request.borrower.to_patch() if request.borrower else None,
        loan_patch=request.loan.to_patch() if request.loan else None
    )

    log_action(logger, "info", "Loan updated", action="update_loan", resource=f"loan:{loan.id}")
    return {
        "loan": loan_to_dict(loan),
        "message": "Loan updated successfully"
    }


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a loan with its history"""
    system.loan_manager.delete_loan(loan_id)

    log_action(logger, "info", "Loan deleted", action="delete_loan", resource=f"loan:{loan_id}")
    return {"message": "Loan deleted successfully"}


@router.post("/{loan_id}/collect-interest")
async def collect_interest(
    loan_id: str,
    request: Optional[CollectInterestRequest] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Collect the interest currently due on a loan"""
    request = request or CollectInterestRequest()
    result = system.collection_engine.collect_interest(
        loan_id,
        as_of=parse_iso_date(request.as_of, "As-of date"),
        paid_at=parse_iso_datetime(request.paid_at, "Paid-at")
    )

    log_action(
        logger, "info", "Interest collected",
        action="collect_interest", resource=f"loan:{loan_id}",
        extra={"month_year": result.cycle.month_year, "amount": str(result.cycle.amount)}
    )
    return collection_to_dict(result)


@router.post("/{loan_id}/top-up", status_code=status.HTTP_201_CREATED)
async def top_up_loan(
    loan_id: str,
    request: PrincipalMovementRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Add principal to an existing loan"""
    payment = system.ledger.apply_top_up(
        loan_id,
        amount=request.amount,
        on_date=parse_iso_date(request.date, "Top-up date"),
        notes=request.notes
    )
    loan = system.loan_manager.require_loan(loan_id)

    log_action(logger, "info", "Principal topped up", action="top_up", resource=f"loan:{loan_id}")
    return {
        "top_up": payment_to_dict(payment),
        "loan": loan_to_dict(loan),
        "principal_current": str(system.ledger.outstanding_principal(loan))
    }


@router.post("/{loan_id}/repayments", status_code=status.HTTP_201_CREATED)
async def repay_principal(
    loan_id: str,
    request: PrincipalMovementRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Record principal paid back"""
    payment = system.ledger.apply_repayment(
        loan_id,
        amount=request.amount,
        on_date=parse_iso_date(request.date, "Repayment date"),
        notes=request.notes
    )
    loan = system.loan_manager.require_loan(loan_id)

    log_action(logger, "info", "Principal repaid", action="repayment", resource=f"loan:{loan_id}")
    return {
        "repayment": payment_to_dict(payment),
        "loan": loan_to_dict(loan),
        "principal_current": str(system.ledger.outstanding_principal(loan))
    }
