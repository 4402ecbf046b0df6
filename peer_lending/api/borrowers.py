"""
Borrower endpoints
"""

from fastapi import APIRouter, Depends, Query, status

from .deps import LendingSystem, get_lending_system
from .schemas import BorrowerModel, UpdateBorrowerRequest, borrower_to_dict, loan_to_dict
from ..exceptions import NotFoundError
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_borrower(
    request: BorrowerModel,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a borrower without a loan"""
    borrower = system.borrower_manager.create_borrower(
        name=request.name,
        phone=request.phone,
        relationship_type=request.relationship_type,
        notes=request.notes
    )

    log_action(logger, "info", "Borrower created", action="create_borrower",
               resource=f"borrower:{borrower.id}")
    return {
        "borrower": borrower_to_dict(borrower),
        "message": "Borrower created successfully"
    }


@router.get("")
async def list_borrowers(system: LendingSystem = Depends(get_lending_system)):
    """List borrowers by name"""
    borrowers = system.borrower_manager.list_borrowers()
    return {
        "borrowers": [borrower_to_dict(b) for b in borrowers],
        "count": len(borrowers)
    }


@router.get("/{borrower_id}")
async def get_borrower(
    borrower_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a borrower with their loans"""
    borrower = system.borrower_manager.get_borrower(borrower_id)
    if not borrower:
        raise NotFoundError("borrower", borrower_id)

    loans = system.borrower_manager.get_borrower_loans(borrower_id)
    return {
        "borrower": borrower_to_dict(borrower),
        "loans": [loan_to_dict(loan) for loan in loans]
    }


@router.put("/{borrower_id}")
async def update_borrower(
    borrower_id: str,
    request: UpdateBorrowerRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Update borrower fields that are present in the body"""
    borrower = system.borrower_manager.update_borrower(borrower_id, request.to_patch())

    log_action(logger, "info", "Borrower updated", action="update_borrower",
               resource=f"borrower:{borrower_id}")
    return {
        "borrower": borrower_to_dict(borrower),
        "message": "Borrower updated successfully"
    }


@router.delete("/{borrower_id}")
async def delete_borrower(
    borrower_id: str,
    cascade: bool = Query(False, description="Also delete the borrower's loans"),
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a borrower; loans must be gone unless cascade is set"""
    deleted_loans = system.borrower_manager.delete_borrower(borrower_id, cascade=cascade)

    log_action(logger, "info", "Borrower deleted", action="delete_borrower",
               resource=f"borrower:{borrower_id}", extra={"deleted_loans": deleted_loans})
    return {
        "deleted_loans": deleted_loans,
        "message": "Borrower deleted successfully"
    }
