"""
Principal payment endpoints (top-up corrections)
"""

from fastapi import APIRouter, Depends

from .deps import LendingSystem, get_lending_system
from .schemas import EditTopUpRequest, parse_iso_date, payment_to_dict, loan_to_dict
from ..models import UNSET
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger(__name__)


@router.put("/{payment_id}")
async def edit_top_up(
    payment_id: str,
    request: EditTopUpRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Correct the amount, date or notes of a top-up"""
    supplied = request.model_dump(exclude_unset=True)
    payment = system.ledger.edit_top_up(
        payment_id,
        amount=supplied.get("amount", UNSET),
        on_date=parse_iso_date(supplied["date"]) if "date" in supplied else UNSET,
        notes=supplied.get("notes", UNSET)
    )

    log_action(
        logger, "info", "Top-up edited",
        action="edit_top_up", resource=f"principal_payment:{payment_id}"
    )
    return {
        "payment": payment_to_dict(payment),
        "loan": loan_to_dict(system.loan_manager.require_loan(payment.loan_id))
    }


@router.delete("/{payment_id}")
async def delete_top_up(
    payment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a top-up and reverse its principal increase"""
    loan = system.ledger.delete_top_up(payment_id)

    log_action(
        logger, "info", "Top-up deleted",
        action="delete_top_up", resource=f"principal_payment:{payment_id}"
    )
    return {
        "loan": loan_to_dict(loan),
        "message": "Top-up deleted successfully"
    }
