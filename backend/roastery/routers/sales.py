"""Sales router: POS checkout and receipt reprints.

Endpoints:
    POST  /api/sales/checkout          Price the cart, record the sale, draw down stock
    POST  /api/sales/{sale_id}/reprint Log a receipt reprint (managers and admins)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission, require_role
from roastery.database import get_db
from roastery.models.user import PRIVILEGED_ROLES, User
from roastery.schemas.sale import CheckoutRequest, ReprintOut, ReprintRequest, SaleOut
from roastery.services.checkout import checkout, log_reprint

router = APIRouter()


@router.post("/checkout", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
async def create_sale(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("sales.write")),
):
    return await checkout(
        db, user,
        lines=body.lines,
        payment_method=body.payment_method.value,
        location_id=body.location_id,
        payment_breakdown=body.payment_breakdown,
        received_amount=body.received_amount,
        card_reference=body.card_reference,
    )


@router.post("/{sale_id}/reprint", response_model=ReprintOut, status_code=status.HTTP_201_CREATED)
async def reprint(
    sale_id: str,
    body: ReprintRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(*PRIVILEGED_ROLES)),
):
    return await log_reprint(db, user, sale_id=sale_id, reason=body.reason)
