"""Stock adjustment router.

Endpoints:
    POST  /api/adjustments/                      Submit an adjustment
    GET   /api/adjustments/                      List adjustments (newest first)
    POST  /api/adjustments/{adjustment_id}/resolve  Approve or reject (managers)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission
from roastery.database import get_db
from roastery.models.user import User
from roastery.schemas.inventory import AdjustmentCreate, AdjustmentOut, AdjustmentResolve
from roastery.services.adjustments import (
    list_adjustments,
    resolve_adjustment,
    submit_adjustment,
)

router = APIRouter()


@router.post("/", response_model=AdjustmentOut, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    body: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("adjustment.write")),
):
    return await submit_adjustment(
        db, user,
        item_id=body.item_id,
        location_id=body.location_id,
        quantity_delta=body.quantity_delta,
        reason=body.reason.value,
        notes=body.notes,
    )


@router.get("/", response_model=list[AdjustmentOut])
async def get_adjustments(
    adjustment_status: str | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("inventory.read")),
):
    return await list_adjustments(db, status=adjustment_status, limit=limit, offset=offset)


@router.post("/{adjustment_id}/resolve", response_model=AdjustmentOut)
async def resolve(
    adjustment_id: str,
    body: AdjustmentResolve,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("adjustment.approve")),
):
    return await resolve_adjustment(
        db, user, adjustment_id=adjustment_id, decision=body.decision,
    )
