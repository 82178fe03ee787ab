"""Stock transfer router.

Endpoints:
    POST  /api/transfers/                        Draft a transfer
    GET   /api/transfers/                        List transfers
    GET   /api/transfers/{transfer_id}           Transfer detail
    POST  /api/transfers/{transfer_id}/advance   Approve / complete / cancel
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission
from roastery.database import get_db
from roastery.models.user import User
from roastery.schemas.transfer import TransferAdvance, TransferCreate, TransferOut
from roastery.services.transfers import (
    advance_transfer,
    create_transfer,
    get_transfer,
    list_transfers,
)

router = APIRouter()


@router.post("/", response_model=TransferOut, status_code=status.HTTP_201_CREATED)
async def create(
    body: TransferCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("transfer.write")),
):
    return await create_transfer(
        db, user,
        source_location_id=body.source_location_id,
        destination_location_id=body.destination_location_id,
        manifest=body.manifest,
        notes=body.notes,
    )


@router.get("/", response_model=list[TransferOut])
async def get_transfers(
    transfer_status: str | None = Query(None, alias="status"),
    location_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("transfer.read")),
):
    return await list_transfers(
        db, status=transfer_status, location_id=location_id, limit=limit, offset=offset,
    )


@router.get("/{transfer_id}", response_model=TransferOut)
async def get_one(
    transfer_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("transfer.read")),
):
    return await get_transfer(db, transfer_id)


@router.post("/{transfer_id}/advance", response_model=TransferOut)
async def advance(
    transfer_id: str,
    body: TransferAdvance,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("transfer.write")),
):
    return await advance_transfer(
        db, user, transfer_id=transfer_id, target_status=body.status,
    )
