"""Batch router: roasting lifecycle and packaging.

Endpoints:
    POST   /api/batches/                         Start a roast (commits green beans)
    GET    /api/batches/                         List batches (with filters)
    GET    /api/batches/{batch_id}               Batch detail with units and history
    GET    /api/batches/{batch_id}/stats         Packaged / remaining weight
    POST   /api/batches/{batch_id}/finish        Record output weight
    POST   /api/batches/{batch_id}/allocations   Package roasted weight into units
"""

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission
from roastery.database import get_db
from roastery.models.user import User
from roastery.schemas.batch import (
    AllocationRequest,
    AllocationResponse,
    BatchDetail,
    BatchFinish,
    BatchPage,
    BatchStart,
    BatchSummary,
    BatchWeightStats,
    PackagingUnitOut,
)
from roastery.services.allocation import allocate_batch
from roastery.services.roasting import (
    batch_weight_stats,
    finish_batch,
    get_batch,
    is_ready_for_packaging,
    list_batches,
    start_batch,
)

router = APIRouter()


# ── Start ────────────────────────────────────────────────────

@router.post("/", response_model=BatchSummary, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: BatchStart,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("batch.write")),
):
    return await start_batch(
        db, user,
        bean_id=body.bean_id,
        pre_weight_kg=body.pre_weight_kg,
        level=body.level.value,
        roast_date=body.roast_date,
        notes=body.notes,
    )


# ── List ─────────────────────────────────────────────────────

@router.get("/", response_model=BatchPage)
async def get_batches(
    batch_status: str | None = Query(None, alias="status"),
    level: str | None = Query(None),
    search: str | None = Query(None, description="Search batch code or operator"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batch.read")),
):
    items, total = await list_batches(
        db, status=batch_status, level=level, search=search, limit=limit, offset=offset,
    )
    return BatchPage(
        items=[BatchSummary.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Detail ───────────────────────────────────────────────────

@router.get("/{batch_id}", response_model=BatchDetail)
async def get_batch_detail(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batch.read")),
):
    batch = await get_batch(db, batch_id)
    _, remaining = await batch_weight_stats(db, batch)
    detail = BatchDetail.model_validate(batch)
    detail.remaining_weight_kg = round(remaining, 3)
    detail.ready_for_packaging = is_ready_for_packaging(batch, remaining)
    return detail


@router.get("/{batch_id}/stats", response_model=BatchWeightStats)
async def get_batch_stats(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("batch.read")),
):
    batch = await get_batch(db, batch_id)
    packaged, remaining = await batch_weight_stats(db, batch)
    return BatchWeightStats(
        batch_id=batch.id,
        post_weight_kg=batch.post_weight_kg,
        packaged_weight_kg=round(packaged, 3),
        remaining_weight_kg=round(remaining, 3),
        ready_for_packaging=is_ready_for_packaging(batch, remaining),
    )


# ── Finish ───────────────────────────────────────────────────

@router.post("/{batch_id}/finish", response_model=BatchSummary)
async def finish(
    batch_id: str,
    body: BatchFinish,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("batch.write")),
):
    return await finish_batch(
        db, user, batch_id=batch_id, post_weight_kg=body.post_weight_kg, notes=body.notes,
    )


# ── Allocate ─────────────────────────────────────────────────

@router.post(
    "/{batch_id}/allocations",
    response_model=AllocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_allocation(
    batch_id: str,
    body: AllocationRequest,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=64),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("packaging.write")),
):
    """Package part of the batch.  The idempotency key may come from the
    body or the ``Idempotency-Key`` header; the body wins."""
    result = await allocate_batch(
        db, user,
        batch_id=batch_id,
        lines=body.lines,
        production_date=body.production_date,
        packaging_date=body.packaging_date,
        location_id=body.location_id,
        idempotency_key=body.idempotency_key or idempotency_key,
    )
    return AllocationResponse(
        batch=BatchSummary.model_validate(result.batch),
        units=[PackagingUnitOut.model_validate(u) for u in result.units],
        inventory_item_ids=[item.id for item in result.inventory_items],
        total_weight_kg=result.total_weight_kg,
        remaining_weight_kg=result.remaining_weight_kg,
        replayed=result.replayed,
    )
