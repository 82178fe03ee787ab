"""Inventory router: stock listing and summary.

Endpoints:
    GET  /api/inventory/          List stock rows with computed status
    GET  /api/inventory/summary   Item count, stock value, low-stock count
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission
from roastery.database import get_db
from roastery.models.user import User
from roastery.schemas.inventory import InventoryItemOut, InventorySummary
from roastery.services.inventory import classify_stock, inventory_summary, list_inventory

router = APIRouter()


@router.get("/", response_model=list[InventoryItemOut])
async def get_inventory(
    location_id: str | None = Query(None),
    item_type: str | None = Query(None, description="PACKAGED_COFFEE | BEVERAGE | INGREDIENT"),
    search: str | None = Query(None),
    stock_status: str | None = Query(None, description="CRITICAL | EXPIRING | GOOD"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("inventory.read")),
):
    items = await list_inventory(db, location_id=location_id, item_type=item_type, search=search)
    out = []
    for item in items:
        row = InventoryItemOut.model_validate(item)
        row.stock_status = classify_stock(item)
        if stock_status and row.stock_status != stock_status:
            continue
        out.append(row)
    return out


@router.get("/summary", response_model=InventorySummary)
async def get_inventory_summary(
    location_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("inventory.read")),
):
    items = await list_inventory(db, location_id=location_id)
    return InventorySummary(**inventory_summary(items))
