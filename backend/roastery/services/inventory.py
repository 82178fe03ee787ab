"""Inventory projection views: per-item stock status and summaries."""

from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.config import settings
from roastery.models.inventory import InventoryItem

CRITICAL = "CRITICAL"
EXPIRING = "EXPIRING"
GOOD = "GOOD"


def classify_stock(item: InventoryItem, today: date | None = None) -> str:
    """CRITICAL when at or under minimum stock, else EXPIRING inside the window, else GOOD."""
    today = today or date.today()
    threshold = item.min_stock if item.min_stock else settings.critical_stock_default
    if (item.stock_qty or 0) <= threshold:
        return CRITICAL
    if item.expiry_date and item.expiry_date <= today + timedelta(days=settings.expiring_window_days):
        return EXPIRING
    return GOOD


def inventory_summary(items: list[InventoryItem], today: date | None = None) -> dict:
    statuses = [classify_stock(item, today) for item in items]
    total_value = sum((item.stock_qty or 0) * (item.cost_per_unit or 0) for item in items)
    return {
        "total_items": len(items),
        "total_value": round(total_value, 2),
        "low_stock": statuses.count(CRITICAL),
        "expiring": statuses.count(EXPIRING),
    }


async def list_inventory(
    db: AsyncSession,
    *,
    location_id: str | None = None,
    item_type: str | None = None,
    search: str | None = None,
) -> list[InventoryItem]:
    stmt = select(InventoryItem)
    if location_id:
        stmt = stmt.where(InventoryItem.location_id == location_id)
    if item_type:
        stmt = stmt.where(InventoryItem.item_type == item_type)
    if search:
        stmt = stmt.where(InventoryItem.name.ilike(f"%{search}%"))
    result = await db.execute(stmt.order_by(InventoryItem.name, InventoryItem.created_at))
    return list(result.scalars().all())
