"""Pydantic schemas for inventory listing and stock adjustments."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from roastery.models.inventory import AdjustmentReason


# ── Inventory ────────────────────────────────────────────────

class InventoryItemOut(BaseModel):
    id: str
    name: str
    category: str | None
    item_type: str
    size: str | None
    unit: str | None
    location_id: str | None
    stock_qty: float
    min_stock: float | None
    price: float
    cost_per_unit: float | None
    batch_id: str | None
    product_id: str | None
    sku: str | None
    expiry_date: date | None
    # CRITICAL | EXPIRING | GOOD, computed at read time
    stock_status: str | None = None

    model_config = {"from_attributes": True}


class InventorySummary(BaseModel):
    total_items: int
    total_value: float
    low_stock: int
    expiring: int


# ── Adjustments ──────────────────────────────────────────────

class AdjustmentCreate(BaseModel):
    item_id: str
    location_id: str | None = None
    quantity_delta: float = Field(..., allow_inf_nan=False)
    reason: AdjustmentReason
    notes: str


class AdjustmentResolve(BaseModel):
    decision: str  # APPROVED | REJECTED


class AdjustmentOut(BaseModel):
    id: str
    item_id: str
    location_id: str | None
    quantity_delta: float
    reason: str
    notes: str
    value: float
    status: str
    user_id: str | None
    user_name: str | None
    item_name: str | None
    location_name: str | None
    resolved_by: str | None
    resolved_by_name: str | None
    resolved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
