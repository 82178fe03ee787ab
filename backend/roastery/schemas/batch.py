"""Pydantic schemas for roasting batches and packaging allocations."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from roastery.models.roasting_batch import RoastLevel


# ── Start / finish ───────────────────────────────────────────

class BatchStart(BaseModel):
    """Payload for POST /api/batches: commit green beans to the roaster.

    ``pre_weight_kg`` must be a positive finite number; the service checks it
    against the bean lot and reports a shortfall as INSUFFICIENT_STOCK.
    """
    bean_id: str
    pre_weight_kg: float = Field(..., gt=0, allow_inf_nan=False)
    level: RoastLevel
    roast_date: date | None = None
    notes: str | None = None


class BatchFinish(BaseModel):
    post_weight_kg: float = Field(..., gt=0, allow_inf_nan=False)
    notes: str | None = None


# ── Allocation ───────────────────────────────────────────────

class AllocationLine(BaseModel):
    product_id: str
    # Left loose here so a bad quantity is reported against its line
    quantity: Any = None


class AllocationRequest(BaseModel):
    """Payload for POST /api/batches/{id}/allocations."""
    lines: list[AllocationLine]
    production_date: date
    packaging_date: date
    location_id: str
    idempotency_key: str | None = Field(None, max_length=64)


# ── Response ─────────────────────────────────────────────────

class BatchSummary(BaseModel):
    id: str
    batch_code: str
    bean_id: str
    roast_date: date
    level: str
    pre_weight_kg: float
    post_weight_kg: float | None
    waste_pct: float | None
    cost_per_kg: float
    status: str
    packaged_weight_kg: float
    operator: str | None
    completed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BatchPage(BaseModel):
    """One page of GET /api/batches, newest first."""
    items: list[BatchSummary]
    total: int
    limit: int
    offset: int


class PackagingUnitOut(BaseModel):
    id: str
    batch_id: str
    template_id: str
    product_id: str
    location_id: str
    size_label: str | None
    quantity: int
    unit_weight_kg: float
    packaging_cost_total: float
    production_date: date
    packaging_date: date
    expiry_date: date
    sku: str
    allocation_key: str | None
    operator: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BatchHistoryOut(BaseModel):
    id: str
    action: str
    operator: str | None
    details: str | None
    event_data: dict | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class BatchWeightStats(BaseModel):
    batch_id: str
    post_weight_kg: float | None
    packaged_weight_kg: float
    remaining_weight_kg: float
    ready_for_packaging: bool


class BatchDetail(BatchSummary):
    notes: str | None
    packaging_units: list[PackagingUnitOut] = []
    history: list[BatchHistoryOut] = []
    remaining_weight_kg: float = 0.0
    ready_for_packaging: bool = False


class AllocationResponse(BaseModel):
    batch: BatchSummary
    units: list[PackagingUnitOut]
    inventory_item_ids: list[str]
    total_weight_kg: float
    remaining_weight_kg: float
    replayed: bool = False
