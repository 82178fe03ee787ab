"""Pydantic schemas for stock transfers."""

from datetime import datetime

from pydantic import BaseModel, Field


class TransferLine(BaseModel):
    item_id: str
    quantity: float = Field(..., allow_inf_nan=False)


class TransferCreate(BaseModel):
    source_location_id: str
    destination_location_id: str
    manifest: list[TransferLine] = Field(..., min_length=1)
    notes: str | None = None


class TransferAdvance(BaseModel):
    status: str  # APPROVED | COMPLETED | CANCELLED


class TransferOut(BaseModel):
    id: str
    source_location_id: str
    destination_location_id: str
    status: str
    manifest: list[dict]
    items_count: int
    total_value: float
    notes: str | None
    created_by: str | None
    created_by_name: str | None
    approved_at: datetime | None
    received_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
