"""Pydantic schemas for POS checkout and receipt reprints."""

from datetime import datetime

from pydantic import BaseModel, Field

from roastery.models.sale import PaymentMethod


class CartLine(BaseModel):
    """One cart line.  Beverage customisations are ignored for packaged goods."""
    item_id: str
    quantity: int = Field(..., ge=1)
    size: str = "M"  # S | M | L
    milk: str | None = None  # Full Fat | Low Fat | Oat | Almond
    add_on_ids: list[str] = []


class CheckoutRequest(BaseModel):
    lines: list[CartLine] = Field(..., min_length=1)
    payment_method: PaymentMethod
    location_id: str | None = None
    # SPLIT only: {"CASH": 20.0, "CARD": 25.0}
    payment_breakdown: dict[str, float] | None = None
    received_amount: float | None = Field(None, ge=0, allow_inf_nan=False)
    card_reference: str | None = None


class SaleOut(BaseModel):
    id: str
    invoice_number: str
    location_id: str | None
    items: list[dict]
    subtotal: float
    vat_amount: float
    total: float
    payment_method: str
    payment_breakdown: dict | None
    card_reference: str | None
    received_amount: float | None
    change_amount: float
    cashier_name: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReprintRequest(BaseModel):
    reason: str = "Customer Request"


class ReprintOut(BaseModel):
    id: str
    sale_id: str
    invoice_number: str
    reason: str | None
    user_name: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
