"""Inventory: stock rows per location, plus the adjustment and transfer records
that move them.

InventoryItem rows are written by three workflows:
  - packaging runs insert a fresh row per packaging line (never merged);
  - stock adjustments change ``stock_qty`` once approved;
  - completed transfers move ``stock_qty`` between locations.
Decrements are clamped at 0.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey,
    Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from roastery.database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    # PACKAGED_COFFEE | BEVERAGE | INGREDIENT
    item_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    size: Mapped[str | None] = mapped_column(String(50))
    unit: Mapped[str | None] = mapped_column(String(20))

    # ── Stock ────────────────────────────────────────────────
    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id"), index=True
    )
    stock_qty: Mapped[float] = mapped_column(Float, default=0.0)
    min_stock: Mapped[float | None] = mapped_column(Float)

    # ── Money ────────────────────────────────────────────────
    price: Mapped[float] = mapped_column(Float, default=0.0)
    cost_per_unit: Mapped[float | None] = mapped_column(Float)

    # ── Traceability (packaged coffee) ───────────────────────
    batch_id: Mapped[str | None] = mapped_column(String(36), index=True)
    product_id: Mapped[str | None] = mapped_column(String(36))
    sku_prefix: Mapped[str | None] = mapped_column(String(20))
    sku: Mapped[str | None] = mapped_column(String(60), index=True)
    expiry_date: Mapped[date | None] = mapped_column(Date)

    image: Mapped[str | None] = mapped_column(String(500))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}


class AdjustmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AdjustmentReason(str, enum.Enum):
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    COUNTING_ERROR = "COUNTING_ERROR"
    EXPIRY = "EXPIRY"
    OTHER = "OTHER"


class StockAdjustment(Base):
    """A manual stock correction, gated by value.

    Lifecycle:  PENDING → APPROVED | REJECTED   (or APPROVED at creation
    when the value is within the approval threshold)
    """
    __tablename__ = "stock_adjustments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id")
    )

    quantity_delta: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False)
    # |quantity_delta × item.price| at submission
    value: Mapped[float] = mapped_column(Float, default=0.0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # ── Who ──────────────────────────────────────────────────
    user_id: Mapped[str | None] = mapped_column(String(36))
    user_name: Mapped[str | None] = mapped_column(String(255))
    item_name: Mapped[str | None] = mapped_column(String(255))
    location_name: Mapped[str | None] = mapped_column(String(255))
    resolved_by: Mapped[str | None] = mapped_column(String(36))
    resolved_by_name: Mapped[str | None] = mapped_column(String(255))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class TransferStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"  # reserved
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"  # reserved
    RECEIVED = "RECEIVED"  # reserved
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StockTransfer(Base):
    """Move stock between locations.

    Lifecycle:  DRAFT → APPROVED → COMPLETED,  DRAFT | APPROVED → CANCELLED
    Stock moves only on APPROVED → COMPLETED.
    """
    __tablename__ = "stock_transfers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    source_location_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id"), nullable=False, index=True
    )
    destination_location_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=TransferStatus.DRAFT.value, index=True
    )

    # [{"item_id": "...", "name": "Ethiopia Yirgacheffe 250g", "quantity": 12}]
    manifest: Mapped[list] = mapped_column(JSON, nullable=False)
    items_count: Mapped[int] = mapped_column(Integer, default=0)
    total_value: Mapped[float] = mapped_column(Float, default=0.0)

    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_by_name: Mapped[str | None] = mapped_column(String(255))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)
    received_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
