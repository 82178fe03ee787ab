"""RoastingBatch: one roast run, from green weight to packaged units.

A batch is created when green beans are committed to the roaster, records
its output weight exactly once when roasting finishes, and afterwards is
drawn down by packaging runs until no roasted weight remains.  The batch
exclusively owns its PackagingUnits and its history log.

Lifecycle:  IN_PROGRESS → COMPLETED   (DELETED is a soft-delete filter only)

Conservation:  Σ(unit.quantity × unit.unit_weight_kg) ≤ post_weight_kg
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey,
    Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roastery.database import Base


class BatchStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class RoastLevel(str, enum.Enum):
    LIGHT = "Light"
    MEDIUM = "Medium"
    DARK = "Dark"


class RoastingBatch(Base):
    __tablename__ = "roasting_batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # B-YYYYMM-NNNN; the last segment feeds unit SKUs
    batch_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Origin ───────────────────────────────────────────────
    bean_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("green_beans.id"), nullable=False, index=True
    )
    roast_date: Mapped[date] = mapped_column(Date, default=date.today, index=True)
    level: Mapped[str] = mapped_column(String(20), nullable=False)

    # ── Weights ──────────────────────────────────────────────
    pre_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    # Set once, at IN_PROGRESS → COMPLETED
    post_weight_kg: Mapped[float | None] = mapped_column(Float)
    waste_pct: Mapped[float | None] = mapped_column(Float)
    # Cached Σ of packaged weight; every packaging run rewrites it, which
    # also bumps `version` so concurrent runs on one batch conflict.
    packaged_weight_kg: Mapped[float] = mapped_column(Float, default=0.0)

    # Green cost snapshot taken from the bean lot at start
    cost_per_kg: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=BatchStatus.IN_PROGRESS.value, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    operator: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────
    bean = relationship("GreenBean")
    packaging_units = relationship(
        "PackagingUnit", back_populates="batch",
        order_by="PackagingUnit.created_at",
    )
    history = relationship(
        "BatchHistory", back_populates="batch",
        order_by="BatchHistory.recorded_at",
    )

    @property
    def batch_suffix(self) -> str:
        return self.batch_code.split("-")[-1]

    @property
    def roasted_cost_per_kg(self) -> float:
        """Green cost spread over the roasted output (0 until finished)."""
        if not self.post_weight_kg:
            return 0.0
        return self.cost_per_kg * self.pre_weight_kg / self.post_weight_kg


class BatchHistory(Base):
    """Append-only log of what happened to a batch and who did it."""
    __tablename__ = "batch_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roasting_batches.id"), nullable=False, index=True
    )

    # CREATE | UPDATE | BATCH_PRODUCTION
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    operator: Mapped[str | None] = mapped_column(String(255))
    details: Mapped[str | None] = mapped_column(Text)
    # Structured payload, depends on action:
    #   CREATE:           {"bean_id": "...", "pre_weight_kg": 12.0}
    #   UPDATE:           {"post_weight_kg": 10.2, "waste_pct": 15.0}
    #   BATCH_PRODUCTION: {"item_count": 2, "total_weight_kg": 7.5,
    #                      "location_id": "...", "allocation_key": "..."}
    event_data: Mapped[dict | None] = mapped_column(JSON)
    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    batch = relationship("RoastingBatch", back_populates="history")


class PackagingUnit(Base):
    """One packaging line: N units of one product cut from a batch.

    Immutable once created.  ``unit_weight_kg`` snapshots the template
    weight so the batch's conservation check never depends on later
    template edits.
    """
    __tablename__ = "packaging_units"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roasting_batches.id"), nullable=False, index=True
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("package_templates.id"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("product_definitions.id"), nullable=False
    )
    # Destination the stock was sent to (used to repair missing inventory)
    location_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id"), nullable=False
    )

    size_label: Mapped[str | None] = mapped_column(String(50))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    packaging_cost_total: Mapped[float] = mapped_column(Float, default=0.0)

    production_date: Mapped[date] = mapped_column(Date, nullable=False)
    packaging_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    sku: Mapped[str] = mapped_column(String(60), unique=True, nullable=False, index=True)
    # Client-supplied idempotency key shared by every unit of one packaging run
    allocation_key: Mapped[str | None] = mapped_column(String(64), index=True)

    operator: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    batch = relationship("RoastingBatch", back_populates="packaging_units")
    template = relationship("PackageTemplate")
    product = relationship("ProductDefinition")

    @property
    def weight_kg(self) -> float:
        return self.quantity * self.unit_weight_kg
