"""ReconciliationAlert: flags drift between packaging records and stock.

Each alert is a single detected discrepancy, categorised by type and
severity.  Alerts are created by a reconciliation run and stay open until
reviewed or auto-resolved on the next run that no longer sees the problem.

Lifecycle:  open → acknowledged → resolved | dismissed
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roastery.database import Base


class ReconciliationAlert(Base):
    __tablename__ = "reconciliation_alerts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Classification ───────────────────────────────────────
    # packaging_without_stock | over_allocated_batch | packaged_weight_drift
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # critical | high | medium | low
    severity: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    expected_value: Mapped[float | None] = mapped_column(Float)
    actual_value: Mapped[float | None] = mapped_column(Float)
    variance: Mapped[float | None] = mapped_column(Float)
    variance_pct: Mapped[float | None] = mapped_column(Float)
    unit: Mapped[str | None] = mapped_column(String(20))  # kg, units

    # {"batch_id": "...", "packaging_unit_id": "...", "sku": "..."}
    entity_refs: Mapped[dict | None] = mapped_column(JSON)

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)
    resolved_by: Mapped[str | None] = mapped_column(String(36))
    resolution_note: Mapped[str | None] = mapped_column(Text)

    run_id: Mapped[str | None] = mapped_column(String(36), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
