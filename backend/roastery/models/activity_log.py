"""ActivityLog: append-only audit trail of back-office actions.

One row per state change a person (or the scheduled reconciliation run)
made: who, what, which record, and at which location when stock moved.
Rows are added to the same session as the change they describe and land
with it or not at all.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roastery.database import Base

SYSTEM_ACTOR = "system"


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # null for unattended runs; user_name is then SYSTEM_ACTOR
    user_id: Mapped[str | None] = mapped_column(String(36), index=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False, default=SYSTEM_ACTOR)

    # created | completed | packaged | submitted | approved | rejected |
    # status_changed | sold | reprinted | repaired
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # batch | inventory_item | adjustment | transfer | sale
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(36), index=True)
    entity_code: Mapped[str | None] = mapped_column(String(100))
    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id"), index=True
    )

    summary: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
