"""Sales: POS checkouts and receipt reprints."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roastery.database import Base


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE = "MOBILE"
    SPLIT = "SPLIT"


class SaleTransaction(Base):
    __tablename__ = "sale_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # INV-YYYYMMDD-NNNN
    invoice_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id"), index=True
    )

    # Priced cart lines as sold:
    # [{"product_id": "...", "name": "Latte", "quantity": 2, "size": "L",
    #   "milk": "Oat", "add_ons": [...], "unit_price": 22.5, "line_total": 45.0}]
    items: Mapped[list] = mapped_column(JSON, nullable=False)

    # ── Totals ───────────────────────────────────────────────
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    vat_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False)

    # ── Payment ──────────────────────────────────────────────
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    # SPLIT only: {"CASH": 20.0, "CARD": 25.0}
    payment_breakdown: Mapped[dict | None] = mapped_column(JSON)
    card_reference: Mapped[str | None] = mapped_column(String(100))
    received_amount: Mapped[float | None] = mapped_column(Float)
    change_amount: Mapped[float] = mapped_column(Float, default=0.0)

    user_id: Mapped[str | None] = mapped_column(String(36), index=True)
    cashier_name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class ReprintLog(Base):
    """One receipt reprint and who asked for it."""
    __tablename__ = "reprint_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    sale_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sale_transactions.id"), nullable=False, index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[str | None] = mapped_column(String(36))
    user_name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
