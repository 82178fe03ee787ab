"""Catalog: green beans, package templates, products and locations.

These rows are maintained by the back-office configuration screens.  The
roasting and inventory services only read them, with one exception: a
GreenBean's ``quantity_kg`` is decremented when a roast batch is started.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey,
    Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roastery.database import Base


class GreenBean(Base):
    """A lot of unroasted coffee on hand at the roastery."""
    __tablename__ = "green_beans"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    origin: Mapped[str] = mapped_column(String(100), nullable=False)
    variety: Mapped[str | None] = mapped_column(String(100))
    supplier: Mapped[str | None] = mapped_column(String(255))

    # ── Stock & cost ─────────────────────────────────────────
    quantity_kg: Mapped[float] = mapped_column(Float, default=0.0)
    cost_per_kg: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Provenance ───────────────────────────────────────────
    purchase_date: Mapped[date | None] = mapped_column(Date)
    harvest_date: Mapped[date | None] = mapped_column(Date)
    quality_grade: Mapped[str | None] = mapped_column(String(50))
    batch_number: Mapped[str | None] = mapped_column(String(50))
    is_organic: Mapped[bool] = mapped_column(Boolean, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def label(self) -> str:
        return f"{self.origin} {self.variety}" if self.variety else self.origin


class PackageTemplate(Base):
    """A package size: how much roasted coffee one unit holds and what it costs."""
    __tablename__ = "package_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    size_label: Mapped[str] = mapped_column(String(50), nullable=False)  # "250g", "1kg"
    weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, default=0.0)  # bag + valve + label
    shelf_life_days: Mapped[int | None] = mapped_column(Integer)
    sku_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProductDefinition(Base):
    """A sellable product: packaged coffee (via a template) or a beverage (via a recipe)."""
    __tablename__ = "product_definitions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))

    # PACKAGED_COFFEE | BEVERAGE
    product_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    roast_level: Mapped[str | None] = mapped_column(String(20))
    template_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("package_templates.id")
    )

    # ── Pricing & costing ────────────────────────────────────
    base_price: Mapped[float] = mapped_column(Float, default=0.0)
    labor_cost: Mapped[float] = mapped_column(Float, default=0.0)
    roasting_overhead: Mapped[float] = mapped_column(Float, default=0.0)

    # Beverages only:
    #   recipe:  [{"ingredient_id": "...", "name": "Milk", "amount": 200, "unit": "ml"}]
    #   add_ons: [{"id": "...", "name": "Extra shot", "price": 4, "ingredient_id": "..."}]
    recipe: Mapped[list | None] = mapped_column(JSON)
    add_ons: Mapped[list | None] = mapped_column(JSON)

    image: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    template = relationship("PackageTemplate")


class Location(Base):
    """A place that holds stock: the roastery, a warehouse, or a branch."""
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    # WAREHOUSE | BRANCH | ROASTERY
    location_type: Mapped[str] = mapped_column(String(20), default="BRANCH")
    is_roastery: Mapped[bool] = mapped_column(Boolean, default=False)
    # {"name": "...", "phone": "...", "email": "..."}
    contact_person: Mapped[dict | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
