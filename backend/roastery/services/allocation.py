"""Yield allocation engine: turn roasted weight into packaged stock.

One call packages part of a COMPLETED batch into discrete units:

  1. validate every line and the total weight before touching anything;
  2. write one PackagingUnit per line (lines are never merged);
  3. append one BATCH_PRODUCTION history entry;
  4. insert one fresh InventoryItem per line at the destination;
  5. bump the batch's packaged-weight cache, which increments its version.

All of it happens in the request's transaction.  The batch row is locked
for update and version-checked, so two sessions packaging the same batch
cannot both pass the remaining-weight check.  A client-supplied
``idempotency_key`` makes retries safe: a key already recorded on the
batch replays the earlier result instead of packaging twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from roastery.config import settings
from roastery.middleware.exceptions import (
    InsufficientWeightError,
    InvalidLineError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models.catalog import Location, PackageTemplate, ProductDefinition
from roastery.models.inventory import InventoryItem
from roastery.models.roasting_batch import (
    BatchHistory, BatchStatus, PackagingUnit, RoastingBatch,
)
from roastery.models.user import User
from roastery.schemas.batch import AllocationLine
from roastery.services.roasting import packaged_weight_kg
from roastery.utils.activity import log_activity
from roastery.utils.numbering import generate_skus
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.allocation")


@dataclass
class AllocationResult:
    batch: RoastingBatch
    units: list[PackagingUnit] = field(default_factory=list)
    inventory_items: list[InventoryItem] = field(default_factory=list)
    total_weight_kg: float = 0.0
    remaining_weight_kg: float = 0.0
    replayed: bool = False


@dataclass
class _ResolvedLine:
    product: ProductDefinition
    template: PackageTemplate
    quantity: int

    @property
    def weight_kg(self) -> float:
        return self.quantity * self.template.weight_kg


# ── Per-line computations ────────────────────────────────────

def compute_expiry(production_date: date, template: PackageTemplate) -> date:
    shelf_life = template.shelf_life_days or settings.default_shelf_life_days
    return production_date + timedelta(days=shelf_life)


def compute_cost_per_unit(
    batch: RoastingBatch,
    product: ProductDefinition,
    template: PackageTemplate,
    unit_weight_kg: float | None = None,
) -> float:
    """Packaging + roasted coffee + labour + overhead for one unit."""
    weight = template.weight_kg if unit_weight_kg is None else unit_weight_kg
    return round(
        (template.unit_cost or 0.0)
        + weight * batch.roasted_cost_per_kg
        + (product.labor_cost or 0.0)
        + (product.roasting_overhead or 0.0),
        4,
    )


def build_inventory_item(
    batch: RoastingBatch,
    unit: PackagingUnit,
    product: ProductDefinition,
    template: PackageTemplate,
) -> InventoryItem:
    """The stock row a packaging unit hands off to its destination."""
    return InventoryItem(
        name=product.name,
        description=product.description,
        category=product.category,
        item_type="PACKAGED_COFFEE",
        size=unit.size_label,
        unit="unit",
        location_id=unit.location_id,
        stock_qty=float(unit.quantity),
        price=product.base_price,
        cost_per_unit=compute_cost_per_unit(batch, product, template, unit.unit_weight_kg),
        batch_id=batch.id,
        product_id=product.id,
        sku_prefix=template.sku_prefix,
        sku=unit.sku,
        expiry_date=unit.expiry_date,
        image=product.image,
    )


def _parse_quantity(raw, index: int, product_id: str) -> int:
    """Accept positive whole numbers (int, integral float, or digit string)."""
    if isinstance(raw, bool) or raw is None:
        raise InvalidLineError(index, "quantity must be a positive integer", product_id)
    if isinstance(raw, str):
        raw = raw.strip()
        # ASCII only: "²".isdigit() is true but int() rejects it
        if not (raw.isascii() and raw.isdigit()):
            raise InvalidLineError(index, f"quantity {raw!r} is not a positive integer", product_id)
        raw = int(raw)
    if isinstance(raw, float):
        if not raw.is_integer():
            raise InvalidLineError(index, f"quantity {raw} is not a whole number", product_id)
        raw = int(raw)
    if not isinstance(raw, int) or raw <= 0:
        raise InvalidLineError(index, f"quantity {raw} must be a positive integer", product_id)
    return raw


async def _resolve_lines(
    db: AsyncSession,
    lines: list[AllocationLine],
) -> list[_ResolvedLine]:
    product_ids = {line.product_id for line in lines}
    result = await db.execute(
        select(ProductDefinition)
        .where(ProductDefinition.id.in_(product_ids))
        .options(selectinload(ProductDefinition.template))
    )
    products = {p.id: p for p in result.scalars().all()}

    resolved: list[_ResolvedLine] = []
    for index, line in enumerate(lines):
        quantity = _parse_quantity(line.quantity, index, line.product_id)
        product = products.get(line.product_id)
        if product is None:
            raise InvalidLineError(index, f"product {line.product_id} not found", line.product_id)
        if product.product_type != "PACKAGED_COFFEE":
            raise InvalidLineError(
                index,
                f"{product.name} is a {product.product_type} product and cannot be packaged",
                product.id,
            )
        if product.template is None:
            raise InvalidLineError(
                index, f"{product.name} has no package template", product.id
            )
        resolved.append(_ResolvedLine(product=product, template=product.template, quantity=quantity))
    return resolved


async def _lock_batch(db: AsyncSession, batch_id: str) -> RoastingBatch:
    batch = (
        await db.execute(
            select(RoastingBatch)
            .where(
                RoastingBatch.id == batch_id,
                RoastingBatch.status != BatchStatus.DELETED.value,
            )
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not batch:
        raise ResourceNotFoundError("Batch", batch_id)
    return batch


# ── Replay ───────────────────────────────────────────────────

async def _replay(
    db: AsyncSession,
    batch: RoastingBatch,
    units: list[PackagingUnit],
) -> AllocationResult:
    """Return an earlier run's result, re-creating any inventory rows it lost."""
    skus = [u.sku for u in units]
    existing = (
        await db.execute(
            select(InventoryItem).where(
                InventoryItem.batch_id == batch.id,
                InventoryItem.sku.in_(skus),
            )
        )
    ).scalars().all()
    by_sku = {item.sku: item for item in existing}

    items: list[InventoryItem] = []
    recreated = 0
    for unit in units:
        item = by_sku.get(unit.sku)
        if item is None:
            item = build_inventory_item(batch, unit, unit.product, unit.template)
            db.add(item)
            recreated += 1
        items.append(item)

    if recreated:
        await flush_or_raise(db, "allocation replay")
        logger.warning(
            "Allocation %s on batch %s replayed; re-created %d missing inventory row(s)",
            units[0].allocation_key, batch.batch_code, recreated,
        )
    else:
        logger.info(
            "Allocation %s on batch %s replayed", units[0].allocation_key, batch.batch_code,
        )

    packaged = await packaged_weight_kg(db, batch.id)
    return AllocationResult(
        batch=batch,
        units=units,
        inventory_items=items,
        total_weight_kg=round(sum(u.weight_kg for u in units), 3),
        remaining_weight_kg=round((batch.post_weight_kg or 0.0) - packaged, 3),
        replayed=True,
    )


# ── Allocate ─────────────────────────────────────────────────

async def allocate_batch(
    db: AsyncSession,
    user: User,
    *,
    batch_id: str,
    lines: list[AllocationLine],
    production_date: date,
    packaging_date: date,
    location_id: str,
    idempotency_key: str | None = None,
) -> AllocationResult:
    """Package part of a batch's remaining roasted weight.

    Raises (all before any write):
        ResourceNotFoundError: unknown batch or destination location.
        InvalidTransitionError: the batch is not COMPLETED.
        ValidationError: no lines, or packaging date before production date.
        InvalidLineError: bad quantity, unknown/beverage product, missing template.
        InsufficientWeightError: the lines need more than the batch has left.
    """
    batch = await _lock_batch(db, batch_id)

    if idempotency_key:
        previous = (
            await db.execute(
                select(PackagingUnit)
                .where(
                    PackagingUnit.batch_id == batch.id,
                    PackagingUnit.allocation_key == idempotency_key,
                )
                .options(
                    selectinload(PackagingUnit.product),
                    selectinload(PackagingUnit.template),
                )
                .order_by(PackagingUnit.created_at)
            )
        ).scalars().all()
        if previous:
            return await _replay(db, batch, list(previous))

    # ── Validate the whole request ───────────────────────────
    if batch.status != BatchStatus.COMPLETED.value:
        raise InvalidTransitionError(
            "batch", batch.status, "PACKAGED",
            message=f"Batch {batch.batch_code} is {batch.status}; record its output weight first",
        )

    location = (
        await db.execute(select(Location).where(Location.id == location_id))
    ).scalar_one_or_none()
    if not location or not location.is_active:
        raise ResourceNotFoundError("Location", location_id)

    if not lines:
        raise ValidationError("At least one packaging line is required")
    if packaging_date < production_date:
        raise ValidationError(
            "Packaging date cannot be earlier than production date",
            details={
                "production_date": production_date.isoformat(),
                "packaging_date": packaging_date.isoformat(),
            },
        )

    resolved = await _resolve_lines(db, lines)

    needed = sum(line.weight_kg for line in resolved)
    packaged = await packaged_weight_kg(db, batch.id)
    remaining = batch.post_weight_kg - packaged
    if needed > remaining + settings.weight_epsilon_kg:
        logger.warning(
            "Rejected allocation on batch %s: needs %.3f kg, %.3f kg remaining",
            batch.batch_code, needed, remaining,
        )
        raise InsufficientWeightError(batch.batch_code, needed, remaining)

    # ── Apply ────────────────────────────────────────────────
    skus = await generate_skus(
        db, [line.template.sku_prefix for line in resolved], batch.batch_code
    )

    units: list[PackagingUnit] = []
    items: list[InventoryItem] = []
    for line, sku in zip(resolved, skus):
        unit = PackagingUnit(
            batch_id=batch.id,
            template_id=line.template.id,
            product_id=line.product.id,
            location_id=location.id,
            size_label=line.template.size_label,
            quantity=line.quantity,
            unit_weight_kg=line.template.weight_kg,
            packaging_cost_total=round(line.quantity * (line.template.unit_cost or 0.0), 4),
            production_date=production_date,
            packaging_date=packaging_date,
            expiry_date=compute_expiry(production_date, line.template),
            sku=sku,
            allocation_key=idempotency_key,
            operator=user.full_name,
        )
        db.add(unit)
        units.append(unit)

        item = build_inventory_item(batch, unit, line.product, line.template)
        db.add(item)
        items.append(item)

    db.add(BatchHistory(
        batch_id=batch.id,
        action="BATCH_PRODUCTION",
        operator=user.full_name,
        details=f"Batch Packaged: {len(units)} items. Total Weight: {needed:.2f}kg.",
        event_data={
            "item_count": len(units),
            "total_weight_kg": round(needed, 3),
            "location_id": location.id,
            "allocation_key": idempotency_key,
            "skus": skus,
        },
        recorded_by=user.id,
    ))

    batch.packaged_weight_kg = round(packaged + needed, 3)

    await log_activity(
        db, user, action="packaged", entity_type="batch",
        entity_id=batch.id, entity_code=batch.batch_code,
        location_id=location.id,
        summary=f"Packaged {sum(u.quantity for u in units)} units ({needed:.2f} kg) to {location.name}",
        details={"skus": skus},
    )
    await flush_or_raise(db, "allocation")

    remaining_after = round(remaining - needed, 3)
    logger.info(
        "Batch %s packaged %d line(s), %.3f kg; %.3f kg remaining",
        batch.batch_code, len(units), needed, remaining_after,
    )
    return AllocationResult(
        batch=batch,
        units=units,
        inventory_items=items,
        total_weight_kg=round(needed, 3),
        remaining_weight_kg=remaining_after,
    )
