"""Roasting batch lifecycle.

Handles:
  - Committing green beans to a new batch (decrementing the bean lot)
  - Recording the roasted output weight exactly once
  - Remaining-weight queries used by the packaging screen and the
    allocation engine
"""

import logging
import math
from datetime import date, datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from roastery.config import settings
from roastery.middleware.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models.catalog import GreenBean
from roastery.models.roasting_batch import (
    BatchHistory, BatchStatus, PackagingUnit, RoastingBatch, RoastLevel,
)
from roastery.models.user import User
from roastery.utils.activity import log_activity
from roastery.utils.numbering import generate_batch_code
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.roasting")


# ── Weight queries ───────────────────────────────────────────

async def packaged_weight_kg(db: AsyncSession, batch_id: str) -> float:
    """Σ(unit.quantity × unit.unit_weight_kg) over the batch's packaging units."""
    result = await db.execute(
        select(
            func.coalesce(
                func.sum(PackagingUnit.quantity * PackagingUnit.unit_weight_kg), 0.0
            )
        ).where(PackagingUnit.batch_id == batch_id)
    )
    return float(result.scalar() or 0.0)


async def batch_weight_stats(db: AsyncSession, batch: RoastingBatch) -> tuple[float, float]:
    """Return ``(packaged_kg, remaining_kg)`` for a batch.

    Remaining is 0 until the batch has an output weight.
    """
    packaged = await packaged_weight_kg(db, batch.id)
    if batch.post_weight_kg is None:
        return packaged, 0.0
    return packaged, batch.post_weight_kg - packaged


def is_ready_for_packaging(batch: RoastingBatch, remaining_kg: float) -> bool:
    return (
        batch.status == BatchStatus.COMPLETED.value
        and remaining_kg > settings.weight_epsilon_kg
    )


# ── Transitions ──────────────────────────────────────────────

async def start_batch(
    db: AsyncSession,
    user: User,
    *,
    bean_id: str,
    pre_weight_kg: float,
    level: str,
    roast_date: date | None = None,
    notes: str | None = None,
) -> RoastingBatch:
    """Create an IN_PROGRESS batch and take its green weight off the bean lot.

    Raises:
        ResourceNotFoundError: unknown bean lot.
        ValidationError: unknown roast level.
        InsufficientStockError: ``pre_weight_kg`` is not in (0, lot quantity].
    """
    try:
        level_value = RoastLevel(level).value
    except ValueError:
        raise ValidationError(
            f"Unknown roast level: {level}",
            details={"allowed": [lvl.value for lvl in RoastLevel]},
        )

    bean = (
        await db.execute(
            select(GreenBean).where(GreenBean.id == bean_id).with_for_update()
        )
    ).scalar_one_or_none()
    if not bean:
        raise ResourceNotFoundError("Green bean", bean_id)

    if not math.isfinite(pre_weight_kg):
        raise ValidationError(
            "Green weight must be a finite number", details={"field": "pre_weight_kg"},
        )
    if pre_weight_kg <= 0 or pre_weight_kg > bean.quantity_kg:
        logger.warning(
            "Rejected batch start: %.3f kg requested from %s (%.3f kg on hand)",
            pre_weight_kg, bean.label, bean.quantity_kg,
        )
        raise InsufficientStockError(
            f"{bean.label} has {bean.quantity_kg:.3f} kg on hand; "
            f"cannot roast {pre_weight_kg:.3f} kg",
            requested=pre_weight_kg,
            available=bean.quantity_kg,
        )

    bean.quantity_kg = round(bean.quantity_kg - pre_weight_kg, 3)

    roast_day = roast_date or date.today()
    batch = RoastingBatch(
        batch_code=await generate_batch_code(db, roast_day),
        bean_id=bean.id,
        roast_date=roast_day,
        level=level_value,
        pre_weight_kg=pre_weight_kg,
        cost_per_kg=bean.cost_per_kg,
        status=BatchStatus.IN_PROGRESS.value,
        packaged_weight_kg=0.0,
        operator=user.full_name,
        notes=notes,
    )
    db.add(batch)
    await flush_or_raise(db, "batch start")  # populate batch.id

    db.add(BatchHistory(
        batch_id=batch.id,
        action="CREATE",
        operator=user.full_name,
        details=f"Batch created with {pre_weight_kg}kg of {bean.label}",
        event_data={"bean_id": bean.id, "pre_weight_kg": pre_weight_kg},
        recorded_by=user.id,
    ))
    await log_activity(
        db, user, action="created", entity_type="batch",
        entity_id=batch.id, entity_code=batch.batch_code,
        summary=f"Started {level_value} roast of {pre_weight_kg} kg {bean.label}",
    )
    await flush_or_raise(db, "batch start")

    logger.info("Batch %s started: %.3f kg of %s", batch.batch_code, pre_weight_kg, bean.label)
    return batch


async def finish_batch(
    db: AsyncSession,
    user: User,
    *,
    batch_id: str,
    post_weight_kg: float,
    notes: str | None = None,
) -> RoastingBatch:
    """Record the roasted output weight and complete the batch.

    The output weight is written once; a second call on a COMPLETED batch
    raises InvalidTransitionError instead of overwriting it.
    """
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

    if batch.status != BatchStatus.IN_PROGRESS.value:
        raise InvalidTransitionError(
            "batch", batch.status, BatchStatus.COMPLETED.value,
            message=(
                f"Batch {batch.batch_code} is already {batch.status}; "
                "output weight can only be recorded once"
            ),
        )
    if not math.isfinite(post_weight_kg):
        raise ValidationError(
            "Output weight must be a finite number", details={"field": "post_weight_kg"},
        )
    if post_weight_kg <= 0:
        raise ValidationError(
            "Output weight must be greater than zero",
            details={"post_weight_kg": post_weight_kg},
        )
    if post_weight_kg > batch.pre_weight_kg:
        logger.warning(
            "Batch %s output %.3f kg exceeds green weight %.3f kg",
            batch.batch_code, post_weight_kg, batch.pre_weight_kg,
        )

    waste_pct = round(
        (batch.pre_weight_kg - post_weight_kg) / batch.pre_weight_kg * 100, 2
    )
    batch.post_weight_kg = post_weight_kg
    batch.waste_pct = waste_pct
    batch.status = BatchStatus.COMPLETED.value
    batch.completed_at = datetime.utcnow()
    if notes:
        batch.notes = notes

    db.add(BatchHistory(
        batch_id=batch.id,
        action="UPDATE",
        operator=user.full_name,
        details=f"Recorded Output: {post_weight_kg}kg (Waste: {waste_pct:.2f}%)",
        event_data={"post_weight_kg": post_weight_kg, "waste_pct": waste_pct},
        recorded_by=user.id,
    ))
    await log_activity(
        db, user, action="completed", entity_type="batch",
        entity_id=batch.id, entity_code=batch.batch_code,
        summary=f"Recorded {post_weight_kg} kg output ({waste_pct:.2f}% waste)",
    )
    await flush_or_raise(db, "batch finish")

    logger.info(
        "Batch %s completed: %.3f kg out, %.2f%% waste",
        batch.batch_code, post_weight_kg, waste_pct,
    )
    return batch


# ── Reads ────────────────────────────────────────────────────

async def list_batches(
    db: AsyncSession,
    *,
    status: str | None = None,
    level: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[RoastingBatch], int]:
    """Newest batches first.  DELETED batches are never listed."""
    base = select(RoastingBatch).where(
        RoastingBatch.status != BatchStatus.DELETED.value
    )
    if status:
        base = base.where(RoastingBatch.status == status)
    if level:
        base = base.where(RoastingBatch.level == level)
    if search:
        pattern = f"%{search}%"
        base = base.where(
            or_(
                RoastingBatch.batch_code.ilike(pattern),
                RoastingBatch.operator.ilike(pattern),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    result = await db.execute(
        base.order_by(RoastingBatch.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def get_batch(db: AsyncSession, batch_id: str) -> RoastingBatch:
    """Load a batch with its packaging units and history."""
    batch = (
        await db.execute(
            select(RoastingBatch)
            .where(
                RoastingBatch.id == batch_id,
                RoastingBatch.status != BatchStatus.DELETED.value,
            )
            .options(
                selectinload(RoastingBatch.packaging_units),
                selectinload(RoastingBatch.history),
            )
        )
    ).scalar_one_or_none()
    if not batch:
        raise ResourceNotFoundError("Batch", batch_id)
    return batch
