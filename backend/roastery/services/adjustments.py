"""Stock adjustment approval gate.

An adjustment worth more than the approval threshold waits as PENDING for a
manager; anything at or under it is approved and applied on submission.
Stock moves only on approval, and never below zero.
"""

import logging
import math
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.config import settings
from roastery.middleware.exceptions import (
    AlreadyResolvedError,
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models.catalog import Location
from roastery.models.inventory import (
    AdjustmentReason, AdjustmentStatus, InventoryItem, StockAdjustment,
)
from roastery.models.user import User
from roastery.utils.activity import log_activity
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.adjustments")


def apply_delta(item: InventoryItem, delta: float) -> float:
    """Apply a signed quantity change, clamping at zero.  Returns the new stock."""
    item.stock_qty = max(0.0, (item.stock_qty or 0.0) + delta)
    return item.stock_qty


async def submit_adjustment(
    db: AsyncSession,
    user: User,
    *,
    item_id: str,
    quantity_delta: float,
    reason: str,
    notes: str,
    location_id: str | None = None,
) -> StockAdjustment:
    """Record an adjustment; auto-approve and apply it when within threshold."""
    if not notes or len(notes.strip()) < settings.adjustment_min_notes_length:
        raise ValidationError(
            f"Notes must be at least {settings.adjustment_min_notes_length} characters",
            details={"field": "notes"},
        )
    if not quantity_delta or not math.isfinite(quantity_delta):
        raise ValidationError("Quantity change must be a non-zero number", details={"field": "quantity_delta"})
    try:
        reason_value = AdjustmentReason(reason).value
    except ValueError:
        raise ValidationError(
            f"Unknown adjustment reason: {reason}",
            details={"allowed": [r.value for r in AdjustmentReason]},
        )

    item = (
        await db.execute(
            select(InventoryItem).where(InventoryItem.id == item_id).with_for_update()
        )
    ).scalar_one_or_none()
    if not item:
        raise ResourceNotFoundError("Inventory item", item_id)

    location_id = location_id or item.location_id
    location_name = None
    if location_id:
        location = (
            await db.execute(select(Location).where(Location.id == location_id))
        ).scalar_one_or_none()
        if not location:
            raise ResourceNotFoundError("Location", location_id)
        location_name = location.name

    value = abs(quantity_delta * (item.price or 0.0))
    needs_approval = value > settings.adjustment_approval_threshold

    adjustment = StockAdjustment(
        item_id=item.id,
        location_id=location_id,
        quantity_delta=quantity_delta,
        reason=reason_value,
        notes=notes.strip(),
        value=round(value, 2),
        status=(AdjustmentStatus.PENDING if needs_approval else AdjustmentStatus.APPROVED).value,
        user_id=user.id,
        user_name=user.full_name,
        item_name=item.name,
        location_name=location_name,
    )
    if not needs_approval:
        apply_delta(item, quantity_delta)
        adjustment.resolved_at = datetime.utcnow()
    db.add(adjustment)
    await flush_or_raise(db, "adjustment submit")

    await log_activity(
        db, user, action="submitted", entity_type="adjustment",
        entity_id=adjustment.id, entity_code=item.sku,
        location_id=location_id,
        summary=f"{reason_value} adjustment of {quantity_delta:+g} on {item.name} ({adjustment.status})",
        details={"value": adjustment.value},
    )

    if needs_approval:
        logger.info(
            "Adjustment %s on %s held for approval (value %.2f > %.2f)",
            adjustment.id, item.name, value, settings.adjustment_approval_threshold,
        )
    else:
        logger.info(
            "Adjustment %s on %s auto-approved; stock now %.3f",
            adjustment.id, item.name, item.stock_qty,
        )
    return adjustment


async def resolve_adjustment(
    db: AsyncSession,
    user: User,
    *,
    adjustment_id: str,
    decision: str,
) -> StockAdjustment:
    """Approve or reject a PENDING adjustment.  Managers and admins only."""
    if not user.is_privileged:
        logger.warning("User %s (%s) tried to resolve adjustment %s", user.id, user.role.value, adjustment_id)
        raise AuthorizationError("Only managers and admins can resolve stock adjustments")

    decision = (decision or "").upper()
    if decision not in (AdjustmentStatus.APPROVED.value, AdjustmentStatus.REJECTED.value):
        raise ValidationError(
            f"Decision must be APPROVED or REJECTED, got {decision or 'nothing'}",
            details={"field": "decision"},
        )

    adjustment = (
        await db.execute(
            select(StockAdjustment)
            .where(StockAdjustment.id == adjustment_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not adjustment:
        raise ResourceNotFoundError("Adjustment", adjustment_id)
    if adjustment.status != AdjustmentStatus.PENDING.value:
        raise AlreadyResolvedError(adjustment.id, adjustment.status)

    if decision == AdjustmentStatus.APPROVED.value:
        item = (
            await db.execute(
                select(InventoryItem)
                .where(InventoryItem.id == adjustment.item_id)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if not item:
            raise ResourceNotFoundError("Inventory item", adjustment.item_id)
        apply_delta(item, adjustment.quantity_delta)

    adjustment.status = decision
    adjustment.resolved_by = user.id
    adjustment.resolved_by_name = user.full_name
    adjustment.resolved_at = datetime.utcnow()

    await log_activity(
        db, user, action=decision.lower(), entity_type="adjustment",
        entity_id=adjustment.id,
        location_id=adjustment.location_id,
        summary=f"{decision.title()} adjustment of {adjustment.quantity_delta:+g} on {adjustment.item_name}",
        details={"item_id": adjustment.item_id, "value": adjustment.value},
    )
    await flush_or_raise(db, "adjustment resolve")

    logger.info("Adjustment %s %s by %s", adjustment.id, decision, user.full_name)
    return adjustment


async def list_adjustments(
    db: AsyncSession,
    *,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockAdjustment]:
    stmt = select(StockAdjustment)
    if status:
        stmt = stmt.where(StockAdjustment.status == status)
    result = await db.execute(
        stmt.order_by(StockAdjustment.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())
