"""Transfer order state machine.

    DRAFT ──► APPROVED ──► COMPLETED
      │           │
      └───────────┴──► CANCELLED

PENDING_APPROVAL, IN_TRANSIT and RECEIVED are declared but reserved; no
transition reaches them.  Stock moves only on APPROVED → COMPLETED: each
manifest line is taken off the source item (clamped at 0) and added to the
destination item with the same name, or to a copy of the source item when
the destination has none.
"""

import logging
import math
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.middleware.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models.catalog import Location
from roastery.models.inventory import InventoryItem, StockTransfer, TransferStatus
from roastery.models.user import User
from roastery.schemas.transfer import TransferLine
from roastery.services.adjustments import apply_delta
from roastery.utils.activity import log_activity
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.transfers")

# current status → statuses it may move to
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    TransferStatus.DRAFT.value: {TransferStatus.APPROVED.value, TransferStatus.CANCELLED.value},
    TransferStatus.APPROVED.value: {TransferStatus.COMPLETED.value, TransferStatus.CANCELLED.value},
}

# Columns copied when a transferred item has no counterpart at the destination
_COPIED_FIELDS = (
    "name", "description", "category", "item_type", "size", "unit", "min_stock",
    "price", "cost_per_unit", "batch_id", "product_id", "sku_prefix", "sku",
    "expiry_date", "image",
)


async def _get_location(db: AsyncSession, location_id: str) -> Location:
    location = (
        await db.execute(select(Location).where(Location.id == location_id))
    ).scalar_one_or_none()
    if not location:
        raise ResourceNotFoundError("Location", location_id)
    return location


async def create_transfer(
    db: AsyncSession,
    user: User,
    *,
    source_location_id: str,
    destination_location_id: str,
    manifest: list[TransferLine],
    notes: str | None = None,
) -> StockTransfer:
    """Create a DRAFT transfer.  Quantities are checked against source stock now, once."""
    if source_location_id == destination_location_id:
        raise ValidationError("Source and destination must be different locations")
    if not manifest:
        raise ValidationError("A transfer needs at least one item")

    source = await _get_location(db, source_location_id)
    destination = await _get_location(db, destination_location_id)

    item_ids = {line.item_id for line in manifest}
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.id.in_(item_ids),
            InventoryItem.location_id == source.id,
        )
    )
    items = {item.id: item for item in result.scalars().all()}

    lines: list[dict] = []
    total_value = 0.0
    for line in manifest:
        item = items.get(line.item_id)
        if item is None:
            raise ResourceNotFoundError(f"Inventory item at {source.name}", line.item_id)
        if not math.isfinite(line.quantity) or line.quantity <= 0:
            raise ValidationError(
                f"Quantity for {item.name} must be a positive number",
                details={"item_id": item.id},
            )
        if line.quantity > item.stock_qty:
            raise InsufficientStockError(
                f"{item.name} has {item.stock_qty:g} in stock at {source.name}; "
                f"cannot transfer {line.quantity:g}",
                requested=line.quantity,
                available=item.stock_qty,
            )
        lines.append({"item_id": item.id, "name": item.name, "quantity": line.quantity})
        total_value += line.quantity * (item.price or 0.0)

    transfer = StockTransfer(
        source_location_id=source.id,
        destination_location_id=destination.id,
        status=TransferStatus.DRAFT.value,
        manifest=lines,
        items_count=len(lines),
        total_value=round(total_value, 2),
        notes=notes,
        created_by=user.id,
        created_by_name=user.full_name,
    )
    db.add(transfer)
    await flush_or_raise(db, "transfer create")

    await log_activity(
        db, user, action="created", entity_type="transfer", entity_id=transfer.id,
        location_id=source.id,
        summary=f"Drafted transfer of {len(lines)} item(s) from {source.name} to {destination.name}",
        details={"total_value": transfer.total_value},
    )
    logger.info(
        "Transfer %s drafted: %s → %s, %d line(s)",
        transfer.id, source.name, destination.name, len(lines),
    )
    return transfer


async def _move_stock(db: AsyncSession, transfer: StockTransfer) -> None:
    """Decrement the source and increment-or-create at the destination."""
    for line in transfer.manifest:
        quantity = float(line["quantity"])
        source_item = (
            await db.execute(
                select(InventoryItem)
                .where(InventoryItem.id == line["item_id"])
                .with_for_update()
            )
        ).scalar_one_or_none()
        if source_item is None:
            raise ResourceNotFoundError("Inventory item", line["item_id"])
        apply_delta(source_item, -quantity)

        # Destination rows are matched by name, not by item or product id
        target = (
            await db.execute(
                select(InventoryItem)
                .where(
                    InventoryItem.location_id == transfer.destination_location_id,
                    InventoryItem.name == source_item.name,
                )
                .order_by(InventoryItem.created_at)
                .limit(1)
                .with_for_update()
            )
        ).scalar_one_or_none()

        if target is not None:
            apply_delta(target, quantity)
        else:
            copy = InventoryItem(
                **{name: getattr(source_item, name) for name in _COPIED_FIELDS},
                location_id=transfer.destination_location_id,
                stock_qty=quantity,
            )
            db.add(copy)
        # flush per line so a later line with the same name finds this row
        await flush_or_raise(db, "transfer completion")


async def advance_transfer(
    db: AsyncSession,
    user: User,
    *,
    transfer_id: str,
    target_status: str,
) -> StockTransfer:
    """Move a transfer one step along its state machine."""
    transfer = (
        await db.execute(
            select(StockTransfer)
            .where(StockTransfer.id == transfer_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not transfer:
        raise ResourceNotFoundError("Transfer", transfer_id)

    target_status = (target_status or "").upper()
    if target_status not in ALLOWED_TRANSITIONS.get(transfer.status, set()):
        logger.warning(
            "Rejected transfer %s transition %s → %s",
            transfer.id, transfer.status, target_status,
        )
        raise InvalidTransitionError("transfer", transfer.status, target_status)

    previous = transfer.status
    now = datetime.utcnow()
    if target_status == TransferStatus.APPROVED.value:
        transfer.approved_at = now
    elif target_status == TransferStatus.COMPLETED.value:
        await _move_stock(db, transfer)
        transfer.received_at = now
    elif target_status == TransferStatus.CANCELLED.value:
        transfer.cancelled_at = now
    transfer.status = target_status

    await log_activity(
        db, user, action="status_changed", entity_type="transfer", entity_id=transfer.id,
        location_id=transfer.destination_location_id,
        summary=f"Transfer {previous} → {target_status}",
    )
    await flush_or_raise(db, "transfer advance")

    logger.info("Transfer %s moved %s → %s", transfer.id, previous, target_status)
    return transfer


async def list_transfers(
    db: AsyncSession,
    *,
    status: str | None = None,
    location_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockTransfer]:
    stmt = select(StockTransfer)
    if status:
        stmt = stmt.where(StockTransfer.status == status)
    if location_id:
        stmt = stmt.where(
            (StockTransfer.source_location_id == location_id)
            | (StockTransfer.destination_location_id == location_id)
        )
    result = await db.execute(
        stmt.order_by(StockTransfer.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def get_transfer(db: AsyncSession, transfer_id: str) -> StockTransfer:
    transfer = (
        await db.execute(select(StockTransfer).where(StockTransfer.id == transfer_id))
    ).scalar_one_or_none()
    if not transfer:
        raise ResourceNotFoundError("Transfer", transfer_id)
    return transfer
