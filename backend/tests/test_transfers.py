"""Transfer order state machine tests."""

import pytest
from sqlalchemy import select

from roastery.middleware.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models import InventoryItem, TransferStatus
from roastery.schemas.transfer import TransferLine
from roastery.services.transfers import (
    advance_transfer,
    create_transfer,
    get_transfer,
    list_transfers,
)


async def _draft(db, user, source, destination, item, quantity=10):
    return await create_transfer(
        db, user,
        source_location_id=source.id,
        destination_location_id=destination.id,
        manifest=[TransferLine(item_id=item.id, quantity=quantity)],
    )


async def _items_at(db, location, name):
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.location_id == location.id, InventoryItem.name == name,
        )
    )
    return result.scalars().all()


@pytest.mark.unit
@pytest.mark.asyncio
class TestCreateTransfer:

    async def test_draft_snapshot(self, db_session, warehouse, branch, roastery_location, shelf_item):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)

        assert transfer.status == TransferStatus.DRAFT.value
        assert transfer.manifest == [
            {"item_id": shelf_item.id, "name": "House Blend 500g", "quantity": 10}
        ]
        assert transfer.items_count == 1
        assert transfer.total_value == 500.0
        assert transfer.created_by == warehouse.id
        # nothing moves until completion
        assert shelf_item.stock_qty == 100

    async def test_same_location_is_rejected(self, db_session, warehouse, branch, shelf_item):
        with pytest.raises(ValidationError):
            await _draft(db_session, warehouse, branch, branch, shelf_item)

    async def test_quantity_over_stock(self, db_session, warehouse, branch, roastery_location, shelf_item):
        with pytest.raises(InsufficientStockError):
            await _draft(db_session, warehouse, branch, roastery_location, shelf_item, quantity=101)

    async def test_non_positive_quantity(self, db_session, warehouse, branch, roastery_location, shelf_item):
        with pytest.raises(ValidationError):
            await _draft(db_session, warehouse, branch, roastery_location, shelf_item, quantity=0)

    @pytest.mark.parametrize("quantity", [float("nan"), float("inf")])
    async def test_non_finite_quantity(self, db_session, warehouse, branch, roastery_location, shelf_item, quantity):
        line = TransferLine.model_construct(item_id=shelf_item.id, quantity=quantity)
        with pytest.raises(ValidationError):
            await create_transfer(
                db_session, warehouse,
                source_location_id=branch.id,
                destination_location_id=roastery_location.id,
                manifest=[line],
            )
        assert shelf_item.stock_qty == 100

    async def test_item_must_be_at_the_source(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        with pytest.raises(ResourceNotFoundError):
            await _draft(db_session, warehouse, roastery_location, branch, shelf_item)

    async def test_unknown_location(self, db_session, warehouse, branch, shelf_item):
        with pytest.raises(ResourceNotFoundError):
            await create_transfer(
                db_session, warehouse,
                source_location_id=branch.id,
                destination_location_id="nowhere",
                manifest=[TransferLine(item_id=shelf_item.id, quantity=1)],
            )


@pytest.mark.unit
@pytest.mark.asyncio
class TestAdvanceTransfer:

    async def test_complete_creates_destination_row(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)

        transfer = await advance_transfer(
            db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED",
        )
        assert transfer.approved_at is not None
        assert shelf_item.stock_qty == 100

        transfer = await advance_transfer(
            db_session, warehouse, transfer_id=transfer.id, target_status="COMPLETED",
        )
        assert transfer.status == TransferStatus.COMPLETED.value
        assert transfer.received_at is not None
        assert shelf_item.stock_qty == 90

        [copy] = await _items_at(db_session, roastery_location, "House Blend 500g")
        assert copy.id != shelf_item.id
        assert copy.stock_qty == 10
        assert copy.price == shelf_item.price
        assert copy.item_type == "PACKAGED_COFFEE"

    async def test_complete_tops_up_row_with_same_name(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        existing = InventoryItem(
            name="House Blend 500g", item_type="PACKAGED_COFFEE",
            location_id=roastery_location.id, stock_qty=5.0, price=50.0,
        )
        db_session.add(existing)
        await db_session.flush()

        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED")
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="COMPLETED")

        rows = await _items_at(db_session, roastery_location, "House Blend 500g")
        assert [r.id for r in rows] == [existing.id]
        assert existing.stock_qty == 15

    async def test_source_clamps_at_zero_on_completion(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED")
        shelf_item.stock_qty = 4.0
        await db_session.flush()

        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="COMPLETED")

        assert shelf_item.stock_qty == 0.0
        [copy] = await _items_at(db_session, roastery_location, "House Blend 500g")
        assert copy.stock_qty == 10

    async def test_draft_cannot_skip_to_completed(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)

        with pytest.raises(InvalidTransitionError):
            await advance_transfer(
                db_session, warehouse, transfer_id=transfer.id, target_status="COMPLETED",
            )
        assert transfer.status == TransferStatus.DRAFT.value
        assert shelf_item.stock_qty == 100

    @pytest.mark.parametrize("first", ["DRAFT", "APPROVED"])
    async def test_cancel(self, db_session, warehouse, branch, roastery_location, shelf_item, first):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        if first == "APPROVED":
            await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED")

        transfer = await advance_transfer(
            db_session, warehouse, transfer_id=transfer.id, target_status="CANCELLED",
        )

        assert transfer.status == TransferStatus.CANCELLED.value
        assert transfer.cancelled_at is not None
        assert shelf_item.stock_qty == 100

    @pytest.mark.parametrize("target", ["APPROVED", "COMPLETED", "DRAFT"])
    async def test_cancelled_is_terminal(
        self, db_session, warehouse, branch, roastery_location, shelf_item, target,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="CANCELLED")

        with pytest.raises(InvalidTransitionError):
            await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status=target)

    async def test_completed_is_terminal(
        self, db_session, warehouse, branch, roastery_location, shelf_item,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED")
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="COMPLETED")

        with pytest.raises(InvalidTransitionError):
            await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="CANCELLED")
        assert shelf_item.stock_qty == 90

    @pytest.mark.parametrize("reserved", ["PENDING_APPROVAL", "IN_TRANSIT", "RECEIVED"])
    async def test_reserved_states_are_unreachable(
        self, db_session, warehouse, branch, roastery_location, shelf_item, reserved,
    ):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)
        await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status="APPROVED")

        with pytest.raises(InvalidTransitionError):
            await advance_transfer(db_session, warehouse, transfer_id=transfer.id, target_status=reserved)

    async def test_reads(self, db_session, warehouse, branch, roastery_location, shelf_item):
        transfer = await _draft(db_session, warehouse, branch, roastery_location, shelf_item)

        assert (await get_transfer(db_session, transfer.id)).id == transfer.id
        assert len(await list_transfers(db_session, location_id=roastery_location.id)) == 1
        assert await list_transfers(db_session, status=TransferStatus.APPROVED.value) == []
        with pytest.raises(ResourceNotFoundError):
            await get_transfer(db_session, "missing")
