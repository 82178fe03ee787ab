"""Yield allocation engine tests.

The ``completed_batch`` fixture roasted 12 kg green into 10 kg, and the
packaged product uses a 0.25 kg template, so 40 bags empty the batch.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.config import settings
from roastery.middleware.exceptions import (
    ConcurrencyConflictError,
    InsufficientWeightError,
    InvalidLineError,
    InvalidTransitionError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
)
from roastery.models import ActivityLog, BatchHistory, InventoryItem, PackagingUnit
from roastery.schemas.batch import AllocationLine
from roastery.services.allocation import allocate_batch
from roastery.services.roasting import batch_weight_stats, is_ready_for_packaging, start_batch
from roastery.utils import numbering

PRODUCTION = date(2026, 3, 3)


async def _allocate(db, user, batch, location, *lines, key=None, packaging_date=PRODUCTION):
    return await allocate_batch(
        db, user,
        batch_id=batch.id,
        lines=[AllocationLine(product_id=p.id, quantity=q) for p, q in lines],
        production_date=PRODUCTION,
        packaging_date=packaging_date,
        location_id=location.id,
        idempotency_key=key,
    )


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.unit
@pytest.mark.asyncio
class TestAllocate:

    async def test_thirty_bags_leave_two_and_a_half_kg(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        result = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 30),
        )

        assert result.total_weight_kg == 7.5
        assert result.remaining_weight_kg == 2.5
        assert not result.replayed
        assert completed_batch.packaged_weight_kg == 7.5

        packaged, remaining = await batch_weight_stats(db_session, completed_batch)
        assert packaged == pytest.approx(7.5)
        assert remaining == pytest.approx(2.5)

    async def test_unit_and_inventory_rows(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        result = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 30),
        )

        [unit] = result.units
        assert unit.quantity == 30
        assert unit.unit_weight_kg == 0.25
        assert unit.size_label == "250g"
        assert unit.packaging_cost_total == 60.0
        assert unit.expiry_date == PRODUCTION + timedelta(days=180)
        assert unit.sku.startswith("ETH250-0001-")
        assert len(unit.sku.split("-")[-1]) == 4

        [item] = result.inventory_items
        assert item.sku == unit.sku
        assert item.location_id == roastery_location.id
        assert item.stock_qty == 30
        assert item.price == 65.0
        assert item.item_type == "PACKAGED_COFFEE"
        assert item.batch_id == completed_batch.id
        # bag 2.00 + 0.25 kg × 48.00/kg roasted + labour 1.50 + overhead 0.50
        assert item.cost_per_unit == pytest.approx(16.0)

    async def test_history_entry(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 30),
        )

        entry = (
            await db_session.execute(
                select(BatchHistory).where(
                    BatchHistory.batch_id == completed_batch.id,
                    BatchHistory.action == "BATCH_PRODUCTION",
                )
            )
        ).scalar_one()
        assert entry.details == "Batch Packaged: 1 items. Total Weight: 7.50kg."
        assert entry.event_data["item_count"] == 1
        assert entry.event_data["location_id"] == roastery_location.id

        activity = (
            await db_session.execute(
                select(ActivityLog).where(ActivityLog.action == "packaged")
            )
        ).scalar_one()
        assert activity.entity_id == completed_batch.id
        assert activity.location_id == roastery_location.id
        assert activity.user_name == "Robin Roaster"

    async def test_lines_are_never_merged(
        self, db_session, roaster, completed_batch, packaged_product, kilo_product,
        roastery_location,
    ):
        result = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 8), (kilo_product, 3), (packaged_product, 4),
        )

        assert len(result.units) == 3
        assert len(result.inventory_items) == 3
        assert len({u.sku for u in result.units}) == 3
        assert result.total_weight_kg == 6.0
        assert result.remaining_weight_kg == 4.0
        # template without shelf life falls back to the default
        assert result.units[1].expiry_date == PRODUCTION + timedelta(days=180)

    async def test_exact_fit_empties_the_batch(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        result = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 40),
        )

        assert result.remaining_weight_kg == 0.0
        _, remaining = await batch_weight_stats(db_session, completed_batch)
        assert not is_ready_for_packaging(completed_batch, remaining)

    async def test_digit_string_quantity_is_accepted(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        result = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, "12"),
        )
        assert result.units[0].quantity == 12


@pytest.mark.unit
@pytest.mark.asyncio
class TestAllocateRejections:

    async def test_over_allocation_changes_nothing(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 30),
        )
        version = completed_batch.version

        with pytest.raises(InsufficientWeightError) as exc_info:
            await _allocate(
                db_session, roaster, completed_batch, roastery_location, (packaged_product, 12),
            )

        assert exc_info.value.needed_kg == pytest.approx(3.0)
        assert exc_info.value.remaining_kg == pytest.approx(2.5)
        assert await _count(db_session, PackagingUnit) == 1
        assert await _count(db_session, InventoryItem) == 1
        assert completed_batch.packaged_weight_kg == 7.5
        assert completed_batch.version == version

    async def test_one_bad_line_rejects_the_whole_request(
        self, db_session, roaster, completed_batch, packaged_product, latte_product,
        roastery_location,
    ):
        inventory_before = await _count(db_session, InventoryItem)

        with pytest.raises(InvalidLineError) as exc_info:
            await _allocate(
                db_session, roaster, completed_batch, roastery_location,
                (packaged_product, 4), (latte_product, 2),
            )

        assert exc_info.value.line_index == 1
        assert await _count(db_session, PackagingUnit) == 0
        assert await _count(db_session, InventoryItem) == inventory_before

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, "abc", "", "²", "١٢", None, True, float("nan")])
    async def test_bad_quantities(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location, quantity,
    ):
        with pytest.raises(InvalidLineError):
            await _allocate(
                db_session, roaster, completed_batch, roastery_location,
                (packaged_product, quantity),
            )
        assert await _count(db_session, PackagingUnit) == 0

    async def test_unknown_product(self, db_session, roaster, completed_batch, roastery_location):
        with pytest.raises(InvalidLineError):
            await allocate_batch(
                db_session, roaster,
                batch_id=completed_batch.id,
                lines=[AllocationLine(product_id="ghost", quantity=1)],
                production_date=PRODUCTION,
                packaging_date=PRODUCTION,
                location_id=roastery_location.id,
            )

    async def test_in_progress_batch_cannot_be_packaged(
        self, db_session, roaster, bean, packaged_product, roastery_location,
    ):
        batch = await start_batch(
            db_session, roaster, bean_id=bean.id, pre_weight_kg=5.0, level="Light",
        )
        with pytest.raises(InvalidTransitionError):
            await _allocate(db_session, roaster, batch, roastery_location, (packaged_product, 1))

    async def test_packaging_before_production_is_rejected(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        with pytest.raises(ValidationError):
            await _allocate(
                db_session, roaster, completed_batch, roastery_location, (packaged_product, 1),
                packaging_date=PRODUCTION - timedelta(days=1),
            )

    async def test_empty_request(self, db_session, roaster, completed_batch, roastery_location):
        with pytest.raises(ValidationError):
            await _allocate(db_session, roaster, completed_batch, roastery_location)

    async def test_unknown_location(self, db_session, roaster, completed_batch, packaged_product):
        with pytest.raises(ResourceNotFoundError):
            await allocate_batch(
                db_session, roaster,
                batch_id=completed_batch.id,
                lines=[AllocationLine(product_id=packaged_product.id, quantity=1)],
                production_date=PRODUCTION,
                packaging_date=PRODUCTION,
                location_id="nowhere",
            )

    async def test_inactive_location(
        self, db_session, roaster, completed_batch, packaged_product, branch,
    ):
        branch.is_active = False
        await db_session.flush()
        with pytest.raises(ResourceNotFoundError):
            await _allocate(db_session, roaster, completed_batch, branch, (packaged_product, 1))


@pytest.mark.unit
@pytest.mark.asyncio
class TestIdempotentRetry:

    async def test_same_key_replays_instead_of_packaging_twice(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        first = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 30), key="run-1",
        )
        again = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 30), key="run-1",
        )

        assert again.replayed
        assert [u.sku for u in again.units] == [u.sku for u in first.units]
        assert [i.id for i in again.inventory_items] == [i.id for i in first.inventory_items]
        assert again.remaining_weight_kg == 2.5
        assert await _count(db_session, PackagingUnit) == 1
        assert await _count(db_session, InventoryItem) == 1

    async def test_replay_recreates_lost_inventory_rows(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        first = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 30), key="run-2",
        )
        await db_session.delete(first.inventory_items[0])
        await db_session.flush()

        again = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 30), key="run-2",
        )

        assert again.replayed
        [item] = again.inventory_items
        assert item.sku == first.units[0].sku
        assert item.stock_qty == 30
        assert await _count(db_session, InventoryItem) == 1

    async def test_new_key_packages_again(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 10), key="run-a",
        )
        second = await _allocate(
            db_session, roaster, completed_batch, roastery_location,
            (packaged_product, 10), key="run-b",
        )

        assert not second.replayed
        assert second.remaining_weight_kg == 5.0
        assert await _count(db_session, PackagingUnit) == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestBatchSerialization:

    async def test_stale_batch_version_aborts_the_run(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location,
    ):
        """Another writer bumped the batch after we loaded it: nothing is packaged."""
        await db_session.commit()
        inventory_before = await _count(db_session, InventoryItem)
        await db_session.execute(
            text("UPDATE roasting_batches SET version = version + 1 WHERE id = :id"),
            {"id": completed_batch.id},
        )

        with pytest.raises(ConcurrencyConflictError):
            await _allocate(
                db_session, roaster, completed_batch, roastery_location, (packaged_product, 8),
            )
        await db_session.rollback()

        await db_session.refresh(completed_batch)
        packaged, remaining = await batch_weight_stats(db_session, completed_batch)
        assert packaged == 0.0
        assert remaining == pytest.approx(10.0)
        assert completed_batch.packaged_weight_kg == 0.0
        assert await _count(db_session, PackagingUnit) == 0
        assert await _count(db_session, InventoryItem) == inventory_before

    async def test_runs_never_package_more_than_the_output(
        self, db_session, roaster, completed_batch, packaged_product, kilo_product, roastery_location,
    ):
        accepted = 0
        while True:
            try:
                await _allocate(
                    db_session, roaster, completed_batch, roastery_location, (kilo_product, 3),
                )
            except InsufficientWeightError as exc:
                assert exc.needed_kg == pytest.approx(3.0)
                break
            accepted += 1
        assert accepted == 3

        # the last kilo still fits exactly, then nothing does
        await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 4),
        )
        with pytest.raises(InsufficientWeightError):
            await _allocate(
                db_session, roaster, completed_batch, roastery_location, (packaged_product, 1),
            )

        units = (await db_session.execute(select(PackagingUnit))).scalars().all()
        total = sum(u.quantity * u.unit_weight_kg for u in units)
        assert total <= completed_batch.post_weight_kg + settings.weight_epsilon_kg
        assert total == pytest.approx(10.0)
        assert completed_batch.packaged_weight_kg == pytest.approx(total)
        assert not is_ready_for_packaging(
            completed_batch, (await batch_weight_stats(db_session, completed_batch))[1],
        )


@pytest.mark.unit
@pytest.mark.asyncio
class TestSkuGeneration:

    async def test_stored_sku_is_skipped(
        self, db_session, roaster, completed_batch, packaged_product, roastery_location, monkeypatch,
    ):
        draws = iter([1234, 1234, 5678])
        monkeypatch.setattr(numbering.random, "randint", lambda low, high: next(draws))

        first = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 1),
        )
        second = await _allocate(
            db_session, roaster, completed_batch, roastery_location, (packaged_product, 1),
        )

        assert first.units[0].sku == "ETH250-0001-1234"
        assert second.units[0].sku == "ETH250-0001-5678"

    async def test_exhausted_sku_space_fails(self, db_session, monkeypatch):
        monkeypatch.setattr(numbering.random, "randint", lambda low, high: 1234)

        with pytest.raises(StorageError):
            await numbering.generate_skus(db_session, ["ETH250", "ETH250"], "B-202603-0001")
