"""Stock status classification and inventory summary tests."""

from datetime import date, timedelta

import pytest

from roastery.models import InventoryItem
from roastery.services.inventory import (
    CRITICAL,
    EXPIRING,
    GOOD,
    classify_stock,
    inventory_summary,
    list_inventory,
)

TODAY = date(2026, 6, 1)


def _item(stock, min_stock=None, expiry=None, cost=None):
    return InventoryItem(
        name="Colombia Huila 250g", item_type="PACKAGED_COFFEE",
        stock_qty=stock, min_stock=min_stock, expiry_date=expiry, cost_per_unit=cost,
    )


@pytest.mark.unit
class TestClassifyStock:

    @pytest.mark.parametrize("stock", [0, 5, 10])
    def test_default_minimum(self, stock):
        assert classify_stock(_item(stock), TODAY) == CRITICAL

    def test_own_minimum(self):
        assert classify_stock(_item(40, min_stock=50), TODAY) == CRITICAL
        assert classify_stock(_item(60, min_stock=50), TODAY) == GOOD

    def test_low_stock_wins_over_expiry(self):
        assert classify_stock(_item(3, expiry=TODAY), TODAY) == CRITICAL

    @pytest.mark.parametrize("days", [-1, 0, 10, 30])
    def test_expiring_inside_window(self, days):
        assert classify_stock(_item(50, expiry=TODAY + timedelta(days=days)), TODAY) == EXPIRING

    def test_expiry_beyond_window(self):
        assert classify_stock(_item(50, expiry=TODAY + timedelta(days=31)), TODAY) == GOOD

    def test_no_expiry(self):
        assert classify_stock(_item(11), TODAY) == GOOD


@pytest.mark.unit
def test_summary():
    items = [
        _item(5, cost=10.0),
        _item(50, expiry=TODAY + timedelta(days=3), cost=2.0),
        _item(100, cost=1.5),
        _item(20),
    ]

    summary = inventory_summary(items, TODAY)

    assert summary == {
        "total_items": 4,
        "total_value": 300.0,
        "low_stock": 1,
        "expiring": 1,
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_filters(db_session, shelf_item, milk, espresso_beans, roastery_location):
    assert {i.id for i in await list_inventory(db_session, item_type="INGREDIENT")} == {
        milk.id, espresso_beans.id,
    }
    assert [i.id for i in await list_inventory(db_session, search="blend")] == [shelf_item.id]
    assert await list_inventory(db_session, location_id=roastery_location.id) == []
