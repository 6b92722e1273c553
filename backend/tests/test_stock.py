"""
Stock aggregator: relative counters, reconciliation and reorder thresholds.
"""

import pytest
from sqlalchemy import update

from tiretrack.errors import NotFoundError, ValidationError
from tiretrack.models import InventoryCatalogItem, TireKind, TireStatus
from tiretrack.services import stock_service, tire_service
from tiretrack.services.stock_service import catalog_key, stock_delta


def test_catalog_key_normalizes():
    assert catalog_key(" 295/80R22.5 ", " Michelin", None, "RETREADED") == (
        "295/80R22.5", "Michelin", "", TireKind.RETREADED,
    )
    with pytest.raises(ValidationError):
        catalog_key("")


@pytest.mark.parametrize("from_status,to_status,expected", [
    (None, TireStatus.IN_STORE, 1),
    (TireStatus.IN_STORE, TireStatus.ON_VEHICLE, -1),
    (TireStatus.ON_VEHICLE, TireStatus.USED_STORE, 1),
    (TireStatus.USED_STORE, TireStatus.AWAITING_RETREAD, -1),
    (TireStatus.AWAITING_RETREAD, TireStatus.AT_RETREAD_SUPPLIER, 0),
    (TireStatus.USED_STORE, TireStatus.DISPOSED, -1),
    (TireStatus.DISPOSED, TireStatus.USED_STORE, 1),
])
def test_stock_delta(from_status, to_status, expected):
    assert stock_delta(from_status, to_status) == expected


def test_counter_follows_receipts(db_session, receive_tires):
    ids = receive_tires(3)
    key = tire_service.get_tire(ids[0]).catalog_key

    assert stock_service.get_stock_level(key) == {"cached": 3, "actual": 3}
    assert stock_service.reconcile_stock() == []
    assert stock_service.get_catalog_item(key).average_cost_cents == 25000


def test_reconcile_detects_and_fixes_drift(db_session, receive_tires):
    ids = receive_tires(2)
    key = tire_service.get_tire(ids[0]).catalog_key
    item = stock_service.get_catalog_item(key)

    db_session.execute(
        update(InventoryCatalogItem).where(InventoryCatalogItem.id == item.id).values(current_stock=10)
    )
    db_session.commit()

    drifts = stock_service.reconcile_stock()
    assert [d.to_dict() for d in drifts] == [{
        "size": "295/80R22.5",
        "brand": "Michelin",
        "model": "X Multi",
        "kind": "NEW",
        "cached": 10,
        "actual": 2,
    }]
    assert stock_service.get_stock_level(key)["cached"] == 10

    stock_service.reconcile_stock(fix=True)
    db_session.expire_all()
    assert stock_service.get_stock_level(key) == {"cached": 2, "actual": 2}
    assert stock_service.reconcile_stock() == []


def test_thresholds_and_reorder_candidates(db_session, receive_tires):
    ids = receive_tires(3)
    key = tire_service.get_tire(ids[0]).catalog_key

    assert stock_service.list_reorder_candidates() == []

    item = stock_service.set_stock_thresholds(key, min_stock=2, max_stock=20, reorder_point=5)
    assert item.needs_reorder
    assert [c.id for c in stock_service.list_reorder_candidates()] == [item.id]

    stock_service.set_stock_thresholds(key, reorder_point=1, min_stock=1)
    assert stock_service.list_reorder_candidates() == []


@pytest.mark.parametrize("kwargs", [
    {"min_stock": -1},
    {"reorder_point": 1.5},
    {"min_stock": 10, "max_stock": 5},
])
def test_threshold_validation(db_session, kwargs):
    with pytest.raises(ValidationError):
        stock_service.set_stock_thresholds(catalog_key("11R22.5", "Bridgestone", "R249"), **kwargs)


def test_catalog_lookup(db_session, receive_tires):
    receive_tires(1)

    (item,) = stock_service.list_catalog(size="295/80R22.5")
    assert stock_service.get_catalog_item_by_id(item.id).key == item.key
    assert item.to_dict()["current_stock"] == 1
    with pytest.raises(NotFoundError):
        stock_service.get_catalog_item_by_id(987654)
