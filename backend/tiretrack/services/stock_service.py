# Overview: Service-layer operations for the stock aggregator; catalog counters and reconciliation.

"""
Stock Aggregator

WHY: Per-tire-type stock counts are read constantly (dashboards, reorder
checks) and would otherwise need a scan over every tire.

INVARIANTS:
- current_stock == count of tires with the same (size, brand, model, kind)
  whose status is IN_STORE or USED_STORE.
- The counter only moves by relative deltas (current_stock + :delta) in the
  transaction of the tire transition that causes it. Never overwritten, except
  by an explicit reconcile_stock(fix=True).
- Tire rows are authoritative: count_in_stock() and reconcile_stock() derive
  stock from them directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import IN_STOCK_STATUSES, InventoryCatalogItem, Tire, TireKind, TireStatus
from .concurrency import run_in_transaction


@dataclass(frozen=True)
class StockDrift:
    key: tuple
    cached: int | None
    actual: int

    def to_dict(self) -> dict:
        size, brand, model, kind = self.key
        return {
            "size": size,
            "brand": brand,
            "model": model,
            "kind": getattr(kind, "value", kind),
            "cached": self.cached,
            "actual": self.actual,
        }


def catalog_key(size: str, brand: str | None = "", model: str | None = "", kind=TireKind.NEW) -> tuple:
    """Normalized (size, brand, model, kind) key."""
    if not size:
        raise ValidationError("size is required for a stock key")
    return (size.strip(), (brand or "").strip(), (model or "").strip(), TireKind(kind))


def _catalog_query(key: tuple):
    size, brand, model, kind = key
    return db.session.query(InventoryCatalogItem).filter_by(size=size, brand=brand, model=model, kind=kind)


def get_catalog_item(key: tuple) -> InventoryCatalogItem | None:
    return _catalog_query(key).first()


def get_or_create_catalog_item(key: tuple) -> InventoryCatalogItem:
    item = _catalog_query(key).first()
    if item:
        return item

    size, brand, model, kind = key
    try:
        with db.session.begin_nested():
            item = InventoryCatalogItem(size=size, brand=brand, model=model, kind=kind, current_stock=0)
            db.session.add(item)
    except IntegrityError:
        # Created concurrently by another writer
        item = _catalog_query(key).one()
    return item


def stock_delta(from_status: TireStatus | None, to_status: TireStatus | None) -> int:
    """+1 entering an in-stock status, -1 leaving one, 0 otherwise."""
    was_in_stock = from_status in IN_STOCK_STATUSES
    is_in_stock = to_status in IN_STOCK_STATUSES
    return int(is_in_stock) - int(was_in_stock)


def apply_stock_delta(key: tuple, delta: int) -> None:
    """Apply a relative counter change within the caller's transaction."""
    if not delta:
        return
    item = get_or_create_catalog_item(key)
    db.session.execute(
        update(InventoryCatalogItem)
        .where(InventoryCatalogItem.id == item.id)
        .values(current_stock=InventoryCatalogItem.current_stock + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(item, ["current_stock"])


def _round_half_up(numerator: int, denominator: int) -> int:
    return int((Decimal(numerator) / Decimal(denominator)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def record_receipt_cost(
    key: tuple,
    *,
    unit_cost_cents: int,
    supplier_id: int | None,
    received_on: date,
) -> InventoryCatalogItem:
    """
    Update cost tracking after tires for key were received (and flushed).

    average_cost_cents is the weighted average over every tire ever received
    for the key: sum(cost) / count, rounded half-up to the cent.
    """
    item = get_or_create_catalog_item(key)
    size, brand, model, kind = key
    total_cost, count = (
        db.session.query(func.coalesce(func.sum(Tire.cost_cents), 0), func.count(Tire.id))
        .filter(Tire.size == size, Tire.brand == brand, Tire.model == model, Tire.kind == kind)
        .one()
    )

    item.last_purchase_date = received_on
    item.last_purchase_price_cents = unit_cost_cents
    if supplier_id is not None:
        item.supplier_id = supplier_id
    if count:
        item.average_cost_cents = _round_half_up(int(total_cost), int(count))
    return item


def count_in_stock(key: tuple) -> int:
    size, brand, model, kind = key
    return (
        db.session.query(func.count(Tire.id))
        .filter(
            Tire.size == size,
            Tire.brand == brand,
            Tire.model == model,
            Tire.kind == kind,
            Tire.status.in_(list(IN_STOCK_STATUSES)),
        )
        .scalar()
    ) or 0


def get_stock_level(key: tuple) -> dict:
    """Cached and recomputed stock for one key, side by side."""
    item = get_catalog_item(key)
    return {
        "cached": item.current_stock if item else 0,
        "actual": count_in_stock(key),
    }


def _actual_stock_by_key() -> dict[tuple, int]:
    rows = (
        db.session.query(Tire.size, Tire.brand, Tire.model, Tire.kind, func.count(Tire.id))
        .filter(Tire.status.in_(list(IN_STOCK_STATUSES)))
        .group_by(Tire.size, Tire.brand, Tire.model, Tire.kind)
        .all()
    )
    return {(size, brand, model, kind): count for size, brand, model, kind, count in rows}


def find_stock_drift() -> list[StockDrift]:
    actual = _actual_stock_by_key()
    drifts: list[StockDrift] = []
    seen = set()
    for item in db.session.query(InventoryCatalogItem).order_by(InventoryCatalogItem.id).all():
        seen.add(item.key)
        expected = actual.get(item.key, 0)
        if item.current_stock != expected:
            drifts.append(StockDrift(item.key, item.current_stock, expected))
    for key, count in actual.items():
        if key not in seen:
            drifts.append(StockDrift(key, None, count))
    return drifts


def reconcile_stock(*, fix: bool = False) -> list[StockDrift]:
    """
    Recompute every counter from tire rows.

    Returns the drifts found. With fix=True the cached counters are
    overwritten with the recomputed values in one transaction.
    """
    def _op() -> list[StockDrift]:
        drifts = find_stock_drift()
        for drift in drifts:
            current_app.logger.warning(
                "Stock drift for %s: cached=%s actual=%s", drift.key, drift.cached, drift.actual
            )
            if fix:
                item = get_or_create_catalog_item(drift.key)
                item.current_stock = drift.actual
        return drifts

    if not fix:
        return find_stock_drift()
    return run_in_transaction(_op)


def set_stock_thresholds(
    key: tuple,
    *,
    min_stock: int | None = None,
    max_stock: int | None = None,
    reorder_point: int | None = None,
) -> InventoryCatalogItem:
    for name, value in (("min_stock", min_stock), ("max_stock", max_stock), ("reorder_point", reorder_point)):
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise ValidationError(f"{name} must be a non-negative integer", details={"field": name})
    if min_stock is not None and max_stock is not None and max_stock < min_stock:
        raise ValidationError("max_stock cannot be below min_stock")

    def _op() -> InventoryCatalogItem:
        item = get_or_create_catalog_item(key)
        if min_stock is not None:
            item.min_stock = min_stock
        if max_stock is not None:
            item.max_stock = max_stock
        if reorder_point is not None:
            item.reorder_point = reorder_point
        return item

    return run_in_transaction(_op)


def get_catalog_item_by_id(item_id: int) -> InventoryCatalogItem:
    item = db.session.get(InventoryCatalogItem, item_id)
    if not item:
        raise NotFoundError(f"Catalog item {item_id} not found", entity_type="inventory_catalog", entity_id=item_id)
    return item


def list_catalog(*, size: str | None = None, active_only: bool = True) -> list[InventoryCatalogItem]:
    query = db.session.query(InventoryCatalogItem)
    if size:
        query = query.filter(InventoryCatalogItem.size == size)
    if active_only:
        query = query.filter(InventoryCatalogItem.is_active.is_(True))
    return query.order_by(
        InventoryCatalogItem.size,
        InventoryCatalogItem.brand,
        InventoryCatalogItem.model,
        InventoryCatalogItem.kind,
    ).all()


def list_reorder_candidates() -> list[InventoryCatalogItem]:
    """Active catalog rows at or below their reorder point / minimum stock."""
    return [item for item in list_catalog() if item.needs_reorder]
