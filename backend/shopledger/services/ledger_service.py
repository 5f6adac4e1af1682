# Overview: Service-layer operations for the stock ledger; append-only writes and read projections.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Product, StockLogEntry, STOCK_LOG_TYPES, PRODUCT_ACTIVE
from ..pagination import paginate_query
from ..time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Append-only: entries are never updated or deleted.
- Every entry is written inside the same DB transaction as the
  Product.quantity change it records; callers pass previous_qty/new_qty as
  observed inside that transaction.
- new_qty == previous_qty + quantity for every entry.
- For track_stock products: Product.quantity == SUM(quantity) over the
  product's entries (the INITIAL entry carries the opening stock).
"""


class LedgerError(ValueError):
    """Raised when an entry would break the ledger's arithmetic."""


def append_entry(
    *,
    shop_id: int,
    product_id: int,
    type: str,
    quantity: int,
    previous_qty: int,
    new_qty: int,
    user_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> StockLogEntry:
    """
    Append one stock log entry to the current transaction.

    Does not commit; the caller owns the unit of work that also changes the
    product's quantity.
    """
    if type not in STOCK_LOG_TYPES:
        raise LedgerError(f"Unknown stock log type {type!r}")
    if new_qty != previous_qty + quantity:
        raise LedgerError(
            f"Ledger arithmetic broken: {previous_qty} + ({quantity}) != {new_qty}"
        )

    entry = StockLogEntry(
        shop_id=shop_id,
        product_id=product_id,
        user_id=user_id,
        type=type,
        quantity=quantity,
        previous_qty=previous_qty,
        new_qty=new_qty,
        reference=reference,
        note=note,
        created_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def get_movements(
    shop_id: int,
    *,
    product_id: int | None = None,
    type: str | None = None,
    reference: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """Paginated ledger entries for a shop, newest first. start/end are inclusive."""
    q = (
        db.session.query(StockLogEntry)
        .options(joinedload(StockLogEntry.product))
        .filter(StockLogEntry.shop_id == shop_id)
    )
    if product_id is not None:
        q = q.filter(StockLogEntry.product_id == product_id)
    if type:
        q = q.filter(StockLogEntry.type == type)
    if reference:
        q = q.filter(StockLogEntry.reference == reference)
    if start is not None:
        q = q.filter(StockLogEntry.created_at >= start)
    if end is not None:
        q = q.filter(StockLogEntry.created_at <= end)

    q = q.order_by(StockLogEntry.created_at.desc(), StockLogEntry.id.desc())
    rows, meta = paginate_query(q, page, limit)
    return {"movements": [r.to_dict() for r in rows], **meta}


def get_low_stock_alerts(shop_id: int) -> dict:
    """
    Active, stock-tracked products at or below their reorder threshold.

    Buckets:
    - critical: quantity == 0
    - low:      0 < quantity <= reorder_at / 2
    - warning:  reorder_at / 2 < quantity <= reorder_at
    """
    products = (
        db.session.query(Product)
        .filter(
            Product.shop_id == shop_id,
            Product.status == PRODUCT_ACTIVE,
            Product.track_stock.is_(True),
            Product.quantity <= Product.reorder_at,
        )
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )

    critical, low, warning = [], [], []
    for product in products:
        row = {
            "id": product.id,
            "name": product.name,
            "barcode": product.barcode,
            "category": product.category,
            "unit": product.unit,
            "quantity": product.quantity,
            "reorder_at": product.reorder_at,
        }
        if product.quantity <= 0:
            critical.append(row)
        elif product.quantity <= product.reorder_at / 2:
            low.append(row)
        else:
            warning.append(row)

    return {
        "total": len(products),
        "critical": len(critical),
        "low": len(low),
        "warning": len(warning),
        "items": {"critical": critical, "low": low, "warning": warning},
    }


def reconcile_product(product: Product) -> dict:
    """
    Check a product against its ledger.

    - ledger_sum: SUM(quantity) over all entries
    - broken_links: entries whose previous_qty does not continue the
      running total (lost update or out-of-band quantity write)
    """
    entries = (
        db.session.query(StockLogEntry)
        .filter(StockLogEntry.product_id == product.id)
        .order_by(StockLogEntry.id.asc())
        .all()
    )

    running = 0
    broken_links = []
    for entry in entries:
        if entry.previous_qty != running:
            broken_links.append(entry.id)
        running = entry.new_qty

    ledger_sum = sum(e.quantity for e in entries)
    consistent = (not product.track_stock) or (
        product.quantity == ledger_sum and not broken_links
    )
    return {
        "product_id": product.id,
        "name": product.name,
        "track_stock": product.track_stock,
        "quantity": product.quantity,
        "ledger_sum": ledger_sum,
        "entries": len(entries),
        "broken_links": broken_links,
        "consistent": consistent,
    }


def reconcile_shop(shop_id: int) -> dict:
    """Reconcile every stock-tracked product of a shop (active or not)."""
    products = (
        db.session.query(Product)
        .filter(Product.shop_id == shop_id, Product.track_stock.is_(True))
        .order_by(Product.id.asc())
        .all()
    )
    rows = [reconcile_product(p) for p in products]
    drifted = [r for r in rows if not r["consistent"]]
    return {
        "shop_id": shop_id,
        "checked": len(rows),
        "drifted": len(drifted),
        "products": drifted,
    }


def ledger_sum_for_reference(shop_id: int, reference: str, type: str) -> int:
    """Net delta of all entries of one type carrying a reference (e.g. a sale id)."""
    total = (
        db.session.query(func.coalesce(func.sum(StockLogEntry.quantity), 0))
        .filter(
            StockLogEntry.shop_id == shop_id,
            StockLogEntry.reference == reference,
            StockLogEntry.type == type,
        )
        .scalar()
    )
    return int(total or 0)
