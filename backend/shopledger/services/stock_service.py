# Overview: Manual stock movements (adjustments, write-offs, restocks) paired with ledger entries.

from __future__ import annotations

from typing import Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import Product, STOCK_LOG_TYPES
from .catalog_service import (
    ProductLookupError,
    StockUnavailable,
    decrement_quantity,
    get_product,
    increment_quantity,
)
from .concurrency import begin_write_unit, lock_for_update, run_with_retry
from .ledger_service import append_entry
from .usage_service import dispatch_usage_increment
"""
Stock movement rules:
- SALE entries are written by sales_service only; RETURN here is a manual
  customer return, not a sale void.
- Every movement changes Product.quantity and appends its ledger entry in
  one transaction.
- A movement may never take a stock-tracked product below zero.
- Each committed movement adds one to the shop's monthly_stock_moves
  (best-effort, after commit).
"""

MANUAL_TYPES = tuple(t for t in STOCK_LOG_TYPES if t not in ("SALE", "INITIAL"))


class StockError(ValueError):
    """Raised for stock movement errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class StockProductNotFoundError(StockError):
    """Product does not exist in this shop."""


class NegativeStockError(StockError):
    """The movement would take quantity below zero."""


def _apply_delta(product: Product, quantity_delta: int) -> tuple[int, int]:
    if quantity_delta < 0:
        try:
            return decrement_quantity(product, -quantity_delta)
        except StockUnavailable as exc:
            raise NegativeStockError(
                f"Cannot reduce stock below 0. Current: {exc.available}",
                details={"product_id": product.id, "available": exc.available, "requested": -quantity_delta},
            ) from exc
    return increment_quantity(product, quantity_delta)


def adjust_stock(
    *,
    shop_id: int,
    product_id: int,
    type: str,
    quantity_delta: int,
    user_id: int | None = None,
    note: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Apply a signed quantity change to one product and log it.

    Returns {"product": ..., "stock_log": ...}.
    """
    if type not in MANUAL_TYPES:
        raise StockError(f"type must be one of {', '.join(MANUAL_TYPES)}")
    if not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise StockError("quantity must be a non-zero integer")

    def _op():
        begin_write_unit()
        try:
            product = get_product(shop_id, product_id, lock=True)
        except ProductLookupError as exc:
            raise StockProductNotFoundError(str(exc), details={"product_id": product_id}) from exc
        if not product.track_stock:
            raise StockError("Product does not track stock", details={"product_id": product_id})

        previous_qty, new_qty = _apply_delta(product, quantity_delta)
        entry = append_entry(
            shop_id=shop_id,
            product_id=product.id,
            type=type,
            quantity=quantity_delta,
            previous_qty=previous_qty,
            new_qty=new_qty,
            user_id=user_id,
            reference=reference,
            note=note,
        )
        db.session.commit()
        db.session.refresh(product)
        return {"product": product.to_dict(), "stock_log": entry.to_dict()}

    result = run_with_retry(_op)
    current_app.logger.info(
        "Stock %s of %+d on product %s in shop %s", type, quantity_delta, product_id, shop_id
    )
    dispatch_usage_increment(shop_id, "stock_move")
    return result


def receive_stock(
    *,
    shop_id: int,
    items: Iterable[Mapping],
    user_id: int | None = None,
    reference: str | None = None,
) -> list[dict]:
    """
    Bulk restock: one RESTOCK entry per line, all lines in one transaction.

    items: [{"product_id", "quantity" (> 0), "note"?}, ...]
    """
    lines = list(items)
    if not lines:
        raise StockError("At least one item is required")
    for line in lines:
        qty = line.get("quantity")
        if not isinstance(qty, int) or qty <= 0:
            raise StockError(
                "Quantity must be positive for stock receive",
                details={"product_id": line.get("product_id")},
            )

    def _op():
        begin_write_unit()
        wanted = sorted({line["product_id"] for line in lines})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product)
                .filter(Product.id.in_(wanted), Product.shop_id == shop_id)
                .order_by(Product.id.asc())
            ).all()
        }
        missing = [pid for pid in wanted if pid not in products]
        if missing:
            raise StockProductNotFoundError(
                "One or more products not found", details={"product_ids": missing}
            )

        entries = []
        for line in lines:
            product = products[line["product_id"]]
            if not product.track_stock:
                raise StockError("Product does not track stock", details={"product_id": product.id})
            previous_qty, new_qty = increment_quantity(product, line["quantity"])
            entries.append(
                append_entry(
                    shop_id=shop_id,
                    product_id=product.id,
                    type="RESTOCK",
                    quantity=line["quantity"],
                    previous_qty=previous_qty,
                    new_qty=new_qty,
                    user_id=user_id,
                    reference=reference,
                    note=line.get("note"),
                )
            )
        db.session.commit()
        return [e.to_dict() for e in entries]

    result = run_with_retry(_op)
    current_app.logger.info("Received %s line(s) into shop %s", len(result), shop_id)
    dispatch_usage_increment(shop_id, "stock_move", amount=len(result))
    return result
