"""
Sales Service - cart to committed sale, and compensating voids.

A sale is created in one all-or-nothing unit: receipt number, Sale row,
SaleItems, compare-and-swap stock decrements and SALE ledger entries either
all commit or none do. Validation (products, stock, payment) runs inside the
same unit before the first write, so a rejected cart leaves no trace.

A void is the mirror image: status COMPLETED -> VOIDED plus one RETURN
ledger entry per stock-tracked line, committed together. The status check
happens on the locked row inside the unit, and the Sale row carries an
optimistic version, so a second void fails instead of crediting stock twice.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Product,
    Sale,
    SaleItem,
    Shop,
    PAYMENT_METHODS,
    PRODUCT_ACTIVE,
    SALE_COMPLETED,
    SALE_VOIDED,
)
from ..pagination import paginate_query
from ..time_utils import utcnow
from .catalog_service import StockUnavailable, decrement_quantity, increment_quantity
from .concurrency import ConcurrencyConflict, begin_write_unit, lock_for_update, run_with_retry
from .ledger_service import append_entry
from .receipt_service import next_receipt_number
from .usage_service import dispatch_usage_increment


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFoundError(SaleError):
    """One or more cart products are unknown, inactive or belong to another shop."""


class InsufficientStockError(SaleError):
    def __init__(self, *, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InsufficientPaymentError(SaleError):
    def __init__(self, *, required: int, received: int):
        super().__init__(
            f"Insufficient payment. Required: {required}, Received: {received}",
            details={"required": required, "received": received, "outstanding": required - received},
        )
        self.required = required
        self.received = received


class SaleNotFoundError(SaleError):
    """Sale does not exist in this shop."""


class AlreadyVoidedError(SaleError):
    """The sale has already been voided."""


class InvalidSaleStateError(SaleError):
    """The sale is in a state the requested transition does not start from."""


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    discount_cents: int = 0


@dataclass(frozen=True)
class PricedLine:
    line_number: int
    product: Product
    quantity: int
    unit_price_cents: int
    cost_price_cents: int
    discount_cents: int
    total_price_cents: int


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_amount_cents: int
    amount_paid_cents: int
    change_cents: int


def _coerce_lines(items: Iterable[CartLine | Mapping]) -> list[CartLine]:
    lines = []
    for raw in items:
        if isinstance(raw, CartLine):
            line = raw
        else:
            line = CartLine(
                product_id=raw["product_id"],
                quantity=raw["quantity"],
                discount_cents=raw.get("discount_cents") or 0,
            )
        if line.quantity < 1:
            raise SaleError("Line quantity must be at least 1", details={"product_id": line.product_id})
        if line.discount_cents < 0:
            raise SaleError("Line discount must be non-negative", details={"product_id": line.product_id})
        lines.append(line)

    if not lines:
        raise SaleError("Cannot create a sale with no items")
    return lines


def _resolve_products(shop_id: int, lines: list[CartLine], *, lock: bool) -> dict[int, Product]:
    """
    Load every distinct cart product that is active in this shop.

    Rows are locked in ascending id order so concurrent carts touching the
    same products cannot deadlock each other.
    """
    wanted = sorted({line.product_id for line in lines})
    query = (
        db.session.query(Product)
        .filter(
            Product.id.in_(wanted),
            Product.shop_id == shop_id,
            Product.status == PRODUCT_ACTIVE,
        )
        .order_by(Product.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    products = {p.id: p for p in query.all()}

    if len(products) != len(wanted):
        missing = [pid for pid in wanted if pid not in products]
        raise ProductNotFoundError(
            "One or more products not found",
            details={"product_ids": missing},
        )
    return products


def _line_demand(lines: list[CartLine]) -> Counter[int]:
    """Total units asked for per product across all cart lines."""
    demand: Counter[int] = Counter()
    for line in lines:
        demand[line.product_id] += line.quantity
    return demand


def _price_cart(lines: list[CartLine], products: dict[int, Product]) -> tuple[list[PricedLine], int]:
    """
    Check stock and price every line.

    Duplicate lines for one product stay separate lines, but stock is checked
    against their combined demand before anything is written.
    """
    demand = _line_demand(lines)

    priced = []
    subtotal = 0
    for number, line in enumerate(lines, start=1):
        product = products[line.product_id]

        if product.track_stock and product.quantity < demand[product.id]:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.quantity,
                requested=demand[product.id],
            )

        gross = product.sell_price_cents * line.quantity
        if line.discount_cents > gross:
            raise SaleError(
                f"Discount on {product.name} exceeds the line total",
                details={"product_id": product.id, "line_total": gross, "discount": line.discount_cents},
            )
        line_total = gross - line.discount_cents
        subtotal += line_total

        priced.append(
            PricedLine(
                line_number=number,
                product=product,
                quantity=line.quantity,
                unit_price_cents=product.sell_price_cents,
                cost_price_cents=product.cost_price_cents,
                discount_cents=line.discount_cents,
                total_price_cents=line_total,
            )
        )
    return priced, subtotal


def compute_totals(subtotal_cents: int, discount_cents: int, amount_paid_cents: int) -> SaleTotals:
    """
    total = subtotal - discount + tax; change = paid - total.

    Tax is always 0 here (VAT is not computed by this service). Raises
    InsufficientPaymentError when change would be negative.
    """
    if discount_cents < 0:
        raise SaleError("Discount must be non-negative")
    if discount_cents > subtotal_cents:
        raise SaleError(
            "Discount exceeds the sale subtotal",
            details={"subtotal": subtotal_cents, "discount": discount_cents},
        )
    if amount_paid_cents < 0:
        raise SaleError("Amount paid must be non-negative")

    tax_cents = 0
    total = subtotal_cents - discount_cents + tax_cents
    change = amount_paid_cents - total
    if change < 0:
        raise InsufficientPaymentError(required=total, received=amount_paid_cents)

    return SaleTotals(
        subtotal_cents=subtotal_cents,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        total_amount_cents=total,
        amount_paid_cents=amount_paid_cents,
        change_cents=change,
    )


def _load_shop(shop_id: int) -> Shop:
    shop = db.session.query(Shop).filter_by(id=shop_id, is_active=True).first()
    if shop is None:
        raise SaleError("Shop not found")
    return shop


def _find_synced_sale(shop_id: int, local_id: str) -> Sale | None:
    return db.session.query(Sale).filter_by(shop_id=shop_id, local_id=local_id).first()


def create_sale(
    shop_id: int,
    items: Iterable[CartLine | Mapping],
    payment_method: str,
    amount_paid_cents: int,
    *,
    discount_cents: int = 0,
    user_id: int | None = None,
    customer_id: int | None = None,
    local_id: str | None = None,
    offline_at: datetime | None = None,
) -> Sale:
    """
    Turn a cart into a COMPLETED sale.

    Raises ProductNotFoundError, InsufficientStockError or
    InsufficientPaymentError with zero side effects. Lock and serialization
    conflicts are retried from scratch (re-read, re-validate, re-commit) a
    bounded number of times. After the commit the shop's monthly transaction
    counter is bumped best-effort; that never fails the sale.

    Offline uploads carry the device's local_id. It is unique per shop: a
    retried upload returns the sale already stored for it, without touching
    stock, the ledger or the usage counter a second time.
    """
    lines = _coerce_lines(items)
    if payment_method not in PAYMENT_METHODS:
        raise SaleError(
            f"Unsupported payment method {payment_method!r}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    demand = _line_demand(lines)

    def _op() -> tuple[Sale, bool]:
        begin_write_unit()
        shop = _load_shop(shop_id)

        if local_id:
            existing = _find_synced_sale(shop_id, local_id)
            if existing is not None:
                db.session.commit()
                return existing, False

        products = _resolve_products(shop_id, lines, lock=True)
        priced, subtotal = _price_cart(lines, products)
        totals = compute_totals(subtotal, discount_cents, amount_paid_cents)

        now = utcnow()
        receipt_number, business_date = next_receipt_number(shop, now)

        sale = Sale(
            shop_id=shop_id,
            user_id=user_id,
            customer_id=customer_id,
            receipt_number=receipt_number,
            business_date=business_date,
            local_id=local_id,
            offline_at=offline_at,
            synced_at=now if (local_id or offline_at) else None,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            total_amount_cents=totals.total_amount_cents,
            amount_paid_cents=totals.amount_paid_cents,
            change_cents=totals.change_cents,
            payment_method=payment_method,
            status=SALE_COMPLETED,
            created_at=now,
        )
        for line in priced:
            sale.items.append(
                SaleItem(
                    product_id=line.product.id,
                    line_number=line.line_number,
                    product_name=line.product.name,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    cost_price_cents=line.cost_price_cents,
                    discount_cents=line.discount_cents,
                    total_price_cents=line.total_price_cents,
                )
            )
        db.session.add(sale)
        try:
            db.session.flush()
        except IntegrityError as exc:
            if not local_id:
                raise
            # Same local_id committed concurrently; the retry returns that sale
            raise ConcurrencyConflict(f"Sale {local_id} synced concurrently") from exc

        for line in priced:
            if not line.product.track_stock:
                continue
            try:
                previous_qty, new_qty = decrement_quantity(line.product, line.quantity)
            except StockUnavailable as exc:
                raise InsufficientStockError(
                    product_id=line.product.id,
                    product_name=line.product.name,
                    available=exc.available,
                    requested=demand[line.product.id],
                ) from exc

            append_entry(
                shop_id=shop_id,
                product_id=line.product.id,
                type="SALE",
                quantity=-line.quantity,
                previous_qty=previous_qty,
                new_qty=new_qty,
                user_id=user_id,
                reference=str(sale.id),
                occurred_at=now,
            )

        db.session.commit()
        return sale, True

    sale, created = run_with_retry(_op)
    if not created:
        current_app.logger.info(
            "Offline sale %s already synced for shop %s as %s", local_id, shop_id, sale.receipt_number
        )
        return sale

    current_app.logger.info(
        "Sale %s committed for shop %s: total=%s lines=%s",
        sale.receipt_number,
        shop_id,
        sale.total_amount_cents,
        len(lines),
    )

    dispatch_usage_increment(shop_id, "transaction")
    return sale


def void_sale(sale_id: int, shop_id: int, user_id: int | None, reason: str) -> Sale:
    """
    Void a COMPLETED sale and restore the stock it took.

    Each stock-tracked line gets a RETURN entry (+quantity, reference =
    sale id, note "Voided: <reason>"). Lines whose product no longer tracks
    stock are skipped. Usage counters are not touched.
    """
    reason = (reason or "").strip()
    if not reason:
        raise SaleError("Void reason is required")

    def _op() -> Sale:
        begin_write_unit()
        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id, shop_id=shop_id)
        ).first()
        if not sale:
            raise SaleNotFoundError("Sale not found")

        if sale.status == SALE_VOIDED:
            raise AlreadyVoidedError("Sale already voided", details={"sale_id": sale.id})

        if sale.status != SALE_COMPLETED:
            raise InvalidSaleStateError(
                f"Only COMPLETED sales can be voided (status is {sale.status})",
                details={"sale_id": sale.id, "status": sale.status},
            )

        now = utcnow()
        sale.status = SALE_VOIDED
        sale.void_reason = reason
        sale.voided_by_user_id = user_id
        sale.voided_at = now
        # UPDATE ... WHERE version_id = <seen>; a concurrent void raises StaleDataError
        db.session.flush()

        product_ids = sorted({item.product_id for item in sale.items})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product)
                .filter(Product.id.in_(product_ids), Product.shop_id == shop_id)
                .order_by(Product.id.asc())
            ).all()
        }

        for item in sale.items:
            product = products.get(item.product_id)
            if product is None or not product.track_stock:
                continue
            previous_qty, new_qty = increment_quantity(product, item.quantity)
            append_entry(
                shop_id=shop_id,
                product_id=product.id,
                type="RETURN",
                quantity=item.quantity,
                previous_qty=previous_qty,
                new_qty=new_qty,
                user_id=user_id,
                reference=str(sale.id),
                note=f"Voided: {reason}",
                occurred_at=now,
            )

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Sale %s voided in shop %s: %s", sale.receipt_number, shop_id, reason)
    return sale


def get_sale(shop_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, shop_id=shop_id).first()
    if not sale:
        raise SaleNotFoundError("Sale not found")
    return sale


def get_sale_by_receipt(shop_id: int, receipt_fragment: str) -> Sale:
    """Lookup by full or partial receipt number ("0001" matches "RCP-260212-0001"); newest match wins."""
    fragment = (receipt_fragment or "").strip().upper()
    if not fragment:
        raise SaleNotFoundError("Sale not found with receipt number: ")

    sale = (
        db.session.query(Sale)
        .filter(
            Sale.shop_id == shop_id,
            func.upper(Sale.receipt_number).contains(fragment, autoescape=True),
        )
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .first()
    )
    if not sale:
        raise SaleNotFoundError(f"Sale not found with receipt number: {receipt_fragment}")
    return sale


def list_sales(
    shop_id: int,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    q = db.session.query(Sale).filter(Sale.shop_id == shop_id)
    if status:
        q = q.filter(Sale.status == status)
    if payment_method:
        q = q.filter(Sale.payment_method == payment_method)
    if user_id is not None:
        q = q.filter(Sale.user_id == user_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)

    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    rows, meta = paginate_query(q, page, limit)
    return {"sales": [s.to_dict() for s in rows], **meta}
