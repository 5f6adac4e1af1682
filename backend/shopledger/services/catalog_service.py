# Overview: Service-layer operations for the product catalog; owns every write to Product.quantity.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Shop, PRODUCT_ACTIVE, PRODUCT_INACTIVE, TIER_PRODUCT_LIMITS
from .ledger_service import append_entry
from .concurrency import begin_write_unit, lock_for_update, run_with_retry


class CatalogError(ValueError):
    """Raised for catalog lookups and lifecycle errors."""


class ProductLookupError(CatalogError):
    """Product does not exist in this shop (or is inactive when required)."""


class ProductLimitError(CatalogError):
    """The shop's tier does not allow more products."""

    def __init__(self, tier: str, limit: int):
        super().__init__(f"Product limit reached ({limit}). Upgrade to add more products.")
        self.tier = tier
        self.limit = limit


class StockUnavailable(CatalogError):
    """A compare-and-swap decrement found fewer units than requested."""

    def __init__(self, product: Product, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product.name}. Available: {available}"
        )
        self.product = product
        self.requested = requested
        self.available = available


def get_product(
    shop_id: int,
    product_id: int,
    *,
    require_active: bool = False,
    lock: bool = False,
) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, shop_id=shop_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductLookupError("Product not found")
    if require_active and not product.is_active:
        raise ProductLookupError("Product is inactive")
    return product


def _current_quantity(product_id: int) -> int:
    # Column query: always hits the database, never the identity map
    return db.session.query(Product.quantity).filter(Product.id == product_id).scalar()


def decrement_quantity(product: Product, amount: int) -> tuple[int, int]:
    """
    Compare-and-swap decrement inside the caller's transaction.

        UPDATE products SET quantity = quantity - :amount
        WHERE id = :id AND shop_id = :shop AND quantity >= :amount

    Zero affected rows means another transaction already took the stock:
    raises StockUnavailable with the freshly observed quantity. Returns
    (previous_qty, new_qty) as seen inside this transaction.
    """
    if amount <= 0:
        raise CatalogError("Decrement amount must be positive")

    if not product.track_stock:
        qty = _current_quantity(product.id)
        return qty, qty

    result = db.session.execute(
        update(Product)
        .where(
            Product.id == product.id,
            Product.shop_id == product.shop_id,
            Product.quantity >= amount,
        )
        .values(quantity=Product.quantity - amount, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StockUnavailable(product, amount, _current_quantity(product.id) or 0)

    new_qty = _current_quantity(product.id)
    return new_qty + amount, new_qty


def increment_quantity(product: Product, amount: int) -> tuple[int, int]:
    """Atomic increment inside the caller's transaction; returns (previous_qty, new_qty)."""
    if amount <= 0:
        raise CatalogError("Increment amount must be positive")

    if not product.track_stock:
        qty = _current_quantity(product.id)
        return qty, qty

    db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.shop_id == product.shop_id)
        .values(quantity=Product.quantity + amount, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    new_qty = _current_quantity(product.id)
    return new_qty - amount, new_qty


def create_product(
    *,
    shop_id: int,
    name: str,
    sell_price_cents: int,
    cost_price_cents: int = 0,
    quantity: int = 0,
    reorder_at: int = 10,
    track_stock: bool = True,
    sku: str | None = None,
    barcode: str | None = None,
    category: str | None = None,
    unit: str = "each",
    user_id: int | None = None,
) -> Product:
    """
    Create a product and record its opening stock.

    A positive opening quantity is written as an INITIAL ledger entry in the
    same transaction, so the ledger explains the product's quantity from its
    first row. The tier limit and barcode checks run inside the write unit,
    with the shop row locked, so concurrent creates cannot both slip past them.
    """
    if sell_price_cents < 0 or cost_price_cents < 0:
        raise CatalogError("Prices must be non-negative")
    if quantity < 0:
        raise CatalogError("Opening quantity must be non-negative")

    def _op() -> Product:
        begin_write_unit()
        shop = lock_for_update(db.session.query(Shop).filter_by(id=shop_id)).first()
        if shop is None:
            raise CatalogError("Shop not found")

        limit = TIER_PRODUCT_LIMITS.get(shop.tier)
        if limit is not None:
            count = db.session.query(func.count(Product.id)).filter(Product.shop_id == shop_id).scalar()
            if count >= limit:
                raise ProductLimitError(shop.tier, limit)

        if barcode:
            existing = db.session.query(Product.id).filter_by(shop_id=shop_id, barcode=barcode).first()
            if existing:
                raise CatalogError("A product with this barcode already exists")

        product = Product(
            shop_id=shop_id,
            name=name,
            sku=sku,
            barcode=barcode,
            category=category,
            unit=unit,
            cost_price_cents=cost_price_cents,
            sell_price_cents=sell_price_cents,
            quantity=quantity,
            reorder_at=reorder_at,
            track_stock=track_stock,
            status=PRODUCT_ACTIVE,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise CatalogError("A product with this barcode already exists") from exc

        if quantity > 0 and track_stock:
            append_entry(
                shop_id=shop_id,
                product_id=product.id,
                type="INITIAL",
                quantity=quantity,
                previous_qty=0,
                new_qty=quantity,
                user_id=user_id,
                note="Initial stock",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def _set_status(shop_id: int, product_id: int, status: str) -> Product:
    def _op():
        begin_write_unit()
        product = get_product(shop_id, product_id, lock=True)
        if product.status != status:
            product.status = status
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(shop_id: int, product_id: int) -> Product:
    """Soft delete: the product leaves the sellable catalog, history stays."""
    return _set_status(shop_id, product_id, PRODUCT_INACTIVE)


def reactivate_product(shop_id: int, product_id: int) -> Product:
    return _set_status(shop_id, product_id, PRODUCT_ACTIVE)


def list_products(shop_id: int, *, include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product).filter(Product.shop_id == shop_id)
    if not include_inactive:
        q = q.filter(Product.status == PRODUCT_ACTIVE)
    return q.order_by(Product.category.asc(), Product.name.asc()).all()


def get_stock_levels(shop_id: int) -> dict:
    """Active products with stock value totals over stock-tracked items (cents)."""
    products = list_products(shop_id)

    total_cost = 0
    total_sell = 0
    for product in products:
        if product.track_stock:
            total_cost += product.cost_price_cents * product.quantity
            total_sell += product.sell_price_cents * product.quantity

    return {
        "products": [p.to_dict() for p in products],
        "summary": {
            "total_products": len(products),
            "total_cost_value_cents": total_cost,
            "total_sell_value_cents": total_sell,
            "potential_profit_cents": total_sell - total_cost,
        },
    }
