from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PRODUCT_ACTIVE = "ACTIVE"
PRODUCT_INACTIVE = "INACTIVE"
PRODUCT_STATUSES = (PRODUCT_ACTIVE, PRODUCT_INACTIVE)


class Product(db.Model):
    """
    Product master data and the authoritative on-hand quantity.

    MULTI-TENANT: Products are scoped to shops via shop_id.

    QUANTITY OWNERSHIP:
    quantity is only ever written through catalog_service.decrement_quantity /
    increment_quantity, and always in the same transaction as the stock log
    entry that explains the change. For track_stock products the invariant is

        quantity == sum(StockLogEntry.quantity for this product)

    where the first entry is the INITIAL (opening) entry.

    LIFECYCLE:
    status is ACTIVE or INACTIVE. Inactive products cannot be sold but keep
    their history; voids still restore their stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_shop_name", "shop_id", "name"),
        db.Index("ix_products_shop_status", "shop_id", "status"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_nonneg"),
        db.CheckConstraint("sell_price_cents >= 0", name="ck_products_sell_nonneg"),
        db.UniqueConstraint("shop_id", "barcode", name="uq_products_shop_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    category = db.Column(db.String(120), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="each")

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_at = db.Column(db.Integer, nullable=False, default=10)
    track_stock = db.Column(db.Boolean, nullable=False, default=True)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_ACTIVE)

    # Bumped by every quantity write (ORM or compare-and-swap update)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_ACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} shop_id={self.shop_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "category": self.category,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "quantity": self.quantity,
            "reorder_at": self.reorder_at,
            "track_stock": self.track_stock,
            "status": self.status,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
