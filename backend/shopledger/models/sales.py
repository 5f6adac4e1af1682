from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PAYMENT_METHODS = ("CASH", "MOMO", "EMALI", "CARD", "MIXED", "CREDIT")

# PENDING is never persisted (validation happens before the row exists) and
# REFUNDED is reserved for a refund flow that this service does not drive.
SALE_PENDING = "PENDING"
SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"
SALE_REFUNDED = "REFUNDED"
SALE_STATUSES = (SALE_PENDING, SALE_COMPLETED, SALE_VOIDED, SALE_REFUNDED)


class Sale(db.Model):
    """
    Committed sale document.

    Created exactly once, COMPLETED, by sales_service.create_sale together with
    its items and stock log entries. The only later mutation is the single
    COMPLETED -> VOIDED transition performed by sales_service.void_sale.
    Never deleted.

    Totals invariants at creation (all cents):
        total_amount_cents = subtotal_cents - discount_cents + tax_cents
        change_cents       = amount_paid_cents - total_amount_cents >= 0
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "receipt_number", name="uq_sales_shop_receipt"),
        db.UniqueConstraint("shop_id", "local_id", name="uq_sales_shop_local_id"),
        db.Index("ix_sales_shop_status_created", "shop_id", "status", "created_at"),
        db.Index("ix_sales_shop_business_date", "shop_id", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    # Staff attribution and optional credit customer (owned by external collaborators)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    # Human-readable receipt number, e.g. "RCP-260212-0001"
    receipt_number = db.Column(db.String(32), nullable=False)
    # Shop-local calendar day the receipt sequence was drawn from
    business_date = db.Column(db.Date, nullable=False)

    # Offline sync: client-generated id (idempotency key per shop), when the
    # sale was rung up on the device, and when the server accepted it
    local_id = db.Column(db.String(64), nullable=True)
    offline_at = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    # Void audit trail (set only when status is VOIDED)
    void_reason = db.Column(db.String(500), nullable=True)
    voided_by_user_id = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        lazy="selectin",
        order_by="SaleItem.line_number",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "receipt_number": self.receipt_number,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "local_id": self.local_id,
            "offline_at": to_utc_z(self.offline_at) if self.offline_at else None,
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "void_reason": self.void_reason,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Frozen snapshot of one cart line.

    Name and prices are copied from the product at sale time so later product
    edits (or deactivation) never change historical sales. product_id stays as
    a reference for ledger correlation and voids.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "line_number": self.line_number,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
        }
