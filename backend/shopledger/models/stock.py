from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z

STOCK_LOG_TYPES = (
    "SALE",
    "RESTOCK",
    "ADJUSTMENT",
    "DAMAGED",
    "EXPIRED",
    "TRANSFER",
    "RETURN",
    "INITIAL",
)


class StockLogEntry(db.Model):
    """
    Append-only stock ledger.

    One row per quantity change, written in the same DB transaction as the
    Product.quantity update it explains:

        new_qty == previous_qty + quantity
        new_qty == Product.quantity right after the write

    quantity is the signed delta (negative for SALE, DAMAGED, ...; positive
    for RESTOCK, RETURN, INITIAL). reference correlates the entry with the
    originating action, e.g. the sale id for SALE and void RETURN entries.

    IMMUTABLE: rows are never updated or deleted (enforced by mapper events).
    """
    __tablename__ = "stock_log_entries"
    __table_args__ = (
        db.Index("ix_stock_log_shop_product_created", "shop_id", "product_id", "created_at"),
        db.Index("ix_stock_log_shop_type_created", "shop_id", "type", "created_at"),
        db.CheckConstraint("new_qty = previous_qty + quantity", name="ck_stock_log_delta_chain"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_qty = db.Column(db.Integer, nullable=False)
    new_qty = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "reference": self.reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
        if self.product is not None:
            data["product"] = {"id": self.product.id, "name": self.product.name, "barcode": self.product.barcode}
        return data


class ImmutableLedgerError(RuntimeError):
    """Raised when code tries to modify a persisted stock log entry."""


@event.listens_for(StockLogEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableLedgerError(f"Stock log entry {target.id} is append-only")


@event.listens_for(StockLogEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableLedgerError(f"Stock log entry {target.id} is append-only")
