from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ReceiptSequence(db.Model):
    """
    Atomic per-shop, per-day receipt counter.

    Replaces counting the day's sales (which hands the same number to two
    concurrent sales) with a row that is incremented in place. One row per
    (shop, shop-local date); the counter restarts at 1 every day.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "business_date", name="uq_receipt_sequences_shop_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("receipt_sequences", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "business_date": self.business_date.isoformat(),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
