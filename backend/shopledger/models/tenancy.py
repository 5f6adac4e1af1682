from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SHOP_TIERS = ("FREE", "PRO", "BUSINESS")

# Products a shop may hold per tier (inactive products count); None = unlimited
TIER_PRODUCT_LIMITS = {"FREE": 50, "PRO": None, "BUSINESS": None}


class Shop(db.Model):
    """
    Multi-tenant root: every shop is a tenant.

    All products, sales and stock log entries carry shop_id and every query
    is scoped by it. No data may cross shop boundaries.

    tier caps the catalog size (TIER_PRODUCT_LIMITS, enforced by
    catalog_service.create_product). Usage counters (monthly_transactions,
    monthly_stock_moves) are metered for billing: they are incremented outside
    the sale transaction and reset by the billing job (see
    usage_service.reset_monthly_usage).
    """
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    currency = db.Column(db.String(8), nullable=False, default="SZL")
    # IANA zone; receipt days and daily summaries follow this calendar
    timezone = db.Column(db.String(64), nullable=False, default="Africa/Mbabane")
    tier = db.Column(db.String(16), nullable=False, default="FREE")

    monthly_transactions = db.Column(db.Integer, nullable=False, default=0)
    monthly_stock_moves = db.Column(db.Integer, nullable=False, default=0)
    last_billing_reset = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
            "timezone": self.timezone,
            "tier": self.tier,
            "monthly_transactions": self.monthly_transactions,
            "monthly_stock_moves": self.monthly_stock_moves,
            "last_billing_reset": to_utc_z(self.last_billing_reset),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
