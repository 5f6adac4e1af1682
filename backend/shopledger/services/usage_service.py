# Overview: Shop usage counters for licensing; incremented best-effort outside sale transactions.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db, usage_dispatcher
from ..models import Shop
from ..time_utils import utcnow

USAGE_COLUMNS = {
    "transaction": Shop.monthly_transactions,
    "stock_move": Shop.monthly_stock_moves,
}


class UsageError(ValueError):
    """Raised for unknown usage kinds or shops."""


def increment_usage(shop_id: int, kind: str, amount: int = 1) -> None:
    """Atomically add `amount` to one of the shop's monthly usage counters and commit."""
    column = USAGE_COLUMNS.get(kind)
    if column is None:
        raise UsageError(f"Unknown usage kind {kind!r}")

    result = db.session.execute(
        update(Shop)
        .where(Shop.id == shop_id)
        .values({column.key: column + amount})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise UsageError(f"Shop {shop_id} not found")
    db.session.commit()


def dispatch_usage_increment(shop_id: int, kind: str, amount: int = 1) -> None:
    """
    Fire-and-forget increment. Call only after the originating transaction
    has committed; a failure here is logged and never reaches the caller.
    """
    try:
        usage_dispatcher.submit(increment_usage, shop_id, kind, amount)
    except Exception:
        current_app.logger.exception("Could not dispatch %s usage increment for shop %s", kind, shop_id)


def reset_monthly_usage(shop_id: int) -> Shop:
    """Zero both counters (billing cycle rollover)."""
    shop = db.session.get(Shop, shop_id)
    if shop is None:
        raise UsageError(f"Shop {shop_id} not found")
    shop.monthly_transactions = 0
    shop.monthly_stock_moves = 0
    shop.last_billing_reset = utcnow()
    db.session.commit()
    return shop
