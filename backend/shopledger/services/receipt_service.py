# Overview: Per-shop, per-day receipt numbering backed by an atomic sequence row.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ReceiptSequence, Shop
from ..time_utils import local_date
from .concurrency import ConcurrencyConflict

RECEIPT_PREFIX = "RCP"


def format_receipt_number(business_date: date, sequence: int, pad: int = 4) -> str:
    """RCP-YYMMDD-NNNN, e.g. RCP-260212-0001."""
    return f"{RECEIPT_PREFIX}-{business_date.strftime('%y%m%d')}-{sequence:0{pad}d}"


def _claim_sequence(shop_id: int, business_date: date) -> int:
    stmt = (
        update(ReceiptSequence)
        .where(
            ReceiptSequence.shop_id == shop_id,
            ReceiptSequence.business_date == business_date,
        )
        .values(next_number=ReceiptSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(ReceiptSequence.next_number)
            .filter_by(shop_id=shop_id, business_date=business_date)
            .scalar()
        )
        return current - 1

    # First sale of the day for this shop
    db.session.add(ReceiptSequence(shop_id=shop_id, business_date=business_date, next_number=2))
    try:
        db.session.flush()
    except IntegrityError as exc:
        # A concurrent unit created the row first; start the whole unit over
        raise ConcurrencyConflict("receipt sequence created concurrently") from exc
    return 1


def next_receipt_number(shop: Shop, at: datetime | None = None) -> tuple[str, date]:
    """
    Allocate the next receipt number for a shop inside the caller's transaction.

    The day is the shop-local calendar day of `at` (UTC-naive, default now).
    Returns (receipt_number, business_date). The counter row is incremented in
    place, so two sales can never draw the same number; a rolled back sale
    rolls its number back with it.
    """
    business_date = local_date(shop.timezone, at)
    sequence = _claim_sequence(shop.id, business_date)
    return format_receipt_number(business_date, sequence), business_date
