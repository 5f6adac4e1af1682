# Overview: Read-only sales projections (daily summary) over committed sales.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleItem, Shop, SALE_COMPLETED
from ..time_utils import local_date

TOP_PRODUCTS_LIMIT = 10


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def get_daily_summary(shop_id: int, day: date | None = None) -> dict:
    """
    Totals for one shop-local calendar day (default: today in the shop's zone).

    Only COMPLETED sales count; voided sales drop out of every figure.
    All amounts are cents.
    """
    shop = db.session.get(Shop, shop_id)
    if shop is None:
        raise ReportError("Shop not found")
    day = day or local_date(shop.timezone)

    in_day = (
        Sale.shop_id == shop_id,
        Sale.status == SALE_COMPLETED,
        Sale.business_date == day,
    )

    totals = db.session.query(
        func.count(Sale.id).label("count"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("total"),
        func.coalesce(func.sum(Sale.discount_cents), 0).label("discount"),
    ).filter(*in_day).one()

    by_method = (
        db.session.query(
            Sale.payment_method,
            func.coalesce(func.sum(Sale.total_amount_cents), 0).label("total"),
            func.count(Sale.id).label("count"),
        )
        .filter(*in_day)
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method.asc())
        .all()
    )

    qty_sum = func.sum(SaleItem.quantity)
    top_products = (
        db.session.query(
            SaleItem.product_id,
            SaleItem.product_name,
            qty_sum.label("quantity"),
            func.sum(SaleItem.total_price_cents).label("revenue"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*in_day)
        .group_by(SaleItem.product_id, SaleItem.product_name)
        .order_by(qty_sum.desc(), SaleItem.product_id.asc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    cost_revenue = (
        db.session.query(
            func.coalesce(func.sum(SaleItem.cost_price_cents * SaleItem.quantity), 0).label("cost"),
            func.coalesce(func.sum(SaleItem.total_price_cents), 0).label("revenue"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*in_day)
        .one()
    )

    count = int(totals.count or 0)
    total_sales = int(totals.total or 0)
    total_cost = int(cost_revenue.cost or 0)

    return {
        "shop_id": shop_id,
        "date": day.isoformat(),
        "total_sales_cents": total_sales,
        "total_transactions": count,
        # Integer cents, half-up
        "average_basket_cents": (total_sales + count // 2) // count if count else 0,
        "total_discount_cents": int(totals.discount or 0),
        "total_cost_cents": total_cost,
        "gross_profit_cents": int(cost_revenue.revenue or 0) - total_cost,
        "by_payment_method": [
            {"method": row.payment_method, "total_cents": int(row.total or 0), "count": int(row.count or 0)}
            for row in by_method
        ],
        "top_products": [
            {
                "product_id": row.product_id,
                "name": row.product_name,
                "quantity": int(row.quantity or 0),
                "revenue_cents": int(row.revenue or 0),
            }
            for row in top_products
        ],
    }
