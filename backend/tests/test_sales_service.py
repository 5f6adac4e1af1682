# Overview: Pytest coverage for sale creation, totals and failure paths.

"""
Sale engine tests.

Every rejected cart must leave zero side effects: no Sale row, no ledger
entries, no quantity change. Accepted carts must keep the ledger and the
product quantities in lockstep.
"""

from datetime import datetime

import pytest

from shopledger.models import Product, Sale, SaleItem, StockLogEntry
from shopledger.services import ledger_service, sales_service
from shopledger.services.sales_service import (
    CartLine,
    InsufficientPaymentError,
    InsufficientStockError,
    ProductNotFoundError,
    SaleError,
    compute_totals,
)
from shopledger.services.catalog_service import StockUnavailable

from conftest import make_product


def _quantity(db_session, product_id):
    return db_session.query(Product.quantity).filter_by(id=product_id).scalar()


def _entries(db_session, product_id, type=None):
    q = db_session.query(StockLogEntry).filter_by(product_id=product_id)
    if type:
        q = q.filter_by(type=type)
    return q.order_by(StockLogEntry.id.asc()).all()


class TestCreateSale:
    def test_basic_cash_sale(self, db_session, shop, product):
        """3 x 12.00 paid with 40.00 leaves 7 on the shelf and 4.00 change."""
        sale = sales_service.create_sale(
            shop.id,
            [{"product_id": product.id, "quantity": 3}],
            "CASH",
            4000,
            user_id=7,
        )

        assert sale.status == "COMPLETED"
        assert sale.subtotal_cents == 3600
        assert sale.total_amount_cents == 3600
        assert sale.tax_cents == 0
        assert sale.change_cents == 400
        assert sale.user_id == 7
        assert _quantity(db_session, product.id) == 7

        sale_entries = _entries(db_session, product.id, "SALE")
        assert len(sale_entries) == 1
        entry = sale_entries[0]
        assert (entry.quantity, entry.previous_qty, entry.new_qty) == (-3, 10, 7)
        assert entry.reference == str(sale.id)
        assert entry.user_id == 7

    def test_items_snapshot_product_fields(self, db_session, shop, product):
        sale = sales_service.create_sale(
            shop.id, [CartLine(product_id=product.id, quantity=2)], "CARD", 2400
        )
        [item] = sale.items
        assert item.product_name == "Bread Loaf"
        assert item.unit_price_cents == 1200
        assert item.cost_price_cents == 800
        assert item.total_price_cents == 2400
        assert item.line_number == 1

        # Later price edits do not reach history
        product.sell_price_cents = 9900
        product.name = "Renamed"
        db_session.commit()
        db_session.expire_all()
        item = db_session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert item.product_name == "Bread Loaf"
        assert item.unit_price_cents == 1200

    def test_exact_last_unit_succeeds(self, db_session, shop, product):
        sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 10}], "CASH", 12000)
        assert _quantity(db_session, product.id) == 0

    def test_one_over_available_fails_without_side_effects(self, db_session, shop, product):
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 11}], "CASH", 20000)

        assert exc_info.value.available == 10
        assert exc_info.value.details["requested"] == 11
        assert exc_info.value.details["product_name"] == "Bread Loaf"
        assert _quantity(db_session, product.id) == 10
        assert _entries(db_session, product.id, "SALE") == []
        assert db_session.query(Sale).count() == 0

    def test_insufficient_payment(self, db_session, shop, product):
        with pytest.raises(InsufficientPaymentError) as exc_info:
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 500)

        assert exc_info.value.required == 1200
        assert exc_info.value.received == 500
        assert exc_info.value.details["outstanding"] == 700
        assert db_session.query(Sale).count() == 0
        assert _entries(db_session, product.id, "SALE") == []
        assert _quantity(db_session, product.id) == 10

    def test_exact_payment_gives_zero_change(self, db_session, shop, product):
        sale = sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "MOMO", 1200)
        assert sale.change_cents == 0


class TestDuplicateLines:
    def test_combined_demand_is_validated(self, db_session, shop):
        product = make_product(shop, quantity=4)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                shop.id,
                [
                    {"product_id": product.id, "quantity": 2},
                    {"product_id": product.id, "quantity": 3},
                ],
                "CASH",
                10000,
            )

        assert exc_info.value.requested == 5
        assert exc_info.value.available == 4
        assert _quantity(db_session, product.id) == 4
        assert db_session.query(Sale).count() == 0

    def test_lines_stay_separate_and_chain(self, db_session, shop):
        product = make_product(shop, quantity=5)

        sale = sales_service.create_sale(
            shop.id,
            [
                {"product_id": product.id, "quantity": 2},
                {"product_id": product.id, "quantity": 3},
            ],
            "CASH",
            6000,
        )

        assert [item.quantity for item in sale.items] == [2, 3]
        assert sale.subtotal_cents == 6000
        entries = _entries(db_session, product.id, "SALE")
        assert [(e.previous_qty, e.new_qty) for e in entries] == [(5, 3), (3, 0)]
        assert _quantity(db_session, product.id) == 0

    def test_failed_decrement_reports_combined_demand(self, db_session, shop, product, monkeypatch):
        def sold_out_meanwhile(target, amount):
            raise StockUnavailable(target, amount, available=1)

        monkeypatch.setattr(sales_service, "decrement_quantity", sold_out_meanwhile)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                shop.id,
                [
                    {"product_id": product.id, "quantity": 2},
                    {"product_id": product.id, "quantity": 3},
                ],
                "CASH",
                6000,
            )

        assert exc_info.value.requested == 5
        assert exc_info.value.details["requested"] == 5
        assert exc_info.value.available == 1
        assert _quantity(db_session, product.id) == 10
        assert db_session.query(Sale).count() == 0


class TestProductResolution:
    def test_unknown_product(self, db_session, shop, product):
        with pytest.raises(ProductNotFoundError) as exc_info:
            sales_service.create_sale(
                shop.id,
                [{"product_id": product.id, "quantity": 1}, {"product_id": 999999, "quantity": 1}],
                "CASH",
                5000,
            )
        assert exc_info.value.details["product_ids"] == [999999]
        assert _quantity(db_session, product.id) == 10

    def test_inactive_product_cannot_be_sold(self, db_session, shop, product):
        from shopledger.services import catalog_service

        catalog_service.deactivate_product(shop.id, product.id)
        with pytest.raises(ProductNotFoundError):
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 5000)

    def test_product_from_other_shop(self, db_session, shop, product, foreign_product):
        with pytest.raises(ProductNotFoundError):
            sales_service.create_sale(
                shop.id,
                [{"product_id": foreign_product.id, "quantity": 1}],
                "CASH",
                5000,
            )
        assert _quantity(db_session, foreign_product.id) == 10


class TestUntrackedProducts:
    def test_untracked_product_skips_stock_and_ledger(self, db_session, shop, untracked_product):
        sale = sales_service.create_sale(
            shop.id, [{"product_id": untracked_product.id, "quantity": 5}], "CASH", 2500
        )
        assert sale.total_amount_cents == 2500
        assert _quantity(db_session, untracked_product.id) == 0
        assert _entries(db_session, untracked_product.id) == []

    def test_mixed_cart_only_logs_tracked_lines(self, db_session, shop, product, untracked_product):
        sale = sales_service.create_sale(
            shop.id,
            [
                {"product_id": product.id, "quantity": 1},
                {"product_id": untracked_product.id, "quantity": 1},
            ],
            "CASH",
            1700,
        )
        assert len(sale.items) == 2
        assert len(_entries(db_session, product.id, "SALE")) == 1
        assert _entries(db_session, untracked_product.id) == []


class TestDiscountsAndTotals:
    def test_line_and_sale_discounts(self, db_session, shop, product):
        sale = sales_service.create_sale(
            shop.id,
            [{"product_id": product.id, "quantity": 2, "discount_cents": 400}],
            "CASH",
            2000,
            discount_cents=100,
        )
        assert sale.items[0].discount_cents == 400
        assert sale.items[0].total_price_cents == 2000
        assert sale.subtotal_cents == 2000
        assert sale.discount_cents == 100
        assert sale.total_amount_cents == 1900
        assert sale.change_cents == 100

    def test_discount_larger_than_subtotal_rejected(self, db_session, shop, product):
        with pytest.raises(SaleError):
            sales_service.create_sale(
                shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 0, discount_cents=1300
            )
        assert db_session.query(Sale).count() == 0

    def test_line_discount_larger_than_line_rejected(self, db_session, shop, product):
        with pytest.raises(SaleError):
            sales_service.create_sale(
                shop.id,
                [{"product_id": product.id, "quantity": 1, "discount_cents": 1201}],
                "CASH",
                0,
            )

    def test_compute_totals(self):
        totals = compute_totals(3600, 600, 4000)
        assert totals.total_amount_cents == 3000
        assert totals.change_cents == 1000
        assert totals.tax_cents == 0

    def test_compute_totals_short_payment(self):
        with pytest.raises(InsufficientPaymentError):
            compute_totals(3600, 0, 3599)

    def test_unsupported_payment_method(self, db_session, shop, product):
        with pytest.raises(SaleError):
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "BITCOIN", 5000)

    def test_empty_cart(self, db_session, shop):
        with pytest.raises(SaleError):
            sales_service.create_sale(shop.id, [], "CASH", 0)

    def test_totals_invariant_across_sales(self, db_session, shop, product):
        for qty, paid in ((1, 1500), (2, 2400), (3, 5000)):
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": qty}], "CASH", paid)

        for sale in db_session.query(Sale).all():
            assert sale.total_amount_cents == sale.subtotal_cents - sale.discount_cents + sale.tax_cents
            assert sale.change_cents == sale.amount_paid_cents - sale.total_amount_cents
            assert sale.change_cents >= 0

        report = ledger_service.reconcile_shop(shop.id)
        assert report["drifted"] == 0


class TestSaleLookups:
    def test_get_sale_scoped_to_shop(self, db_session, shop, other_shop, product):
        sale = sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 1200)

        assert sales_service.get_sale(shop.id, sale.id).id == sale.id
        with pytest.raises(sales_service.SaleNotFoundError):
            sales_service.get_sale(other_shop.id, sale.id)

    def test_receipt_fragment_lookup(self, db_session, shop, product):
        sale = sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 1200)

        assert sales_service.get_sale_by_receipt(shop.id, sale.receipt_number).id == sale.id
        assert sales_service.get_sale_by_receipt(shop.id, "0001").id == sale.id
        assert sales_service.get_sale_by_receipt(shop.id, sale.receipt_number.lower()).id == sale.id
        with pytest.raises(sales_service.SaleNotFoundError):
            sales_service.get_sale_by_receipt(shop.id, "9999")

    def test_list_sales_filters_and_pages(self, db_session, shop, product):
        for method in ("CASH", "CARD", "CASH"):
            sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], method, 1200)

        result = sales_service.list_sales(shop.id, payment_method="CASH")
        assert result["total"] == 2
        assert all(s["payment_method"] == "CASH" for s in result["sales"])

        page = sales_service.list_sales(shop.id, page=1, limit=2)
        assert page["total"] == 3
        assert len(page["sales"]) == 2
        assert page["has_next"] is True
        assert page["total_pages"] == 2


class TestOfflineSync:
    def _upload(self, shop, product, local_id, **extra):
        return sales_service.create_sale(
            shop.id,
            [{"product_id": product.id, "quantity": 2}],
            "CASH",
            2400,
            local_id=local_id,
            **extra,
        )

    def test_repeated_upload_is_stored_once(self, db_session, shop, product):
        first = self._upload(shop, product, "till-1:0001", offline_at=datetime(2026, 2, 12, 8, 30))
        again = self._upload(shop, product, "till-1:0001", offline_at=datetime(2026, 2, 12, 8, 30))

        assert again.id == first.id
        assert again.receipt_number == first.receipt_number
        assert db_session.query(Sale).filter_by(shop_id=shop.id).count() == 1
        assert len(_entries(db_session, product.id, "SALE")) == 1
        assert _quantity(db_session, product.id) == 8

        db_session.refresh(shop)
        assert shop.monthly_transactions == 1

    def test_offline_fields_are_stored(self, db_session, shop, product):
        sale = self._upload(shop, product, "till-1:0002", offline_at=datetime(2026, 2, 12, 8, 30))

        assert sale.local_id == "till-1:0002"
        assert sale.offline_at == datetime(2026, 2, 12, 8, 30)
        assert sale.synced_at is not None
        assert sale.to_dict()["offline_at"].startswith("2026-02-12T08:30:00")

    def test_replay_does_not_consume_a_receipt_number(self, db_session, shop, product):
        first = self._upload(shop, product, "till-1:0003")
        self._upload(shop, product, "till-1:0003")
        second = self._upload(shop, product, "till-1:0004")

        assert first.receipt_number.endswith("-0001")
        assert second.receipt_number.endswith("-0002")

    def test_local_id_is_scoped_to_shop(self, db_session, shop, other_shop, product, foreign_product):
        mine = self._upload(shop, product, "till-1:0005")
        theirs = sales_service.create_sale(
            other_shop.id,
            [{"product_id": foreign_product.id, "quantity": 1}],
            "CASH",
            2000,
            local_id="till-1:0005",
        )

        assert mine.id != theirs.id
        assert theirs.shop_id == other_shop.id

    def test_online_sale_has_no_sync_stamp(self, db_session, shop, product):
        sale = sales_service.create_sale(shop.id, [{"product_id": product.id, "quantity": 1}], "CASH", 1200)
        assert sale.local_id is None
        assert sale.synced_at is None
