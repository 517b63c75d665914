# Overview: Pytest coverage for the inventory ledger.

"""
Inventory ledger tests

The ledger is the only writer of Product.stock during sale and purchase
flows. These tests drive it directly against the test session and check
that:
1. reserve() validates against stock minus what is already queued
2. nothing touches the products table before apply()
3. apply() writes deltas in order with one StockMovement per delta
4. the guarded UPDATE keeps stock between zero and MAX_STOCK
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import update

from pharmacy.errors import InsufficientStock, ProductNotFound, ValidationError
from pharmacy.models import Product, StockMovement
from pharmacy.services.inventory_service import (
    InventoryLedger,
    MOVEMENT_RECEIVE,
    MOVEMENT_RECEIVE_REVERSAL,
    MOVEMENT_SALE,
    expiring_products,
    list_movements,
    low_stock_products,
)
from pharmacy.validation import MAX_QUANTITY, MAX_STOCK
from conftest import stock_of


@pytest.fixture
def ledger(db_session):
    return InventoryLedger()


class TestReserve:

    def test_reserve_within_stock_queues_debit(self, ledger, make_product):
        product = make_product(stock=5)
        delta = ledger.reserve(product.id, 3)

        assert delta.quantity_delta == -3
        assert delta.movement_type == MOVEMENT_SALE
        assert ledger.available(product.id) == 2

    def test_reserve_does_not_write_until_apply(self, ledger, make_product):
        product = make_product(stock=5)
        ledger.reserve(product.id, 5)
        assert stock_of(product.id) == 5

    def test_reserve_more_than_stock_raises(self, ledger, make_product):
        product = make_product(stock=2)
        with pytest.raises(InsufficientStock) as exc:
            ledger.reserve(product.id, 3)
        assert exc.value.details["available"] == 2
        assert exc.value.details["requested_quantity"] == 3
        assert ledger.pending == ()

    def test_duplicate_lines_cannot_oversell(self, ledger, make_product):
        product = make_product(stock=5)
        ledger.reserve(product.id, 3)
        with pytest.raises(InsufficientStock):
            ledger.reserve(product.id, 3)

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True, MAX_QUANTITY + 1])
    def test_quantity_must_be_positive_int(self, ledger, make_product, quantity):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            ledger.reserve(product.id, quantity)

    def test_unknown_product(self, ledger):
        with pytest.raises(ProductNotFound):
            ledger.reserve(999_999, 1)


class TestApply:

    def test_apply_writes_deltas_and_movements(self, ledger, make_product, db_session):
        a = make_product("Amoxicillin", stock=10)
        b = make_product("Ibuprofen", stock=4)

        ledger.reserve(a.id, 2)
        ledger.reserve(b.id, 4)
        ledger.credit(a.id, 5)
        movements = ledger.apply(reference_type="sale", reference_id=1, reference_number="INV000001")
        db_session.commit()

        assert stock_of(a.id) == 13
        assert stock_of(b.id) == 0
        assert [m.stock_after for m in movements] == [8, 0, 13]
        assert [m.type for m in movements] == [MOVEMENT_SALE, MOVEMENT_SALE, MOVEMENT_RECEIVE]
        assert db_session.query(StockMovement).count() == 3
        assert ledger.pending == ()

    def test_apply_bumps_version(self, ledger, make_product, db_session):
        product = make_product(stock=3)
        before = product.version_id
        ledger.credit(product.id, 1)
        ledger.apply()
        db_session.commit()

        assert db_session.get(Product, product.id).version_id == before + 1

    def test_guarded_update_rejects_stale_reservation(self, ledger, make_product, db_session):
        product = make_product(stock=5)
        ledger.reserve(product.id, 3)

        # Another writer drains the stock between validation and apply
        db_session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock=1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InsufficientStock):
            ledger.apply()
        db_session.rollback()

        assert stock_of(product.id) == 5
        assert db_session.query(StockMovement).count() == 0

    def test_reversal_cannot_go_negative(self, ledger, make_product, db_session):
        product = make_product(stock=2)
        delta = ledger.debit(product.id, 5)
        assert delta.movement_type == MOVEMENT_RECEIVE_REVERSAL

        with pytest.raises(InsufficientStock) as exc:
            ledger.apply()
        db_session.rollback()

        assert "reverse" in str(exc.value)
        assert stock_of(product.id) == 2

    def test_credit_past_stock_ceiling_rejected(self, ledger, make_product):
        product = make_product(stock=MAX_STOCK - 2)
        ledger.credit(product.id, 1)

        with pytest.raises(ValidationError) as exc:
            ledger.credit(product.id, 5)

        assert exc.value.details["available"] == MAX_STOCK - 1
        assert len(ledger.pending) == 1

    def test_guarded_update_rejects_overflowing_credit(self, ledger, make_product, db_session):
        product = make_product(stock=5)
        ledger.credit(product.id, 10)

        # Another writer fills the shelf between validation and apply
        db_session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock=MAX_STOCK - 3)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ValidationError):
            ledger.apply()
        db_session.rollback()

        assert stock_of(product.id) == 5
        assert db_session.query(StockMovement).count() == 0

    def test_failed_line_leaves_earlier_lines_unapplied_after_rollback(self, ledger, make_product, db_session):
        a = make_product("A", stock=10)
        b = make_product("B", stock=1)
        ledger.reserve(a.id, 4)
        ledger.debit(b.id, 2)

        with pytest.raises(InsufficientStock):
            ledger.apply()
        db_session.rollback()

        assert stock_of(a.id) == 10
        assert stock_of(b.id) == 1


class TestReadQueries:

    def test_low_stock(self, db_session, make_product):
        make_product("Plenty", stock=50, reorder_level=10)
        at_level = make_product("At level", stock=10, reorder_level=10)
        empty = make_product("Empty", stock=0, reorder_level=5)

        names = [p.name for p in low_stock_products()]
        assert names == [empty.name, at_level.name]

    def test_expiring_excludes_expired_and_far_future(self, db_session, make_product):
        today = date(2026, 1, 15)
        make_product("Expired", expiry_date=today - timedelta(days=1))
        soon = make_product("Soon", expiry_date=today + timedelta(days=30))
        sooner = make_product("Sooner", expiry_date=today + timedelta(days=3))
        make_product("Later", expiry_date=today + timedelta(days=400))
        make_product("No expiry")

        names = [p.name for p in expiring_products(183, today=today)]
        assert names == [sooner.name, soon.name]

    def test_list_movements_newest_first(self, ledger, make_product, db_session):
        product = make_product(stock=5)
        ledger.reserve(product.id, 1)
        ledger.apply(reference_number="INV000001")
        ledger.credit(product.id, 3)
        ledger.apply(reference_number="PO000001")
        db_session.commit()

        rows, total = list_movements(product.id)
        assert total == 2
        assert rows[0].id > rows[1].id

    def test_list_movements_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            list_movements(424242)
