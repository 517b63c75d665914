"""
Purchase order transition tests.

Stock is credited exactly while an order sits in "received": entering the
status credits its lines, leaving it or deleting the order debits them.
"""

from datetime import datetime

import pytest

from pharmacy.errors import InsufficientStock, OrderNotFound, ProductNotFound, ValidationError
from pharmacy.models import PurchaseOrder, StockMovement
from pharmacy.services.inventory_service import MOVEMENT_RECEIVE, MOVEMENT_RECEIVE_REVERSAL
from pharmacy.services.purchase_service import (
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_ORDERED,
    STATUS_RECEIVED,
    create_purchase_order,
    delete_purchase_order,
    get_purchase_order,
    list_purchase_orders,
    update_purchase_order,
)
from pharmacy.services.sales_service import create_sale
from pharmacy.validation import MAX_PRICE_CENTS, MAX_QUANTITY, MAX_STOCK
from conftest import stock_of


@pytest.fixture
def new_order(user, supplier):
    """Factory: new_order(items=[(product, qty, unit_cost)], status="ordered")."""
    def _make(items, status=STATUS_ORDERED, **kwargs):
        return create_purchase_order(
            supplier_id=supplier.id,
            items=[
                {"product_id": p.id, "quantity": q, "unit_cost_cents": c}
                for p, q, c in items
            ],
            user_id=user.id,
            status=status,
            **kwargs,
        )
    return _make


class TestCreate:

    def test_ordered_has_no_stock_effect(self, new_order, make_product):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)])

        assert order.order_number == "PO000001"
        assert order.status == STATUS_ORDERED
        assert order.total_amount_cents == 1000
        assert order.received_date is None
        assert stock_of(product.id) == 10

    def test_default_status_is_draft(self, user, supplier, make_product):
        product = make_product(stock=10)
        order = create_purchase_order(
            supplier_id=supplier.id,
            items=[{"product_id": product.id, "quantity": 1, "unit_cost_cents": 100}],
            user_id=user.id,
        )
        assert order.status == STATUS_DRAFT
        assert stock_of(product.id) == 10

    def test_created_as_received_credits_stock(self, new_order, make_product, db_session):
        a = make_product("A", stock=10)
        b = make_product("B", stock=0)
        order = new_order([(a, 5, 200), (b, 3, 100)], status=STATUS_RECEIVED)

        assert stock_of(a.id) == 15
        assert stock_of(b.id) == 3
        assert order.received_date is not None

        movements = db_session.query(StockMovement).filter_by(reference_type="purchase_order").all()
        assert {m.type for m in movements} == {MOVEMENT_RECEIVE}
        assert all(m.reference_number == order.order_number for m in movements)

    def test_total_mismatch_rejected(self, new_order, make_product, db_session):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            new_order([(product, 5, 200)], status=STATUS_RECEIVED, total_amount_cents=999)
        assert stock_of(product.id) == 10
        assert db_session.query(PurchaseOrder).count() == 0

    def test_unknown_product_rejected(self, user, supplier, make_product, db_session):
        product = make_product(stock=10)
        with pytest.raises(ProductNotFound):
            create_purchase_order(
                supplier_id=supplier.id,
                items=[
                    {"product_id": product.id, "quantity": 5, "unit_cost_cents": 100},
                    {"product_id": 999_999, "quantity": 1, "unit_cost_cents": 100},
                ],
                user_id=user.id,
                status=STATUS_RECEIVED,
            )
        assert stock_of(product.id) == 10
        assert db_session.query(PurchaseOrder).count() == 0

    def test_unknown_supplier_rejected(self, user, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            create_purchase_order(
                supplier_id=777,
                items=[{"product_id": product.id, "quantity": 1, "unit_cost_cents": 100}],
                user_id=user.id,
            )

    def test_invalid_status_rejected(self, new_order, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            new_order([(product, 1, 100)], status="shipped")


class TestBounds:

    @pytest.mark.parametrize("quantity,unit_cost", [
        (2**63 - 1, 0),
        (MAX_QUANTITY + 1, 100),
        (1, 10**19),
        (1, MAX_PRICE_CENTS + 1),
        (MAX_QUANTITY, MAX_PRICE_CENTS),
    ])
    def test_out_of_range_line_rejected(self, new_order, make_product, db_session, quantity, unit_cost):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            new_order([(product, quantity, unit_cost)], status=STATUS_RECEIVED)
        assert stock_of(product.id) == 5
        assert db_session.query(PurchaseOrder).count() == 0

    def test_received_credit_cannot_pass_stock_ceiling(self, new_order, make_product, db_session):
        product = make_product(stock=MAX_STOCK - 1)
        with pytest.raises(ValidationError):
            new_order([(product, 5, 100)], status=STATUS_RECEIVED)
        assert stock_of(product.id) == MAX_STOCK - 1
        assert db_session.query(StockMovement).count() == 0

    def test_entering_received_cannot_pass_stock_ceiling(self, new_order, make_product):
        product = make_product(stock=MAX_STOCK - 1)
        order = new_order([(product, 5, 100)])

        with pytest.raises(ValidationError):
            update_purchase_order(order.id, {"status": STATUS_RECEIVED})

        assert stock_of(product.id) == MAX_STOCK - 1
        assert get_purchase_order(order.id).status == STATUS_ORDERED


class TestTransitions:

    def test_received_round_trip_is_symmetric(self, new_order, make_product, db_session):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)])

        update_purchase_order(order.id, {"status": STATUS_RECEIVED})
        assert stock_of(product.id) == 15

        update_purchase_order(order.id, {"status": STATUS_ORDERED})
        assert stock_of(product.id) == 10

        types = [
            m.type for m in db_session.query(StockMovement).order_by(StockMovement.id).all()
        ]
        assert types == [MOVEMENT_RECEIVE, MOVEMENT_RECEIVE_REVERSAL]

    def test_received_date_stamped_and_cleared(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 2, 100)])

        order = update_purchase_order(order.id, {"status": STATUS_RECEIVED})
        assert order.received_date is not None

        order = update_purchase_order(order.id, {"status": STATUS_CANCELLED})
        assert order.received_date is None

    def test_explicit_received_date_kept(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 2, 100)])

        order = update_purchase_order(
            order.id, {"status": STATUS_RECEIVED, "received_date": "2026-03-01T09:30:00Z"}
        )
        assert order.received_date.replace(tzinfo=None) == datetime(2026, 3, 1, 9, 30)

    def test_null_received_date_on_entry_is_stamped(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 2, 100)])

        order = update_purchase_order(order.id, {"status": STATUS_RECEIVED, "received_date": None})

        assert order.status == STATUS_RECEIVED
        assert order.received_date is not None
        assert stock_of(product.id) == 2

    def test_null_received_date_keeps_date_of_received_order(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 2, 100)], status=STATUS_RECEIVED)
        stamped = order.received_date

        order = update_purchase_order(order.id, {"received_date": None, "notes": "Checked"})
        assert order.received_date == stamped

    def test_unknown_product_on_update(self, new_order, make_product):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)])

        with pytest.raises(ProductNotFound):
            update_purchase_order(order.id, {
                "status": STATUS_RECEIVED,
                "items": [
                    {"product_id": product.id, "quantity": 5, "unit_cost_cents": 200},
                    {"product_id": 999_999, "quantity": 1, "unit_cost_cents": 100},
                ],
            })

        assert stock_of(product.id) == 10
        order = get_purchase_order(order.id)
        assert order.status == STATUS_ORDERED
        assert [line.product_id for line in order.lines] == [product.id]

    def test_non_received_transitions_leave_stock(self, new_order, make_product):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)], status=STATUS_DRAFT)

        update_purchase_order(order.id, {"status": STATUS_ORDERED})
        update_purchase_order(order.id, {"status": STATUS_CANCELLED})
        assert stock_of(product.id) == 10

    def test_entering_received_credits_submitted_lines(self, new_order, make_product):
        a = make_product("A", stock=0)
        b = make_product("B", stock=0)
        order = new_order([(a, 5, 200)])

        order = update_purchase_order(order.id, {
            "status": STATUS_RECEIVED,
            "items": [{"product_id": b.id, "quantity": 4, "unit_cost_cents": 150}],
        })

        assert stock_of(a.id) == 0
        assert stock_of(b.id) == 4
        assert order.total_amount_cents == 600
        assert [line.product_id for line in order.lines] == [b.id]

    def test_leaving_received_debits_stored_lines(self, new_order, make_product):
        a = make_product("A", stock=0)
        b = make_product("B", stock=0)
        order = new_order([(a, 5, 200)], status=STATUS_RECEIVED)

        update_purchase_order(order.id, {
            "status": STATUS_ORDERED,
            "items": [{"product_id": b.id, "quantity": 9, "unit_cost_cents": 100}],
        })

        assert stock_of(a.id) == 0
        assert stock_of(b.id) == 0

    def test_received_quantity_change_rejected(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 5, 200)], status=STATUS_RECEIVED)

        with pytest.raises(ValidationError):
            update_purchase_order(order.id, {
                "items": [{"product_id": product.id, "quantity": 7, "unit_cost_cents": 200}],
            })
        assert stock_of(product.id) == 5

    def test_received_cost_change_allowed(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 5, 200)], status=STATUS_RECEIVED)

        order = update_purchase_order(order.id, {
            "items": [{"product_id": product.id, "quantity": 5, "unit_cost_cents": 180}],
            "notes": "Supplier discount",
        })
        assert order.total_amount_cents == 900
        assert order.notes == "Supplier discount"
        assert stock_of(product.id) == 5

    def test_reversal_after_sale_is_rejected(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 5, 200)], status=STATUS_RECEIVED)
        create_sale(
            customer_id="CUST-1",
            customer_name="Jane Doe",
            items=[{"product_id": product.id, "quantity": 3}],
            paid_amount_cents=1500,
        )

        with pytest.raises(InsufficientStock):
            update_purchase_order(order.id, {"status": STATUS_ORDERED})

        assert stock_of(product.id) == 2
        assert get_purchase_order(order.id).status == STATUS_RECEIVED

    def test_unknown_supplier_on_update(self, new_order, make_product):
        product = make_product()
        order = new_order([(product, 1, 100)])
        with pytest.raises(ValidationError):
            update_purchase_order(order.id, {"supplier_id": 4242})

    def test_unknown_field_rejected(self, new_order, make_product):
        product = make_product()
        order = new_order([(product, 1, 100)])
        with pytest.raises(ValidationError):
            update_purchase_order(order.id, {"order_number": "PO999999"})

    def test_update_missing_order(self, db_session):
        with pytest.raises(OrderNotFound):
            update_purchase_order(4242, {"status": STATUS_RECEIVED})


class TestDelete:

    def test_delete_received_order_reverses_stock(self, new_order, make_product, db_session):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)], status=STATUS_RECEIVED)
        assert stock_of(product.id) == 15

        assert delete_purchase_order(order.id) == order.order_number
        assert stock_of(product.id) == 10
        assert db_session.query(PurchaseOrder).count() == 0

    def test_delete_ordered_order_leaves_stock(self, new_order, make_product):
        product = make_product(stock=10)
        order = new_order([(product, 5, 200)])
        delete_purchase_order(order.id)
        assert stock_of(product.id) == 10

    def test_delete_blocked_when_units_sold(self, new_order, make_product):
        product = make_product(stock=0)
        order = new_order([(product, 2, 200)], status=STATUS_RECEIVED)
        create_sale(
            customer_id="CUST-1",
            customer_name="Jane Doe",
            items=[{"product_id": product.id, "quantity": 2}],
            paid_amount_cents=1000,
        )

        with pytest.raises(InsufficientStock):
            delete_purchase_order(order.id)
        assert get_purchase_order(order.id).status == STATUS_RECEIVED

    def test_delete_missing_order(self, db_session):
        with pytest.raises(OrderNotFound):
            delete_purchase_order(4242)


class TestQueries:

    def test_list_filters_by_status(self, new_order, make_product):
        product = make_product()
        new_order([(product, 1, 100)], status=STATUS_DRAFT)
        new_order([(product, 1, 100)], status=STATUS_RECEIVED)
        new_order([(product, 1, 100)], status=STATUS_RECEIVED)

        rows, total = list_purchase_orders(status=STATUS_RECEIVED)
        assert total == 2
        assert all(row.status == STATUS_RECEIVED for row in rows)

        rows, total = list_purchase_orders()
        assert total == 3
        assert [row.order_number for row in rows] == ["PO000003", "PO000002", "PO000001"]
