"""
Reporting tests.

Reports are read-only aggregates; these build a small history with explicit
sale dates and check the figures.
"""

from datetime import datetime

import pytest

from pharmacy.errors import ValidationError
from pharmacy.models import Customer
from pharmacy.services import reporting_service
from pharmacy.services.purchase_service import create_purchase_order
from pharmacy.services.sales_service import create_sale


def sale_on(product, quantity, when, *, customer_id="CUST-1", name="Jane Doe", unit_price=None):
    item = {"product_id": product.id, "quantity": quantity}
    if unit_price is not None:
        item["unit_price_cents"] = unit_price
    return create_sale(
        customer_id=customer_id,
        customer_name=name,
        items=[item],
        paid_amount_cents=0,
        date=when,
    )


class TestSalesReport:

    def test_totals_and_top_products(self, db_session, make_product):
        a = make_product("Amoxicillin", stock=50, price_cents=1000)
        b = make_product("Bisoprolol", stock=50, price_cents=300)
        sale_on(a, 2, "2026-03-02T10:00:00Z")
        sale_on(b, 1, "2026-03-05T10:00:00Z")
        sale_on(a, 1, "2026-04-01T10:00:00Z")

        report = reporting_service.sales_report(start="2026-03-01", end="2026-03-31")

        assert report["total_sales"] == 2
        assert report["total_revenue_cents"] == 2300
        assert report["average_order_value_cents"] == 1150
        assert [p["name"] for p in report["top_selling_products"]] == ["Amoxicillin", "Bisoprolol"]
        assert report["top_selling_products"][0]["quantity"] == 2

    def test_end_date_covers_whole_day(self, db_session, make_product):
        product = make_product(stock=10)
        sale_on(product, 1, "2026-03-31T23:59:00Z")

        report = reporting_service.sales_report(start="2026-03-31", end="2026-03-31")
        assert report["total_sales"] == 1

    def test_empty_range(self, db_session):
        report = reporting_service.sales_report()
        assert report["total_sales"] == 0
        assert report["average_order_value_cents"] == 0
        assert report["top_selling_products"] == []

    @pytest.mark.parametrize("start,end", [
        ("yesterday", None),
        ("2026-03-10", "2026-03-01"),
    ])
    def test_invalid_range(self, db_session, start, end):
        with pytest.raises(ValidationError):
            reporting_service.sales_report(start=start, end=end)


class TestInventoryReport:

    def test_figures(self, db_session, make_product):
        make_product("A", stock=10, price_cents=200, reorder_level=2)
        make_product("B", stock=0, price_cents=999, reorder_level=2)

        report = reporting_service.inventory_report()

        assert report["total_products"] == 2
        assert report["total_value_cents"] == 2000
        assert report["out_of_stock"] == 1
        assert [p["name"] for p in report["low_stock_products"]] == ["B"]


class TestCustomersReport:

    def test_active_and_top(self, db_session, make_product):
        alice = Customer(name="Alice", email="alice@example.com", phone="555-1000")
        bob = Customer(name="Bob", email="bob@example.com", phone="555-2000")
        db_session.add_all([alice, bob])
        db_session.commit()

        product = make_product(stock=20, price_cents=100)
        sale_on(product, 5, "2026-03-02T10:00:00Z", customer_id=str(alice.id), name="Alice")
        sale_on(product, 1, "2026-03-03T10:00:00Z", customer_id=str(bob.id), name="Bob")
        sale_on(product, 1, "2026-03-04T10:00:00Z", customer_id="walk-in", name="Walk-in")

        report = reporting_service.customers_report()

        assert report["total_customers"] == 2
        assert report["active_customers"] == 2
        top = report["top_customers"][0]
        assert (top["name"], top["total_spent_cents"]) == ("Alice", 500)


class TestPurchasesReport:

    def test_figures(self, db_session, user, supplier, make_product):
        product = make_product()
        for status, quantity in (("ordered", 2), ("ordered", 1), ("received", 4)):
            create_purchase_order(
                supplier_id=supplier.id,
                items=[{"product_id": product.id, "quantity": quantity, "unit_cost_cents": 100}],
                user_id=user.id,
                status=status,
            )

        report = reporting_service.purchases_report()

        assert report["total_purchases"] == 3
        assert report["total_cost_cents"] == 700
        assert report["pending_orders"] == 2
        assert report["top_suppliers"] == [{
            "supplier_id": supplier.id,
            "name": supplier.name,
            "order_count": 3,
            "total_amount_cents": 700,
        }]


class TestProductsReport:

    def test_growth_and_categories(self, db_session, make_product):
        a = make_product("Amlodipine", stock=100, category="Cardio")
        b = make_product("Bumetanide", stock=100, category="Cardio")
        c = make_product("Cefalexin", stock=40, category="Antibiotics")

        sale_on(a, 1, "2026-02-10T10:00:00Z", unit_price=1000)
        sale_on(a, 3, "2026-03-10T10:00:00Z", unit_price=500)
        sale_on(b, 1, "2026-03-11T10:00:00Z", unit_price=400)

        report = reporting_service.products_report(now=datetime(2026, 3, 20, 12, 0))
        rows = {r["name"]: r for r in report["products"]}

        assert rows["Amlodipine"]["growth_percent"] == 50
        assert rows["Amlodipine"]["quantity_sold"] == 4
        assert rows["Amlodipine"]["revenue_cents"] == 2500
        assert rows["Bumetanide"]["growth_percent"] == 0
        assert rows["Cefalexin"]["revenue_cents"] == 0
        assert report["products"][0]["name"] == "Amlodipine"
        assert report["categories"] == [
            {"name": "Antibiotics", "stock": 40},
            {"name": "Cardio", "stock": 195},
        ]


class TestReportsApi:

    @pytest.mark.parametrize("path", [
        "/api/reports/sales",
        "/api/reports/inventory",
        "/api/reports/customers",
        "/api/reports/purchases",
        "/api/reports/products",
    ])
    def test_endpoints(self, client, headers, path):
        assert client.get(path).status_code == 401
        assert client.get(path, headers=headers).status_code == 200

    def test_bad_date_is_400(self, client, headers):
        response = client.get("/api/reports/sales?start_date=not-a-date", headers=headers)
        assert response.status_code == 400
