"""Order creation from the cart, and order queries."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from storefront.data.models import CartItemModel, OrderModel, ProductModel
from storefront.domain.errors import EmptyCartError, InsufficientStockError
from storefront.services.order_service import OrderService


def _cart_size(db, user_id):
    db.expire_all()
    return db.execute(
        select(func.count()).select_from(CartItemModel).where(CartItemModel.user_id == user_id)
    ).scalar_one()


def _order_count(db):
    return db.execute(select(func.count()).select_from(OrderModel)).scalar_one()


class TestCreateOrder:
    def test_order_reserves_stock_and_clears_cart(self, client, db, make_product, fill_cart, stock_of, as_user):
        product_id = make_product(price="10.00", stock=5)
        fill_cart(1, product_id, 2)

        response = client.post("/orders", headers=as_user(1))

        assert response.status_code == 201
        body = response.json()
        assert body["order"]["status"] == "pending"
        assert body["order"]["user_id"] == 1
        assert Decimal(body["order"]["total_price"]) == Decimal("20.00")
        [line] = body["items"]
        assert line["product_id"] == product_id
        assert line["product_name"] == "Keyboard"
        assert line["quantity"] == 2
        assert Decimal(line["unit_price"]) == Decimal("10.00")
        assert Decimal(line["line_total"]) == Decimal("20.00")
        assert stock_of(product_id) == 3
        assert _cart_size(db, 1) == 0

    def test_total_sums_every_line(self, client, make_product, fill_cart, as_user):
        keyboard = make_product(name="Keyboard", price="10.00", stock=5)
        monitor = make_product(name="Monitor", price="199.99", stock=2)
        fill_cart(1, monitor, 1)
        fill_cart(1, keyboard, 3)

        response = client.post("/orders", headers=as_user(1))

        assert Decimal(response.json()["order"]["total_price"]) == Decimal("229.99")
        assert [i["product_name"] for i in response.json()["items"]] == ["Keyboard", "Monitor"]

    def test_empty_cart_returns_400(self, client, db, as_user):
        response = client.post("/orders", headers=as_user(1))

        assert response.status_code == 400
        assert response.json()["detail"] == "Your cart is empty"
        assert _order_count(db) == 0

    def test_insufficient_stock_changes_nothing(self, client, db, make_product, fill_cart, stock_of, as_user):
        plenty = make_product(name="Mouse", stock=50)
        scarce = make_product(name="Monitor", stock=1)
        fill_cart(1, plenty, 5)
        fill_cart(1, scarce, 2)

        response = client.post("/orders", headers=as_user(1))

        assert response.status_code == 400
        assert "Monitor" in response.json()["detail"]
        assert stock_of(plenty) == 50
        assert stock_of(scarce) == 1
        assert _cart_size(db, 1) == 2
        assert _order_count(db) == 0

    def test_exact_stock_can_be_bought(self, client, make_product, fill_cart, stock_of, as_user):
        product_id = make_product(stock=3)
        fill_cart(1, product_id, 3)

        assert client.post("/orders", headers=as_user(1)).status_code == 201
        assert stock_of(product_id) == 0


class TestConcurrentCheckout:
    def test_stock_taken_after_precheck_rolls_back_the_loser(self, db, make_product, fill_cart, stock_of, monkeypatch):
        product_id = make_product(stock=5)
        fill_cart(1, product_id, 3)
        fill_cart(2, product_id, 3)

        # user 2 read the stock before user 1 committed
        loser = OrderService(db)
        stale = SimpleNamespace(id=product_id, name="Keyboard", price=Decimal("10.00"), stock=5)
        monkeypatch.setattr(loser.products, "get_product", lambda pid: stale)

        OrderService(db).create_order_from_cart(1)

        with pytest.raises(InsufficientStockError):
            loser.create_order_from_cart(2)

        assert stock_of(product_id) == 2
        assert _cart_size(db, 2) == 1
        assert _order_count(db) == 1

    def test_stock_never_goes_negative(self, db, make_product, fill_cart, stock_of):
        product_id = make_product(stock=2)
        fill_cart(1, product_id, 2)
        fill_cart(2, product_id, 1)

        OrderService(db).create_order_from_cart(1)

        with pytest.raises(InsufficientStockError) as exc:
            OrderService(db).create_order_from_cart(2)

        assert exc.value.available == 0
        assert stock_of(product_id) == 0

    def test_empty_cart_raises_domain_error(self, db):
        with pytest.raises(EmptyCartError):
            OrderService(db).create_order_from_cart(7)


class TestOrderQueries:
    def _place_order(self, client, make_product, fill_cart, user_id, price="10.00"):
        product_id = make_product(price=price, stock=10)
        fill_cart(user_id, product_id, 1)
        return client.post("/orders", headers={"X-User-Id": str(user_id)}).json()["order"]["id"], product_id

    def test_owner_sees_lines_and_payments(self, client, make_product, fill_cart, as_user):
        order_id, product_id = self._place_order(client, make_product, fill_cart, 1)

        response = client.get(f"/orders/{order_id}", headers=as_user(1))

        assert response.status_code == 200
        body = response.json()
        assert body["lines"][0]["product_id"] == product_id
        assert body["payments"] == []

    def test_lines_keep_purchase_price(self, client, db, make_product, fill_cart, as_user):
        order_id, product_id = self._place_order(client, make_product, fill_cart, 1)

        product = db.get(ProductModel, product_id)
        product.price = Decimal("99.00")
        db.commit()

        body = client.get(f"/orders/{order_id}", headers=as_user(1)).json()
        assert Decimal(body["lines"][0]["unit_price"]) == Decimal("10.00")
        assert Decimal(body["total_price"]) == Decimal("10.00")

    def test_other_user_is_forbidden(self, client, make_product, fill_cart, as_user):
        order_id, _ = self._place_order(client, make_product, fill_cart, 1)

        assert client.get(f"/orders/{order_id}", headers=as_user(2)).status_code == 403

    def test_admin_sees_any_order(self, client, make_product, fill_cart, admin_headers):
        order_id, _ = self._place_order(client, make_product, fill_cart, 1)

        assert client.get(f"/orders/{order_id}", headers=admin_headers).status_code == 200

    def test_unknown_order_returns_404(self, client, as_user):
        response = client.get("/orders/12345", headers=as_user(1))

        assert response.status_code == 404
        assert response.json()["detail"] == "Order not found"

    def test_list_returns_only_own_orders_newest_first(self, client, make_product, fill_cart, as_user):
        first, _ = self._place_order(client, make_product, fill_cart, 1)
        second, _ = self._place_order(client, make_product, fill_cart, 1)
        self._place_order(client, make_product, fill_cart, 2)

        response = client.get("/orders/user", headers=as_user(1))

        assert [o["id"] for o in response.json()] == [second, first]

    def test_admin_lists_every_order_newest_first(self, client, make_product, fill_cart, admin_headers):
        first, _ = self._place_order(client, make_product, fill_cart, 1)
        second, _ = self._place_order(client, make_product, fill_cart, 2)

        response = client.get("/orders", headers=admin_headers)

        assert response.status_code == 200
        assert [o["id"] for o in response.json()] == [second, first]
        assert all("payments" in o for o in response.json())

    def test_listing_every_order_requires_admin(self, client, as_user):
        assert client.get("/orders", headers=as_user(1)).status_code == 403
