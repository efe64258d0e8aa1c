# storefront/services/order_service.py
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_line import OrderLineModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import (
    EmptyCartError,
    InsufficientStockError,
    InvalidOrderStateError,
    InvalidStatusError,
    OrderNotFoundError,
)
from storefront.domain.statuses import ORDER_STATUSES, OrderStatus, can_transition
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "total_price": order.total_price,
        "status": order.status,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def line_to_dict(line: OrderLineModel) -> Dict[str, Any]:
    return {
        "product_id": line.product_id,
        "product_name": line.product_name,
        "quantity": line.quantity,
        "unit_price": line.unit_price,
        "line_total": line.line_total,
    }


def payment_to_dict(payment: PaymentModel) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "user_id": payment.user_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "transaction_id": payment.transaction_id,
        "created_at": payment.created_at,
    }


def order_detail_to_dict(order: OrderModel) -> Dict[str, Any]:
    data = order_to_dict(order)
    data["lines"] = [line_to_dict(line) for line in order.lines]
    data["payments"] = [payment_to_dict(p) for p in order.payments]
    return data


class OrderService:
    """
    Orders: created from the user's cart, then moved through their
    lifecycle by payment settlement and by admins.
    """

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.products = ProductRepo(db)
        self.notification_service = notification_service or NotificationService()

    def create_order_from_cart(self, user_id: int) -> Dict[str, Any]:
        """
        Use Case: turn the user's cart into a pending order.

        1. read the cart, fail if empty
        2. check every line against the current stock, compute the total
        3. one transaction: order + frozen lines, guarded stock decrements,
           cart cleared; any failure rolls all of it back
        4. notify (async, after commit)
        """
        items = self.carts.get_user_items(user_id)

        if not items:
            raise EmptyCartError()

        # current stock, never a cached value
        products = {}
        for item in items:
            product = self.products.get_product(item.product_id)
            if product is None or item.quantity > product.stock:
                raise InsufficientStockError(
                    item.product_id,
                    product.name if product else f"product {item.product_id}",
                    item.quantity,
                    product.stock if product else 0,
                )
            products[item.product_id] = product

        total = sum(
            (item.quantity * products[item.product_id].price for item in items),
            Decimal("0.00"),
        )

        try:
            order = OrderModel(
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                total_price=total,
            )
            self.repo.add_order(order)

            # fixed product order so two checkouts lock rows in the same sequence
            for item in sorted(items, key=lambda i: i.product_id):
                product = products[item.product_id]

                rowcount = self.products.decrement_stock(item.product_id, item.quantity)
                if rowcount == 0:
                    # someone else took the stock after the pre-check
                    current = self.products.get_product(item.product_id)
                    raise InsufficientStockError(
                        product.id,
                        product.name,
                        item.quantity,
                        current.stock if current else 0,
                    )

                order.lines.append(
                    OrderLineModel(
                        product_id=product.id,
                        product_name=product.name,
                        quantity=item.quantity,
                        unit_price=product.price,
                    )
                )

            self.carts.delete_all_for_user(user_id)
            self.db.commit()

        except Exception as e:
            logger.warning(f"Order creation for user {user_id} rolled back: {e}")
            self.db.rollback()
            raise

        logger.info(f"Order {order.id} created for user {user_id}, total {total}")

        self.notification_service.send_order_notification(user_id, order.id)

        return {
            "order": order_to_dict(order),
            "items": [line_to_dict(line) for line in order.lines],
        }

    def get_order(self, order_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        """
        Use Case: order details with lines and payments (Query).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFoundError(order_id)

        if not is_admin and order.user_id != user_id:
            raise PermissionError("Access to this order is denied")

        return order_detail_to_dict(order)

    def list_user_orders(self, user_id: int) -> List[Dict[str, Any]]:
        return [order_detail_to_dict(o) for o in self.repo.list_user_orders(user_id)]

    def list_orders(self) -> List[Dict[str, Any]]:
        """
        Use Case: every order, newest first, for the admin panel (Query).
        """
        return [order_detail_to_dict(o) for o in self.repo.list_orders()]

    def update_status(self, order_id: int, status: str) -> Dict[str, Any]:
        """
        Use Case: admin moves the order through its lifecycle.

        pending -> paid -> shipped -> delivered, one step at a time;
        anything not cancelled can be cancelled; cancelled is final.
        """
        if status not in ORDER_STATUSES:
            raise InvalidStatusError(ORDER_STATUSES)

        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFoundError(order_id)

        current = order.status

        if current == status:
            return order_detail_to_dict(order)

        if not can_transition(current, status):
            raise InvalidOrderStateError(f"Cannot change order status from {current} to {status}")

        rowcount = self.repo.set_status(order_id, current, status)

        if rowcount == 0:
            self.db.rollback()
            raise InvalidOrderStateError(
                f"Order {order_id} was modified concurrently, status is no longer {current}"
            )

        self.db.commit()

        logger.info(f"Order {order_id} status {current} -> {status}")

        return order_detail_to_dict(self.repo.get_order(order_id))
