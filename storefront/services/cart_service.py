from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Per-user cart: product -> quantity.
    commands (add, update, remove, clear) modify state
    query (get) is read only, prices are always the live catalog prices
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        items = self.repo.get_user_items(user_id)
        total = sum((i.product.price * i.quantity for i in items), Decimal("0.00"))

        return {
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "product_name": i.product.name,
                    "unit_price": i.product.price,
                    "quantity": i.quantity,
                    "line_total": i.product.price * i.quantity,
                }
                for i in items
            ],
            "total": total,
        }

    #commands
    def add_product(self, user_id: int, product_id: int, quantity: int = 1) -> Dict[str, Any]:
        if quantity <= 0:
            raise InvalidQuantityError()

        product = self.products.get_product(product_id)
        if not product:
            raise ProductNotFoundError(product_id)

        existing_item = self.repo.get_user_item_for_product(user_id, product_id)
        new_quantity = quantity + (existing_item.quantity if existing_item else 0)

        # the cart holds nothing, real reservation happens at order creation
        if new_quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, new_quantity, product.stock)

        try:
            if existing_item:
                logger.info(
                    f"Product {product_id} already in cart of user {user_id}, "
                    f"quantity {existing_item.quantity} -> {new_quantity}"
                )
                existing_item.quantity = new_quantity
            else:
                logger.info(f"Adding product {product_id} to cart of user {user_id}")
                self.repo.add_item(
                    CartItemModel(
                        user_id=user_id,
                        product_id=product_id,
                        quantity=quantity,
                    )
                )
            self.repo.commit()
        except IntegrityError:
            # concurrent add of the same product created the row first
            self.repo.rollback()
            logger.info(f"Concurrent add of product {product_id} for user {user_id}, retrying as update")
            item = self.repo.get_user_item_for_product(user_id, product_id)
            if item is None:
                raise
            if item.quantity + quantity > product.stock:
                raise InsufficientStockError(product.id, product.name, item.quantity + quantity, product.stock)
            item.quantity += quantity
            self.repo.commit()

        return self.get_cart(user_id)

    def update_quantity(self, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        if quantity < 1:
            raise InvalidQuantityError()

        item = self._get_user_item(user_id, item_id)
        product = self.products.get_product(item.product_id)

        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, quantity, product.stock)

        item.quantity = quantity
        self.repo.commit()

        logger.info(f"Cart item {item_id} of user {user_id} set to quantity {quantity}")

        return self.get_cart(user_id)

    def remove_item(self, user_id: int, item_id: int) -> Dict[str, Any]:
        item = self._get_user_item(user_id, item_id)

        self.repo.delete_item(item)
        self.repo.commit()

        logger.info(f"Removed cart item {item_id} of user {user_id}")

        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> Dict[str, Any]:
        removed = self.repo.delete_all_for_user(user_id)
        self.repo.commit()

        logger.info(f"Cleared cart of user {user_id} ({removed} items)")

        return self.get_cart(user_id)

    def _get_user_item(self, user_id: int, item_id: int) -> CartItemModel:
        item = self.repo.get_item(item_id)
        # someone else's line looks exactly like a missing one
        if not item or item.user_id != user_id:
            raise CartItemNotFoundError(item_id)
        return item
