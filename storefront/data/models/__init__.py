# every model imported here so SQLAlchemy registers it in Base.metadata

from storefront.data.models.product import ProductModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_line import OrderLineModel
from storefront.data.models.payment import PaymentModel

__all__ = ["ProductModel", "CartItemModel", "OrderModel", "OrderLineModel", "PaymentModel"]
