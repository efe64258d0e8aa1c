# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List
from decimal import Decimal
from datetime import datetime


class CartItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (> 0)")
    quantity: int = Field(1, gt=0, description="Quantity (> 0)")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0, description="New quantity (> 0)")


class CartItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class CartOut(BaseModel):
    items: List[CartItemOut]
    total: Decimal


class OrderLineOut(BaseModel):
    """Line frozen at purchase time (price does not follow the catalog)."""

    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    order_id: int
    user_id: int
    amount: Decimal
    currency: str
    status: str
    transaction_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    total_price: Decimal
    status: str
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderDetailOut(OrderOut):
    lines: List[OrderLineOut] = []
    payments: List[PaymentOut] = []


class OrderCreatedOut(BaseModel):
    """Schema for POST /orders: the order plus the lines used to compute its total."""

    order: OrderOut
    items: List[OrderLineOut]


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., description="pending, paid, shipped, delivered or cancelled")


class PaymentDetailOut(PaymentOut):
    order: OrderOut


# checkout surface speaks camelCase (orderId, transactionId, approvalUrl, ...)
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentInitiateIn(CamelModel):
    order_id: int = Field(..., gt=0)


class PaymentCaptureIn(CamelModel):
    transaction_id: str = Field(..., min_length=1)


class PaymentInitiatedOut(CamelModel):
    payment_id: int
    transaction_id: str
    approval_url: str


class PaymentCaptureOut(CamelModel):
    payment_id: int
    transaction_id: str
    status: str
    order: OrderOut
    needs_review: bool = False


class PaymentStatusOut(CamelModel):
    payment_id: int
    transaction_id: str
    status: str
    paypal_status: str
    order: OrderOut
    needs_review: bool = False
