# storefront/domain/statuses.py
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


ORDER_STATUSES = [s.value for s in OrderStatus]

#admin moves an order one step forward or cancels it
ORDER_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PAID.value, OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.CANCELLED.value},
    OrderStatus.CANCELLED.value: set(),
}

# provider (PayPal Orders v2) status -> internal payment status
PROVIDER_STATUS_MAP = {
    "COMPLETED": PaymentStatus.COMPLETED.value,
    "CREATED": PaymentStatus.PENDING.value,
    "SAVED": PaymentStatus.PENDING.value,
    "APPROVED": PaymentStatus.PENDING.value,
    "PAYER_ACTION_REQUIRED": PaymentStatus.PENDING.value,
}


# still waiting for the buyer; once PAYMENT_ABANDON_AFTER_SECONDS have passed
# the provider will never complete them
AWAITING_BUYER_PROVIDER_STATUSES = {"CREATED", "PAYER_ACTION_REQUIRED"}

# order statuses that a completed payment is consistent with
PAID_ORDER_STATUSES = {OrderStatus.PAID.value, OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value}


def can_transition(current: str, new: str) -> bool:
    return new in ORDER_TRANSITIONS.get(current, set())


def map_provider_status(provider_status: str | None) -> str:
    """VOIDED, unknown or missing statuses count as failed."""
    return PROVIDER_STATUS_MAP.get((provider_status or "").upper(), PaymentStatus.FAILED.value)
