"""Payment gateway factory.

get_gateway() builds the adapter named by PAYMENT_GATEWAY once:
- "paypal": PayPalGateway (sandbox or live, see PAYPAL_API_BASE)
- "fake": FakeGateway for development and tests
set_gateway()/reset_gateway() swap it (tests, shell sessions).
"""

from storefront.domain.errors import GatewayDeclinedError, GatewayError, GatewayNotFoundError
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.paypal_adapter import PayPalGateway
from storefront.gateway.port import GatewayOrder, PaymentGateway
from storefront.utils import settings

_current_gateway: PaymentGateway | None = None


def build_gateway(name: str | None = None) -> PaymentGateway:
    name = (name or settings.PAYMENT_GATEWAY).lower()
    if name == "fake":
        return FakeGateway()
    if name == "paypal":
        return PayPalGateway(
            client_id=settings.PAYPAL_CLIENT_ID,
            client_secret=settings.PAYPAL_CLIENT_SECRET,
        )
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {name}")


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None


__all__ = [
    "FakeGateway",
    "GatewayDeclinedError",
    "GatewayError",
    "GatewayNotFoundError",
    "GatewayOrder",
    "PayPalGateway",
    "PaymentGateway",
    "build_gateway",
    "get_gateway",
    "reset_gateway",
    "set_gateway",
]
