"""In-memory payment provider for development and testing.

Simulates the PayPal order lifecycle (CREATED -> APPROVED -> COMPLETED)
without any external calls. Outcomes can be configured at runtime:
- configure(capture_status=...) decides what a capture returns
- fail_next(method, error) makes the next create/get/capture raise
- approve()/set_status()/expire() play the buyer's or the provider's part
"""

from decimal import Decimal
from uuid import uuid4

from storefront.domain.errors import GatewayError, GatewayNotFoundError
from storefront.gateway.port import GatewayOrder, PaymentGateway


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.orders: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.capture_status: str = "COMPLETED"
        self.failures: dict[str, GatewayError] = {}

    def configure(self, capture_status: str = "COMPLETED") -> None:
        self.capture_status = capture_status

    def fail_next(self, method: str, error: GatewayError) -> None:
        self.failures[method] = error

    def expire(self, transaction_id: str) -> None:
        self.orders.pop(transaction_id, None)

    def approve(self, transaction_id: str) -> None:
        self.set_status(transaction_id, "APPROVED")

    def set_status(self, transaction_id: str, status: str) -> None:
        self._order(transaction_id)["status"] = status

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def _record(self, method: str, **params) -> None:
        self.calls.append({"method": method, **params})
        error = self.failures.pop(method, None)
        if error is not None:
            raise error

    def _order(self, transaction_id: str) -> dict:
        order = self.orders.get(transaction_id)
        if order is None:
            raise GatewayNotFoundError("RESOURCE_NOT_FOUND")
        return order

    def create(self, amount: Decimal, currency: str, reference_id: str) -> GatewayOrder:
        self._record("create", amount=amount, currency=currency, reference_id=reference_id)

        transaction_id = f"FAKE{uuid4().hex[:13].upper()}"
        self.orders[transaction_id] = {
            "amount": amount,
            "currency": currency,
            "reference_id": reference_id,
            "status": "CREATED",
        }
        return GatewayOrder(
            transaction_id=transaction_id,
            approval_url=f"https://fake-gateway.local/checkoutnow?token={transaction_id}",
            status="CREATED",
        )

    def get(self, transaction_id: str) -> str:
        self._record("get", transaction_id=transaction_id)
        return self._order(transaction_id)["status"]

    def capture(self, transaction_id: str) -> str:
        self._record("capture", transaction_id=transaction_id)
        order = self._order(transaction_id)
        if order["status"] != "COMPLETED":
            order["status"] = self.capture_status
        return order["status"]
