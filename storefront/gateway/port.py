"""Payment provider port (abstract interface).

The orchestrator only talks to this contract, so the PayPal adapter can be
swapped for the in-memory FakeGateway in development and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class GatewayOrder:
    """Remote payment session created by the provider."""

    transaction_id: str
    approval_url: str
    status: str


class PaymentGateway(ABC):
    """Every method raises GatewayError on network or provider failure."""

    @abstractmethod
    def create(self, amount: Decimal, currency: str, reference_id: str) -> GatewayOrder:
        """Create a remote payment session the buyer approves at approval_url."""
        ...

    @abstractmethod
    def get(self, transaction_id: str) -> str:
        """Return the provider's current status for the session."""
        ...

    @abstractmethod
    def capture(self, transaction_id: str) -> str:
        """Capture an approved session and return the resulting provider status."""
        ...
