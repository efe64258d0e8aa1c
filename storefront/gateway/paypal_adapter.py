# storefront/gateway/paypal_adapter.py
import time
from decimal import Decimal
from uuid import uuid4

import requests

from storefront.domain.errors import GatewayDeclinedError, GatewayError, GatewayNotFoundError
from storefront.gateway.port import GatewayOrder, PaymentGateway
from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    FRONTEND_URL,
    PAYPAL_API_BASE,
    PAYPAL_TIMEOUT_SECONDS,
    STORE_BRAND_NAME,
)

logger = get_logger(__name__)

#refresh the token a minute before PayPal expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def _format_amount(amount) -> str:
    return str(Decimal(amount).quantize(Decimal("0.01")))


def _issue_from(response) -> str:
    if response is None:
        return "UNKNOWN"
    try:
        body = response.json()
    except ValueError:
        return "UNKNOWN"
    details = body.get("details") or []
    if details and details[0].get("issue"):
        return details[0]["issue"]
    return body.get("name") or body.get("error") or "UNKNOWN"


class PayPalGateway(PaymentGateway):
    """
    PayPal Orders v2 REST API over requests.

    Writes carry a PayPal-Request-Id generated once per logical call, so the
    transient retries of http_retry never create or capture twice.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str | None = None,
        timeout: int = PAYPAL_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        brand_name: str = STORE_BRAND_NAME,
        frontend_url: str = FRONTEND_URL,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = (base_url or PAYPAL_API_BASE).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.brand_name = brand_name
        self.return_url = f"{frontend_url.rstrip('/')}/payment/success"
        self.cancel_url = f"{frontend_url.rstrip('/')}/payment/cancel"

        self._token: str | None = None
        self._token_expires_at = 0.0

    # -- transport ------------------------------------------------------

    @http_retry()
    def _fetch_token(self) -> dict:
        url = f"{self.base_url}/v1/oauth2/token"
        logger.info(f"PayPal POST {url}")

        resp = self.session.request(
            "POST",
            url,
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        data = self._fetch_token()
        self._token = data["access_token"]
        self._token_expires_at = (
            time.monotonic() + int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        return self._token

    @http_retry()
    def _send(self, method: str, path: str, token: str, json=None, headers=None) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PayPal {method} {url}")

        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})

        resp = self.session.request(
            method,
            url,
            json=json,
            headers=request_headers,
            timeout=self.timeout,
        )
        if resp.status_code == 401:
            # force a fresh token on the next call
            self._token = None
        resp.raise_for_status()
        return resp.json()

    def _call(self, method: str, path: str, json=None, headers=None) -> dict:
        try:
            token = self._access_token()
            return self._send(method, path, token, json=json, headers=headers)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            issue = _issue_from(e.response)
            if status == 404:
                logger.warning(f"PayPal {method} {path}: order not found ({issue})")
                raise GatewayNotFoundError(issue) from e
            if status == 422:
                logger.warning(f"PayPal {method} {path} declined: {issue}")
                raise GatewayDeclinedError(issue) from e
            logger.error(f"PayPal {method} {path} failed with HTTP {status}: {issue}")
            raise GatewayError(f"PayPal request failed with HTTP {status}") from e
        except requests.RequestException as e:
            logger.error(f"PayPal {method} {path} failed: {e}")
            raise GatewayError("PayPal is unreachable") from e
        except KeyError as e:
            logger.error(f"PayPal token response is missing {e}")
            raise GatewayError("Malformed PayPal token response") from e

    # -- PaymentGateway ---------------------------------------------------

    def create(self, amount: Decimal, currency: str, reference_id: str) -> GatewayOrder:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "amount": {
                        "currency_code": currency,
                        "value": _format_amount(amount),
                    },
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": self.return_url,
                "cancel_url": self.cancel_url,
            },
        }
        data = self._call(
            "POST",
            "/v2/checkout/orders",
            json=body,
            headers={
                "Prefer": "return=representation",
                "PayPal-Request-Id": f"order-{reference_id}-{uuid4().hex}",
            },
        )

        approval_url = next(
            (
                link.get("href")
                for link in data.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        if not data.get("id") or not approval_url:
            logger.error(f"PayPal order response without id or approval link: {data}")
            raise GatewayError("PayPal order response is missing the approval link")

        return GatewayOrder(
            transaction_id=data["id"],
            approval_url=approval_url,
            status=data.get("status", "CREATED"),
        )

    def get(self, transaction_id: str) -> str:
        data = self._call("GET", f"/v2/checkout/orders/{transaction_id}")
        return self._status_of(data)

    def capture(self, transaction_id: str) -> str:
        try:
            data = self._call(
                "POST",
                f"/v2/checkout/orders/{transaction_id}/capture",
                json={},
                headers={
                    "Prefer": "return=representation",
                    "PayPal-Request-Id": f"capture-{transaction_id}",
                },
            )
        except GatewayDeclinedError as e:
            if e.issue == "ORDER_ALREADY_CAPTURED":
                logger.info(f"PayPal order {transaction_id} was already captured, reading its status")
                return self.get(transaction_id)
            raise
        return self._status_of(data)

    @staticmethod
    def _status_of(data: dict) -> str:
        status = data.get("status")
        if not status:
            logger.error(f"PayPal order response without status: {data}")
            raise GatewayError("PayPal order response is missing the status")
        return status
