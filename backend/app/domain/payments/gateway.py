"""
Payment Gateway Adapter.

Razorpay orders API over httpx, plus the HMAC-SHA256 check used to
verify checkout callbacks. Order creation runs through the shared
circuit breaker so a dead gateway fails fast instead of piling up
requests.
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import GatewayError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, gateway_circuit_breaker

logger = logging.getLogger("rentivo.gateway")


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``"{order_id}|{payment_id}"`` keyed by the gateway secret."""
    message = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode(), (signature or "").encode())


class PaymentGateway(ABC):
    """Upstream payment provider as seen by the reconciliation engine."""

    provider_name: str = "base"

    @abstractmethod
    async def create_order(self, amount_minor: int, currency: str, receipt: str) -> Dict[str, Any]:
        """
        Reserve a charge upstream.

        Returns:
            The provider's order object; must contain "id"

        Raises:
            GatewayError: on any upstream failure
        """
        raise NotImplementedError

    @abstractmethod
    def verify_callback(self, order_id: str, payment_id: str, signature: str) -> bool:
        raise NotImplementedError


class RazorpayGateway(PaymentGateway):

    provider_name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        breaker: CircuitBreaker = gateway_circuit_breaker,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url
        self.timeout = timeout
        self.breaker = breaker

    def _require_credentials(self):
        if not self.key_id or not self.key_secret:
            raise GatewayError("Payment gateway is not configured")

    async def create_order(self, amount_minor: int, currency: str, receipt: str) -> Dict[str, Any]:
        self._require_credentials()
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt}

        try:
            order = await self.breaker.call(self._post_order, payload)
        except CircuitOpenError as exc:
            raise GatewayError("Payment gateway temporarily unavailable") from exc
        except httpx.TimeoutException as exc:
            raise GatewayError("Payment gateway timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning("Razorpay rejected order for %s: %s", receipt, exc.response.text)
            raise GatewayError(
                "Payment gateway rejected the order",
                details={"upstream_status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"Payment gateway request failed: {exc}") from exc

        if not order.get("id"):
            raise GatewayError("Payment gateway returned an order without an id")
        logger.info("Razorpay order %s created for %s", order["id"], receipt)
        return order

    async def _post_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
        ) as client:
            response = await client.post("/orders", json=payload)
            response.raise_for_status()
            return response.json()

    def verify_callback(self, order_id: str, payment_id: str, signature: str) -> bool:
        self._require_credentials()
        return verify_signature(order_id, payment_id, signature, self.key_secret)


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway adapter."""
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            base_url=settings.razorpay_base_url,
            timeout=settings.gateway_timeout_seconds,
        )
    return _gateway
