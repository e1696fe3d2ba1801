"""Razorpay payment integration.

Opens a Razorpay order (the gateway-side transaction) for a checkout total
and verifies the signature the client sends back after paying.
"""

import hashlib
import hmac
from decimal import Decimal
from typing import Optional

import httpx
import structlog

from config import Settings
from errors import PaymentGatewayError

logger = structlog.get_logger(__name__)


def sign(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``"{order_id}|{payment_id}"``, as Razorpay computes it."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    secret: str,
) -> bool:
    """Check a payment confirmation against the shared secret.

    Returns False when any of the three values is missing. Has no side
    effects besides logging.
    """
    if not order_id or not payment_id or not signature:
        logger.warning(
            "payment_verification_missing_fields",
            has_order_id=bool(order_id),
            has_payment_id=bool(payment_id),
            has_signature=bool(signature),
        )
        return False
    if not secret:
        logger.error("payment_verification_no_secret")
        return False

    expected = sign(order_id, payment_id, secret)
    is_valid = hmac.compare_digest(expected.encode(), signature.encode())
    if not is_valid:
        logger.warning(
            "payment_signature_mismatch",
            razorpay_order_id=order_id,
            razorpay_payment_id=payment_id,
        )
    return is_valid


class RazorpayGateway:
    """Client for the Razorpay orders and payments REST API."""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=settings.razorpay_api_url,
            auth=(settings.razorpay_key_id, settings.razorpay_key_secret),
        )

    def open_transaction(self, amount: Decimal, receipt: str) -> str:
        """Create a Razorpay order for ``amount`` and return its id.

        The amount is sent in the currency's minor unit (paise for INR).
        """
        if amount is None or Decimal(str(amount)) <= 0:
            raise PaymentGatewayError("Invalid amount provided")

        payload = {
            "amount": int((Decimal(str(amount)) * 100).to_integral_value()),
            "currency": self.settings.currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        try:
            response = self._client.post("/orders", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "razorpay_order_rejected",
                receipt=receipt,
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise PaymentGatewayError(f"Failed to create payment order: gateway returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("razorpay_order_failed", receipt=receipt, error=str(e))
            raise PaymentGatewayError(f"Failed to create payment order: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error("razorpay_order_unreadable", receipt=receipt, body=response.text[:200])
            raise PaymentGatewayError("Failed to create payment order: unreadable gateway response") from e
        gateway_id = body.get("id") if isinstance(body, dict) else None
        if not gateway_id:
            raise PaymentGatewayError("Failed to create payment order: no order id in response")
        logger.info("razorpay_order_created", receipt=receipt, razorpay_order_id=gateway_id)
        return gateway_id

    def fetch_payment(self, payment_id: str) -> dict:
        if not payment_id:
            raise PaymentGatewayError("Payment ID is required")
        try:
            response = self._client.get(f"/payments/{payment_id}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("razorpay_payment_lookup_failed", payment_id=payment_id, error=str(e))
            raise PaymentGatewayError(f"payment lookup failed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise PaymentGatewayError("payment lookup failed: unreadable gateway response") from e

    def close(self) -> None:
        self._client.close()
