"""Razorpay REST API client for billing operations.

Orders, payments and customers are reached over the Razorpay v1 REST API with
HTTP basic auth (key id / key secret).
"""

import hashlib
import hmac
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from seatwise.core.config import settings
from seatwise.core.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    PaymentNotConfirmedError,
    PaymentVerificationFailedError,
)
from seatwise.core.logging import logger
from seatwise.integrations.payment_gateway import PaymentGateway, to_minor_units, with_timeout
from seatwise.schemas.enums import Currency, PaymentProvider
from seatwise.schemas.organization import Organization
from seatwise.schemas.payment import GatewayCheckout, GatewayCustomer, VerifiedPayment

MAX_RECEIPT_LENGTH = 40
MAX_NOTES = 15


def build_receipt(organization_id: Any, now_ms: Optional[int] = None) -> str:
    """Receipt id ``rcpt-{epoch_ms}-{first 8 chars of the org id}``, at most 40 chars."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"rcpt-{now_ms}-{str(organization_id)[:8]}"[:MAX_RECEIPT_LENGTH]


def compute_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id`` keyed with the API secret."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(key_secret.encode(), message, hashlib.sha256).hexdigest()


class RazorpayClient(PaymentGateway):
    """Client for Razorpay API operations."""

    provider = PaymentProvider.RAZORPAY

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize Razorpay client.

        Args:
            transport: Optional httpx transport, used to stub the API in tests
        """
        if not settings.RAZORPAY_ENABLED:
            raise ValueError("Razorpay is not enabled in settings")

        self.key_id = settings.RAZORPAY_KEY_ID
        self.key_secret = settings.RAZORPAY_KEY_SECRET
        self.base_url = settings.RAZORPAY_API_BASE.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id, self.key_secret),
            timeout=httpx.Timeout(settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS),
            transport=self._transport,
        )

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Call the API and return the decoded JSON body.

        Raises:
            ExternalServiceError: On transport errors and non-2xx responses
        """
        try:
            async with self._client() as client:
                response = await with_timeout(
                    client.request(method, path, json=payload), "Razorpay"
                )
                response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            description = self._error_description(e.response)
            logger.error(
                f"Razorpay {method} {path} failed: {e.response.status_code} - {description}"
            )
            raise ExternalServiceError(service_name="Razorpay", message=description) from e
        except httpx.HTTPError as e:
            logger.error(f"Razorpay {method} {path} failed: {str(e)}")
            raise ExternalServiceError(service_name="Razorpay", message=str(e)) from e

    @staticmethod
    def _error_description(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        return error.get("description") or error.get("message") or f"HTTP {response.status_code}"

    @staticmethod
    def _clean_notes(notes: Dict[str, Any]) -> Dict[str, str]:
        """Razorpay accepts at most 15 string notes of up to 256 characters."""
        cleaned = {str(k): str(v)[:256] for k, v in notes.items() if v is not None}
        return dict(list(cleaned.items())[:MAX_NOTES])

    # Customer operations

    async def create_customer(self, organization: Organization) -> GatewayCustomer:
        """Create a Razorpay customer, or return the existing one for the same email."""
        email = organization.billing_email or organization.domain
        payload: Dict[str, Any] = {
            "name": organization.name,
            "fail_existing": "0",
            "notes": self._clean_notes(
                {"organizationId": organization.id, "domain": organization.domain}
            ),
        }
        if email:
            payload["email"] = email
        if organization.phone:
            payload["contact"] = organization.phone

        customer = await self._request("POST", "/customers", payload)
        logger.info(
            f"Created Razorpay customer {customer['id']} for organization {organization.id}"
        )
        return GatewayCustomer(provider=self.provider, customer_id=customer["id"], email=email)

    # Order operations

    async def create_order_or_checkout(
        self,
        *,
        amount: Decimal,
        currency: Currency,
        metadata: Dict[str, Any],
        description: Optional[str] = None,
        interval: Optional[str] = None,
        customer_id: Optional[str] = None,
        receipt: Optional[str] = None,
    ) -> GatewayCheckout:
        """Create an order the client completes with Razorpay Checkout."""
        if amount is None or Decimal(amount) <= 0:
            raise InvalidInputError(f"Amount too small: {amount}")

        receipt = (receipt or build_receipt(metadata.get("organizationId", "")))[
            :MAX_RECEIPT_LENGTH
        ]
        notes = dict(metadata)
        notes.update({"planDescription": description, "interval": interval})
        if customer_id:
            notes["customerId"] = customer_id

        payload = {
            "amount": to_minor_units(amount),
            "currency": Currency(currency).value,
            "receipt": receipt,
            "notes": self._clean_notes(notes),
        }
        logger.info(
            f"Creating Razorpay order with amount: {payload['amount']} paise "
            f"({amount} {Currency(currency).value})"
        )
        order = await self._request("POST", "/orders", payload)

        logger.info(f"Created Razorpay order {order['id']} for amount {amount}")
        return GatewayCheckout(
            provider=self.provider,
            reference_id=order["id"],
            amount=amount,
            currency=currency,
            receipt=receipt,
            key_id=self.key_id,
        )

    # Payment verification

    def verify_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        """Check the checkout callback signature in constant time."""
        if not signature or not self.key_secret:
            return False
        expected = compute_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected, signature)

    async def verify_payment(
        self, *, order_id: str, payment_id: str, signature: Optional[str] = None
    ) -> VerifiedPayment:
        """Verify the signature, then require the payment to be captured.

        The order is fetched as well; its notes are the details recorded when it
        was created.
        """
        if not self.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Invalid payment signature for order {order_id}")
            raise PaymentVerificationFailedError()

        payment = await self._request("GET", f"/payments/{payment_id}")
        if payment.get("order_id") and payment["order_id"] != order_id:
            raise PaymentVerificationFailedError(
                f"Payment {payment_id} does not belong to order {order_id}"
            )

        status = payment.get("status")
        if status != "captured":
            raise PaymentNotConfirmedError(provider="RAZORPAY", payment_status=status)

        order = await self._request("GET", f"/orders/{order_id}")

        logger.info(f"Payment signature verified successfully for order {order_id}")
        return VerifiedPayment(
            provider=self.provider,
            payment_id=payment_id,
            status=status,
            amount_paid=Decimal(payment.get("amount") or 0) / 100,
            currency=payment.get("currency"),
            order_id=order_id,
            customer_id=payment.get("customer_id"),
            payment_method=payment.get("method"),
            metadata={str(k): str(v) for k, v in (order.get("notes") or {}).items()},
        )

    async def get_payment_status(self, payment_id: str) -> str:
        """Status of a payment, e.g. ``captured`` or ``failed``."""
        payment = await self._request("GET", f"/payments/{payment_id}")
        return payment.get("status")

    # Subscription operations

    async def cancel_remote_subscription(self, subscription_id: str) -> None:
        """Cancel a Razorpay subscription immediately."""
        await self._request(
            "POST", f"/subscriptions/{subscription_id}/cancel", {"cancel_at_cycle_end": 0}
        )
        logger.info(f"Cancelled Razorpay subscription {subscription_id}")
