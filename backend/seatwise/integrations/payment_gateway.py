"""Payment gateway interface and provider registry.

The billing core talks to Stripe and Razorpay only through ``PaymentGateway``.
Every remote call is bounded by ``settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS``.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Dict, Optional, TypeVar

from seatwise.core.config import settings
from seatwise.core.exceptions import ExternalServiceError, InvalidInputError
from seatwise.schemas.enums import Currency, PaymentProvider
from seatwise.schemas.organization import Organization
from seatwise.schemas.payment import GatewayCheckout, GatewayCustomer, VerifiedPayment

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T], service_name: str, timeout: Optional[float] = None
) -> T:
    """Await a gateway call, turning a timeout into ExternalServiceError."""
    timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ExternalServiceError(
            service_name=service_name,
            message=f"Request timed out after {timeout} seconds",
        ) from e


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to cents/paise, at least 1."""
    return max(1, int((Decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)))


class PaymentGateway(ABC):
    """A payment provider that can take a one-off or recurring payment."""

    provider: PaymentProvider

    @abstractmethod
    async def create_customer(self, organization: Organization) -> Optional[GatewayCustomer]:
        """Create (or find) the gateway customer for an organization."""

    @abstractmethod
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
        """Open an order (Razorpay) or checkout session (Stripe) for ``amount``."""

    @abstractmethod
    async def verify_payment(
        self, *, order_id: str, payment_id: str, signature: Optional[str] = None
    ) -> VerifiedPayment:
        """Confirm that a payment was captured/paid.

        Raises:
            PaymentVerificationFailedError: If the signature or order does not match
            PaymentNotConfirmedError: If the payment is not captured/paid
        """

    @abstractmethod
    async def get_payment_status(self, payment_id: str) -> str:
        """Provider-side status of a payment."""

    @abstractmethod
    async def cancel_remote_subscription(self, subscription_id: str) -> None:
        """Cancel a recurring subscription at the provider immediately."""


_gateways: Dict[PaymentProvider, PaymentGateway] = {}


def get_payment_gateway(provider: PaymentProvider) -> PaymentGateway:
    """Return the gateway client for a provider, creating it on first use.

    Raises:
        InvalidInputError: If the provider is not enabled
    """
    provider = PaymentProvider(provider)
    if provider in _gateways:
        return _gateways[provider]

    if provider == PaymentProvider.STRIPE:
        if not settings.STRIPE_ENABLED:
            raise InvalidInputError("Stripe payments are not enabled")
        from seatwise.integrations.stripe_client import StripeClient

        gateway: PaymentGateway = StripeClient()
    else:
        if not settings.RAZORPAY_ENABLED:
            raise InvalidInputError("Razorpay payments are not enabled")
        from seatwise.integrations.razorpay_client import RazorpayClient

        gateway = RazorpayClient()

    _gateways[provider] = gateway
    return gateway
