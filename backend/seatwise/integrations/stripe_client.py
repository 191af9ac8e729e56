"""Stripe API client for billing operations.

This module provides a clean interface to Stripe API,
handling all direct Stripe interactions without business logic.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

import stripe

from seatwise.core.config import settings
from seatwise.core.exceptions import (
    ExternalServiceError,
    PaymentNotConfirmedError,
    PaymentVerificationFailedError,
)
from seatwise.core.logging import logger
from seatwise.integrations.payment_gateway import PaymentGateway, to_minor_units, with_timeout
from seatwise.schemas.enums import Currency, PaymentProvider
from seatwise.schemas.organization import Organization
from seatwise.schemas.payment import GatewayCheckout, GatewayCustomer, VerifiedPayment


def _field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object or plain dict."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _id_of(value: Any) -> Optional[str]:
    """Stripe returns either an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _metadata_of(obj: Any) -> Dict[str, str]:
    """Metadata of a Stripe object as a plain dict."""
    metadata = _field(obj, "metadata")
    if not metadata:
        return {}
    if hasattr(metadata, "to_dict"):
        metadata = metadata.to_dict()
    return {str(key): str(value) for key, value in dict(metadata).items()}


class StripeClient(PaymentGateway):
    """Client for Stripe API operations."""

    provider = PaymentProvider.STRIPE

    def __init__(self):
        """Initialize Stripe client."""
        if not settings.STRIPE_ENABLED:
            raise ValueError("Stripe is not enabled in settings")

        stripe.api_key = settings.STRIPE_SECRET_KEY

    def _sanitize_text(self, text: str) -> str:
        """Sanitize text for Stripe API (ASCII-only)."""
        if not text:
            return text

        try:
            return text.encode("ascii", "replace").decode("ascii")
        except UnicodeError:
            return "".join(char for char in text if ord(char) < 128)

    def _clean_metadata(self, metadata: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Clean metadata values for Stripe.

        Stripe caps metadata values at 500 characters.
        """
        if not metadata:
            return {}

        return {
            self._sanitize_text(str(key)): self._sanitize_text(str(value))[:500]
            for key, value in metadata.items()
            if value is not None
        }

    # Customer operations

    async def create_customer(self, organization: Organization) -> GatewayCustomer:
        """Create a Stripe customer for an organization."""
        email = organization.billing_email or organization.domain
        try:
            params: Dict[str, Any] = {
                "name": self._sanitize_text(organization.name),
                "metadata": self._clean_metadata(
                    {"organizationId": organization.id, "domain": organization.domain}
                ),
            }
            if email:
                params["email"] = self._sanitize_text(email)
            if organization.phone:
                params["phone"] = organization.phone

            customer = await with_timeout(stripe.Customer.create_async(**params), "Stripe")
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to create customer: {str(e)}",
            ) from e

        logger.info(f"Created Stripe customer {customer.id} for organization {organization.id}")
        return GatewayCustomer(provider=self.provider, customer_id=customer.id, email=email)

    # Checkout operations

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
        """Create a checkout session.

        With an ``interval`` the session is in subscription mode and Stripe keeps
        charging the same amount every month/year; otherwise it is a one-time payment.
        """
        clean_metadata = self._clean_metadata(metadata)
        price_data: Dict[str, Any] = {
            "currency": Currency(currency).value.lower(),
            "product_data": {"name": self._sanitize_text(description or "Subscription")},
            "unit_amount": to_minor_units(amount),
        }
        params: Dict[str, Any] = {
            "mode": "subscription" if interval else "payment",
            "payment_method_types": ["card"],
            "success_url": self._sanitize_text(settings.checkout_success_url),
            "cancel_url": self._sanitize_text(settings.checkout_cancel_url),
            "metadata": clean_metadata,
            "line_items": [{"price_data": price_data, "quantity": 1}],
        }
        if interval:
            price_data["recurring"] = {"interval": interval}
            params["subscription_data"] = {"metadata": clean_metadata}
        else:
            params["payment_intent_data"] = {"metadata": clean_metadata}
        if customer_id:
            params["customer"] = customer_id

        try:
            session = await with_timeout(stripe.checkout.Session.create_async(**params), "Stripe")
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to create checkout session: {str(e)}",
            ) from e

        logger.info(
            f"Created Stripe checkout session {session.id} (mode: {params['mode']}) "
            f"for amount {amount} {Currency(currency).value}"
        )
        return GatewayCheckout(
            provider=self.provider,
            reference_id=session.id,
            amount=amount,
            currency=currency,
            checkout_url=_field(session, "url"),
            receipt=receipt,
        )

    # Payment verification

    async def verify_payment(
        self, *, order_id: str, payment_id: str, signature: Optional[str] = None
    ) -> VerifiedPayment:
        """Verify a Stripe payment.

        ``pi_`` ids are checked as payment intents (status ``succeeded``); anything
        else is treated as a checkout session id (``payment_status == "paid"``).
        The returned metadata is the one attached when the checkout was created; an
        intent without metadata takes it from the session named by ``order_id``.
        """
        reference = payment_id or order_id
        if not reference:
            raise PaymentVerificationFailedError("Missing Stripe payment reference")

        try:
            if reference.startswith("pi_"):
                intent = await with_timeout(
                    stripe.PaymentIntent.retrieve_async(reference), "Stripe"
                )
                status = _field(intent, "status")
                if status != "succeeded":
                    raise PaymentNotConfirmedError(provider="STRIPE", payment_status=status)

                metadata = _metadata_of(intent)
                if not metadata and order_id and order_id != reference:
                    session = await with_timeout(
                        stripe.checkout.Session.retrieve_async(order_id), "Stripe"
                    )
                    if _id_of(_field(session, "payment_intent")) != intent.id:
                        raise PaymentVerificationFailedError(
                            f"Payment {intent.id} does not belong to checkout {order_id}"
                        )
                    metadata = _metadata_of(session)
                return VerifiedPayment(
                    provider=self.provider,
                    payment_id=intent.id,
                    status=status,
                    amount_paid=Decimal(_field(intent, "amount_received") or 0) / 100,
                    currency=_field(intent, "currency"),
                    order_id=order_id,
                    payment_intent_id=intent.id,
                    customer_id=_id_of(_field(intent, "customer")),
                    payment_method="card",
                    metadata=metadata,
                )

            session = await with_timeout(
                stripe.checkout.Session.retrieve_async(reference), "Stripe"
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to verify payment: {str(e)}",
            ) from e

        status = _field(session, "payment_status")
        if status != "paid":
            raise PaymentNotConfirmedError(provider="STRIPE", payment_status=status)

        return VerifiedPayment(
            provider=self.provider,
            payment_id=session.id,
            status=status,
            amount_paid=Decimal(_field(session, "amount_total") or 0) / 100,
            currency=_field(session, "currency"),
            order_id=order_id or session.id,
            payment_intent_id=_id_of(_field(session, "payment_intent")),
            customer_id=_id_of(_field(session, "customer")),
            remote_subscription_id=_id_of(_field(session, "subscription")),
            payment_method="card",
            metadata=_metadata_of(session),
        )

    async def get_payment_status(self, payment_id: str) -> str:
        """Status of a payment intent or checkout session."""
        try:
            if payment_id.startswith("pi_"):
                intent = await with_timeout(
                    stripe.PaymentIntent.retrieve_async(payment_id), "Stripe"
                )
                return _field(intent, "status")
            session = await with_timeout(
                stripe.checkout.Session.retrieve_async(payment_id), "Stripe"
            )
            return _field(session, "payment_status")
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to retrieve payment status: {str(e)}",
            ) from e

    # Subscription operations

    async def cancel_remote_subscription(self, subscription_id: str) -> None:
        """Cancel a Stripe subscription immediately."""
        try:
            await with_timeout(stripe.Subscription.cancel_async(subscription_id), "Stripe")
        except stripe.StripeError as e:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Failed to cancel subscription: {str(e)}",
            ) from e
        logger.info(f"Cancelled Stripe subscription {subscription_id}")
