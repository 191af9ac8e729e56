"""Shared exceptions module."""

from typing import Optional


class SeatwiseException(Exception):
    """Base exception for Seatwise billing services."""

    def __init__(self, message: Optional[str] = "Billing operation failed"):
        """Create a new SeatwiseException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class NotFoundException(SeatwiseException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        super().__init__(message)


class PlanNotFoundError(NotFoundException):
    """Raised when a subscription plan does not exist or is inactive."""

    pass


class OrganizationNotFoundError(NotFoundException):
    """Raised when an organization does not exist."""

    pass


class SubscriptionNotFoundError(NotFoundException):
    """Raised when an organization has no subscription matching the request."""

    pass


class InvoiceNotFoundError(NotFoundException):
    """Raised when an invoice is not found."""

    pass


class InvalidInputError(SeatwiseException):
    """Exception raised for invalid billing input such as a seat count below one."""

    def __init__(self, message: Optional[str] = "Invalid input"):
        """Create a new InvalidInputError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        super().__init__(message)


class ConflictError(SeatwiseException):
    """Exception raised when a write would violate a uniqueness rule.

    Covers duplicate live subscriptions for one organization and invoice number
    collisions.
    """

    def __init__(self, message: Optional[str] = "Conflicting billing state"):
        """Create a new ConflictError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        super().__init__(message)


class InvalidStateError(SeatwiseException):
    """Exception raised when an object is in an invalid state.

    Used when multiple services are involved and the state of one service is invalid,
    in relation to the other services.
    """

    def __init__(self, message: Optional[str] = "Object is in an invalid state"):
        """Create a new InvalidStateError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        super().__init__(message)


class InvalidStateTransitionError(InvalidStateError):
    """Raised when an action is not allowed for the subscription's current status."""

    def __init__(
        self,
        current_status: Optional[str] = None,
        action: Optional[str] = None,
        message: Optional[str] = None,
    ):
        """Create a new InvalidStateTransitionError instance.

        Args:
        ----
            current_status (str, optional): Status the subscription is in.
            action (str, optional): The attempted action or target status.
            message (str, optional): Custom error message. If not provided, generates one.

        """
        if message is None:
            if current_status and action:
                message = f"Cannot {action} while subscription is {current_status}"
            else:
                message = "Invalid subscription state transition"

        self.current_status = current_status
        self.action = action
        super().__init__(message)


class ContactSalesRequiredError(SeatwiseException):
    """Raised when a self-serve flow is asked to charge a seat count above the top tier."""

    def __init__(self, seat_count: Optional[int] = None, message: Optional[str] = None):
        """Create a new ContactSalesRequiredError instance.

        Args:
        ----
            seat_count (int, optional): The requested seat count.
            message (str, optional): Custom error message. If not provided, generates one.

        """
        if message is None:
            message = "Seat count exceeds self-serve pricing, please contact sales"
            if seat_count is not None:
                message = f"{seat_count} seats exceeds self-serve pricing, please contact sales"

        self.seat_count = seat_count
        super().__init__(message)


class PlanPricingNotConfiguredError(SeatwiseException):
    """Raised when an active plan has no price for the requested billing cycle."""

    def __init__(self, plan_name: Optional[str] = None, billing_cycle: Optional[str] = None):
        """Create a new PlanPricingNotConfiguredError instance.

        Args:
        ----
            plan_name (str, optional): Name of the plan.
            billing_cycle (str, optional): The cycle without a price.

        """
        self.plan_name = plan_name
        self.billing_cycle = billing_cycle
        super().__init__(f"Pricing not configured for plan {plan_name} ({billing_cycle} cycle)")


class PaymentNotConfirmedError(SeatwiseException):
    """Raised when the gateway reports a payment that is not captured or paid."""

    def __init__(
        self,
        provider: Optional[str] = None,
        payment_status: Optional[str] = None,
        message: Optional[str] = None,
    ):
        """Create a new PaymentNotConfirmedError instance.

        Args:
        ----
            provider (str, optional): The payment provider.
            payment_status (str, optional): Status reported by the provider.
            message (str, optional): Custom error message. If not provided, generates one.

        """
        if message is None:
            message = f"Payment not completed. Status: {payment_status or 'unknown'}"

        self.provider = provider
        self.payment_status = payment_status
        super().__init__(message)


class PaymentVerificationFailedError(SeatwiseException):
    """Raised when a payment signature or provider status does not match the order."""

    def __init__(self, message: Optional[str] = "Invalid payment signature"):
        """Create a new PaymentVerificationFailedError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        super().__init__(message)


class ExternalServiceError(Exception):
    """Exception raised when an external service fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")
