"""Configuration settings for the Seatwise billing core.

Wraps environment variables and provides defaults.
"""

from typing import Optional

from pydantic import PostgresDsn, ValidationInfo, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        LOCAL_DEVELOPMENT (bool): Whether the application is running locally.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prod).
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        POSTGRES_HOST (str): The PostgreSQL server hostname.
        POSTGRES_DB (str): The PostgreSQL database name.
        POSTGRES_USER (str): The PostgreSQL username.
        POSTGRES_PASSWORD (str): The PostgreSQL password.
        SQLALCHEMY_ASYNC_DATABASE_URI (Optional[PostgresDsn]): The SQLAlchemy async database URI.
        REDIS_HOST (str): The Redis server hostname.
        REDIS_PORT (int): The Redis server port.
        REDIS_PASSWORD (Optional[str]): The Redis password (if authentication is enabled).
        REDIS_DB (int): The Redis database number.
        QUOTA_CACHE_PREFIX (str): Key prefix of the per-organization quota/limit cache.
        STRIPE_ENABLED (bool): Whether the Stripe gateway is enabled.
        STRIPE_SECRET_KEY (Optional[str]): The Stripe secret API key.
        RAZORPAY_ENABLED (bool): Whether the Razorpay gateway is enabled.
        RAZORPAY_KEY_ID (Optional[str]): The Razorpay key id.
        RAZORPAY_KEY_SECRET (Optional[str]): The Razorpay key secret, also used for
            payment signature verification.
        RAZORPAY_API_BASE (str): Base URL of the Razorpay REST API.
        PAYMENT_GATEWAY_TIMEOUT_SECONDS (float): Timeout applied to every gateway call.
        CHECKOUT_SUCCESS_URL (Optional[str]): Override for the checkout success redirect.
        CHECKOUT_CANCEL_URL (Optional[str]): Override for the checkout cancel redirect.
        TRIAL_DURATION_DAYS (int): Length of the signup trial.
        RENEWAL_NOTICE_DAYS (int): How early renewal invoices are generated.
        INVOICE_DUE_DAYS (int): Days after the period end a renewal invoice is due.
        IDEMPOTENCY_WINDOW_SECONDS (int): Window in which a repeated verification is
            treated as a duplicate.
        INCOMPLETE_ROLLBACK_WINDOW_SECONDS (int): Age under which an INCOMPLETE subscription
            is deleted on payment failure.
        EXPIRY_SWEEP_INTERVAL_SECONDS (int): Pause between expiry sweeps of the scheduler loop.
    """

    PROJECT_NAME: str = "Seatwise"
    LOCAL_DEVELOPMENT: bool = False
    ENVIRONMENT: str = "local"
    FRONTEND_LOCAL_DEVELOPMENT_PORT: int = 8080
    APP_FULL_URL: Optional[str] = None

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_DB: str = "seatwise"
    POSTGRES_USER: str = "seatwise"
    POSTGRES_PASSWORD: str = ""
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[PostgresDsn] = None

    # Redis configuration
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0
    QUOTA_CACHE_PREFIX: str = "quota"

    # Payment gateways
    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: Optional[str] = None

    RAZORPAY_ENABLED: bool = False
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_API_BASE: str = "https://api.razorpay.com/v1"

    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 20.0
    CHECKOUT_SUCCESS_URL: Optional[str] = None
    CHECKOUT_CANCEL_URL: Optional[str] = None

    # Billing rules
    TRIAL_DURATION_DAYS: int = 7
    RENEWAL_NOTICE_DAYS: int = 7
    INVOICE_DUE_DAYS: int = 7
    IDEMPOTENCY_WINDOW_SECONDS: int = 120
    INCOMPLETE_ROLLBACK_WINDOW_SECONDS: int = 3600
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 3600

    @field_validator("STRIPE_SECRET_KEY", mode="before")
    def validate_stripe_settings(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Validate Stripe settings when STRIPE_ENABLED is True.

        Args:
        ----
            v (Optional[str]): The Stripe secret key.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            Optional[str]: The validated key.

        Raises:
        ------
            ValueError: If STRIPE_ENABLED is True and the key is empty.
        """
        if info.data.get("STRIPE_ENABLED", False) and not v:
            raise ValueError("STRIPE_SECRET_KEY must be set when STRIPE_ENABLED is True")
        return v

    @field_validator("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", mode="before")
    def validate_razorpay_settings(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Validate Razorpay settings when RAZORPAY_ENABLED is True.

        Args:
        ----
            v (Optional[str]): The Razorpay credential.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            Optional[str]: The validated credential.
        """
        if info.data.get("RAZORPAY_ENABLED", False) and not v:
            raise ValueError(f"{info.field_name} must be set when RAZORPAY_ENABLED is True")
        return v

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> PostgresDsn:
        """Build the SQLAlchemy database URI.

        Args:
        ----
            v (Optional[str]): The value of the SQLALCHEMY_DATABASE_URI setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            PostgresDsn: The assembled SQLAlchemy async database URI.

        """
        if isinstance(v, str):
            return v

        return PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD") or None,
            host=info.data.get("POSTGRES_HOST", "localhost"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    @property
    def app_url(self) -> str:
        """The app URL.

        Returns:
            str: The app URL.
        """
        if self.APP_FULL_URL:
            return self.APP_FULL_URL

        if self.ENVIRONMENT == "local":
            return f"http://localhost:{self.FRONTEND_LOCAL_DEVELOPMENT_PORT}"
        if self.ENVIRONMENT == "prd":
            return "https://app.seatwise.io"
        return f"https://app.{self.ENVIRONMENT}-seatwise.io"

    @property
    def checkout_success_url(self) -> str:
        """Where the Stripe checkout redirects after payment."""
        return self.CHECKOUT_SUCCESS_URL or (
            f"{self.app_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}"
        )

    @property
    def checkout_cancel_url(self) -> str:
        """Where the Stripe checkout redirects when the user aborts."""
        return self.CHECKOUT_CANCEL_URL or f"{self.app_url}/billing/cancel"


settings = Settings()
