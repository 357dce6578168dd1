"""Standard error codes for the webhook provisioning pipeline.

Every failure that ends a request early is expressed as a WebhookError
carrying one of these codes. The API layer maps codes to HTTP status.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes for webhook ingestion and provisioning."""

    # Signature verification (ERR_SIG_001-ERR_SIG_004)
    MISSING_SIGNATURE = "ERR_SIG_001"
    SECRET_NOT_CONFIGURED = "ERR_SIG_002"
    SIGNATURE_MISMATCH = "ERR_SIG_003"
    STALE_TIMESTAMP = "ERR_SIG_004"

    # Decoding and validation (ERR_EVT_001-ERR_EVT_002)
    MALFORMED_PAYLOAD = "ERR_EVT_001"
    MISSING_EMAIL = "ERR_EVT_002"

    # Provisioning (ERR_PRV_001-ERR_PRV_004)
    DUPLICATE_ACCOUNT = "ERR_PRV_001"
    STORE_UNAVAILABLE = "ERR_PRV_002"
    STORE_REJECTED = "ERR_PRV_003"
    EVENT_IN_PROGRESS = "ERR_PRV_004"

    # Process configuration
    CONFIGURATION_MISSING = "ERR_CFG_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_SIGNATURE: "No signature found in request",
    ErrorCode.SECRET_NOT_CONFIGURED: "Webhook secret not configured",
    ErrorCode.SIGNATURE_MISMATCH: "Webhook signature verification failed",
    ErrorCode.STALE_TIMESTAMP: "Webhook timestamp outside the tolerance window",
    ErrorCode.MALFORMED_PAYLOAD: "Malformed webhook payload",
    ErrorCode.MISSING_EMAIL: "No customer email found in session",
    ErrorCode.DUPLICATE_ACCOUNT: "An account already exists for this email",
    ErrorCode.STORE_UNAVAILABLE: "Provisioning store temporarily unavailable",
    ErrorCode.STORE_REJECTED: "Provisioning store rejected the request",
    ErrorCode.EVENT_IN_PROGRESS: "Event is still being processed by another delivery",
    ErrorCode.CONFIGURATION_MISSING: "Provisioning service is not configured",
}

# Recovery suggestions for operators
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.MISSING_SIGNATURE: "Send the Stripe-Signature header with the event",
    ErrorCode.SECRET_NOT_CONFIGURED: "Set STRIPE_WEBHOOK_SECRET or the SSM webhook_secret parameter",
    ErrorCode.SIGNATURE_MISMATCH: "Verify the webhook secret matches the Stripe endpoint",
    ErrorCode.STALE_TIMESTAMP: "Check clock skew or replayed deliveries",
    ErrorCode.MALFORMED_PAYLOAD: "Inspect the raw event in the Stripe dashboard",
    ErrorCode.MISSING_EMAIL: "Collect the customer email at checkout",
    ErrorCode.DUPLICATE_ACCOUNT: "Reconcile the existing account manually",
    ErrorCode.STORE_UNAVAILABLE: "Stripe will redeliver the event; check store health",
    ErrorCode.STORE_REJECTED: "Reconcile the account and subscription manually",
    ErrorCode.EVENT_IN_PROGRESS: "Stripe will redeliver the event and receive the recorded outcome",
    ErrorCode.CONFIGURATION_MISSING: "Set COGNITO_USER_POOL_ID and restart the service",
}


class ErrorResponse(BaseModel):
    """JSON body returned for every failed webhook request."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error: str
    error_code: ErrorCode
    details: Optional[str] = None
    recovery: str

    @classmethod
    def from_code(cls, code: ErrorCode, details: Optional[str] = None) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error=ERROR_MESSAGES[code],
            error_code=code,
            details=details,
            recovery=ERROR_RECOVERY[code],
        )


class WebhookError(Exception):
    """Exception raised when a webhook request cannot be processed.

    Caught by the API exception handlers and rendered as an ErrorResponse.
    """

    def __init__(self, code: ErrorCode, details: Optional[str] = None):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message if details is None else f"{self.message}: {details}")

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class StoreError(Exception):
    """Raised by the account and subscription store clients.

    Attributes:
        transient: True when a later redelivery may succeed (network fault,
            throttling, outage). False for logical rejections that will fail
            the same way again.
        code: Underlying AWS error code, if any.
    """

    def __init__(self, message: str, *, transient: bool, code: str | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.code = code


class AccountExistsError(StoreError):
    """The identity store already holds an account for the email."""

    def __init__(self, email: str) -> None:
        super().__init__(
            f"Account already exists for {email}",
            transient=False,
            code="UsernameExistsException",
        )
        self.email = email
