"""Pydantic models for webhook events and provisioning state."""

from .enums import (
    AccountConflictPolicy,
    FailureReason,
    OutcomeKind,
    ProvisioningStage,
    ProvisioningStatus,
)
from .errors import (
    AccountExistsError,
    ErrorCode,
    ErrorResponse,
    StoreError,
    WebhookError,
)
from .events import (
    CHECKOUT_SESSION_COMPLETED,
    CheckoutResource,
    StripeEventEnvelope,
    VerifiedEvent,
    VerifiedPayload,
)
from .provisioning import (
    AccountResult,
    IdempotencyEntry,
    ProvisioningOutcome,
    ProvisioningRecord,
    Reservation,
)

__all__ = [
    # Enums
    "AccountConflictPolicy",
    "FailureReason",
    "OutcomeKind",
    "ProvisioningStage",
    "ProvisioningStatus",
    # Errors
    "AccountExistsError",
    "ErrorCode",
    "ErrorResponse",
    "StoreError",
    "WebhookError",
    # Events
    "CHECKOUT_SESSION_COMPLETED",
    "CheckoutResource",
    "StripeEventEnvelope",
    "VerifiedEvent",
    "VerifiedPayload",
    # Provisioning
    "AccountResult",
    "IdempotencyEntry",
    "ProvisioningOutcome",
    "ProvisioningRecord",
    "Reservation",
]
