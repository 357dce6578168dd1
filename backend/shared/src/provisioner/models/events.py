"""Webhook event models.

VerifiedPayload is only produced by the signature verifier, and the event
decoder only accepts a VerifiedPayload, so a VerifiedEvent always stems from
a body whose signature checked out.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


class VerifiedPayload(BaseModel):
    """Raw request body that passed signature verification."""

    model_config = ConfigDict(frozen=True)

    body: bytes = Field(..., description="Exact bytes received, never re-serialized")
    signed_at: int = Field(..., description="Timestamp embedded in the signature header")
    payload_hash: str = Field(..., description="SHA-256 hex digest of the body")


class StripeEventData(BaseModel):
    """The `data` member of a Stripe event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource: Any = Field(default=None, alias="object")


class StripeEventEnvelope(BaseModel):
    """Top-level shape of a Stripe event, as far as the decoder needs it."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, examples=["evt_1ABC123DEF456"])
    type: str = Field(..., min_length=1, examples=["checkout.session.completed"])
    created: int | None = Field(default=None, description="Unix timestamp of the event")
    data: StripeEventData = Field(default_factory=StripeEventData)


class CheckoutResource(BaseModel):
    """The parts of a completed Checkout Session needed for provisioning."""

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(..., examples=["cs_test_abc123"])
    customer_email: str | None = Field(
        default=None,
        description="Resolved email; None when neither email field is present",
    )
    subscription_id: str | None = Field(default=None, examples=["sub_1ABC123"])
    customer_id: str | None = Field(default=None, examples=["cus_1ABC123"])


class VerifiedEvent(BaseModel):
    """A decoded event whose payload passed signature verification."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    occurred_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    checkout: CheckoutResource | None = None
    handled: bool = False
    payload_hash: str
