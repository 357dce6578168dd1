"""Provisioning models: records, idempotency entries and outcomes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import FailureReason, OutcomeKind, ProvisioningStage, ProvisioningStatus


class AccountResult(BaseModel):
    """Result of ensuring an account exists in the identity store."""

    model_config = ConfigDict(frozen=True)

    account_id: str = Field(..., description="Cognito user sub")
    created: bool = Field(..., description="False when an existing account was reused")


class ProvisioningRecord(BaseModel):
    """Subscription record linking an account to a Stripe subscription.

    Persisted to the provisioning-records table.
    """

    record_id: str = Field(..., examples=["SUB-3F2A9C81D04E"])
    email: str
    subscription_id: str | None = Field(default=None, examples=["sub_1ABC123"])
    account_id: str | None = Field(default=None, description="Cognito user sub")
    status: ProvisioningStatus = ProvisioningStatus.PENDING
    created_at: datetime
    event_id: str | None = None
    checkout_session_id: str | None = None

    def to_item(self) -> dict[str, Any]:
        """Serialize to a DynamoDB item, dropping empty attributes."""
        return {k: v for k, v in self.model_dump(mode="json").items() if v is not None}


class ProvisioningOutcome(BaseModel):
    """Consolidated outcome of one event's trip through the state machine."""

    kind: OutcomeKind
    event_id: str
    event_type: str
    stage: ProvisioningStage = Field(..., description="Last state reached")
    failed_stage: ProvisioningStage | None = Field(
        default=None,
        description="State whose transition failed, for Failed outcomes",
    )
    reason: FailureReason | None = None
    retryable: bool = False
    message: str | None = None
    email: str | None = None
    account_id: str | None = None
    account_created: bool | None = None
    subscription_id: str | None = None
    record_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind != OutcomeKind.FAILED

    def to_item(self) -> dict[str, Any]:
        """Serialize for storage inside an idempotency entry."""
        return {k: v for k, v in self.model_dump(mode="json").items() if v is not None}


class IdempotencyEntry(BaseModel):
    """Row in the webhook-events table, keyed by Stripe event ID."""

    event_id: str
    event_type: str
    first_seen_at: datetime
    payload_hash: str
    reserved_until: int = Field(..., description="Unix time after which the lease is abandoned")
    reservation_token: str | None = None
    attempts: int = 1
    outcome: ProvisioningOutcome | None = None
    last_failure: ProvisioningOutcome | None = Field(
        default=None,
        description="Most recent retryable failure, kept while the event awaits redelivery",
    )
    completed_at: datetime | None = None


class Reservation(BaseModel):
    """Answer of the idempotency guard for one delivery."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    proceed: bool
    token: str | None = Field(default=None, description="Identifies the holder of the lease")
    prior_outcome: ProvisioningOutcome | None = Field(
        default=None,
        description="Recorded outcome of the first delivery; None while still in flight",
    )
    last_failure: ProvisioningOutcome | None = Field(
        default=None,
        description="Retryable failure left by an earlier attempt this delivery takes over",
    )

    @property
    def already_processed(self) -> bool:
        return not self.proceed
