"""Provisioning orchestrator for completed checkouts.

State machine per event:

    RECEIVED -> VALIDATED -> ACCOUNT_ENSURED -> SUBSCRIPTION_PERSISTED -> ACKNOWLEDGED
         \\           \\               \\                    \\
          +-----------+---------------+--------------------+--> Failed(stage, reason)

Event types other than checkout.session.completed go straight from
RECEIVED to ACKNOWLEDGED. Each stage returns either its product or a
Failed outcome; run() never raises.

An account created before a failed subscription write is left in place.
Deleting it could remove a legitimate account under a race; the failure
is logged with enough detail to reconcile by hand, and a redelivery
reuses the account.
"""

import datetime as dt
from typing import Callable

from provisioner.models.enums import (
    FailureReason,
    OutcomeKind,
    ProvisioningStage,
    ProvisioningStatus,
)
from provisioner.models.errors import AccountExistsError, StoreError
from provisioner.models.events import CheckoutResource, VerifiedEvent
from provisioner.models.provisioning import AccountResult, ProvisioningOutcome, ProvisioningRecord
from provisioner.services.account_store import AccountStore
from provisioner.services.subscription_store import SubscriptionStore, record_id_for
from provisioner.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class ProvisioningOrchestrator:
    """Drives account creation and subscription persistence for one event."""

    def __init__(
        self,
        accounts: AccountStore,
        subscriptions: SubscriptionStore,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            accounts: Identity store client
            subscriptions: Subscription store client
            clock: Source of record timestamps (injectable for tests)
        """
        self._accounts = accounts
        self._subscriptions = subscriptions
        self._clock = clock

    def run(
        self,
        event: VerifiedEvent,
        known_account_id: str | None = None,
    ) -> ProvisioningOutcome:
        """Process one verified event to a terminal state.

        Args:
            event: Decoded event that already passed the idempotency guard
            known_account_id: Account created by an earlier, failed attempt
                at this event; an existing account with this sub is its own

        Returns:
            ProvisioningOutcome describing the terminal state
        """
        if not event.handled or event.checkout is None:
            log_webhook_event(logger, event.event_type, event.event_id, result="skipped")
            return ProvisioningOutcome(
                kind=OutcomeKind.IGNORED,
                event_id=event.event_id,
                event_type=event.event_type,
                stage=ProvisioningStage.ACKNOWLEDGED,
                message=f"Event type '{event.event_type}' not handled",
            )

        checkout = event.checkout

        # RECEIVED -> VALIDATED
        email = self._validate(checkout)
        if email is None:
            return self._failed(
                event,
                checkout,
                reached=ProvisioningStage.RECEIVED,
                failed_stage=ProvisioningStage.VALIDATED,
                reason=FailureReason.MISSING_EMAIL,
                retryable=False,
                message="No customer email found in session",
            )

        # VALIDATED -> ACCOUNT_ENSURED
        account = self._ensure_account(event, checkout, email, known_account_id)
        if isinstance(account, ProvisioningOutcome):
            return account

        # ACCOUNT_ENSURED -> SUBSCRIPTION_PERSISTED
        record = self._persist_subscription(event, checkout, email, account)
        if isinstance(record, ProvisioningOutcome):
            return record

        # SUBSCRIPTION_PERSISTED -> ACKNOWLEDGED
        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            result="success",
            email=email,
            account_id=account.account_id,
            subscription_id=checkout.subscription_id,
            record_id=record.record_id,
            account_created=account.created,
        )
        return ProvisioningOutcome(
            kind=OutcomeKind.PROVISIONED,
            event_id=event.event_id,
            event_type=event.event_type,
            stage=ProvisioningStage.ACKNOWLEDGED,
            message="Account provisioned" if account.created else "Existing account linked",
            email=email,
            account_id=account.account_id,
            account_created=account.created,
            subscription_id=checkout.subscription_id,
            record_id=record.record_id,
        )

    def _validate(self, checkout: CheckoutResource) -> str | None:
        email = checkout.customer_email
        if email is None or not email.strip():
            return None
        return email.strip()

    def _ensure_account(
        self,
        event: VerifiedEvent,
        checkout: CheckoutResource,
        email: str,
        known_account_id: str | None,
    ) -> AccountResult | ProvisioningOutcome:
        try:
            return self._accounts.ensure_account(email, known_account_id=known_account_id)
        except AccountExistsError:
            return self._failed(
                event,
                checkout,
                reached=ProvisioningStage.VALIDATED,
                failed_stage=ProvisioningStage.ACCOUNT_ENSURED,
                reason=FailureReason.DUPLICATE_ACCOUNT,
                retryable=False,
                message=f"Account already exists for {email}",
                email=email,
            )
        except StoreError as e:
            return self._failed(
                event,
                checkout,
                reached=ProvisioningStage.VALIDATED,
                failed_stage=ProvisioningStage.ACCOUNT_ENSURED,
                reason=(
                    FailureReason.ACCOUNT_STORE_UNAVAILABLE
                    if e.transient
                    else FailureReason.ACCOUNT_STORE_REJECTED
                ),
                retryable=e.transient,
                message=str(e),
                email=email,
            )
        except Exception as e:
            logger.exception("Unexpected error creating account for %s", email)
            return self._failed(
                event,
                checkout,
                reached=ProvisioningStage.VALIDATED,
                failed_stage=ProvisioningStage.ACCOUNT_ENSURED,
                reason=FailureReason.ACCOUNT_STORE_UNAVAILABLE,
                retryable=True,
                message=f"Unexpected error: {e}",
                email=email,
            )

    def _persist_subscription(
        self,
        event: VerifiedEvent,
        checkout: CheckoutResource,
        email: str,
        account: AccountResult,
    ) -> ProvisioningRecord | ProvisioningOutcome:
        record = ProvisioningRecord(
            record_id=record_id_for(checkout.session_id),
            email=email,
            subscription_id=checkout.subscription_id,
            account_id=account.account_id,
            status=ProvisioningStatus.ACTIVE,
            created_at=self._clock(),
            event_id=event.event_id,
            checkout_session_id=checkout.session_id,
        )

        try:
            self._subscriptions.write_record(record)
            return record
        except StoreError as e:
            reason = (
                FailureReason.SUBSCRIPTION_STORE_UNAVAILABLE
                if e.transient
                else FailureReason.SUBSCRIPTION_STORE_REJECTED
            )
            retryable = e.transient
            message = str(e)
        except Exception as e:
            logger.exception("Unexpected error storing record %s", record.record_id)
            reason = FailureReason.SUBSCRIPTION_STORE_UNAVAILABLE
            retryable = True
            message = f"Unexpected error: {e}"

        return self._failed(
            event,
            checkout,
            reached=ProvisioningStage.ACCOUNT_ENSURED,
            failed_stage=ProvisioningStage.SUBSCRIPTION_PERSISTED,
            reason=reason,
            retryable=retryable,
            message=message,
            email=email,
            account=account,
            record_id=record.record_id,
        )

    def _failed(
        self,
        event: VerifiedEvent,
        checkout: CheckoutResource,
        *,
        reached: ProvisioningStage,
        failed_stage: ProvisioningStage,
        reason: FailureReason,
        retryable: bool,
        message: str,
        email: str | None = None,
        account: AccountResult | None = None,
        record_id: str | None = None,
    ) -> ProvisioningOutcome:
        """Build a Failed(stage, reason) outcome and log it for reconciliation."""
        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            result="error" if retryable or account is not None else "rejected",
            email=email,
            account_id=account.account_id if account else None,
            subscription_id=checkout.subscription_id,
            error=message,
            stage=failed_stage.value,
            reason=reason.value,
            session_id=checkout.session_id,
            record_id=record_id,
            retryable=retryable,
        )
        return ProvisioningOutcome(
            kind=OutcomeKind.FAILED,
            event_id=event.event_id,
            event_type=event.event_type,
            stage=reached,
            failed_stage=failed_stage,
            reason=reason,
            retryable=retryable,
            message=message,
            email=email,
            account_id=account.account_id if account else None,
            account_created=account.created if account else None,
            subscription_id=checkout.subscription_id,
            record_id=record_id,
        )
