"""Webhook pipeline: verify, decode, guard, provision, answer.

Failures before provisioning (signature, payload) raise WebhookError and
leave no trace in any store. Once the guard has reserved an event, its
outcome decides the answer Stripe sees:

    provisioned / ignored     -> outcome recorded, 200
    failed, retryable         -> reservation released, 500 (Stripe redelivers)
    failed, missing email     -> outcome recorded, 400 on this delivery only
    failed, other permanent   -> outcome recorded, 200 (manual follow-up)

A redelivery of a recorded event is answered from the recorded outcome,
always with 200. A missing-email event therefore gets 400 once and 200 on
every redelivery after that. A duplicate that arrives while the first
delivery is still in flight gets 409, so Stripe keeps redelivering until an
outcome is recorded or the first delivery releases the event.
"""

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, Field

from provisioner.models.enums import FailureReason, OutcomeKind
from provisioner.models.errors import ErrorCode, WebhookError
from provisioner.models.events import VerifiedEvent
from provisioner.models.provisioning import ProvisioningOutcome, Reservation
from provisioner.services.event_decoder import decode_event
from provisioner.services.idempotency import IdempotencyGuard
from provisioner.services.provisioning import ProvisioningOrchestrator
from provisioner.services.signature import SignatureVerifier
from provisioner.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

# FailureReason -> error code reported in the response body
FAILURE_ERROR_CODES: dict[FailureReason, ErrorCode] = {
    FailureReason.MISSING_EMAIL: ErrorCode.MISSING_EMAIL,
    FailureReason.DUPLICATE_ACCOUNT: ErrorCode.DUPLICATE_ACCOUNT,
    FailureReason.ACCOUNT_STORE_UNAVAILABLE: ErrorCode.STORE_UNAVAILABLE,
    FailureReason.ACCOUNT_STORE_REJECTED: ErrorCode.STORE_REJECTED,
    FailureReason.SUBSCRIPTION_STORE_UNAVAILABLE: ErrorCode.STORE_UNAVAILABLE,
    FailureReason.SUBSCRIPTION_STORE_REJECTED: ErrorCode.STORE_REJECTED,
}


class WebhookResult(BaseModel):
    """HTTP answer for one webhook delivery."""

    status_code: int = 200
    body: dict[str, Any] = Field(default_factory=dict)


def render_outcome(outcome: ProvisioningOutcome) -> dict[str, Any]:
    """Build the JSON body for a terminal outcome.

    The body depends only on the outcome, so a replay of a recorded
    success gets exactly the body of the first delivery.
    """
    if outcome.kind == OutcomeKind.PROVISIONED:
        return {
            "success": True,
            "message": outcome.message,
            "event_id": outcome.event_id,
            "email": outcome.email,
            "account_id": outcome.account_id,
            "subscription_id": outcome.subscription_id,
            "record_id": outcome.record_id,
        }

    if outcome.kind == OutcomeKind.IGNORED:
        return {
            "received": True,
            "event_id": outcome.event_id,
            "event_type": outcome.event_type,
        }

    error_code = FAILURE_ERROR_CODES.get(outcome.reason) if outcome.reason else None
    return {
        "received": True,
        "success": False,
        "event_id": outcome.event_id,
        "event_type": outcome.event_type,
        "error_code": error_code.value if error_code else None,
        "reason": outcome.reason.value if outcome.reason else None,
        "failed_stage": outcome.failed_stage.value if outcome.failed_stage else None,
        "message": outcome.message,
    }


class WebhookHandler:
    """Runs one webhook delivery through the provisioning pipeline."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        guard: IdempotencyGuard,
        orchestrator: ProvisioningOrchestrator,
    ) -> None:
        self._verifier = verifier
        self._guard = guard
        self._orchestrator = orchestrator

    def handle(self, payload: bytes, signature_header: str | None) -> WebhookResult:
        """Process one delivery.

        Args:
            payload: Raw request body, exactly as received
            signature_header: Value of the Stripe-Signature header

        Returns:
            WebhookResult with status code and JSON body

        Raises:
            WebhookError: Verification, decoding, missing email, a duplicate
                still in flight, or a transient failure Stripe should redeliver
        """
        verified = self._verifier.verify(payload, signature_header)
        event = decode_event(verified)
        log_webhook_event(logger, event.event_type, event.event_id, result="received")

        if not event.handled:
            # Nothing to provision, nothing to guard
            outcome = self._orchestrator.run(event)
            return WebhookResult(body=render_outcome(outcome))

        reservation = self._reserve(event)
        if reservation.already_processed:
            return self._replay(event, reservation)

        earlier = reservation.last_failure
        outcome = self._orchestrator.run(
            event, known_account_id=earlier.account_id if earlier else None
        )

        if outcome.kind == OutcomeKind.FAILED and outcome.retryable:
            self._release(reservation, outcome)
            raise WebhookError(ErrorCode.STORE_UNAVAILABLE, details=outcome.message)

        self._complete(event, outcome)

        if outcome.reason == FailureReason.MISSING_EMAIL:
            raise WebhookError(ErrorCode.MISSING_EMAIL, details=f"session event {event.event_id}")

        return WebhookResult(body=render_outcome(outcome))

    def _reserve(self, event: VerifiedEvent) -> Reservation:
        try:
            return self._guard.reserve(event)
        except (ClientError, BotoCoreError) as e:
            logger.error("Idempotency reservation failed for event %s: %s", event.event_id, e)
            raise WebhookError(ErrorCode.STORE_UNAVAILABLE, details="idempotency store") from e

    def _complete(self, event: VerifiedEvent, outcome: ProvisioningOutcome) -> None:
        try:
            self._guard.complete(event.event_id, outcome)
        except (ClientError, BotoCoreError) as e:
            # Side effects already happened; a redelivery after lease expiry
            # reuses the account and finds the record by its key.
            logger.error("Failed to record outcome for event %s: %s", event.event_id, e)

    def _release(self, reservation: Reservation, outcome: ProvisioningOutcome) -> None:
        try:
            self._guard.release(reservation, outcome)
        except (ClientError, BotoCoreError) as e:
            # The lease still expires on its own
            logger.error("Failed to release event %s: %s", reservation.event_id, e)

    def _replay(self, event: VerifiedEvent, reservation: Reservation) -> WebhookResult:
        prior = reservation.prior_outcome
        if prior is None:
            log_webhook_event(
                logger,
                event.event_type,
                event.event_id,
                result="duplicate",
                status="in_progress",
            )
            raise WebhookError(ErrorCode.EVENT_IN_PROGRESS, details=f"event {event.event_id}")

        log_webhook_event(
            logger,
            event.event_type,
            event.event_id,
            result="duplicate",
            prior_outcome=prior.kind.value,
        )
        return WebhookResult(body=render_outcome(prior))
