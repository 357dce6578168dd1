"""Idempotency guard for webhook events.

Stripe delivers events at least once. Before any provisioning work the
guard reserves the event ID with a conditional DynamoDB write; only the
delivery that wins the write proceeds. The condition is evaluated by
DynamoDB, so the guard holds across service instances.

Entry lifecycle:
    reserve  -> row created with a lease (reserved_until), no outcome
    complete -> outcome written once; the row is final from then on
    release  -> lease expired and last_failure kept, so a redelivery can retry

A reservation whose lease ran out without an outcome (process died
mid-flight) can be taken over by the next delivery.
"""

import datetime as dt
import time
import uuid
from typing import Any, Callable

from provisioner.models.events import VerifiedEvent
from provisioner.models.provisioning import IdempotencyEntry, ProvisioningOutcome, Reservation
from provisioner.services.dynamodb import DynamoDBService
from provisioner.utils.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_EVENTS_TABLE = "webhook-events"

_RESERVE_NAMES = {
    "#event_id": "event_id",
    "#event_type": "event_type",
    "#first_seen_at": "first_seen_at",
    "#payload_hash": "payload_hash",
    "#reserved_until": "reserved_until",
    "#reservation_token": "reservation_token",
    "#attempts": "attempts",
    "#outcome": "outcome",
}


class IdempotencyGuard:
    """Reserve-then-complete guard keyed by Stripe event ID."""

    def __init__(
        self,
        db: DynamoDBService,
        lease_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the guard.

        Args:
            db: DynamoDB service holding the webhook-events table
            lease_seconds: How long a reservation blocks other deliveries
            clock: Source of unix time (injectable for tests)
        """
        self._db = db
        self._lease_seconds = lease_seconds
        self._clock = clock

    def reserve(self, event: VerifiedEvent) -> Reservation:
        """Atomically claim an event for processing.

        Args:
            event: The decoded event

        Returns:
            Reservation with proceed=True for the winning delivery, carrying
            the last retryable failure when it takes over a released entry.
            Losers get proceed=False and the recorded outcome (None while
            in flight).
        """
        now = int(self._clock())
        token = uuid.uuid4().hex

        attrs = self._db.update_item(
            WEBHOOK_EVENTS_TABLE,
            {"event_id": event.event_id},
            "SET #event_type = :event_type, "
            "#first_seen_at = if_not_exists(#first_seen_at, :seen_at), "
            "#payload_hash = :payload_hash, "
            "#reserved_until = :reserved_until, "
            "#reservation_token = :token "
            "ADD #attempts :one",
            {
                ":event_type": event.event_type,
                ":seen_at": dt.datetime.fromtimestamp(now, dt.UTC).isoformat(),
                ":payload_hash": event.payload_hash,
                ":reserved_until": now + self._lease_seconds,
                ":token": token,
                ":one": 1,
                ":now": now,
            },
            expression_attribute_names=_RESERVE_NAMES,
            condition_expression=(
                "attribute_not_exists(#event_id) OR "
                "(attribute_not_exists(#outcome) AND #reserved_until < :now)"
            ),
        )

        if attrs is not None:
            if int(attrs.get("attempts", 1)) > 1:
                logger.warning(
                    "Taking over reservation for event %s (attempt %s)",
                    event.event_id,
                    attrs.get("attempts"),
                )
            last_failure = attrs.get("last_failure")
            return Reservation(
                event_id=event.event_id,
                proceed=True,
                token=token,
                last_failure=(
                    ProvisioningOutcome.model_validate(last_failure) if last_failure else None
                ),
            )

        entry = self.get_entry(event.event_id)
        prior = entry.outcome if entry else None
        return Reservation(event_id=event.event_id, proceed=False, prior_outcome=prior)

    def complete(self, event_id: str, outcome: ProvisioningOutcome) -> bool:
        """Record the final outcome of an event. The outcome is write-once.

        Args:
            event_id: Stripe event ID
            outcome: Outcome to record

        Returns:
            True if recorded, False if an outcome was already present
        """
        now = dt.datetime.fromtimestamp(int(self._clock()), dt.UTC)
        attrs = self._db.update_item(
            WEBHOOK_EVENTS_TABLE,
            {"event_id": event_id},
            "SET #outcome = :outcome, #completed_at = :completed_at",
            {
                ":outcome": outcome.to_item(),
                ":completed_at": now.isoformat(),
            },
            expression_attribute_names={
                "#event_id": "event_id",
                "#outcome": "outcome",
                "#completed_at": "completed_at",
            },
            condition_expression="attribute_exists(#event_id) AND attribute_not_exists(#outcome)",
        )
        if attrs is None:
            logger.warning("Outcome for event %s was already recorded", event_id)
            return False
        return True

    def release(
        self,
        reservation: Reservation,
        failure: ProvisioningOutcome | None = None,
    ) -> bool:
        """Expire a reservation that has no outcome so the event can be retried.

        The row stays, with its lease expired and the retryable failure kept
        in ``last_failure``; the next delivery takes it over. Only the holder
        of the reservation token can release it.

        Args:
            reservation: The reservation returned by reserve()
            failure: Retryable outcome that ended this attempt

        Returns:
            True if released, False if the row was completed or taken over
        """
        update = "SET #reserved_until = :expired"
        values: dict[str, Any] = {":token": reservation.token, ":expired": 0}
        names = {
            "#reservation_token": "reservation_token",
            "#reserved_until": "reserved_until",
            "#outcome": "outcome",
        }
        if failure is not None:
            update += ", #last_failure = :failure"
            values[":failure"] = failure.to_item()
            names["#last_failure"] = "last_failure"

        attrs = self._db.update_item(
            WEBHOOK_EVENTS_TABLE,
            {"event_id": reservation.event_id},
            update + " REMOVE #reservation_token",
            values,
            expression_attribute_names=names,
            condition_expression="#reservation_token = :token AND attribute_not_exists(#outcome)",
        )
        if attrs is None:
            logger.warning("Reservation for event %s could not be released", reservation.event_id)
            return False
        return True

    def get_entry(self, event_id: str) -> IdempotencyEntry | None:
        """Read the idempotency entry for an event.

        Args:
            event_id: Stripe event ID

        Returns:
            The entry, or None if the event was never reserved
        """
        item: dict[str, Any] | None = self._db.get_item(
            WEBHOOK_EVENTS_TABLE, {"event_id": event_id}, consistent_read=True
        )
        if item is None:
            return None
        return IdempotencyEntry.model_validate(item)
