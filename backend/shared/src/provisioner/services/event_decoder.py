"""Decode verified webhook bodies into typed events."""

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from provisioner.models.errors import ErrorCode, WebhookError
from provisioner.models.events import (
    CHECKOUT_SESSION_COMPLETED,
    CheckoutResource,
    StripeEventEnvelope,
    VerifiedEvent,
    VerifiedPayload,
)


def _non_empty(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_customer_email(session: Mapping[str, Any]) -> str | None:
    """Resolve the customer email of a Checkout Session.

    Precedence:
        1. ``customer_email`` (set when the email was passed into Checkout)
        2. ``customer_details.email`` (collected on the Checkout page)

    Args:
        session: The Checkout Session object from the event.

    Returns:
        The email, or None when neither field holds a non-blank string.
    """
    direct = _non_empty(session.get("customer_email"))
    if direct is not None:
        return direct

    details = session.get("customer_details")
    if isinstance(details, Mapping):
        return _non_empty(details.get("email"))
    return None


def _checkout_from_session(session: Mapping[str, Any]) -> CheckoutResource:
    session_id = _non_empty(session.get("id"))
    if session_id is None:
        raise WebhookError(ErrorCode.MALFORMED_PAYLOAD, details="Checkout session has no id")

    subscription = session.get("subscription")
    # Expanded subscriptions arrive as objects
    if isinstance(subscription, Mapping):
        subscription = subscription.get("id")

    customer = session.get("customer")
    if isinstance(customer, Mapping):
        customer = customer.get("id")

    return CheckoutResource(
        session_id=session_id,
        customer_email=resolve_customer_email(session),
        subscription_id=_non_empty(subscription),
        customer_id=_non_empty(customer),
    )


def decode_event(verified: VerifiedPayload) -> VerifiedEvent:
    """Parse a verified body into a VerifiedEvent.

    A checkout event without an email still decodes; email presence is
    checked by the orchestrator.

    Args:
        verified: Output of the signature verifier.

    Returns:
        VerifiedEvent; ``handled`` is False for event types we do not provision for.

    Raises:
        WebhookError: MALFORMED_PAYLOAD if the body is not a JSON object with
            ``id`` and ``type``, or a checkout event lacks a session object.
    """
    try:
        envelope = StripeEventEnvelope.model_validate_json(verified.body)
    except ValidationError as e:
        raise WebhookError(
            ErrorCode.MALFORMED_PAYLOAD,
            details=e.errors(include_url=False)[0]["msg"],
        ) from e

    occurred_at = (
        datetime.fromtimestamp(envelope.created, tz=timezone.utc)
        if envelope.created is not None
        else None
    )
    resource = envelope.data.resource
    payload = dict(resource) if isinstance(resource, Mapping) else {}

    if envelope.type != CHECKOUT_SESSION_COMPLETED:
        return VerifiedEvent(
            event_id=envelope.id,
            event_type=envelope.type,
            occurred_at=occurred_at,
            payload=payload,
            handled=False,
            payload_hash=verified.payload_hash,
        )

    if not isinstance(resource, Mapping):
        raise WebhookError(
            ErrorCode.MALFORMED_PAYLOAD,
            details="checkout.session.completed without a session object",
        )

    return VerifiedEvent(
        event_id=envelope.id,
        event_type=envelope.type,
        occurred_at=occurred_at,
        payload=payload,
        checkout=_checkout_from_session(resource),
        handled=True,
        payload_hash=verified.payload_hash,
    )
