"""Webhook endpoints for Stripe payment events.

The route hands the raw request body to the webhook pipeline untouched:
the signature covers the exact bytes Stripe sent, so the body must never
be parsed and re-serialized before verification.

These endpoints do NOT require authentication; they receive signed
payloads from Stripe.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from provisioner.services.webhook_handler import WebhookHandler
from provisioner_api.dependencies import get_webhook_handler

router = APIRouter(tags=["webhooks"])

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


@router.post(
    "/payment-webhook",
    summary="Handle Stripe webhook events",
    responses={
        200: {"description": "Event acknowledged"},
        400: {"description": "Invalid signature, malformed payload or missing email"},
        500: {"description": "Configuration missing or store unavailable; Stripe redelivers"},
    },
)
async def payment_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> JSONResponse:
    """Receive a Stripe event and provision the paying customer.

    Handles checkout.session.completed by creating the customer's account
    and storing their subscription record. Other event types are
    acknowledged without side effects. Redeliveries of an event already
    processed get the recorded answer back.
    """
    payload = await request.body()
    signature = request.headers.get(STRIPE_SIGNATURE_HEADER)

    # boto3 calls block; keep them off the event loop
    result = await run_in_threadpool(handler.handle, payload, signature)
    return JSONResponse(status_code=result.status_code, content=result.body)


# Path used by the first Stripe endpoint registration
router.add_api_route(
    "/stripe-webhook",
    payment_webhook,
    methods=["POST"],
    include_in_schema=False,
)
