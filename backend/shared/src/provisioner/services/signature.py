"""Stripe webhook signature verification.

The Stripe-Signature header has the form ``t=<unix seconds>,v1=<hex>[,v1=...]``
where each v1 value is HMAC-SHA256(secret, "<t>.<raw body>"). Verification
always runs over the exact bytes received; a re-serialized body is not
guaranteed to be byte-identical and would fail.
"""

import hashlib
import os
import time

import stripe

from provisioner.models.errors import ErrorCode, WebhookError
from provisioner.models.events import VerifiedPayload
from provisioner.services.ssm_service import SSMService, SSMServiceError, get_ssm_service
from provisioner.utils.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_SECRET_ENV = "STRIPE_WEBHOOK_SECRET"


def compute_payload_hash(payload: bytes) -> str:
    """Compute SHA-256 hash of a webhook payload for auditing.

    Args:
        payload: Raw webhook payload bytes.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(payload).hexdigest()


def extract_timestamp(signature_header: str) -> int | None:
    """Return the ``t=`` timestamp of a Stripe-Signature header, or None."""
    for element in signature_header.split(","):
        key, sep, value = element.strip().partition("=")
        if sep and key == "t":
            try:
                return int(value)
            except ValueError:
                return None
    return None


def verify_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str | None,
    tolerance: int,
    now: int | None = None,
) -> VerifiedPayload:
    """Verify a webhook signature over the raw request body.

    Args:
        payload: Raw request body bytes.
        signature_header: Stripe-Signature header value.
        secret: Webhook signing secret (whsec_...).
        tolerance: Maximum distance in seconds between the signed timestamp and now.
        now: Current unix time, for tests.

    Returns:
        VerifiedPayload wrapping the untouched body.

    Raises:
        WebhookError: MISSING_SIGNATURE, SECRET_NOT_CONFIGURED, STALE_TIMESTAMP,
            SIGNATURE_MISMATCH or MALFORMED_PAYLOAD.
    """
    if not signature_header:
        raise WebhookError(ErrorCode.MISSING_SIGNATURE)

    if not secret:
        raise WebhookError(ErrorCode.SECRET_NOT_CONFIGURED)

    timestamp = extract_timestamp(signature_header)
    if timestamp is None:
        raise WebhookError(
            ErrorCode.SIGNATURE_MISMATCH,
            details="Unable to extract timestamp from header",
        )

    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > tolerance:
        raise WebhookError(
            ErrorCode.STALE_TIMESTAMP,
            details=f"Signed {current - timestamp}s ago, tolerance is {tolerance}s",
        )

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise WebhookError(ErrorCode.MALFORMED_PAYLOAD, details="Body is not UTF-8") from e

    # Timestamp window is enforced above; Stripe only checks the HMAC here
    try:
        stripe.WebhookSignature.verify_header(body, signature_header, secret, tolerance=None)
    except stripe.SignatureVerificationError as e:
        raise WebhookError(ErrorCode.SIGNATURE_MISMATCH, details=str(e)) from e

    return VerifiedPayload(
        body=payload,
        signed_at=timestamp,
        payload_hash=compute_payload_hash(payload),
    )


class WebhookSecretProvider:
    """Resolves the webhook signing secret.

    Lookup order: the STRIPE_WEBHOOK_SECRET environment variable, then the
    SSM SecureString parameter ``<ssm_prefix>/stripe/webhook_secret``.
    """

    def __init__(
        self,
        parameter_name: str,
        static_secret: str | None = None,
        ssm: SSMService | None = None,
    ) -> None:
        self._parameter_name = parameter_name
        self._static_secret = (
            static_secret if static_secret is not None else os.environ.get(WEBHOOK_SECRET_ENV)
        )
        self._ssm = ssm

    def get_secret(self) -> str | None:
        """Return the signing secret, or None when it is not configured."""
        if self._static_secret:
            return self._static_secret

        ssm = self._ssm or get_ssm_service()
        try:
            return ssm.get_parameter(self._parameter_name)
        except SSMServiceError as e:
            if e.not_found:
                logger.error("Webhook secret not configured: %s", e)
            else:
                # Access denied or throttled; the parameter may well exist
                logger.error("Webhook secret could not be read from SSM: %s", e)
            return None


class SignatureVerifier:
    """Verifies inbound webhook requests against the configured secret."""

    def __init__(self, secret_provider: WebhookSecretProvider, tolerance: int) -> None:
        self._secret_provider = secret_provider
        self._tolerance = tolerance

    def verify(self, payload: bytes, signature_header: str | None) -> VerifiedPayload:
        """Verify the request; see verify_signature for the failure codes."""
        if not signature_header:
            logger.warning("Webhook request missing Stripe-Signature header")
            raise WebhookError(ErrorCode.MISSING_SIGNATURE)

        secret = self._secret_provider.get_secret()
        try:
            verified = verify_signature(payload, signature_header, secret, self._tolerance)
        except WebhookError as e:
            if e.code == ErrorCode.SECRET_NOT_CONFIGURED:
                logger.error("Webhook secret is not configured")
            else:
                logger.warning("Webhook signature verification failed: %s", e)
            raise

        logger.info("Webhook signature verified (signed_at=%d)", verified.signed_at)
        return verified
