"""Pytest configuration and fixtures for provisioner backend tests.

This module provides reusable fixtures for testing:
- AWS mocking with moto (DynamoDB, Cognito, SSM)
- Stripe webhook payloads and signature headers
- Singleton resets between tests
"""

import hashlib
import hmac
import json
import os
import time
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-provisioner")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret123")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

TEST_WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
WEBHOOK_EVENTS_TABLE_NAME = f"{TABLE_PREFIX}-webhook-events"
PROVISIONING_RECORDS_TABLE_NAME = f"{TABLE_PREFIX}-provisioning-records"


# === Singleton Resets ===


def _reset_all() -> None:
    from provisioner.config import get_settings
    from provisioner.services.dynamodb import reset_dynamodb_service
    from provisioner.services.ssm_service import get_ssm_service
    from provisioner_api.dependencies import reset_services

    reset_services()
    reset_dynamodb_service()
    get_ssm_service.cache_clear()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws need fresh boto3 clients created inside the
    mock context rather than instances cached by a previous test.
    """
    _reset_all()
    yield
    _reset_all()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def aws(aws_credentials: None) -> Generator[None, None, None]:
    """Run the test inside a moto mock_aws context."""
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_client(aws: None) -> Any:
    """Create a mocked DynamoDB client."""
    return boto3.client("dynamodb", region_name="eu-west-1")


@pytest.fixture
def webhook_events_table(dynamodb_client: Any) -> str:
    """Create the webhook-events table and return its name."""
    dynamodb_client.create_table(
        TableName=WEBHOOK_EVENTS_TABLE_NAME,
        KeySchema=[{"AttributeName": "event_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "event_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    return WEBHOOK_EVENTS_TABLE_NAME


@pytest.fixture
def make_records_table(dynamodb_client: Any) -> Callable[[], str]:
    """Return a callable that creates the provisioning-records table.

    Tests simulating a subscription store outage create it late.
    """

    def _create() -> str:
        dynamodb_client.create_table(
            TableName=PROVISIONING_RECORDS_TABLE_NAME,
            KeySchema=[{"AttributeName": "record_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "record_id", "AttributeType": "S"},
                {"AttributeName": "email", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "email-index",
                    "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        return PROVISIONING_RECORDS_TABLE_NAME

    return _create


@pytest.fixture
def create_tables(webhook_events_table: str, make_records_table: Callable[[], str]) -> None:
    """Create all required DynamoDB tables for testing."""
    make_records_table()


@pytest.fixture
def cognito_client(aws: None) -> Any:
    """Create a mocked Cognito Identity Provider client."""
    return boto3.client("cognito-idp", region_name="eu-west-1")


@pytest.fixture
def user_pool_id(cognito_client: Any, monkeypatch: pytest.MonkeyPatch) -> str:
    """Create a mocked user pool and point COGNITO_USER_POOL_ID at it."""
    pool = cognito_client.create_user_pool(PoolName="test-provisioner-users")
    pool_id: str = pool["UserPool"]["Id"]
    monkeypatch.setenv("COGNITO_USER_POOL_ID", pool_id)
    return pool_id


# === Stripe Fixtures ===


def create_stripe_signature(
    payload: bytes,
    secret: str = TEST_WEBHOOK_SECRET,
    timestamp: int | None = None,
) -> str:
    """Build a Stripe-Signature header the way Stripe signs deliveries."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signed_payload = f"{ts}.{payload.decode('utf-8')}"
    signature = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={signature}"


@pytest.fixture
def sign() -> Callable[..., str]:
    """Return the Stripe-Signature builder."""
    return create_stripe_signature


def build_checkout_event(
    event_id: str = "evt_test_checkout_001",
    email: str | None = "a@example.com",
    *,
    session_id: str = "cs_test_session_001",
    subscription_id: str | None = "sub_test_001",
    customer_id: str | None = "cus_test_001",
    details_email: str | None = None,
) -> dict[str, Any]:
    """Sample checkout.session.completed event."""
    session: dict[str, Any] = {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription",
        "status": "complete",
        "payment_status": "paid",
        "customer": customer_id,
        "subscription": subscription_id,
        "customer_email": email,
        "customer_details": {"email": details_email, "name": "Test Customer"},
    }
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "created": 1767225600,  # 2026-01-01 00:00:00 UTC
        "data": {"object": session},
    }


@pytest.fixture
def checkout_event() -> Callable[..., dict[str, Any]]:
    """Return the checkout.session.completed event builder."""
    return build_checkout_event


@pytest.fixture
def encode() -> Callable[[dict[str, Any]], bytes]:
    """Serialize an event the way Stripe sends it."""

    def _encode(event: dict[str, Any]) -> bytes:
        return json.dumps(event, separators=(",", ":")).encode("utf-8")

    return _encode
