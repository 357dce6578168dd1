"""Unit tests for the provisioning orchestrator state machine.

Store clients are mocked; each test drives one path through
RECEIVED -> VALIDATED -> ACCOUNT_ENSURED -> SUBSCRIPTION_PERSISTED -> ACKNOWLEDGED.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from provisioner.models.enums import (
    FailureReason,
    OutcomeKind,
    ProvisioningStage,
    ProvisioningStatus,
)
from provisioner.models.errors import AccountExistsError, StoreError
from provisioner.models.events import CheckoutResource, VerifiedEvent
from provisioner.models.provisioning import AccountResult
from provisioner.services.provisioning import ProvisioningOrchestrator
from provisioner.services.subscription_store import record_id_for

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _checkout_event(email: str | None = "a@example.com") -> VerifiedEvent:
    return VerifiedEvent(
        event_id="evt_orch_001",
        event_type="checkout.session.completed",
        checkout=CheckoutResource(
            session_id="cs_orch_001",
            customer_email=email,
            subscription_id="sub_orch_001",
            customer_id="cus_orch_001",
        ),
        handled=True,
        payload_hash="0" * 64,
    )


@pytest.fixture
def accounts() -> MagicMock:
    store = MagicMock()
    store.ensure_account.return_value = AccountResult(account_id="sub-123", created=True)
    return store


@pytest.fixture
def subscriptions() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(accounts, subscriptions) -> ProvisioningOrchestrator:
    return ProvisioningOrchestrator(accounts, subscriptions, clock=lambda: NOW)


class TestHappyPath:
    """Tests for events that reach ACKNOWLEDGED."""

    def test_provisions_account_and_record(self, orchestrator, accounts, subscriptions):
        outcome = orchestrator.run(_checkout_event())

        assert outcome.kind == OutcomeKind.PROVISIONED
        assert outcome.stage == ProvisioningStage.ACKNOWLEDGED
        assert outcome.succeeded is True
        assert outcome.email == "a@example.com"
        assert outcome.account_id == "sub-123"
        assert outcome.account_created is True
        assert outcome.subscription_id == "sub_orch_001"
        assert outcome.record_id == record_id_for("cs_orch_001")
        accounts.ensure_account.assert_called_once_with("a@example.com", known_account_id=None)

    def test_passes_account_from_earlier_attempt(self, orchestrator, accounts):
        accounts.ensure_account.return_value = AccountResult(account_id="sub-earlier", created=False)

        outcome = orchestrator.run(_checkout_event(), known_account_id="sub-earlier")

        assert outcome.kind == OutcomeKind.PROVISIONED
        assert outcome.account_id == "sub-earlier"
        accounts.ensure_account.assert_called_once_with(
            "a@example.com", known_account_id="sub-earlier"
        )

    def test_record_contents(self, orchestrator, subscriptions):
        orchestrator.run(_checkout_event())

        record = subscriptions.write_record.call_args.args[0]
        assert record.record_id == record_id_for("cs_orch_001")
        assert record.email == "a@example.com"
        assert record.account_id == "sub-123"
        assert record.subscription_id == "sub_orch_001"
        assert record.status == ProvisioningStatus.ACTIVE
        assert record.created_at == NOW
        assert record.event_id == "evt_orch_001"
        assert record.checkout_session_id == "cs_orch_001"

    def test_reused_account(self, orchestrator, accounts):
        accounts.ensure_account.return_value = AccountResult(account_id="sub-old", created=False)

        outcome = orchestrator.run(_checkout_event())

        assert outcome.kind == OutcomeKind.PROVISIONED
        assert outcome.account_created is False
        assert outcome.message == "Existing account linked"

    def test_unhandled_event_is_ignored(self, orchestrator, accounts, subscriptions):
        event = VerifiedEvent(
            event_id="evt_invoice_001",
            event_type="invoice.created",
            handled=False,
            payload_hash="0" * 64,
        )

        outcome = orchestrator.run(event)

        assert outcome.kind == OutcomeKind.IGNORED
        assert outcome.stage == ProvisioningStage.ACKNOWLEDGED
        accounts.ensure_account.assert_not_called()
        subscriptions.write_record.assert_not_called()


class TestFailures:
    """Tests for Failed(stage, reason) outcomes."""

    @pytest.mark.parametrize("email", [None, "", "   "])
    def test_missing_email(self, orchestrator, accounts, subscriptions, email):
        outcome = orchestrator.run(_checkout_event(email))

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.stage == ProvisioningStage.RECEIVED
        assert outcome.failed_stage == ProvisioningStage.VALIDATED
        assert outcome.reason == FailureReason.MISSING_EMAIL
        assert outcome.retryable is False
        accounts.ensure_account.assert_not_called()
        subscriptions.write_record.assert_not_called()

    def test_duplicate_account(self, orchestrator, accounts, subscriptions):
        accounts.ensure_account.side_effect = AccountExistsError("a@example.com")

        outcome = orchestrator.run(_checkout_event())

        assert outcome.failed_stage == ProvisioningStage.ACCOUNT_ENSURED
        assert outcome.reason == FailureReason.DUPLICATE_ACCOUNT
        assert outcome.retryable is False
        subscriptions.write_record.assert_not_called()

    def test_account_store_unavailable(self, orchestrator, accounts, subscriptions):
        accounts.ensure_account.side_effect = StoreError("throttled", transient=True)

        outcome = orchestrator.run(_checkout_event())

        assert outcome.reason == FailureReason.ACCOUNT_STORE_UNAVAILABLE
        assert outcome.retryable is True
        assert outcome.stage == ProvisioningStage.VALIDATED
        subscriptions.write_record.assert_not_called()

    def test_account_store_rejected(self, orchestrator, accounts):
        accounts.ensure_account.side_effect = StoreError("bad parameter", transient=False)

        outcome = orchestrator.run(_checkout_event())

        assert outcome.reason == FailureReason.ACCOUNT_STORE_REJECTED
        assert outcome.retryable is False

    def test_unexpected_account_error_is_retryable(self, orchestrator, accounts):
        accounts.ensure_account.side_effect = RuntimeError("boom")

        outcome = orchestrator.run(_checkout_event())

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.reason == FailureReason.ACCOUNT_STORE_UNAVAILABLE
        assert outcome.retryable is True

    def test_subscription_store_unavailable_keeps_account(self, orchestrator, subscriptions):
        """The account created before the failed write is reported, not rolled back."""
        subscriptions.write_record.side_effect = StoreError("outage", transient=True)

        outcome = orchestrator.run(_checkout_event())

        assert outcome.stage == ProvisioningStage.ACCOUNT_ENSURED
        assert outcome.failed_stage == ProvisioningStage.SUBSCRIPTION_PERSISTED
        assert outcome.reason == FailureReason.SUBSCRIPTION_STORE_UNAVAILABLE
        assert outcome.retryable is True
        assert outcome.account_id == "sub-123"
        assert outcome.account_created is True
        assert outcome.record_id == record_id_for("cs_orch_001")

    def test_subscription_store_rejected(self, orchestrator, subscriptions):
        subscriptions.write_record.side_effect = StoreError("too large", transient=False)

        outcome = orchestrator.run(_checkout_event())

        assert outcome.reason == FailureReason.SUBSCRIPTION_STORE_REJECTED
        assert outcome.retryable is False

    def test_subscription_failure_logged_for_reconciliation(self, orchestrator, subscriptions, caplog):
        subscriptions.write_record.side_effect = StoreError("outage", transient=True)

        with caplog.at_level("ERROR", logger="provisioner.services.provisioning"):
            orchestrator.run(_checkout_event())

        record = next(r for r in caplog.records if r.levelname == "ERROR")
        assert record.email == "a@example.com"
        assert record.account_id == "sub-123"
        assert record.subscription_id == "sub_orch_001"
        assert record.stage == "subscription_persisted"
