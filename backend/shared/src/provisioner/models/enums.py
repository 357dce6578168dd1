"""Enumeration types for provisioning data models."""

from enum import Enum


class ProvisioningStatus(str, Enum):
    """Status of a persisted provisioning record."""

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class ProvisioningStage(str, Enum):
    """States of the provisioning state machine, in order."""

    RECEIVED = "received"
    VALIDATED = "validated"
    ACCOUNT_ENSURED = "account_ensured"
    SUBSCRIPTION_PERSISTED = "subscription_persisted"
    ACKNOWLEDGED = "acknowledged"


class FailureReason(str, Enum):
    """Why a provisioning run ended in the Failed state."""

    MISSING_EMAIL = "missing_email"
    DUPLICATE_ACCOUNT = "duplicate_account"
    ACCOUNT_STORE_UNAVAILABLE = "account_store_unavailable"
    ACCOUNT_STORE_REJECTED = "account_store_rejected"
    SUBSCRIPTION_STORE_UNAVAILABLE = "subscription_store_unavailable"
    SUBSCRIPTION_STORE_REJECTED = "subscription_store_rejected"


class OutcomeKind(str, Enum):
    """Consolidated result of processing one webhook event."""

    PROVISIONED = "provisioned"
    IGNORED = "ignored"  # Event type we do not provision for
    FAILED = "failed"


class AccountConflictPolicy(str, Enum):
    """What to do when the identity store already has an account for the email."""

    REUSE = "reuse"
    REJECT = "reject"
