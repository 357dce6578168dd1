"""Process configuration loaded from environment variables.

Secrets (the Stripe webhook signing secret) are not part of these settings;
they are resolved lazily by WebhookSecretProvider so a missing secret fails the
webhook route closed instead of preventing startup.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator

from provisioner.models.enums import AccountConflictPolicy

DEFAULT_TOLERANCE_SECONDS = 300
DEFAULT_LEASE_SECONDS = 300


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.environ.get(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class ProvisionerSettings(BaseModel):
    """Immutable settings shared by every request."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Deployment environment (dev/prod)")
    cognito_user_pool_id: str = Field(
        default="",
        description="Cognito User Pool holding provisioned accounts",
    )
    invitation_redirect_url: str = Field(
        default="https://app.nextrend.ai/reset-password",
        description="Where the invitation email sends the user to set a password",
    )
    webhook_tolerance_seconds: int = Field(default=DEFAULT_TOLERANCE_SECONDS, gt=0)
    idempotency_lease_seconds: int = Field(default=DEFAULT_LEASE_SECONDS, gt=0)
    account_conflict_policy: AccountConflictPolicy = AccountConflictPolicy.REUSE
    resend_invitation_on_conflict: bool = True
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    log_level: str = "INFO"

    @field_validator("account_conflict_policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def ssm_prefix(self) -> str:
        """SSM parameter path prefix for this environment."""
        return f"/provisioner/{self.environment}"


def load_settings() -> ProvisionerSettings:
    """Build settings from the current environment.

    Returns:
        ProvisionerSettings populated from environment variables.
    """
    return ProvisionerSettings(
        environment=os.environ.get("ENVIRONMENT", "dev"),
        cognito_user_pool_id=os.environ.get("COGNITO_USER_POOL_ID", ""),
        invitation_redirect_url=os.environ.get(
            "INVITATION_REDIRECT_URL", "https://app.nextrend.ai/reset-password"
        ),
        webhook_tolerance_seconds=int(
            os.environ.get("WEBHOOK_TOLERANCE_SECONDS", DEFAULT_TOLERANCE_SECONDS)
        ),
        idempotency_lease_seconds=int(
            os.environ.get("IDEMPOTENCY_LEASE_SECONDS", DEFAULT_LEASE_SECONDS)
        ),
        account_conflict_policy=os.environ.get("ACCOUNT_CONFLICT_POLICY", "reuse"),
        resend_invitation_on_conflict=_env_bool("RESEND_INVITATION_ON_CONFLICT", True),
        cors_allowed_origins=_env_list(
            "CORS_ALLOWED_ORIGINS", ["http://localhost:3000", "http://127.0.0.1:3000"]
        ),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


@lru_cache(maxsize=1)
def get_settings() -> ProvisionerSettings:
    """Get the process-wide settings (read once, then cached).

    Returns:
        ProvisionerSettings: Shared settings instance.
    """
    return load_settings()
