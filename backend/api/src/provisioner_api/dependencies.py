"""FastAPI dependency injection providers for the webhook pipeline.

Each provider builds its service once (@lru_cache) and passes its own
dependencies in explicitly, so components never reach for globals.

Usage in routes:
    from provisioner_api.dependencies import get_webhook_handler

    @router.post("/payment-webhook")
    async def payment_webhook(
        request: Request,
        handler: WebhookHandler = Depends(get_webhook_handler),
    ):
        ...

Service Dependency Graph:
    ProvisionerSettings (get_settings)
    WebhookHandler
        ├── SignatureVerifier
        │       └── WebhookSecretProvider (env, then SSM)
        ├── IdempotencyGuard
        │       └── DynamoDBService (singleton via get_dynamodb_service)
        └── ProvisioningOrchestrator
                ├── AccountStore (Cognito)
                └── SubscriptionStore
                        └── DynamoDBService

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from provisioner.config import ProvisionerSettings, get_settings
from provisioner.models.errors import ErrorCode, WebhookError
from provisioner.services.account_store import AccountStore
from provisioner.services.dynamodb import get_dynamodb_service
from provisioner.services.idempotency import IdempotencyGuard
from provisioner.services.provisioning import ProvisioningOrchestrator
from provisioner.services.signature import SignatureVerifier, WebhookSecretProvider
from provisioner.services.subscription_store import SubscriptionStore
from provisioner.services.webhook_handler import WebhookHandler

WEBHOOK_SECRET_PARAMETER = "stripe/webhook_secret"


def get_provisioner_settings() -> ProvisionerSettings:
    """Get the process settings."""
    return get_settings()


@lru_cache
def get_secret_provider() -> WebhookSecretProvider:
    """Get cached WebhookSecretProvider instance.

    Returns:
        WebhookSecretProvider reading STRIPE_WEBHOOK_SECRET, then SSM.
    """
    settings = get_settings()
    return WebhookSecretProvider(f"{settings.ssm_prefix}/{WEBHOOK_SECRET_PARAMETER}")


@lru_cache
def get_signature_verifier() -> SignatureVerifier:
    """Get cached SignatureVerifier instance."""
    return SignatureVerifier(
        secret_provider=get_secret_provider(),
        tolerance=get_settings().webhook_tolerance_seconds,
    )


@lru_cache
def get_idempotency_guard() -> IdempotencyGuard:
    """Get cached IdempotencyGuard instance.

    Returns:
        IdempotencyGuard configured with DynamoDB singleton.
    """
    settings = get_settings()
    return IdempotencyGuard(
        db=get_dynamodb_service(settings.environment),
        lease_seconds=settings.idempotency_lease_seconds,
    )


@lru_cache
def get_account_store() -> AccountStore:
    """Get cached AccountStore instance.

    Raises:
        WebhookError: COGNITO_USER_POOL_ID is not set
    """
    settings = get_settings()
    if not settings.cognito_user_pool_id:
        raise WebhookError(ErrorCode.CONFIGURATION_MISSING, details="COGNITO_USER_POOL_ID")
    return AccountStore(
        user_pool_id=settings.cognito_user_pool_id,
        redirect_url=settings.invitation_redirect_url,
        conflict_policy=settings.account_conflict_policy,
        resend_invitation=settings.resend_invitation_on_conflict,
    )


@lru_cache
def get_subscription_store() -> SubscriptionStore:
    """Get cached SubscriptionStore instance."""
    return SubscriptionStore(db=get_dynamodb_service(get_settings().environment))


@lru_cache
def get_orchestrator() -> ProvisioningOrchestrator:
    """Get cached ProvisioningOrchestrator instance."""
    return ProvisioningOrchestrator(
        accounts=get_account_store(),
        subscriptions=get_subscription_store(),
    )


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    """Get cached WebhookHandler instance.

    Returns:
        WebhookHandler wired with the verifier, guard and orchestrator.
    """
    return WebhookHandler(
        verifier=get_signature_verifier(),
        guard=get_idempotency_guard(),
        orchestrator=get_orchestrator(),
    )


def reset_services() -> None:
    """Clear all cached service instances (for testing only)."""
    get_webhook_handler.cache_clear()
    get_orchestrator.cache_clear()
    get_subscription_store.cache_clear()
    get_account_store.cache_clear()
    get_idempotency_guard.cache_clear()
    get_signature_verifier.cache_clear()
    get_secret_provider.cache_clear()
