"""FastAPI application for the account provisioning webhook.

Stripe posts checkout events to /api/payment-webhook; each completed
checkout becomes a Cognito account plus a subscription record.
"""

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from provisioner import __version__
from provisioner.config import get_settings
from provisioner.utils.logging import configure_logging
from provisioner_api.exceptions import register_exception_handlers
from provisioner_api.middleware.correlation import CorrelationIdMiddleware
from provisioner_api.routes import health_router, webhooks_router

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(
    title="Provisioner API",
    description="Provisions accounts and subscriptions from Stripe payment events",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

# Include routers under /api prefix
# This matches CloudFront routing: /api/* → API Gateway
app.include_router(health_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.get("/health")
async def health() -> dict[str, Any]:
    """Plain liveness probe for load balancers."""
    return {"status": "ok"}


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "provisioner_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["backend/api/src", "backend/shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
