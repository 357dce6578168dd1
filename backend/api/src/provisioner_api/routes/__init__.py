"""API routes package.

- health: Health check endpoints
- webhooks: Stripe webhook receiver

All routers are registered in main.py with /api prefix.
"""

from provisioner_api.routes.health import router as health_router
from provisioner_api.routes.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "webhooks_router",
]
