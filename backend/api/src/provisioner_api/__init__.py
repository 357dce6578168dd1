"""FastAPI application receiving Stripe webhooks for account provisioning."""
