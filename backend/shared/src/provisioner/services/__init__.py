"""Services for webhook verification, decoding, idempotency and provisioning."""
