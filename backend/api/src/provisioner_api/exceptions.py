"""FastAPI exception handlers for converting WebhookError to HTTP responses.

Stripe treats any non-2xx answer as a failed delivery and redelivers it,
so the status code decides whether an event is retried:

- 400 Bad Request: the request itself is wrong (signature, payload, email)
- 409 Conflict: another delivery of the same event is still in flight
- 500 Internal Server Error: configuration missing or a store is down;
  a redelivery may succeed

Permanent provisioning failures (duplicate account, store rejection) never
raise; they are recorded and answered with 200.

Usage:
    from provisioner_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from provisioner.models.errors import ErrorCode, WebhookError
from provisioner.utils.logging import get_logger

logger = get_logger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Bad requests -> 400, Stripe keeps retrying but nothing will change
    ErrorCode.MISSING_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.SIGNATURE_MISMATCH: HTTP_400_BAD_REQUEST,
    ErrorCode.STALE_TIMESTAMP: HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_EMAIL: HTTP_400_BAD_REQUEST,
    # Duplicate delivery while the first is unfinished -> 409, Stripe retries
    ErrorCode.EVENT_IN_PROGRESS: HTTP_409_CONFLICT,
    # Server-side conditions -> 500
    ErrorCode.SECRET_NOT_CONFIGURED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.CONFIGURATION_MISSING: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STORE_UNAVAILABLE: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode.

    Args:
        code: The ErrorCode to map

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    """Render a WebhookError as an ErrorResponse body.

    Args:
        request: The incoming request (unused but required by FastAPI)
        exc: The WebhookError exception

    Returns:
        JSONResponse with error details and the mapped status code.
    """
    status_code = get_http_status_for_error(exc.code)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render an unexpected exception as a 500 without internal details.

    Args:
        request: The incoming request (unused but required by FastAPI)
        exc: The uncaught exception

    Returns:
        JSONResponse with 500 status and generic error message.
    """
    logger.exception("Unhandled exception: %s", exc)

    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "ERR_INTERNAL",
            "details": None,
            "recovery": "Stripe will redeliver the event",
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(WebhookError, webhook_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
