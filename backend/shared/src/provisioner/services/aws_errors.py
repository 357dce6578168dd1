"""Translate boto3/botocore failures into StoreError.

Transient errors are worth a redelivery; permanent ones fail the same way
every time. Unknown error codes are treated as transient so Stripe keeps
redelivering instead of the event being dropped silently.
"""

from botocore.exceptions import BotoCoreError, ClientError

from provisioner.models.errors import StoreError

PERMANENT_ERROR_CODES: frozenset[str] = frozenset(
    {
        "InvalidParameterException",
        "InvalidPasswordException",
        "UserLambdaValidationException",
        "InvalidLambdaResponseException",
        "UnsupportedUserStateException",
        "AliasExistsException",
        "ValidationException",
        "ItemCollectionSizeLimitExceededException",
    }
)


def client_error_code(error: ClientError) -> str:
    """Return the AWS error code of a ClientError."""
    return str(error.response.get("Error", {}).get("Code", "Unknown"))


def to_store_error(error: Exception, operation: str) -> StoreError:
    """Wrap an AWS SDK exception in a StoreError.

    Args:
        error: ClientError or BotoCoreError raised by boto3
        operation: Name of the API call, for the message

    Returns:
        StoreError classified as transient or permanent
    """
    if isinstance(error, ClientError):
        code = client_error_code(error)
        return StoreError(
            f"{operation} failed: {code}",
            transient=code not in PERMANENT_ERROR_CODES,
            code=code,
        )
    if isinstance(error, BotoCoreError):
        # Connection errors, timeouts, credential lookups
        return StoreError(f"{operation} failed: {error}", transient=True, code=type(error).__name__)
    return StoreError(f"{operation} failed: {error}", transient=True)
