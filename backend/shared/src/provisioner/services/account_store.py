"""Account store client backed by a Cognito User Pool.

Accounts are created server-side with AdminCreateUser. Cognito emails the
user an invitation with a temporary password; the redirect URL travels in
ClientMetadata so the pool's custom-message trigger can build the link.
"""

from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from provisioner.models.enums import AccountConflictPolicy
from provisioner.models.errors import AccountExistsError
from provisioner.models.provisioning import AccountResult
from provisioner.services.aws_errors import client_error_code, to_store_error
from provisioner.utils.logging import get_logger

logger = get_logger(__name__)

# Users who have not yet set a password after their invitation
FORCE_CHANGE_PASSWORD = "FORCE_CHANGE_PASSWORD"


def _account_id(attributes: list[dict[str, str]], username: str) -> str:
    """Pick the Cognito ``sub`` from a user's attributes, falling back to the username."""
    for attribute in attributes:
        if attribute.get("Name") == "sub" and attribute.get("Value"):
            return attribute["Value"]
    return username


class AccountStore:
    """Ensures a Cognito user exists for a paying customer's email."""

    def __init__(
        self,
        user_pool_id: str,
        redirect_url: str,
        conflict_policy: AccountConflictPolicy = AccountConflictPolicy.REUSE,
        resend_invitation: bool = True,
        client: Any | None = None,
    ) -> None:
        """Initialize the account store.

        Args:
            user_pool_id: Cognito User Pool ID (e.g., 'eu-west-1_ABC123')
            redirect_url: URL the invitation sends the user to
            conflict_policy: What an existing account for the email means
            resend_invitation: Re-send the invitation to reused accounts that
                never set a password
            client: cognito-idp client (defaults to a new boto3 client)
        """
        self.user_pool_id = user_pool_id
        self.redirect_url = redirect_url
        self.conflict_policy = conflict_policy
        self.resend_invitation = resend_invitation
        self._client = client or boto3.client("cognito-idp")

    def ensure_account(self, email: str, known_account_id: str | None = None) -> AccountResult:
        """Create the account for an email, or reuse it under the reuse policy.

        An existing account whose sub equals ``known_account_id`` was created
        by an earlier attempt for the same event and is reused under either
        policy.

        Args:
            email: Customer email (used as the Cognito username)
            known_account_id: Account sub left by an earlier attempt, if any

        Returns:
            AccountResult with the account sub and whether it was created

        Raises:
            AccountExistsError: Account exists, the policy is REJECT, and no
                earlier attempt for this event created it
            StoreError: Cognito call failed
        """
        try:
            response = self._client.admin_create_user(
                UserPoolId=self.user_pool_id,
                Username=email,
                UserAttributes=[
                    {"Name": "email", "Value": email},
                    {"Name": "email_verified", "Value": "true"},
                ],
                DesiredDeliveryMediums=["EMAIL"],
                ClientMetadata={"redirect_url": self.redirect_url},
            )
        except ClientError as e:
            if client_error_code(e) != "UsernameExistsException":
                raise to_store_error(e, "AdminCreateUser") from e
            if self.conflict_policy == AccountConflictPolicy.REJECT:
                if known_account_id is None:
                    raise AccountExistsError(email) from e
                return self._recover_own(email, known_account_id)
            return self._reuse_existing(email)
        except BotoCoreError as e:
            raise to_store_error(e, "AdminCreateUser") from e

        user = response["User"]
        account_id = _account_id(user.get("Attributes", []), user.get("Username", email))
        logger.info("Created account %s for %s", account_id, email)
        return AccountResult(account_id=account_id, created=True)

    def _get_user(self, email: str) -> dict[str, Any]:
        try:
            user: dict[str, Any] = self._client.admin_get_user(
                UserPoolId=self.user_pool_id, Username=email
            )
        except (ClientError, BotoCoreError) as e:
            raise to_store_error(e, "AdminGetUser") from e
        return user

    def _recover_own(self, email: str, known_account_id: str) -> AccountResult:
        """Accept the existing account only if an earlier attempt created it."""
        user = self._get_user(email)
        account_id = _account_id(user.get("UserAttributes", []), user.get("Username", email))
        if account_id != known_account_id:
            raise AccountExistsError(email)

        logger.info("Recovered account %s created by an earlier attempt for %s", account_id, email)
        return AccountResult(account_id=account_id, created=False)

    def _reuse_existing(self, email: str) -> AccountResult:
        """Look up an existing account and optionally re-send its invitation."""
        user = self._get_user(email)
        account_id = _account_id(user.get("UserAttributes", []), user.get("Username", email))
        logger.info("Reusing existing account %s for %s", account_id, email)

        if self.resend_invitation and user.get("UserStatus") == FORCE_CHANGE_PASSWORD:
            self._resend_invitation(email)

        return AccountResult(account_id=account_id, created=False)

    def _resend_invitation(self, email: str) -> None:
        # Best effort: the account exists either way
        try:
            self._client.admin_create_user(
                UserPoolId=self.user_pool_id,
                Username=email,
                MessageAction="RESEND",
                DesiredDeliveryMediums=["EMAIL"],
                ClientMetadata={"redirect_url": self.redirect_url},
            )
            logger.info("Re-sent invitation to %s", email)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Failed to re-send invitation to %s: %s", email, e)
