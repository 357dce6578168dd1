"""Subscription store client backed by the provisioning-records table."""

import uuid

from botocore.exceptions import BotoCoreError, ClientError

from provisioner.models.provisioning import ProvisioningRecord
from provisioner.services.aws_errors import to_store_error
from provisioner.services.dynamodb import DynamoDBService
from provisioner.utils.logging import get_logger

logger = get_logger(__name__)

PROVISIONING_RECORDS_TABLE = "provisioning-records"
EMAIL_INDEX = "email-index"

_RECORD_NAMESPACE = uuid.UUID("6f1c2b1e-8d4a-4f4e-9a57-2b5d9c0e7a31")


def record_id_for(checkout_session_id: str) -> str:
    """Derive the record ID for a checkout session.

    One checkout session always maps to the same record, so a repeated
    write is detected by the table's key instead of creating a duplicate.
    """
    return f"SUB-{uuid.uuid5(_RECORD_NAMESPACE, checkout_session_id).hex[:12].upper()}"


class SubscriptionStore:
    """Persists ProvisioningRecords."""

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def write_record(self, record: ProvisioningRecord) -> None:
        """Insert a record; an existing row with the same record_id counts as written.

        Args:
            record: Record to persist

        Raises:
            StoreError: DynamoDB write failed
        """
        try:
            created = self._db.put_item(
                PROVISIONING_RECORDS_TABLE,
                record.to_item(),
                condition_expression="attribute_not_exists(record_id)",
            )
        except (ClientError, BotoCoreError) as e:
            raise to_store_error(e, "PutItem") from e

        if not created:
            logger.info("Provisioning record %s already exists", record.record_id)
            return
        logger.info(
            "Stored provisioning record %s (email=%s, subscription=%s)",
            record.record_id,
            record.email,
            record.subscription_id,
        )

    def get_record(self, record_id: str) -> ProvisioningRecord | None:
        """Fetch a record by ID.

        Raises:
            StoreError: DynamoDB read failed
        """
        try:
            item = self._db.get_item(PROVISIONING_RECORDS_TABLE, {"record_id": record_id})
        except (ClientError, BotoCoreError) as e:
            raise to_store_error(e, "GetItem") from e
        return ProvisioningRecord.model_validate(item) if item else None

    def find_by_email(self, email: str) -> list[ProvisioningRecord]:
        """List the records of a customer, for reconciliation.

        Raises:
            StoreError: DynamoDB query failed
        """
        try:
            items = self._db.query_by_gsi(PROVISIONING_RECORDS_TABLE, EMAIL_INDEX, "email", email)
        except (ClientError, BotoCoreError) as e:
            raise to_store_error(e, "Query") from e
        return [ProvisioningRecord.model_validate(item) for item in items]

