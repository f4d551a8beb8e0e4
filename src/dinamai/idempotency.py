import time
from typing import Optional

from botocore.exceptions import ClientError

from dinamai.logger import get_logger

logger = get_logger("idempotency")


class IdempotencyGuard:
    """
    DynamoDB-based duplicate-event guard.

    Items are keyed by `pk` and expire through the table's TTL attribute
    `exp`. A guard without a table name is disabled: every key counts as new.
    """

    def __init__(self, client, table_name: Optional[str], ttl_secs: int = 86400):
        self.client = client
        self.table_name = table_name
        self.ttl_secs = ttl_secs

    @property
    def enabled(self) -> bool:
        return bool(self.table_name)

    def claim(self, key: str) -> bool:
        """Record `key` as processed. Returns False when it already was."""
        if not self.enabled:
            return True
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item={"pk": {"S": key}, "exp": {"N": str(int(time.time()) + self.ttl_secs)}},
                ConditionExpression="attribute_not_exists(pk)",
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info("idempotency.duplicate", extra={"key": key})
                return False
            raise

    def release(self, key: str) -> None:
        """Forget `key` so that a redelivery is processed again."""
        if not self.enabled:
            return
        self.client.delete_item(TableName=self.table_name, Key={"pk": {"S": key}})
