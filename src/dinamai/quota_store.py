"""
DynamoDB-backed quota records.

One item per user: partition key `user_id` (S) and a `remaining_units` (N)
counter. Every write is a single-item atomic update, so concurrent consumers
and credit grants never lose each other's changes and the counter can never be
driven below zero.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from dinamai.errors import PersistenceFailed
from dinamai.logger import get_logger

logger = get_logger("quota_store")


@dataclass(frozen=True)
class QuotaRecord:
    user_id: str
    remaining_units: int


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoQuotaStore:
    def __init__(self, client, table_name: str):
        self.client = client
        self.table_name = table_name

    def _key(self, user_id: str) -> dict:
        return {"user_id": {"S": user_id}}

    def _persistence_error(self, op: str, user_id: str, error: Exception) -> PersistenceFailed:
        logger.error(
            "quota_store.%s_error" % op,
            extra={"table": self.table_name, "user_id": user_id, "error": str(error)},
        )
        return PersistenceFailed("Could not access quota in database.")

    def get(self, user_id: str) -> Optional[QuotaRecord]:
        """Return the user's record, or None when the user has none yet."""
        try:
            resp = self.client.get_item(
                TableName=self.table_name,
                Key=self._key(user_id),
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._persistence_error("read", user_id, e) from e

        item = resp.get("Item")
        if not item:
            return None
        return QuotaRecord(user_id=user_id, remaining_units=int(item["remaining_units"]["N"]))

    def try_decrement(self, user_id: str, units: int = 1) -> Optional[int]:
        """
        Atomically subtract `units` if at least that many remain.

        Returns the new balance, or None when the balance was insufficient
        (including a missing record).
        """
        try:
            resp = self.client.update_item(
                TableName=self.table_name,
                Key=self._key(user_id),
                UpdateExpression="SET remaining_units = remaining_units - :units, updated_at = :now",
                ConditionExpression="remaining_units >= :units",
                ExpressionAttributeValues={
                    ":units": {"N": str(units)},
                    ":now": {"S": _now()},
                },
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise self._persistence_error("decrement", user_id, e) from e
        except BotoCoreError as e:
            raise self._persistence_error("decrement", user_id, e) from e

        return int(resp["Attributes"]["remaining_units"]["N"])

    def add_units(self, user_id: str, units: int) -> int:
        """Atomically add `units`, creating the record when absent. Returns the new balance."""
        try:
            resp = self.client.update_item(
                TableName=self.table_name,
                Key=self._key(user_id),
                UpdateExpression="ADD remaining_units :units SET updated_at = :now",
                ExpressionAttributeValues={
                    ":units": {"N": str(units)},
                    ":now": {"S": _now()},
                },
                ReturnValues="UPDATED_NEW",
            )
        except (BotoCoreError, ClientError) as e:
            raise self._persistence_error("grant", user_id, e) from e

        return int(resp["Attributes"]["remaining_units"]["N"])
