from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from dinamai.errors import PersistenceFailed, ValidationFailed
from dinamai.logger import get_logger

logger = get_logger("credits")


@dataclass(frozen=True)
class GrantResult:
    user_id: str
    units: int
    remaining: Optional[int]
    duplicate: bool = False


class CreditGrantHandler:
    """
    Adds purchased units to a user's quota.

    Only call this with payment events whose signature was already verified.
    Grants are deduplicated by `event_id` when a guard is configured; without
    an event id, every call grants again.
    """

    def __init__(self, store, guard=None):
        self.store = store
        self.guard = guard

    def grant(self, user_id: str, units: int, event_id: Optional[str] = None) -> GrantResult:
        if not user_id:
            raise ValidationFailed("User ID missing in metadata.")
        if not isinstance(units, int) or isinstance(units, bool) or units <= 0:
            raise ValidationFailed("Granted units must be a positive integer.")

        claimed = False
        if event_id and self.guard is not None:
            try:
                claimed = self.guard.claim(event_id)
            except (BotoCoreError, ClientError) as e:
                logger.error("credits.claim_error", extra={"event_id": event_id, "error": str(e)})
                raise PersistenceFailed("Could not record payment event.") from e
            if not claimed:
                logger.info(
                    "credits.duplicate_event",
                    extra={"user_id": user_id, "event_id": event_id},
                )
                return GrantResult(user_id=user_id, units=0, remaining=None, duplicate=True)

        try:
            remaining = self.store.add_units(user_id, units)
        except PersistenceFailed:
            if claimed:
                self._release(event_id)
            raise

        logger.info(
            "credits.granted",
            extra={"user_id": user_id, "units": units, "remaining": remaining, "event_id": event_id},
        )
        return GrantResult(user_id=user_id, units=units, remaining=remaining)

    def _release(self, event_id: str) -> None:
        try:
            self.guard.release(event_id)
        except (BotoCoreError, ClientError) as e:
            # The redelivery will now be treated as a duplicate.
            logger.error("credits.release_error", extra={"event_id": event_id, "error": str(e)})
