"""
Quota-metered execution of billable calls.

A billable operation (e.g. a Gemini generation) runs at most once per request,
only when the user has units left, and costs a unit only when it succeeds.
"""

from dataclasses import dataclass
from typing import Any, Callable

from dinamai.errors import DinamaiError, PersistenceFailed, QuotaExceeded, UpstreamCallFailed
from dinamai.logger import get_logger

logger = get_logger("orchestrator")


@dataclass(frozen=True)
class MeteredResult:
    output: Any
    remaining: int
    charged: bool


class MeteredCallOrchestrator:
    def __init__(self, store, cost: int = 1):
        if cost < 1:
            raise ValueError("cost must be >= 1")
        self.store = store
        self.cost = cost

    def balance(self, user_id: str) -> int:
        """Current balance; a user without a record has zero units."""
        record = self.store.get(user_id)
        return record.remaining_units if record else 0

    def execute(self, user_id: str, operation: Callable[[], Any]) -> MeteredResult:
        """
        Run `operation` on the user's quota.

        Raises QuotaExceeded without calling `operation` when the balance is
        exhausted, and UpstreamCallFailed (carrying the untouched balance) when
        the operation fails. Read failures propagate as PersistenceFailed.
        """
        remaining = self.balance(user_id)

        # Corrupted negative balances count as exhausted too.
        if remaining <= 0:
            logger.info(
                "orchestrator.quota_exceeded",
                extra={"user_id": user_id, "remaining": remaining},
            )
            raise QuotaExceeded(remaining=max(remaining, 0))

        try:
            output = operation()
        except UpstreamCallFailed as e:
            e.remaining = remaining
            logger.warning(
                "orchestrator.operation_failed",
                extra={"user_id": user_id, "status_code": e.status_code, "error": e.message},
            )
            raise
        except DinamaiError:
            raise
        except Exception as e:
            logger.exception("orchestrator.operation_error", extra={"user_id": user_id})
            raise UpstreamCallFailed("Billable call failed.", remaining=remaining) from e

        return self._commit(user_id, output, remaining)

    def _commit(self, user_id: str, output: Any, remaining: int) -> MeteredResult:
        try:
            new_remaining = self.store.try_decrement(user_id, self.cost)
        except PersistenceFailed as e:
            # The user already has their result; the lost charge is accepted.
            fallback = max(remaining - self.cost, 0)
            logger.error(
                "orchestrator.commit_failed",
                extra={"user_id": user_id, "remaining": fallback, "error": e.message},
            )
            return MeteredResult(output=output, remaining=fallback, charged=False)

        if new_remaining is None:
            # A concurrent request spent the last units between our read and write.
            logger.warning(
                "orchestrator.commit_conflict",
                extra={"user_id": user_id, "read_remaining": remaining},
            )
            return MeteredResult(output=output, remaining=0, charged=False)

        logger.info(
            "orchestrator.charged",
            extra={"user_id": user_id, "cost": self.cost, "remaining": new_remaining},
        )
        return MeteredResult(output=output, remaining=new_remaining, charged=True)
