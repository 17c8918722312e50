"""One delivery pass over the mutation queue.

Mutations go out strictly in queue order. The first failure increments
that mutation's retry count and ends the pass, so nothing behind it is
delivered ahead of it. A mutation that has already failed ``max_retries``
times is abandoned: removed and reported instead of retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from floatplan.logging.context import log_context
from floatplan.models.sync import PendingMutation
from floatplan.sync.queue import MutationQueue
from floatplan.sync.transport import RemoteWriteApi

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5


@dataclass
class DrainResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: list[PendingMutation] = field(default_factory=list)
    offline: bool = False
    blocked_on: str | None = None  # id of the head that failed

    @property
    def blocked(self) -> bool:
        return self.blocked_on is not None


async def drain(
    queue: MutationQueue,
    remote: RemoteWriteApi,
    is_online: Callable[[], bool],
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> DrainResult:
    """Deliver queued mutations until the queue empties or one fails."""
    result = DrainResult()
    if not is_online():
        result.offline = True
        return result

    with log_context(queue_depth=len(queue)):
        while True:
            head = queue.head()
            if head is None:
                break
            if head.retry_count >= max_retries:
                logger.error(
                    "Abandoning %s %s (%s) after %d failed attempts",
                    head.method.value, head.endpoint, head.id, head.retry_count,
                )
                queue.remove(head.id)
                result.abandoned.append(head)
                continue

            result.attempted += 1
            try:
                delivered = await remote.send(head)
            except Exception:
                logger.exception("Sending %s raised", head.id)
                delivered = False

            if delivered:
                queue.remove(head.id)
                result.succeeded += 1
                continue

            queue.increment_retry(head.id)
            result.failed += 1
            result.blocked_on = head.id
            logger.warning(
                "Delivery of %s %s failed (attempt %d), pausing queue",
                head.method.value, head.endpoint, head.retry_count + 1,
            )
            break

    if result.attempted or result.abandoned:
        logger.info(
            "Drain pass: %d delivered, %d failed, %d abandoned, %d pending",
            result.succeeded, result.failed, len(result.abandoned), len(queue),
        )
    return result
