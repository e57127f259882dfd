"""
Match update dispatcher.

Stands in for the "on document updated" trigger infrastructure: every
committed match update is published as a ``(before, after)`` snapshot pair
to the subscribed handlers. Delivery is at-least-once: a failed handler is
redelivered the same pair until it succeeds, the error is marked
non-retryable, or the delivery budget is spent. Handlers must therefore
tolerate duplicates.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from ladder.config import Config
from ladder.data_models.snapshots import MatchSnapshot
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

MatchUpdateHandler = Callable[[MatchSnapshot, MatchSnapshot], Awaitable[Any]]


class MatchUpdateDispatcher:
    """Fans committed match updates out to subscribed handlers."""

    def __init__(self, max_deliveries: Optional[int] = None, retry_backoff: float = 0.0):
        self.max_deliveries = max_deliveries or Config.TRIGGER_MAX_DELIVERIES
        self.retry_backoff = retry_backoff
        self._handlers: List[MatchUpdateHandler] = []

    def subscribe(self, handler: MatchUpdateHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: MatchUpdateHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, before: MatchSnapshot, after: MatchSnapshot) -> List[Any]:
        """Deliver one update to every handler, returning their results in order."""
        results = []
        for handler in list(self._handlers):
            results.append(await self._deliver(handler, before, after))
        return results

    async def _deliver(self, handler: MatchUpdateHandler, before: MatchSnapshot, after: MatchSnapshot) -> Any:
        name = getattr(handler, '__qualname__', repr(handler))

        for delivery in range(1, self.max_deliveries + 1):
            try:
                return await handler(before, after)
            except Exception as e:
                # Errors outside the ladder hierarchy are treated as transient
                retryable = getattr(e, 'retryable', True)
                if not retryable or delivery == self.max_deliveries:
                    logger.error(
                        f"Delivery {delivery} of match {after.match_id} update to {name} "
                        f"failed permanently: {e}"
                    )
                    raise
                logger.warning(
                    f"Delivery {delivery} of match {after.match_id} update to {name} failed, "
                    f"redelivering: {e}"
                )
                await asyncio.sleep(self.retry_backoff * delivery)
