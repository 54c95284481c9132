"""
In-process order change feed.

OrderStore publishes one OrderChange per committed order write. Subscribers
(OrderStream pumps) are woken through an asyncio.Event; several changes that
arrive before a subscriber wakes collapse into a single wake-up, which is
enough because subscribers always reload a full snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Set


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderChange:
    """A committed write to one order."""
    order_id: int
    customer_id: int
    status: str


class ChangeSubscription:
    """Wake-up handle for one subscriber."""

    def __init__(
        self,
        feed: "OrderChangeFeed",
        predicate: Optional[Callable[[OrderChange], bool]] = None,
    ):
        self._feed = feed
        self._predicate = predicate
        self._event = asyncio.Event()
        self.closed = False

    def matches(self, change: OrderChange) -> bool:
        return self._predicate is None or self._predicate(change)

    def notify(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until at least one matching change was published since the last wait."""
        await self._event.wait()
        self._event.clear()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed.unsubscribe(self)


class OrderChangeFeed:
    """Fan-out of order changes to in-process subscribers."""

    def __init__(self):
        self._subscriptions: Set[ChangeSubscription] = set()

    def subscribe(
        self,
        predicate: Optional[Callable[[OrderChange], bool]] = None,
    ) -> ChangeSubscription:
        subscription = ChangeSubscription(self, predicate)
        self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, change: OrderChange) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(change):
                subscription.notify()
        logger.debug(
            f"Published change for order {change.order_id} "
            f"to {len(self._subscriptions)} subscriber(s)"
        )
